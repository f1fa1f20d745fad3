"""
Alerts Service - NWS active alerts for the objective point

Alerts describe current state only. Every active alert is returned with its
validity window; whether it overlaps the travel window is decided by the
relevance evaluator, not here.

API: https://api.weather.gov/alerts/active?point={lat},{lon}
"""
import logging
from typing import Any, Dict, List, Optional

from summitcast.errors import UpstreamMalformed
from summitcast.services.algorithm_config import ALERT_SEVERITY_RANK
from summitcast.services.http_client import fetch_json
from summitcast.services.provider_base import (
    STATUS_OK,
    STATUS_ZEROED,
    FetchContext,
    ProviderFetcher,
    ProviderResult,
)
from summitcast.utils.time_utils import parse_iso_datetime
from summitcast.utils.weather_math import normalize_alert_severity

# Configure logging
logger = logging.getLogger(__name__)

NWS_ALERTS_URL = "https://api.weather.gov/alerts/active"
NWS_ALERTS_PAGE = "https://alerts.weather.gov/"


def normalize_areas(area_desc: Any) -> List[str]:
    """
    Normalize areaDesc ("County A; County B" or a list) into a list.

    Example:
        >>> normalize_areas("Larimer; Boulder")
        ['Larimer', 'Boulder']
    """
    if isinstance(area_desc, list):
        raw = [str(item) for item in area_desc if item is not None]
    elif isinstance(area_desc, str):
        raw = area_desc.split(";")
    else:
        return []
    areas = []
    for item in raw:
        name = item.strip()
        if name and name not in areas:
            areas.append(name)
    return areas


def _iso_or_none(value: Any) -> Optional[str]:
    parsed = parse_iso_datetime(value)
    return parsed.isoformat() if parsed is not None else None


def parse_alert(feature: Dict[str, Any]) -> Dict[str, Any]:
    """Normalize one GeoJSON alert feature into a WeatherAlert dict."""
    props = feature.get("properties") or {}
    onset = props.get("onset") or props.get("effective") or props.get("sent")
    ends = props.get("ends") or props.get("expires")
    link = props.get("@id") or feature.get("id")
    if not isinstance(link, str) or not link.startswith("http"):
        link = NWS_ALERTS_PAGE
    return {
        "event": props.get("event") or "Alert",
        "severity": normalize_alert_severity(props.get("severity")),
        "headline": props.get("headline") or None,
        "onset": _iso_or_none(onset),
        "ends": _iso_or_none(ends),
        "areas": normalize_areas(props.get("areaDesc")),
        "link": link,
    }


def highest_severity(alerts: List[Dict[str, Any]]) -> str:
    best = "unknown"
    for alert in alerts:
        if ALERT_SEVERITY_RANK.get(alert["severity"], 0) > ALERT_SEVERITY_RANK[best]:
            best = alert["severity"]
    return best


class AlertsFetcher(ProviderFetcher):
    """NWS active alerts; failure is zeroed (no alert information)."""

    category = "alerts"
    source = "NOAA/NWS Active Alerts"

    def _fetch(self, ctx: FetchContext) -> ProviderResult:
        payload = fetch_json(
            NWS_ALERTS_URL,
            params={"point": f"{ctx.latitude:.4f},{ctx.longitude:.4f}"},
            timeout=ctx.call_timeout(),
        )
        features = payload.get("features") if isinstance(payload, dict) else None
        if not isinstance(features, list):
            raise UpstreamMalformed("NWS alerts response has no features list")

        alerts = [parse_alert(feature) for feature in features if isinstance(feature, dict)]
        alerts.sort(key=lambda a: (-ALERT_SEVERITY_RANK.get(a["severity"], 0), a["onset"] or "", a["event"]))
        return self.result(STATUS_OK, {
            "alerts": alerts,
            "active_count": len(alerts),
            "highest_severity": highest_severity(alerts),
        })

    def fallback(self, ctx: FetchContext, reason: str) -> ProviderResult:
        return self.result(
            STATUS_ZEROED,
            {"alerts": [], "active_count": 0, "highest_severity": "unknown"},
            warning=f"NWS alerts unavailable ({reason}).",
            source="Unavailable",
        )
