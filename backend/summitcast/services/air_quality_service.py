"""
Air Quality Service - Open-Meteo hourly US AQI near the planned start

The sample closest to the planned instant is used when it lies within 90
minutes; otherwise the planned start is beyond the air-quality horizon and
no AQI is reported.
"""
import logging
from datetime import timedelta, timezone
from typing import Any, Dict, Optional

from summitcast.errors import UpstreamMalformed
from summitcast.services.algorithm_config import AIR_QUALITY_MATCH_MINUTES
from summitcast.services.http_client import fetch_json, open_meteo_params, open_meteo_url
from summitcast.services.provider_base import (
    STATUS_OK,
    STATUS_ZEROED,
    FetchContext,
    ProviderFetcher,
    ProviderResult,
)
from summitcast.utils.time_utils import parse_iso_datetime
from summitcast.utils.weather_math import classify_us_aqi, parse_number

# Configure logging
logger = logging.getLogger(__name__)

AIR_QUALITY_FIELDS = "us_aqi,pm2_5,pm10,ozone"


def _empty_sample(status: str, note: str) -> Dict[str, Any]:
    return {
        "status": status,
        "us_aqi": None,
        "category": "Unknown",
        "pm25": None,
        "pm10": None,
        "ozone": None,
        "measured_time": None,
        "note": note,
    }


def select_sample(payload: Dict[str, Any], planned_utc, max_minutes: int = AIR_QUALITY_MATCH_MINUTES) -> Dict[str, Any]:
    """
    Pick the hourly sample nearest the planned instant.

    Returns:
        Sample dict with status "ok" or "beyond_horizon"
    """
    hourly = payload["hourly"]
    times = hourly.get("time") or []
    if not times:
        raise UpstreamMalformed("Air-quality response has no hourly time series")

    best_index: Optional[int] = None
    best_delta = None
    for idx, raw in enumerate(times):
        moment = parse_iso_datetime(raw)
        if moment is None:
            continue
        delta = abs((moment - planned_utc).total_seconds())
        if best_delta is None or delta < best_delta:
            best_index, best_delta = idx, delta

    if best_index is None or best_delta > timedelta(minutes=max_minutes).total_seconds():
        return _empty_sample("beyond_horizon", "Planned start is beyond the air-quality forecast horizon.")

    def read(key: str) -> Optional[float]:
        series = hourly.get(key) or []
        return parse_number(series[best_index]) if best_index < len(series) else None

    us_aqi = read("us_aqi")
    measured = parse_iso_datetime(times[best_index])
    return {
        "status": "ok" if us_aqi is not None else "no_data",
        "us_aqi": round(us_aqi) if us_aqi is not None else None,
        "category": classify_us_aqi(us_aqi),
        "pm25": read("pm2_5"),
        "pm10": read("pm10"),
        "ozone": read("ozone"),
        "measured_time": measured.isoformat() if measured else None,
        "note": None,
    }


class AirQualityFetcher(ProviderFetcher):
    """Open-Meteo air-quality API; failure is zeroed."""

    category = "air_quality"
    source = "Open-Meteo Air Quality"

    def _fetch(self, ctx: FetchContext) -> ProviderResult:
        params = open_meteo_params({
            "latitude": ctx.latitude,
            "longitude": ctx.longitude,
            "hourly": AIR_QUALITY_FIELDS,
            "timezone": "UTC",
            "forecast_days": 5,
        })
        payload = fetch_json(open_meteo_url("air_quality"), params=params, timeout=ctx.call_timeout())
        sample = select_sample(payload, ctx.window.start.astimezone(timezone.utc))
        return self.result(STATUS_OK, sample)

    def fallback(self, ctx: FetchContext, reason: str) -> ProviderResult:
        return self.result(
            STATUS_ZEROED,
            _empty_sample("unavailable", "Air-quality data unavailable."),
            warning=f"Air-quality feed unavailable ({reason}).",
            source="Unavailable",
        )
