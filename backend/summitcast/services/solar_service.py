"""
Solar Service - Sunrise, sunset, and sun elevation for the planned date

Sunrise/sunset/solar noon come from api.sunrisesunset.io (cached 6 hours).
When that is unavailable the same values are computed locally from the NOAA
solar position equations and the result is marked degraded.

The hourly sun-elevation curve is always computed locally; the terrain
classifier uses it to weigh morning refreeze against afternoon softening.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from summitcast.errors import UpstreamMalformed
from summitcast.services.http_client import fetch_json
from summitcast.services.provider_base import (
    STATUS_DEGRADED,
    STATUS_OK,
    FetchContext,
    ProviderFetcher,
    ProviderResult,
)
from summitcast.utils.cache import build_location_key
from summitcast.utils.time_utils import hourly_solar_curve, solar_events

# Configure logging
logger = logging.getLogger(__name__)

SUNRISE_SUNSET_URL = "https://api.sunrisesunset.io/json"


def _local_clock_to_datetime(value: Any, local_midnight: datetime) -> Optional[datetime]:
    """Turn an "6:42:10 AM" style clock string into an aware local datetime."""
    if not isinstance(value, str) or not value.strip():
        return None
    for fmt in ("%I:%M:%S %p", "%I:%M %p", "%H:%M:%S", "%H:%M"):
        try:
            clock = datetime.strptime(value.strip().upper(), fmt)
        except ValueError:
            continue
        return local_midnight + timedelta(hours=clock.hour, minutes=clock.minute, seconds=clock.second)
    return None


def _day_length_seconds(value: Any) -> Optional[int]:
    """Parse "HH:MM:SS" day length."""
    if not isinstance(value, str):
        return None
    parts = value.strip().split(":")
    if len(parts) != 3 or not all(p.isdigit() for p in parts):
        return None
    hours, minutes, seconds = (int(p) for p in parts)
    return hours * 3600 + minutes * 60 + seconds


def computed_solar_payload(latitude: float, longitude: float, local_midnight: datetime) -> Dict[str, Any]:
    """Sun events from the local astronomical computation (local time ISO strings)."""
    events = solar_events(latitude, longitude, local_midnight.date())
    zone = local_midnight.tzinfo

    def local_iso(moment: Optional[datetime]) -> Optional[str]:
        return moment.astimezone(zone).isoformat() if moment is not None else None

    return {
        "sunrise": local_iso(events["sunrise"]),
        "sunset": local_iso(events["sunset"]),
        "solar_noon": local_iso(events["solar_noon"]),
        "day_length_seconds": events["day_length_seconds"],
        "polar": events["polar"],
    }


class SolarFetcher(ProviderFetcher):
    """sunrisesunset.io with astronomical fallback."""

    category = "solar"
    source = "SunriseSunset.io"

    def _cache_key(self, ctx: FetchContext) -> str:
        return build_location_key("solar", ctx.latitude, ctx.longitude, ctx.window.local_date.isoformat(), precision=2)

    def _fetch(self, ctx: FetchContext) -> ProviderResult:
        local_midnight = ctx.window.local_midnight
        cache_key = self._cache_key(ctx)
        cached, age, found = ctx.cache.get(cache_key)
        if found:
            events = cached
        else:
            payload = fetch_json(
                SUNRISE_SUNSET_URL,
                params={"lat": ctx.latitude, "lng": ctx.longitude, "date": ctx.window.local_date.isoformat()},
                timeout=ctx.call_timeout(),
            )
            if not isinstance(payload, dict) or payload.get("status") != "OK":
                raise UpstreamMalformed("sunrisesunset.io response status is not OK")
            results = payload.get("results")
            if not isinstance(results, dict):
                raise UpstreamMalformed("sunrisesunset.io response missing results")

            sunrise = _local_clock_to_datetime(results.get("sunrise"), local_midnight)
            sunset = _local_clock_to_datetime(results.get("sunset"), local_midnight)
            solar_noon = _local_clock_to_datetime(results.get("solar_noon"), local_midnight)
            if sunrise is None or sunset is None or solar_noon is None:
                raise UpstreamMalformed("sunrisesunset.io returned unparseable sun times")

            events = {
                "sunrise": sunrise.isoformat(),
                "sunset": sunset.isoformat(),
                "solar_noon": solar_noon.isoformat(),
                "day_length_seconds": _day_length_seconds(results.get("day_length")),
                "polar": None,
            }
            ctx.cache.set(cache_key, events)
            age = 0.0

        payload = dict(events, elevation_curve=hourly_solar_curve(ctx.latitude, ctx.longitude, local_midnight))
        return self.result(STATUS_OK, payload, age_seconds=age or 0.0)

    def fallback(self, ctx: FetchContext, reason: str) -> ProviderResult:
        local_midnight = ctx.window.local_midnight
        payload = computed_solar_payload(ctx.latitude, ctx.longitude, local_midnight)
        payload["elevation_curve"] = hourly_solar_curve(ctx.latitude, ctx.longitude, local_midnight)
        return self.result(
            STATUS_DEGRADED,
            payload,
            warning=f"Sun times computed locally ({reason}).",
            source="NOAA solar equations",
        )
