"""
Timezone Service - Objective time zone resolution

The planned date/start are wall-clock values at the objective, so the zone
must be known before any provider can select its forecast hour.

Resolution order:
1. NOAA points metadata (properties.timeZone), cached 12 hours. The same
   cached metadata later hands the weather fetcher its forecastHourly URL.
2. Fixed UTC offset from longitude (round(lon / 15)) when NOAA has no
   coverage or is unreachable.
"""
import logging
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Any, Dict, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from summitcast.errors import RequestValidationFailure, UpstreamError
from summitcast.services.http_client import fetch_json
from summitcast.services.provider_base import PlanningWindow
from summitcast.utils.cache import CacheService, build_location_key

# Configure logging
logger = logging.getLogger(__name__)

NOAA_POINTS_URL = "https://api.weather.gov/points/{lat:.4f},{lon:.4f}"


def fetch_noaa_points(
    latitude: float,
    longitude: float,
    cache: CacheService,
    timeout: Optional[float] = None,
) -> Dict[str, Any]:
    """
    Fetch NOAA point metadata (CACHED 12 hours).

    Returns:
        The "properties" object of the points response

    Raises:
        UpstreamError: On network failure or a payload without properties
    """
    cache_key = build_location_key("points", latitude, longitude, precision=4)
    cached, _, found = cache.get(cache_key)
    if found:
        return cached

    url = NOAA_POINTS_URL.format(lat=latitude, lon=longitude)
    payload = fetch_json(url, timeout=timeout)
    properties = payload.get("properties") if isinstance(payload, dict) else None
    if not isinstance(properties, dict):
        raise UpstreamError("NOAA points response missing properties", url=url)

    cache.set(cache_key, properties)
    return properties


def longitude_offset_zone(longitude: float) -> Tuple[tzinfo, str]:
    """
    Approximate the local zone from longitude alone.

    Example:
        >>> longitude_offset_zone(-105.6)[1]
        'UTC-07:00'
    """
    offset_hours = max(-12, min(14, int(round(longitude / 15.0))))
    sign = "+" if offset_hours >= 0 else "-"
    name = f"UTC{sign}{abs(offset_hours):02d}:00"
    return timezone(timedelta(hours=offset_hours), name), name


def resolve_timezone(
    latitude: float,
    longitude: float,
    cache: CacheService,
    timeout: Optional[float] = None,
) -> Tuple[tzinfo, str, Optional[Dict[str, Any]]]:
    """
    Resolve the objective's time zone.

    Returns:
        (tzinfo, zone name, NOAA points properties or None)
    """
    try:
        properties = fetch_noaa_points(latitude, longitude, cache, timeout=timeout)
    except UpstreamError as exc:
        logger.info(f"NOAA points unavailable for {latitude}, {longitude}, using longitude offset: {exc}")
        zone, name = longitude_offset_zone(longitude)
        return zone, name, None

    zone_name = properties.get("timeZone")
    if isinstance(zone_name, str) and zone_name:
        try:
            return ZoneInfo(zone_name), zone_name, properties
        except (ZoneInfoNotFoundError, ValueError) as exc:
            logger.warning(f"Unknown IANA zone '{zone_name}' from NOAA points: {exc}")

    zone, name = longitude_offset_zone(longitude)
    return zone, name, properties


def build_planning_window(
    planned_date: date,
    start_time: time,
    travel_window_hours: int,
    zone: tzinfo,
    zone_name: str,
) -> PlanningWindow:
    """
    Combine the local date/start with the resolved zone into one instant.

    A wall-clock start skipped by a daylight-saving jump does not exist and
    is rejected. A repeated (fall-back) start resolves to its first
    occurrence.

    Raises:
        RequestValidationFailure: The start does not exist on that date in the zone
    """
    local = datetime.combine(planned_date, start_time)
    start = local.replace(tzinfo=zone)
    if start.astimezone(timezone.utc).astimezone(zone).replace(tzinfo=None) != local:
        raise RequestValidationFailure(
            f"start {start_time.strftime('%H:%M')} does not exist on {planned_date.isoformat()} "
            f"in {zone_name} (daylight saving change)"
        )
    return PlanningWindow(start=start, travel_window_hours=travel_window_hours, tz_name=zone_name)
