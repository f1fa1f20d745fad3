"""
Time utility functions for SummitCast.

Handles request date/time parsing, travel-window clamping, upstream timestamp
parsing, and the NOAA solar-position equations used for the solar fallback
and the hourly sun-elevation curve.
"""
import math
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, List, Optional

from summitcast.errors import RequestValidationFailure
from summitcast.services.algorithm_config import (
    AVALANCHE_SHOULDER_MONTHS,
    AVALANCHE_WINTER_MONTHS,
    TRAVEL_WINDOW_MAX_HOURS,
    TRAVEL_WINDOW_MIN_HOURS,
)

_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_START_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")

# Standard refraction-corrected zenith for sunrise/sunset
_SUNRISE_ZENITH_DEG = 90.833


def parse_planning_date(value: str) -> date:
    """
    Parse a request date in YYYY-MM-DD form.

    Raises:
        RequestValidationFailure: If the value is not a real calendar date
    """
    if not isinstance(value, str) or not _DATE_PATTERN.match(value.strip()):
        raise RequestValidationFailure("date must use YYYY-MM-DD format")
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        raise RequestValidationFailure(f"date '{value}' is not a valid calendar date")


def parse_start_time(value: str) -> time:
    """
    Parse a 24h start time in HH:mm form.

    Raises:
        RequestValidationFailure: If the value is malformed
    """
    match = _START_PATTERN.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise RequestValidationFailure("start must use 24-hour HH:mm format")
    return time(int(match.group(1)), int(match.group(2)))


def clamp_travel_window(hours: Optional[int], default: int = 12) -> int:
    """
    Clamp the travel window to the supported 1..24 hour range.

    Example:
        >>> clamp_travel_window(36)
        24
        >>> clamp_travel_window(None, default=12)
        12
    """
    if hours is None:
        hours = default
    return max(TRAVEL_WINDOW_MIN_HOURS, min(TRAVEL_WINDOW_MAX_HOURS, int(hours)))


def get_avalanche_season(month: Optional[int]) -> str:
    """
    Classify a calendar month for avalanche relevance.

    Returns:
        "winter", "shoulder", "summer", or "unknown" when month is None
    """
    if month is None:
        return "unknown"
    if month in AVALANCHE_WINTER_MONTHS:
        return "winter"
    if month in AVALANCHE_SHOULDER_MONTHS:
        return "shoulder"
    return "summer"


def parse_iso_datetime(value: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp from an upstream payload.

    Naive timestamps are assumed to be UTC. Unix epoch numbers (seconds) are
    accepted too, since some avalanche feeds publish them.

    Returns:
        Timezone-aware datetime or None if the value cannot be parsed
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(float(value), tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    if text.isdigit():
        return parse_iso_datetime(int(text))
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def hours_between(start: datetime, end: datetime) -> float:
    """Signed hours from start to end."""
    return (end - start).total_seconds() / 3600.0


def count_freeze_thaw_cycles(temperatures: List[Optional[float]], threshold_f: float = 32.0) -> int:
    """
    Count freeze-thaw crossings in an hourly temperature series (F).

    A cycle is counted each time the series crosses the freezing threshold.
    Missing samples are skipped.
    """
    cycles = 0
    previous = None
    for temp in temperatures:
        if temp is None:
            continue
        if previous is not None and (previous < threshold_f) != (temp < threshold_f):
            cycles += 1
        previous = temp
    return cycles


def celsius_to_fahrenheit(celsius: float) -> float:
    """Convert Celsius to Fahrenheit."""
    return (celsius * 9 / 5) + 32


def fahrenheit_to_celsius(fahrenheit: float) -> float:
    """Convert Fahrenheit to Celsius."""
    return (fahrenheit - 32) * 5 / 9


# ============================================================================
# SOLAR POSITION (NOAA general solar position equations)
# ============================================================================

def _solar_terms(day_of_year: int, hour_utc: float):
    """Equation of time (minutes) and declination (radians) for a moment."""
    gamma = 2 * math.pi / 365 * (day_of_year - 1 + (hour_utc - 12) / 24)
    eqtime = 229.18 * (
        0.000075
        + 0.001868 * math.cos(gamma)
        - 0.032077 * math.sin(gamma)
        - 0.014615 * math.cos(2 * gamma)
        - 0.040849 * math.sin(2 * gamma)
    )
    decl = (
        0.006918
        - 0.399912 * math.cos(gamma)
        + 0.070257 * math.sin(gamma)
        - 0.006758 * math.cos(2 * gamma)
        + 0.000907 * math.sin(2 * gamma)
        - 0.002697 * math.cos(3 * gamma)
        + 0.00148 * math.sin(3 * gamma)
    )
    return eqtime, decl


def solar_elevation(latitude: float, longitude: float, moment: datetime) -> float:
    """
    Sun elevation above the horizon in degrees for a timezone-aware moment.

    Example:
        >>> noon = datetime(2024, 6, 21, 19, 0, tzinfo=timezone.utc)
        >>> round(solar_elevation(40.0, -105.0, noon))
        73
    """
    moment_utc = moment.astimezone(timezone.utc)
    hour_utc = moment_utc.hour + moment_utc.minute / 60 + moment_utc.second / 3600
    eqtime, decl = _solar_terms(moment_utc.timetuple().tm_yday, hour_utc)

    true_solar_minutes = hour_utc * 60 + eqtime + 4 * longitude
    hour_angle = math.radians(true_solar_minutes / 4 - 180)
    lat_rad = math.radians(latitude)

    cos_zenith = (
        math.sin(lat_rad) * math.sin(decl)
        + math.cos(lat_rad) * math.cos(decl) * math.cos(hour_angle)
    )
    cos_zenith = max(-1.0, min(1.0, cos_zenith))
    return 90.0 - math.degrees(math.acos(cos_zenith))


def solar_events(latitude: float, longitude: float, day: date) -> Dict[str, Any]:
    """
    Compute sunrise, solar noon, and sunset (UTC) for a calendar date.

    Polar day/night returns None for sunrise and sunset and flags it via
    "polar": "day" or "night".

    Returns:
        Dictionary with sunrise, sunset, solar_noon (aware UTC datetimes or
        None), day_length_seconds, and polar
    """
    midnight = datetime(day.year, day.month, day.day, tzinfo=timezone.utc)
    eqtime, decl = _solar_terms(day.timetuple().tm_yday, 12.0)
    lat_rad = math.radians(latitude)

    noon_minutes = 720 - 4 * longitude - eqtime
    solar_noon = midnight + timedelta(minutes=noon_minutes)

    cos_hour_angle = (
        math.cos(math.radians(_SUNRISE_ZENITH_DEG)) / (math.cos(lat_rad) * math.cos(decl))
        - math.tan(lat_rad) * math.tan(decl)
    ) if abs(math.cos(lat_rad)) > 1e-9 else (-2.0 if latitude * decl > 0 else 2.0)

    if cos_hour_angle > 1:
        return {"sunrise": None, "sunset": None, "solar_noon": solar_noon,
                "day_length_seconds": 0, "polar": "night"}
    if cos_hour_angle < -1:
        return {"sunrise": None, "sunset": None, "solar_noon": solar_noon,
                "day_length_seconds": 86400, "polar": "day"}

    hour_angle_deg = math.degrees(math.acos(cos_hour_angle))
    sunrise = midnight + timedelta(minutes=720 - 4 * (longitude + hour_angle_deg) - eqtime)
    sunset = midnight + timedelta(minutes=720 - 4 * (longitude - hour_angle_deg) - eqtime)
    return {
        "sunrise": sunrise,
        "sunset": sunset,
        "solar_noon": solar_noon,
        "day_length_seconds": int(round((sunset - sunrise).total_seconds())),
        "polar": None,
    }


def hourly_solar_curve(latitude: float, longitude: float, local_midnight: datetime) -> List[Dict[str, Any]]:
    """
    Sun elevation at each local hour of the planned date.

    Args:
        local_midnight: Timezone-aware midnight of the planned date in the
            objective's local zone

    Returns:
        24 dictionaries of {"time": ISO string, "elevation_deg": float}
    """
    curve = []
    for hour in range(24):
        moment = local_midnight + timedelta(hours=hour)
        curve.append({
            "time": moment.isoformat(),
            "elevation_deg": round(solar_elevation(latitude, longitude, moment), 2),
        })
    return curve
