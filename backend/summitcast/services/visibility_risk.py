"""
Visibility Risk - Whiteout / reduced-visibility score (0-100) for the window

Points accumulate from:
- Forecast wording (whiteout/blizzard, blowing snow, light snow, fog/smoke/haze, rain)
- Precipitation chance, transport wind, saturated low-contrast air, overcast
- Trend hours that each carry three or more reduced-visibility points
- A night start (terrain contrast)

The score maps to Minimal / Low / Moderate / High / Extreme. An unavailable
weather snapshot yields score None (level "Unknown") so the scorer can fall
back to the plain forecast-wording check.
"""
import logging
import re
from typing import Any, Dict, List, Optional

from summitcast.utils.weather_math import parse_number

# Configure logging
logger = logging.getLogger(__name__)

VISIBILITY_SOURCE = "Derived from weather description, precipitation, wind, humidity, and cloud cover signals"

# (pattern, points, factor); first match wins
DESCRIPTION_TIERS = [
    (r"whiteout|ground blizzard|blizzard", 55, "whiteout/blizzard wording in forecast"),
    (r"snow squall|heavy snow|blowing snow|snow showers", 38, "snowfall or blowing-snow signal"),
    (r"\bsnow\b", 12, "light snow signal"),
    (r"dense fog|freezing fog|fog|mist|haze|smoke", 30, "fog/smoke/haze signal"),
    (r"drizzle|rain|showers", 12, "rain/drizzle signal"),
]
PRECIP_TIERS = [(80, 22, "high"), (60, 16, "elevated"), (40, 10, "moderate"), (25, 4, "minor")]
WIND_TIERS = [(45, 20), (35, 14), (25, 8)]
ACTIVE_HOUR_TIERS = [(6, 12, "persistent reduced visibility"), (3, 7, "reduced visibility"),
                     (1, 3, "brief reduced visibility")]
NIGHT_POINTS = 6

LEVELS = [(80, "Extreme"), (60, "High"), (40, "Moderate"), (20, "Low"), (0, "Minimal")]
SUMMARIES = {
    "Extreme": "Whiteout conditions are plausible; terrain contrast and navigation margin may collapse quickly.",
    "High": "Poor visibility is likely during this window. Expect route-finding and terrain-reading difficulty.",
    "Moderate": "Intermittent visibility reductions are possible. Keep close navigation checks.",
    "Low": "Mostly workable visibility with occasional reduced-contrast periods.",
    "Minimal": "No strong whiteout signal in the selected period.",
}

_POINT_PATTERN = re.compile(r"whiteout|blizzard|snow squall|blowing snow|fog|mist|haze|smoke")


def _effective_wind(wind: Optional[float], gust: Optional[float]) -> float:
    return max(wind or 0.0, gust or 0.0)


def trend_point_signals(point: Dict[str, Any]) -> int:
    """Reduced-visibility points for one trend hour (3 or more counts the hour as active)."""
    condition = str(point.get("condition") or "").lower()
    precip = parse_number(point.get("precip_chance"))
    humidity = parse_number(point.get("humidity"))
    cloud = parse_number(point.get("cloud_cover"))
    wind = _effective_wind(parse_number(point.get("wind_mph")), parse_number(point.get("gust_mph")))

    signals = 0
    if _POINT_PATTERN.search(condition):
        signals += 2
    if precip is not None and precip >= 60:
        signals += 2
    elif precip is not None and precip >= 40:
        signals += 1
    if humidity is not None and cloud is not None and humidity >= 92 and cloud >= 92:
        signals += 2
    elif cloud is not None and cloud >= 90:
        signals += 1
    if wind >= 35:
        signals += 2
    elif wind >= 25:
        signals += 1
    return signals


def visibility_level(score: int) -> str:
    for threshold, label in LEVELS:
        if score >= threshold:
            return label
    return "Minimal"


def build_visibility_risk(weather: Dict[str, Any]) -> Dict[str, Any]:
    """
    Visibility/whiteout synthesis from a weather snapshot payload.

    Example:
        >>> build_visibility_risk({"description": "Blowing Snow", "wind_mph": 30, "trend": []})["level"]
        'Moderate'
    """
    description = str(weather.get("description") or "").lower().strip()
    precip = parse_number(weather.get("precip_chance"))
    humidity = parse_number(weather.get("humidity"))
    cloud = parse_number(weather.get("cloud_cover"))
    wind = parse_number(weather.get("wind_mph"))
    gust = parse_number(weather.get("gust_mph"))
    trend = weather.get("trend") or []

    wording_missing = not description or "unavailable" in description
    if wording_missing and trend == [] and all(v is None for v in (precip, humidity, cloud, wind, gust)):
        return {
            "score": None,
            "level": "Unknown",
            "summary": "Visibility/whiteout signal unavailable for this selected period.",
            "factors": [],
            "active_hours": None,
            "window_hours": None,
            "source": VISIBILITY_SOURCE,
        }

    score = 0
    factors: List[str] = []

    for pattern, points, factor in DESCRIPTION_TIERS:
        if re.search(pattern, description):
            score += points
            factors.append(factor)
            break

    if precip is not None:
        for threshold, points, label in PRECIP_TIERS:
            if precip >= threshold:
                score += points
                factors.append(f"{label} precip chance ({round(precip)}%)")
                break

    effective = _effective_wind(wind, gust)
    for threshold, points in WIND_TIERS:
        if effective >= threshold:
            score += points
            factors.append(f"wind-driven visibility reduction possible ({round(effective)} mph)")
            break

    if humidity is not None and cloud is not None and humidity >= 92 and cloud >= 92:
        score += 18
        factors.append(f"saturated low-contrast air mass ({round(humidity)}% RH / {round(cloud)}% cloud)")
    elif humidity is not None and humidity >= 90:
        score += 8
        factors.append(f"very high humidity ({round(humidity)}%)")

    if cloud is not None and cloud >= 95:
        score += 8
        factors.append(f"overcast signal ({round(cloud)}% cloud)")
    elif cloud is not None and cloud >= 80:
        score += 4
        factors.append(f"mostly overcast signal ({round(cloud)}% cloud)")

    active_hours = len([p for p in trend if trend_point_signals(p) >= 3])
    for threshold, points, label in ACTIVE_HOUR_TIERS:
        if active_hours >= threshold:
            score += points
            factors.append(f"{active_hours}/{len(trend)} trend hours show {label}")
            break

    if weather.get("is_daytime") is False:
        score += NIGHT_POINTS
        factors.append("nighttime period reduces terrain contrast")

    score = max(0, min(100, round(score)))
    level = visibility_level(score)
    return {
        "score": score,
        "level": level,
        "summary": SUMMARIES[level],
        "factors": factors[:4],
        "active_hours": active_hours,
        "window_hours": len(trend),
        "source": VISIBILITY_SOURCE,
    }
