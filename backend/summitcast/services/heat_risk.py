"""
Heat Risk - Heat-stress level (0-4) for the travel window

Two signals, the higher level wins:
- Peak apparent temperature across the window (current point + every trend
  point's own feels-like value)
- Peak air temperature combined with humidity
"""
import logging
from typing import Any, Dict, List, Optional

from summitcast.services.algorithm_config import (
    HEAT_FEELS_LIKE_TIERS,
    HEAT_GUARDED_DAYTIME_F,
    HEAT_HUMIDITY_TIERS,
    HEAT_LABELS,
)
from summitcast.utils.weather_math import finite_values, parse_number

# Configure logging
logger = logging.getLogger(__name__)

HEAT_GUIDANCE = [
    "No notable heat signal from current forecast inputs.",
    "Warm exposure possible. Bring extra water and manage sun/shade transitions.",
    "Heat stress is plausible during sustained movement. Increase hydration and pace control.",
    "High heat-stress risk. Shorten exposed pushes and enforce frequent cooling breaks.",
    "Extreme heat-stress risk. Avoid committing to long, exposed objectives in this window.",
]
HEAT_SOURCE = "Derived from forecast temperature, apparent temperature and humidity"


def peak_feels_like(weather: Dict[str, Any]) -> Optional[float]:
    """
    Highest apparent temperature in the window.

    Uses each trend point's own feels-like value, so a humid hour with a
    lower air temperature can still set the peak.

    Example:
        >>> peak_feels_like({"feels_like_f": 80, "trend": [{"feels_like_f": 95, "temp_f": 85},
        ...                                                {"feels_like_f": 90, "temp_f": 90}]})
        95.0
    """
    trend = weather.get("trend") or []
    series = finite_values(
        [weather.get("feels_like_f")]
        + [point.get("feels_like_f") if point.get("feels_like_f") is not None else point.get("temp_f") for point in trend]
    )
    if not series:
        series = finite_values([weather.get("temp_f")])
    return max(series) if series else None


def peak_temperature(weather: Dict[str, Any]) -> Optional[float]:
    trend = weather.get("trend") or []
    series = finite_values([weather.get("temp_f")] + [point.get("temp_f") for point in trend])
    return max(series) if series else None


def build_heat_risk(weather: Dict[str, Any], weather_usable: bool = True) -> Dict[str, Any]:
    """
    Heat-risk synthesis for the planned window.

    Args:
        weather: Weather snapshot payload
        weather_usable: False when the weather provider was zeroed

    Returns:
        {status, level, label, guidance, reasons, metrics, source}
    """
    temp = parse_number(weather.get("temp_f"))
    humidity = parse_number(weather.get("humidity"))
    is_daytime = weather.get("is_daytime")
    peak_feels = peak_feels_like(weather)
    peak_temp = peak_temperature(weather)

    metrics = {
        "temp_f": temp,
        "feels_like_f": parse_number(weather.get("feels_like_f")),
        "humidity": humidity,
        "peak_temp_f": peak_temp,
        "peak_feels_like_f": peak_feels,
        "is_daytime": is_daytime if isinstance(is_daytime, bool) else None,
    }
    if not weather_usable or (peak_feels is None and peak_temp is None):
        return {
            "status": "unavailable",
            "level": 0,
            "label": HEAT_LABELS[0],
            "guidance": "Heat-risk signal unavailable.",
            "reasons": ["Heat-risk signal unavailable."],
            "metrics": metrics,
            "source": HEAT_SOURCE,
        }

    level = 0
    reasons: List[str] = []
    if peak_feels is not None:
        for threshold, tier_level in HEAT_FEELS_LIKE_TIERS:
            if peak_feels >= threshold:
                level = max(level, tier_level)
                reasons.append(f"Peak apparent temperature in the travel window reaches {round(peak_feels)}F.")
                break
        else:
            if peak_feels >= HEAT_GUARDED_DAYTIME_F and is_daytime is not False:
                level = max(level, 1)
                reasons.append(f"Warm daytime apparent temperature near {round(peak_feels)}F.")

    if peak_temp is not None and humidity is not None:
        for min_temp, min_humidity, tier_level in HEAT_HUMIDITY_TIERS:
            if peak_temp >= min_temp and humidity >= min_humidity:
                level = max(level, tier_level)
                reasons.append(f"Heat + humidity pattern ({round(peak_temp)}F, RH {round(humidity)}%).")
                break

    if temp is not None and temp >= 85 and is_daytime is False and level > 0:
        reasons.append("Selected start appears after dark, but daytime heat exposure can still matter later in the window.")

    return {
        "status": "ok",
        "level": level,
        "label": HEAT_LABELS[level],
        "guidance": HEAT_GUIDANCE[level],
        "reasons": reasons or [HEAT_GUIDANCE[0]],
        "metrics": metrics,
        "source": HEAT_SOURCE,
    }
