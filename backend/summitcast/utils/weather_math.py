"""
Numeric helpers shared by the provider fetchers and the scorer.

- parse_number: tolerant numeric parsing that never invents a zero
- Apparent temperature (NWS wind chill and Rothfusz heat index)
- Wind string / direction normalization
- Unit conversions and US AQI categories
- Lapse-rate elevation bands below the objective
"""
import math
import re
from typing import Any, Dict, Iterable, List, Optional

from summitcast.services.algorithm_config import (
    ALERT_SEVERITY_RANK,
    CM_PER_INCH,
    ELEVATION_BAND_TEMPLATES,
    GUST_INCREASE_MPH_PER_1000FT,
    MM_PER_INCH,
    TEMP_LAPSE_F_PER_1000FT,
    WIND_INCREASE_MPH_PER_1000FT,
)

_CARDINALS = ["N", "NNE", "NE", "ENE", "E", "ESE", "SE", "SSE",
              "S", "SSW", "SW", "WSW", "W", "WNW", "NW", "NNW"]
_NUMBER_PATTERN = re.compile(r"-?\d+(?:\.\d+)?")


def parse_number(value: Any) -> Optional[float]:
    """
    Parse a numeric value from upstream JSON.

    Returns:
        float, or None for missing/blank/non-numeric/non-finite input

    Example:
        >>> parse_number("12.5")
        12.5
        >>> parse_number("") is None
        True
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def finite_values(values: Iterable[Any]) -> List[float]:
    """Drop every entry parse_number() rejects."""
    parsed = (parse_number(v) for v in values)
    return [v for v in parsed if v is not None]


def parse_wind_mph(value: Any) -> Optional[float]:
    """
    Parse an NWS wind string such as "5 to 10 mph" (first figure wins).

    Numbers pass through; unparseable input yields None.
    """
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return max(0.0, float(round(value))) if math.isfinite(value) else None
    if not isinstance(value, str):
        return None
    match = _NUMBER_PATTERN.search(value)
    if not match:
        return None
    return max(0.0, float(int(float(match.group(0)))))


def degrees_to_cardinal(degrees: Any) -> Optional[str]:
    """Convert a wind bearing to a 16-point compass label."""
    value = parse_number(degrees)
    if value is None:
        return None
    return _CARDINALS[int(round((value % 360) / 22.5)) % 16]


def normalize_wind_direction(value: Any) -> Optional[str]:
    """Normalize an NWS direction string ("NW", "Variable", "calm")."""
    if not isinstance(value, str) or not value.strip():
        return None
    raw = value.strip().upper()
    if "CALM" in raw:
        return "CALM"
    if "VAR" in raw:
        return "VRB"
    compact = re.sub(r"[^A-Z]", "", raw)
    return compact if compact in _CARDINALS else None


def wind_chill_f(temp_f: float, wind_mph: float) -> float:
    """NWS wind chill formula (valid for T <= 50F, wind >= 3 mph)."""
    factor = wind_mph ** 0.16
    return 35.74 + 0.6215 * temp_f - 35.75 * factor + 0.4275 * temp_f * factor


def heat_index_f(temp_f: float, humidity: float) -> float:
    """
    Rothfusz regression heat index, with the NWS simple-formula shortcut
    below 80F and the low/high humidity adjustments.
    """
    simple = 0.5 * (temp_f + 61.0 + (temp_f - 68.0) * 1.2 + humidity * 0.094)
    if (simple + temp_f) / 2 < 80:
        return simple

    hi = (
        -42.379
        + 2.04901523 * temp_f
        + 10.14333127 * humidity
        - 0.22475541 * temp_f * humidity
        - 0.00683783 * temp_f ** 2
        - 0.05481717 * humidity ** 2
        + 0.00122874 * temp_f ** 2 * humidity
        + 0.00085282 * temp_f * humidity ** 2
        - 0.00000199 * temp_f ** 2 * humidity ** 2
    )
    if humidity < 13 and 80 <= temp_f <= 112:
        hi -= ((13 - humidity) / 4) * math.sqrt((17 - abs(temp_f - 95)) / 17)
    elif humidity > 85 and 80 <= temp_f <= 87:
        hi += ((humidity - 85) / 10) * ((87 - temp_f) / 5)
    return hi


def feels_like_f(temp_f: Optional[float], wind_mph: Optional[float], humidity: Optional[float]) -> Optional[float]:
    """
    Apparent temperature for one forecast point.

    Wind chill applies at T <= 50F with wind >= 3 mph, heat index at
    T >= 80F when humidity is known, otherwise the air temperature.
    """
    if temp_f is None:
        return None
    if temp_f <= 50 and wind_mph is not None and wind_mph >= 3:
        return round(wind_chill_f(temp_f, wind_mph), 1)
    if temp_f >= 80 and humidity is not None:
        return round(heat_index_f(temp_f, humidity), 1)
    return temp_f


def mm_to_inches(value: Optional[float]) -> Optional[float]:
    return None if value is None else value / MM_PER_INCH


def cm_to_inches(value: Optional[float]) -> Optional[float]:
    return None if value is None else value / CM_PER_INCH


def classify_us_aqi(aqi: Optional[float]) -> str:
    """US EPA AQI category name."""
    if aqi is None:
        return "Unknown"
    if aqi <= 50:
        return "Good"
    if aqi <= 100:
        return "Moderate"
    if aqi <= 150:
        return "Unhealthy for Sensitive Groups"
    if aqi <= 200:
        return "Unhealthy"
    if aqi <= 300:
        return "Very Unhealthy"
    return "Hazardous"


def normalize_alert_severity(value: Any) -> str:
    """Lower-cased NWS severity, "unknown" for anything unrecognized."""
    severity = str(value or "").strip().lower()
    return severity if severity in ALERT_SEVERITY_RANK else "unknown"


def build_elevation_forecast_bands(
    elevation_ft: Optional[float],
    temp_f: Optional[float],
    wind_mph: Optional[float],
    gust_mph: Optional[float],
) -> List[Dict[str, Any]]:
    """
    Estimate temperature and wind at fixed offsets below the objective.

    Lower bands are warmer (3.3F per 1000 ft) and calmer. Bands are unique by
    elevation and sorted from the lowest up to the objective itself.

    Example:
        >>> [b["elevation_ft"] for b in build_elevation_forecast_bands(10000, 20, 10, 20)]
        [7200, 8300, 9200, 10000]
    """
    if elevation_ft is None or temp_f is None:
        return []

    objective_ft = max(0, round(elevation_ft))
    template = next(bands for minimum, bands in ELEVATION_BAND_TEMPLATES if objective_ft >= minimum)

    bands = {}
    for label, offset in template:
        band_ft = max(0, min(objective_ft, round(objective_ft + offset)))
        if band_ft in bands:
            continue
        delta_kft = (band_ft - objective_ft) / 1000.0
        temp = round(temp_f - delta_kft * TEMP_LAPSE_F_PER_1000FT)
        wind = max(0, round((wind_mph or 0.0) + delta_kft * WIND_INCREASE_MPH_PER_1000FT))
        gust = max(0, round((gust_mph or 0.0) + delta_kft * GUST_INCREASE_MPH_PER_1000FT))
        bands[band_ft] = {
            "label": label,
            "delta_from_objective_ft": band_ft - objective_ft,
            "elevation_ft": band_ft,
            "temp_f": float(temp),
            "feels_like_f": feels_like_f(float(temp), float(wind), None),
            "wind_mph": float(wind),
            "gust_mph": float(gust),
        }
    return [bands[key] for key in sorted(bands)]
