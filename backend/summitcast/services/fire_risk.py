"""
Fire Risk - Fire-weather level (0-4) from weather, alerts and smoke signals

Levels:
- Red Flag Warning -> 4, Fire Weather Watch -> 3
- Hot/dry/windy weather tiers -> 4 / 3 / 2
- Smoke or haze in the forecast, AQI >= 101, or a wildfire/smoke/air quality
  alert -> 2
- AQI >= 51 -> 1

Only alerts already judged relevant to the travel window are considered.
"""
import logging
import re
from typing import Any, Dict, List, Optional

from summitcast.services.algorithm_config import FIRE_LABELS, FIRE_WEATHER_TIERS
from summitcast.utils.weather_math import parse_number

# Configure logging
logger = logging.getLogger(__name__)

FIRE_ALERT_PATTERN = re.compile(r"red flag|fire weather|wildfire|smoke|air quality", re.IGNORECASE)
FIRE_GUIDANCE = [
    "No strong fire-weather signal from current sources.",
    "Monitor updates; keep route options flexible.",
    "Avoid committing to long, exposed approaches; identify smoke/egress contingencies.",
    "Conservative plan advised: shorter objective, hard turn-around rules, and active monitoring.",
    "Do not commit to exposed objective windows in fire-prone terrain.",
]
FIRE_SOURCE = "Derived from NOAA weather, NWS alerts, and air-quality signals"

# Breezy-and-dry tier (temp F >=, humidity % <=, wind >= or gust >=)
BREEZY_DRY_TEMP_F = 70
BREEZY_DRY_HUMIDITY = 30
BREEZY_WIND_MPH = 12
BREEZY_GUST_MPH = 20


def build_fire_risk(
    weather: Dict[str, Any],
    relevant_alerts: List[Dict[str, Any]],
    us_aqi: Optional[float],
) -> Dict[str, Any]:
    """
    Fire-risk synthesis.

    Args:
        weather: Weather snapshot payload
        relevant_alerts: Alerts whose validity overlaps the travel window
        us_aqi: AQI sample near the planned start (None when unknown)
    """
    description = str(weather.get("description") or "").lower()
    temp = parse_number(weather.get("temp_f"))
    humidity = parse_number(weather.get("humidity"))
    wind = parse_number(weather.get("wind_mph"))
    gust = parse_number(weather.get("gust_mph"))

    fire_alerts = [a for a in relevant_alerts if FIRE_ALERT_PATTERN.search(str(a.get("event") or ""))]
    events = [str(a.get("event") or "") for a in fire_alerts]

    level = 0
    reasons = []
    if any(re.search(r"red flag warning", e, re.IGNORECASE) for e in events):
        level = 4
        reasons.append("Red Flag Warning is active.")
    elif any(re.search(r"fire weather watch", e, re.IGNORECASE) for e in events):
        level = 3
        reasons.append("Fire Weather Watch is active.")

    if temp is not None and humidity is not None and wind is not None:
        for min_temp, max_humidity, min_wind, tier_level in FIRE_WEATHER_TIERS:
            if temp >= min_temp and humidity <= max_humidity and wind >= min_wind:
                level = max(level, tier_level)
                reasons.append(f"Hot/dry/windy pattern ({temp:g}F, RH {humidity:g}%, wind {wind:g} mph).")
                break
        else:
            if temp >= BREEZY_DRY_TEMP_F and humidity <= BREEZY_DRY_HUMIDITY and (
                wind >= BREEZY_WIND_MPH or (gust is not None and gust >= BREEZY_GUST_MPH)
            ):
                level = max(level, 2)
                reasons.append(f"Dry and breezy conditions support faster fire spread ({temp:g}F, RH {humidity:g}%).")

    smoke_alert = any(re.search(r"wildfire|smoke|air quality", e, re.IGNORECASE) for e in events)
    if re.search(r"smoke|haze", description) or (us_aqi is not None and us_aqi >= 101) or smoke_alert:
        level = max(level, 2)
        reasons.append("Smoke/air-quality signal may indicate nearby fire activity or transport.")
    elif us_aqi is not None and us_aqi >= 51:
        level = max(level, 1)
        reasons.append("Moderate AQI could affect exertion tolerance in exposed terrain.")

    return {
        "status": "ok",
        "level": level,
        "label": FIRE_LABELS[level],
        "guidance": FIRE_GUIDANCE[level],
        "reasons": reasons or [FIRE_GUIDANCE[0]],
        "alerts_considered": [
            {"event": a.get("event"), "severity": a.get("severity"), "ends": a.get("ends"), "link": a.get("link")}
            for a in fire_alerts[:5]
        ],
        "source": FIRE_SOURCE,
    }
