"""
Gear Suggestions - Layering and kit checklist for the planned window

Each rule adds a keyed suggestion with a priority (lower comes first). A key
added twice keeps its lowest-priority entry. The list is sorted by priority
and capped at MAX_SUGGESTIONS.

Inputs are the already-built provider payloads, so this is pure and adds no
upstream calls.
"""
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from summitcast.utils.weather_math import finite_values, parse_number

# Configure logging
logger = logging.getLogger(__name__)

MAX_SUGGESTIONS = 9

WET_PATTERN = re.compile(r"rain|shower|drizzle|wet|thunder|storm")
SNOW_PATTERN = re.compile(r"snow|sleet|freezing|ice|blizzard|wintry|graupel|flurr")


def _whole(value: Optional[float], suffix: str) -> Optional[str]:
    return f"{round(value)}{suffix}" if value is not None else None


def _one_decimal(value: Optional[float], suffix: str) -> Optional[str]:
    return f"{value:.1f}{suffix}" if value is not None else None


def max_observed_snow_depth(snowpack: Dict[str, Any]) -> float:
    """Deepest SNOTEL / NOHRSC snow depth in inches, 0.0 when neither reports."""
    depths = finite_values(
        (snowpack.get(source) or {}).get("snow_depth_in") for source in ("snotel", "nohrsc")
    )
    return max([0.0] + depths)


class _Checklist:
    def __init__(self):
        self._entries: Dict[str, Tuple[str, int]] = {}

    def add(self, key: str, text: str, priority: int = 50) -> None:
        existing = self._entries.get(key)
        if existing is None or priority < existing[1]:
            self._entries[key] = (text, priority)

    def ordered(self) -> List[str]:
        ranked = sorted(self._entries.values(), key=lambda entry: entry[1])
        return [text for text, _ in ranked][:MAX_SUGGESTIONS]


def build_gear_suggestions(
    weather: Dict[str, Any],
    terrain_label: Optional[str] = None,
    rainfall: Optional[Dict[str, Any]] = None,
    snowpack: Optional[Dict[str, Any]] = None,
    avalanche: Optional[Dict[str, Any]] = None,
    avalanche_relevant: bool = True,
    air_quality: Optional[Dict[str, Any]] = None,
    alerts: Optional[Dict[str, Any]] = None,
    fire_risk: Optional[Dict[str, Any]] = None,
) -> List[str]:
    """
    Build the layering/gear checklist.

    Args:
        weather: Weather snapshot payload
        terrain_label: Trail surface label (e.g. "Wet / Muddy")
        rainfall: Rainfall payload with a "totals" block
        snowpack: Snowpack payload with "snotel" / "nohrsc" samples
        avalanche: Avalanche payload (danger_level, danger_unknown)
        avalanche_relevant: Whether avalanche hazard applies to this window
        air_quality: Air-quality payload (us_aqi)
        alerts: Alerts payload (active_count)
        fire_risk: Fire-risk synthesis (level, label)

    Returns:
        Up to MAX_SUGGESTIONS strings, most important first

    Example:
        >>> build_gear_suggestions({"temp_f": 60, "wind_mph": 5})[0]
        'Layering core: Moisture-wicking base + breathable midlayer. Avoid cotton to limit chill during breaks.'
    """
    rainfall = rainfall or {}
    snowpack = snowpack or {}
    avalanche = avalanche or {}
    air_quality = air_quality or {}
    alerts = alerts or {}
    fire_risk = fire_risk or {}

    description = str(weather.get("description") or "").lower()
    temp = parse_number(weather.get("temp_f"))
    feels = parse_number(weather.get("feels_like_f"))
    if feels is None:
        feels = temp
    wind = parse_number(weather.get("wind_mph"))
    gust = parse_number(weather.get("gust_mph"))
    precip = parse_number(weather.get("precip_chance"))
    humidity = parse_number(weather.get("humidity"))

    totals = rainfall.get("totals") or {}
    rain_24h = parse_number(totals.get("past24h_in"))
    snow_24h = parse_number(totals.get("snow_past24h_in"))
    snow_depth = max_observed_snow_depth(snowpack)

    trail = str(terrain_label or "").lower()
    wet_signal = bool(WET_PATTERN.search(description)) or (
        precip is not None and precip >= 45 and temp is not None and temp > 30
    )
    snow_signal = (
        bool(SNOW_PATTERN.search(description))
        or (temp is not None and temp <= 34 and precip is not None and precip >= 40)
        or snow_depth >= 2
    )
    windy = (gust is not None and gust >= 25) or (wind is not None and wind >= 18)
    cold = feels is not None and feels <= 20
    very_cold = feels is not None and feels <= 5
    muddy = "mud" in trail
    icy = "icy" in trail or "snow" in trail
    rain_accumulation = rain_24h is not None and rain_24h >= 0.2
    fresh_snow = snow_24h is not None and snow_24h >= 2

    checklist = _Checklist()
    checklist.add(
        "layering-core",
        "Layering core: Moisture-wicking base + breathable midlayer. Avoid cotton to limit chill during breaks.",
        10,
    )

    if wet_signal or rain_accumulation:
        details = [d for d in (_whole(precip, "% precip"), _one_decimal(rain_24h, " in rain/24h")) if d]
        suffix = f" ({' and '.join(details)})" if details else ""
        checklist.add("shell-wet", f"Storm shell: Waterproof-breathable jacket + pants{suffix}.", 20)
        checklist.add("gaiters-wet", "Wet-foot control: Gaiters + waterproof footwear to reduce ankle/boot soak-through.", 32)
    elif snow_signal or windy:
        gusts = _whole(gust, " mph gusts")
        suffix = f" ({gusts})" if gusts else ""
        checklist.add("shell-wind-snow", f"Wind/snow shell: Wind-resistant outer layer for exposed terrain{suffix}.", 22)
    else:
        checklist.add("shell-light", "Light shell backup: Pack a light wind shell for ridge exposure and fast weather shifts.", 60)

    if cold or snow_signal or windy:
        feels_text = _whole(feels, "F")
        suffix = f" (feels {feels_text})" if feels_text else ""
        checklist.add(
            "insulation-stop",
            f"Static insulation: Puffy sized over active layers{suffix} for stops and contingencies.",
            24,
        )
    if very_cold:
        checklist.add("extremities-cold", "Cold extremities kit: Warm hat, neck gaiter, insulated gloves/mitts, and spare liners.", 16)

    if muddy or rain_accumulation:
        checklist.add("traction-mud", "Mud traction: Aggressive-lug footwear and poles for slick or soft approaches.", 34)
    if icy or fresh_snow or snow_depth >= 4:
        depth_text = _one_decimal(snow_depth, " in observed snow depth") if snow_depth > 0 else None
        suffix = f" ({depth_text})" if depth_text else ""
        checklist.add("traction-snow", f"Snow/ice traction: Carry traction devices + poles{suffix}.", 26)

    if humidity is not None and humidity > 80:
        checklist.add(
            "humidity-management",
            f"Moisture backup: Pack one dry base layer for high humidity ({round(humidity)}% RH).",
            48,
        )
    aqi = parse_number(air_quality.get("us_aqi"))
    if aqi is not None and aqi >= 101:
        checklist.add("aq-health", f"Air quality protection: Buff/mask + lower-intensity pacing (AQI {round(aqi)}).", 30)
    active_alerts = parse_number(alerts.get("active_count"))
    if active_alerts:
        checklist.add("alerts-comms", "Alerts contingency: Verify active alert details and carry backup comms/power.", 28)
    fire_level = parse_number(fire_risk.get("level"))
    if fire_level is not None and fire_level >= 3:
        label = fire_risk.get("label") or "elevated fire risk"
        checklist.add(
            "fire-risk",
            f"Heat/fire prep: Extra water + sun protection; verify land-management restrictions ({label}).",
            36,
        )

    if avalanche_relevant:
        danger = parse_number(avalanche.get("danger_level"))
        if danger is not None and danger >= 2:
            checklist.add("avalanche-kit", "Avalanche rescue kit: Beacon, shovel, probing pole, and partner check before departure.", 14)
        if avalanche.get("danger_unknown"):
            checklist.add(
                "avalanche-unknown",
                "Avalanche coverage gap: No official rating. Choose non-avalanche terrain and conservative slopes.",
                12,
            )

    checklist.add(
        "final-system-check",
        "Final system check: Confirm shell + insulation work together without loft compression or mobility loss.",
        70,
    )
    suggestions = checklist.ordered()
    logger.debug(f"Built {len(suggestions)} gear suggestions")
    return suggestions
