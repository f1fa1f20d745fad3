"""
Terrain Classifier - Trail surface, snow profile and time-of-day segments

Inputs are the weather, snowpack, rainfall and solar provider results. The
classifier derives:
- a surface code (dry_firm, wet_muddy, snow_ice, ...) with label and impact
- a snow profile / freeze-thaw code (fresh_powder, spring_snow, ...)
- morning (sunrise -> solar noon) and afternoon (solar noon -> sunset)
  segments that combine trend temperatures with the solar elevation curve,
  so a frozen morning crust that softens under strong afternoon sun shows up
  as two different segment codes

Signals are computed once into TerrainSignals and every rule reads from that.
Unknown inputs stay None and never count as "dry" or "cold".
"""
import logging
import math
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from summitcast.services.algorithm_config import (
    FREEZE_THAW_HIGH_F,
    FREEZE_THAW_LOW_F,
    SPRING_CYCLE_HIGH_F,
    STRONG_SUN_ELEVATION_DEG,
)
from summitcast.services.provider_base import ProviderResult
from summitcast.services.relevance_evaluator import (
    NO_SNOWPACK_SIGNAL,
    SnowpackSignal,
    evaluate_snowpack_signal,
    has_snow_coverage,
)
from summitcast.utils.time_utils import parse_iso_datetime
from summitcast.utils.weather_math import finite_values, parse_number

# Configure logging
logger = logging.getLogger(__name__)

SNOW_WEATHER_PATTERN = re.compile(r"snow|sleet|ice|freezing|blizzard|flurr|graupel|rime|wintry")
RAIN_WEATHER_PATTERN = re.compile(r"rain|drizzle|shower|thunder|storm|wet")
SNOW_TREND_PATTERN = re.compile(r"snow|sleet|freezing|flurr|wintry|ice")
UNAVAILABLE_PATTERN = re.compile(r"unavailable")

NEAR_TERM_TREND_POINTS = 6
FREEZING_F = 32.0

# code -> (label, impact, recommended travel)
SURFACE_CODES: Dict[str, Tuple[str, str, str]] = {
    "weather_unavailable": (
        "Weather Unavailable",
        "moderate",
        "Treat conditions as unknown; verify with official products and in-field checks before committing.",
    ),
    "dry_firm": (
        "Dry / Firm Trail",
        "low",
        "Traction is generally favorable; watch for isolated loose or rocky sections.",
    ),
    "snow_fresh_powder": (
        "Fresh Powder Snow",
        "high",
        "Expect slower travel and hidden obstacles under fresh snow; prioritize conservative terrain and spacing.",
    ),
    "spring_snow": (
        "Corn-Snow Cycle",
        "moderate",
        "Time travel for supportive corn windows and expect rapid softening with daytime warming.",
    ),
    "wet_snow": (
        "Wet / Slushy Snow",
        "high",
        "Expect wet surface drag and unstable footing; shorten exposure and use lower-consequence terrain.",
    ),
    "snow_ice": (
        "Icy / Firm Snow",
        "high",
        "Use deliberate footwork on firm or icy surfaces and carry traction devices.",
    ),
    "wet_muddy": (
        "Wet / Muddy",
        "moderate",
        "Expect slick or muddy footing; slow down on steep or eroded sections.",
    ),
    "cold_slick": (
        "Cold / Slick",
        "moderate",
        "Expect patchy slick surfaces in shade and early hours; keep a conservative pace.",
    ),
    "dry_loose": (
        "Dry / Loose",
        "moderate",
        "Expect loose dust and gravel on hardpack; reduce speed on descents.",
    ),
    "mixed_variable": (
        "Variable Surface",
        "moderate",
        "Surface may change quickly across aspect and elevation; check footing often.",
    ),
}

SNOW_PROFILES = {
    "no_snow_signal": "No broad snow signal",
    "fresh_powder": "Fresh Powder",
    "spring_snow": "Corn-Snow Cycle",
    "wet_slushy_snow": "Wet / Slushy Snow",
    "icy_hardpack": "Icy / Firm Snow",
    "mixed_snow": "Mixed Snow Surface",
}

SEGMENT_LABELS = {
    "powder": "Cold powder",
    "frozen_crust": "Frozen crust",
    "soft_wet_snow": "Softening wet snow",
    "variable_snow": "Variable snow",
    "refrozen_slick": "Refrozen / slick",
    "thawing_mud": "Thawing mud",
    "wet_ground": "Wet ground",
    "dry_ground": "Dry ground",
    "no_forecast": "Outside forecast window",
    "dark": "Sun below horizon",
}


@dataclass(frozen=True)
class TerrainSignals:
    temp_f: Optional[float]
    precip_chance: Optional[float]
    humidity: Optional[float]
    wind_mph: Optional[float]
    gust_mph: Optional[float]
    wet_trend_hours: int
    snow_trend_hours: int
    freeze_thaw_min_f: Optional[float]
    freeze_thaw_max_f: Optional[float]
    rain_12h_in: Optional[float]
    rain_24h_in: Optional[float]
    rain_48h_in: Optional[float]
    snow_12h_in: Optional[float]
    snow_24h_in: Optional[float]
    snow_48h_in: Optional[float]
    expected_rain_in: Optional[float]
    expected_snow_in: Optional[float]
    max_snow_depth_in: Optional[float]
    max_swe_in: Optional[float]
    snow_coverage: bool
    snow_weather: bool
    rain_weather: bool
    rain_accumulation: bool
    fresh_snow: bool
    expected_rain: bool
    expected_snow: bool
    freeze_thaw: bool
    dry_windy: bool
    weather_unavailable: bool

    @property
    def no_snow_or_wet(self) -> bool:
        return not (
            self.snow_coverage
            or self.snow_weather
            or self.fresh_snow
            or self.expected_snow
            or self.snow_trend_hours
            or self.rain_weather
            or self.rain_accumulation
            or self.expected_rain
            or self.wet_trend_hours
        )

    def as_dict(self) -> Dict[str, Any]:
        return {
            "temp_f": self.temp_f,
            "precip_chance": self.precip_chance,
            "humidity": self.humidity,
            "wind_mph": self.wind_mph,
            "gust_mph": self.gust_mph,
            "wet_trend_hours": self.wet_trend_hours,
            "snow_trend_hours": self.snow_trend_hours,
            "freeze_thaw_min_f": self.freeze_thaw_min_f,
            "freeze_thaw_max_f": self.freeze_thaw_max_f,
            "rain_12h_in": self.rain_12h_in,
            "rain_24h_in": self.rain_24h_in,
            "rain_48h_in": self.rain_48h_in,
            "snow_12h_in": self.snow_12h_in,
            "snow_24h_in": self.snow_24h_in,
            "snow_48h_in": self.snow_48h_in,
            "expected_rain_in": self.expected_rain_in,
            "expected_snow_in": self.expected_snow_in,
            "max_snow_depth_in": self.max_snow_depth_in,
            "max_swe_in": self.max_swe_in,
        }


@dataclass(frozen=True)
class TerrainSegment:
    time_of_day: str
    start: Optional[str]
    end: Optional[str]
    code: str
    label: str
    min_temp_f: Optional[float]
    max_temp_f: Optional[float]
    peak_sun_elevation_deg: Optional[float]
    insolation_index: Optional[float]
    forecast_hours: int
    postholing_risk: bool
    note: str


@dataclass(frozen=True)
class TerrainClassification:
    surface_code: str
    label: str
    impact: str
    recommended_travel: str
    freeze_thaw_code: str
    snow_profile_label: str
    confidence: str
    reasons: List[str]
    by_segment: List[TerrainSegment] = field(default_factory=list)
    signals: Dict[str, Any] = field(default_factory=dict)


def _ge(value: Optional[float], threshold: float) -> bool:
    return value is not None and value >= threshold


def _le(value: Optional[float], threshold: float) -> bool:
    return value is not None and value <= threshold


def _fmt(value: Optional[float], digits: int = 1) -> str:
    return f"{value:.{digits}f} in" if value is not None else "N/A"


def _first_number(*values: Any) -> Optional[float]:
    for value in values:
        number = parse_number(value)
        if number is not None:
            return number
    return None


def collect_signals(
    weather: Dict[str, Any],
    snowpack: SnowpackSignal,
    rainfall: Dict[str, Any],
) -> TerrainSignals:
    """
    Reduce the provider payloads to the boolean and numeric terrain signals.

    Freeze-thaw bounds prefer the 24 h temperature context (overnight low /
    daytime high, then min / max) and fall back to the trend range.
    """
    description = str(weather.get("description") or "").lower()
    temp = parse_number(weather.get("temp_f"))
    precip = parse_number(weather.get("precip_chance"))
    humidity = parse_number(weather.get("humidity"))
    wind = parse_number(weather.get("wind_mph"))
    gust = parse_number(weather.get("gust_mph"))
    trend = weather.get("trend") or []

    near_term = trend[:NEAR_TERM_TREND_POINTS]
    wet_trend_hours = 0
    snow_trend_hours = 0
    for point in near_term:
        point_precip = parse_number(point.get("precip_chance"))
        point_temp = parse_number(point.get("temp_f"))
        condition = str(point.get("condition") or "").lower()
        if _ge(point_precip, 55) or RAIN_WEATHER_PATTERN.search(condition):
            wet_trend_hours += 1
        if (_ge(point_precip, 35) and _le(point_temp, 34)) or SNOW_TREND_PATTERN.search(condition):
            snow_trend_hours += 1

    trend_temps = finite_values(point.get("temp_f") for point in trend[:24])
    context = weather.get("temperature_context") or {}
    ft_min = _first_number(context.get("overnight_low_f"), context.get("min_temp_f"))
    ft_max = _first_number(context.get("daytime_high_f"), context.get("max_temp_f"))
    if ft_min is None and trend_temps:
        ft_min = min(trend_temps)
    if ft_max is None and trend_temps:
        ft_max = max(trend_temps)

    totals = rainfall.get("totals") or {}
    expected = rainfall.get("expected") or {}
    rain_12h = parse_number(totals.get("past12h_in"))
    rain_24h = parse_number(totals.get("past24h_in"))
    rain_48h = parse_number(totals.get("past48h_in"))
    snow_12h = parse_number(totals.get("snow_past12h_in"))
    snow_24h = parse_number(totals.get("snow_past24h_in"))
    snow_48h = parse_number(totals.get("snow_past48h_in"))
    expected_rain = parse_number(expected.get("rain_window_in"))
    expected_snow = parse_number(expected.get("snow_window_in"))

    rain_accumulation = _ge(rain_12h, 0.1) or _ge(rain_24h, 0.2) or _ge(rain_48h, 0.35)
    fresh_snow = _ge(snow_12h, 0.5) or _ge(snow_24h, 1.5) or _ge(snow_48h, 2.5)
    freeze_thaw = (
        _le(ft_min, FREEZE_THAW_LOW_F) and _ge(ft_max, FREEZE_THAW_HIGH_F)
    ) or (temp is not None and 30 <= temp <= 36 and _ge(precip, 35))
    dry_windy = (
        _le(humidity, 30)
        and (precip is None or precip < 20)
        and (_ge(gust, 25) or _ge(wind, 16))
    )

    return TerrainSignals(
        temp_f=temp,
        precip_chance=precip,
        humidity=humidity,
        wind_mph=wind,
        gust_mph=gust,
        wet_trend_hours=wet_trend_hours,
        snow_trend_hours=snow_trend_hours,
        freeze_thaw_min_f=ft_min,
        freeze_thaw_max_f=ft_max,
        rain_12h_in=rain_12h,
        rain_24h_in=rain_24h,
        rain_48h_in=rain_48h,
        snow_12h_in=snow_12h,
        snow_24h_in=snow_24h,
        snow_48h_in=snow_48h,
        expected_rain_in=expected_rain,
        expected_snow_in=expected_snow,
        max_snow_depth_in=snowpack.max_depth_in,
        max_swe_in=snowpack.max_swe_in,
        snow_coverage=has_snow_coverage(snowpack),
        snow_weather=bool(SNOW_WEATHER_PATTERN.search(description)) or (_le(temp, 34) and _ge(precip, 35)),
        rain_weather=bool(RAIN_WEATHER_PATTERN.search(description)) or (_ge(precip, 60) and temp is not None and temp > 34),
        rain_accumulation=rain_accumulation,
        fresh_snow=fresh_snow,
        expected_rain=_ge(expected_rain, 0.2),
        expected_snow=_ge(expected_snow, 1.0),
        freeze_thaw=freeze_thaw,
        dry_windy=dry_windy,
        weather_unavailable=not description or bool(UNAVAILABLE_PATTERN.search(description)),
    )


def derive_snow_profile(signals: TerrainSignals) -> Tuple[str, str]:
    """
    Snow profile code plus a one-line summary.

    Order matters: fresh powder beats corn cycles, which beat wet snow, which
    beats icy hardpack. Anything else with snow present is mixed.
    """
    s = signals
    if not (s.snow_coverage or s.snow_weather or s.fresh_snow or s.snow_trend_hours):
        return "no_snow_signal", "No broad snow signal in the snowpack or forecast inputs."

    if (
        (s.fresh_snow or s.snow_trend_hours >= 2 or (s.snow_weather and (s.precip_chance is None or s.precip_chance >= 40)))
        and not s.rain_accumulation
        and (s.temp_f is None or s.temp_f <= 30)
    ):
        return "fresh_powder", "Recent or ongoing cold snowfall points to soft, unconsolidated snow."

    if (
        s.snow_coverage
        and s.freeze_thaw
        and _le(s.freeze_thaw_min_f, FREEZE_THAW_LOW_F)
        and _ge(s.freeze_thaw_max_f, SPRING_CYCLE_HIGH_F)
        and not s.rain_accumulation
        and s.wet_trend_hours == 0
    ):
        return (
            "spring_snow",
            f"Overnight refreeze ({round(s.freeze_thaw_min_f)}F) and daytime thaw ({round(s.freeze_thaw_max_f)}F) "
            "support a corn-snow cycle.",
        )

    if (
        s.snow_coverage
        and (_ge(s.temp_f, 34) or _ge(s.freeze_thaw_max_f, 36))
        and (s.rain_accumulation or s.wet_trend_hours > 0 or _ge(s.precip_chance, 45))
    ):
        return "wet_slushy_snow", "Warm temperatures with rain or wet signals point to wet, slushy snow."

    if (
        s.snow_coverage
        and not s.fresh_snow
        and (_le(s.temp_f, 30) or _le(s.freeze_thaw_min_f, 28))
        and s.wet_trend_hours == 0
    ):
        return "icy_hardpack", "Cold, consolidated snow without fresh accumulation favors icy or firm surfaces."

    return "mixed_snow", "Snow is present with mixed firmness and moisture signals."


def _surface_code(signals: TerrainSignals, profile: str, trend_empty: bool) -> Tuple[str, str]:
    s = signals
    if (
        s.weather_unavailable
        and trend_empty
        and s.max_snow_depth_in is None
        and s.max_swe_in is None
        and not s.rain_accumulation
        and not s.fresh_snow
    ):
        return "weather_unavailable", "Weather feed is unavailable, so terrain classification confidence is limited."

    if (
        s.no_snow_or_wet
        and (s.precip_chance is None or s.precip_chance <= 25)
        and (s.humidity is None or s.humidity <= 75)
        and (s.temp_f is None or s.temp_f >= 35)
    ):
        return "dry_firm", "No strong snow, rain, or freeze-thaw signal in recent or expected conditions."

    if s.snow_coverage or s.snow_weather or s.fresh_snow or s.snow_trend_hours >= 2:
        code = {
            "fresh_powder": "snow_fresh_powder",
            "spring_snow": "spring_snow",
            "wet_slushy_snow": "wet_snow",
        }.get(profile, "snow_ice")
        return code, "Snow signal present on or near the route."

    if s.rain_weather or s.wet_trend_hours >= 1 or s.rain_accumulation or s.expected_rain:
        return "wet_muddy", "Recent, ongoing or expected rain wets the trail surface."

    if s.freeze_thaw or (_le(s.temp_f, 38) and _ge(s.precip_chance, 35)):
        return "cold_slick", "Near-freezing temperatures with moisture support slick patches."

    if s.dry_windy or (s.humidity is not None and s.humidity < 30 and (s.precip_chance is None or s.precip_chance < 20)):
        return "dry_loose", "Low humidity and wind dry and loosen the top surface layer."

    return "mixed_variable", "No single dominant wet, snow/ice, or freeze-thaw signal."


def _supporting_reasons(signals: TerrainSignals, code: str) -> List[Tuple[str, int]]:
    """Evidence lines with weights; the weight sum drives classification confidence."""
    s = signals
    reasons: List[Tuple[str, int]] = []
    if code == "dry_firm":
        if s.precip_chance is not None:
            reasons.append((f"Low precipitation chance ({round(s.precip_chance)}%) supports drier surfaces.", 1))
        if s.humidity is not None:
            reasons.append((f"Humidity near {round(s.humidity)}% indicates limited surface moisture.", 1))
    elif code in ("snow_fresh_powder", "spring_snow", "wet_snow", "snow_ice"):
        if s.max_snow_depth_in is not None or s.max_swe_in is not None:
            reasons.append((f"Snowpack near objective: depth {_fmt(s.max_snow_depth_in)}, SWE {_fmt(s.max_swe_in)}.", 2))
        if s.fresh_snow:
            reasons.append((
                f"Recent snowfall: {_fmt(s.snow_12h_in)} (12h), {_fmt(s.snow_24h_in)} (24h), {_fmt(s.snow_48h_in)} (48h).",
                2,
            ))
        if s.expected_snow:
            reasons.append((f"Expected snowfall in the travel window is {_fmt(s.expected_snow_in)}.", 1))
        if s.snow_trend_hours:
            reasons.append((f"Near-term forecast shows {s.snow_trend_hours} hour(s) with snow or icy cues.", 1))
        if _le(s.temp_f, 34):
            reasons.append((f"Temperature near {round(s.temp_f)}F supports firm or refrozen surfaces.", 1))
    elif code == "wet_muddy":
        if s.rain_accumulation:
            reasons.append((
                f"Recent rainfall: {_fmt(s.rain_12h_in, 2)} (12h), {_fmt(s.rain_24h_in, 2)} (24h), "
                f"{_fmt(s.rain_48h_in, 2)} (48h).",
                2,
            ))
        if s.expected_rain:
            reasons.append((f"Expected rain in the travel window is {_fmt(s.expected_rain_in, 2)}.", 1))
        if s.wet_trend_hours:
            reasons.append((f"Near-term forecast shows {s.wet_trend_hours} wet hour(s).", 1))
    elif code == "cold_slick":
        if s.freeze_thaw and s.freeze_thaw_min_f is not None and s.freeze_thaw_max_f is not None:
            reasons.append((
                f"Freeze-thaw swing from {round(s.freeze_thaw_min_f)}F to {round(s.freeze_thaw_max_f)}F.",
                2,
            ))
        if s.temp_f is not None:
            reasons.append((f"Current temperature near freezing ({round(s.temp_f)}F).", 1))
    elif code == "dry_loose":
        wind = s.gust_mph if s.gust_mph is not None else s.wind_mph
        if s.humidity is not None:
            reasons.append((f"Low humidity ({round(s.humidity)}%) supports a loose, dry surface.", 1))
        if wind is not None:
            reasons.append((f"Wind exposure near {round(wind)} mph dries the top layer.", 1))
    return reasons


# =============================================================================
# TIME-OF-DAY SEGMENTS
# =============================================================================

def _insolation(elevations: List[float]) -> Optional[float]:
    """Mean of sin(elevation) over the hours the sun is up, 0..1."""
    if not elevations:
        return None
    return round(sum(max(0.0, math.sin(math.radians(e))) for e in elevations) / len(elevations), 2)


def _points_between(series: List[Dict[str, Any]], key: str, start: datetime, end: datetime) -> List[Any]:
    values = []
    for point in series:
        moment = parse_iso_datetime(point.get("time"))
        if moment is not None and start <= moment < end:
            values.append(point.get(key))
    return values


def _segment_code(
    is_morning: bool,
    temps: List[float],
    peak_elevation: Optional[float],
    snow_present: bool,
    profile: str,
    wet_ground: bool,
    freeze_thaw: bool,
) -> Tuple[str, bool, str]:
    low, high = min(temps), max(temps)
    strong_sun = peak_elevation is not None and peak_elevation >= STRONG_SUN_ELEVATION_DEG

    if snow_present:
        if high <= FREEZING_F:
            if profile == "fresh_powder":
                return "powder", False, "Snow stays cold and soft through this part of the day."
            return "frozen_crust", False, "Snow surface stays frozen; expect a firm, supportive crust."
        if (strong_sun and high > FREEZING_F) or high >= SPRING_CYCLE_HIGH_F:
            return "soft_wet_snow", True, "Sun and above-freezing air soften the snow; postholing risk rises."
        if is_morning and low <= FREEZING_F:
            return "frozen_crust", False, "Overnight refreeze holds a crust early; it will soften later."
        return "variable_snow", False, "Snow firmness varies with aspect and shade."

    if wet_ground or freeze_thaw:
        if low <= FREEZING_F:
            return "refrozen_slick", False, "Wet ground refreezes; expect slick patches, especially in shade."
        if freeze_thaw or strong_sun:
            return "thawing_mud", False, "Frozen ground thaws into mud as temperatures climb."
        return "wet_ground", False, "Ground stays wet; expect slick footing."
    return "dry_ground", False, "No moisture or freeze signal for this part of the day."


def build_segments(
    weather: Dict[str, Any],
    solar: Dict[str, Any],
    snow_present: bool,
    profile: str,
    wet_ground: bool,
    freeze_thaw: bool,
) -> List[TerrainSegment]:
    """
    Morning and afternoon segments of the planned day.

    Example:
        With snow on the ground, 24-30F before noon and 36-41F under a 45 degree
        afternoon sun, the morning is "frozen_crust" and the afternoon is
        "soft_wet_snow" with postholing_risk True.
    """
    curve = solar.get("elevation_curve") or []
    sunrise = parse_iso_datetime(solar.get("sunrise"))
    sunset = parse_iso_datetime(solar.get("sunset"))
    solar_noon = parse_iso_datetime(solar.get("solar_noon"))
    if solar_noon is None or (sunrise is None) != (sunset is None):
        return []

    if sunrise is None:
        if solar.get("polar") != "day" or not curve:
            return [
                TerrainSegment("day", None, None, "dark", SEGMENT_LABELS["dark"], None, None, None, 0.0, 0, False,
                               "Polar night: the sun stays below the horizon all day.")
            ]
        first = parse_iso_datetime(curve[0].get("time"))
        if first is None:
            return []
        sunrise, sunset = first, first.replace(hour=23, minute=59)

    trend = weather.get("trend") or []
    segments = []
    for name, start, end in (("morning", sunrise, solar_noon), ("afternoon", solar_noon, sunset)):
        temps = finite_values(_points_between(trend, "temp_f", start, end))
        elevations = [e for e in finite_values(_points_between(curve, "elevation_deg", start, end)) if e > 0]
        peak = round(max(elevations), 1) if elevations else None

        if temps:
            code, postholing, note = _segment_code(
                name == "morning", temps, peak, snow_present, profile, wet_ground, freeze_thaw
            )
        else:
            code, postholing, note = "no_forecast", False, "No forecast hours fall inside this part of the day."

        segments.append(TerrainSegment(
            time_of_day=name,
            start=start.isoformat(),
            end=end.isoformat(),
            code=code,
            label=SEGMENT_LABELS[code],
            min_temp_f=min(temps) if temps else None,
            max_temp_f=max(temps) if temps else None,
            peak_sun_elevation_deg=peak,
            insolation_index=_insolation(elevations),
            forecast_hours=len(temps),
            postholing_risk=postholing,
            note=note,
        ))
    return segments


class TerrainClassifier:
    """Classify trail surface for one objective + planning window."""

    def classify(
        self,
        weather: ProviderResult,
        snowpack: ProviderResult,
        rainfall: ProviderResult,
        solar: ProviderResult,
    ) -> TerrainClassification:
        weather_payload = (weather.payload or {}) if weather.usable else {}
        rainfall_payload = (rainfall.payload or {}) if rainfall.usable else {}
        snowpack_signal = evaluate_snowpack_signal(snowpack) if snowpack.usable else NO_SNOWPACK_SIGNAL

        signals = collect_signals(weather_payload, snowpack_signal, rainfall_payload)
        profile, profile_summary = derive_snow_profile(signals)
        code, headline = _surface_code(signals, profile, not weather_payload.get("trend"))
        label, impact, recommended = SURFACE_CODES[code]
        if code == "snow_ice" and profile == "mixed_snow":
            label, impact = "Mixed Snow Surface", "moderate"

        weighted = [(headline, 2 if code != "mixed_variable" else 1)]
        if code in ("snow_fresh_powder", "spring_snow", "wet_snow", "snow_ice"):
            weighted.append((profile_summary, 2))
        weighted.extend(_supporting_reasons(signals, code))
        if not rainfall.usable:
            weighted.append(("Precipitation totals are unavailable; recent rain or snow cannot be ruled out.", 0))

        evidence = sum(weight for _, weight in weighted)
        if code == "weather_unavailable":
            confidence = "low"
        elif evidence >= 5:
            confidence = "high"
        elif evidence >= 3:
            confidence = "medium"
        else:
            confidence = "low"

        snow_present = signals.snow_coverage or profile != "no_snow_signal"
        wet_ground = code in ("wet_muddy", "cold_slick") or signals.rain_accumulation
        segments = build_segments(
            weather_payload,
            solar.payload or {},
            snow_present,
            profile,
            wet_ground,
            signals.freeze_thaw,
        )

        logger.debug(f"Terrain: surface={code}, profile={profile}, segments={[s.code for s in segments]}")
        return TerrainClassification(
            surface_code=code,
            label=label,
            impact=impact,
            recommended_travel=recommended,
            freeze_thaw_code=profile,
            snow_profile_label=SNOW_PROFILES[profile],
            confidence=confidence,
            reasons=[reason for reason, _ in weighted][:6],
            by_segment=segments,
            signals=signals.as_dict(),
        )
