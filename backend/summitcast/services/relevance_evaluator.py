"""
Relevance Evaluator - Which hazard categories matter for this objective and window

A pure function of the provider results and the planning window. A category
judged not relevant still appears in the output, with the reason, and later
contributes zero impact.

Rules by category:
- avalanche: official coverage, heavy expected snow, wintry forecast, material
  snowpack, or measurable snowpack inside the elevation/season envelope
- weather: always relevant
- surface: any rain/snow/freeze-thaw signal, or a precipitation feed that is
  not fully live
- alerts: an alert's validity overlaps the travel window and the start is no
  more than 48 h out (alerts describe current state only)
- air_quality: an AQI sample exists near the planned start
- fire: unless material snowpack or a wintry signal is present
"""
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from summitcast.errors import ComputationError
from summitcast.services.algorithm_config import (
    ALERT_MAX_LEAD_HOURS,
    AVALANCHE_EXPECTED_SNOW_IN,
    AVALANCHE_HIGH_ELEVATION_FT,
    AVALANCHE_HIGH_LATITUDE,
    AVALANCHE_MATERIAL_SNOW_DEPTH_IN,
    AVALANCHE_MATERIAL_SWE_IN,
    AVALANCHE_MEASURABLE_SNOW_DEPTH_IN,
    AVALANCHE_MEASURABLE_SWE_IN,
    AVALANCHE_MID_ELEVATION_FT,
    FREEZE_THAW_HIGH_F,
    FREEZE_THAW_LOW_F,
    LOW_SNOW_DEPTH_IN,
    LOW_SNOW_SWE_IN,
    SNOTEL_REPRESENTATIVE_KM,
    SNOW_COVERAGE_DEPTH_IN,
    SNOW_COVERAGE_SWE_IN,
    WINTRY_DESCRIPTION_PATTERN,
)
from summitcast.services.provider_base import (
    PROVIDER_CATEGORIES,
    STATUS_OK,
    PlanningWindow,
    ProviderResult,
)
from summitcast.utils.time_utils import get_avalanche_season, parse_iso_datetime
from summitcast.utils.weather_math import parse_number

# Configure logging
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Relevance:
    relevant: bool
    reason: str


@dataclass(frozen=True)
class SnowpackSignal:
    """Observed snowpack summarized against the avalanche thresholds."""

    max_depth_in: Optional[float]
    max_swe_in: Optional[float]
    material: bool
    measurable: bool
    low: bool
    reason: Optional[str]

    @property
    def observed(self) -> bool:
        return self.max_depth_in is not None or self.max_swe_in is not None


NO_SNOWPACK_SIGNAL = SnowpackSignal(None, None, False, False, False, None)


def evaluate_snowpack_signal(snowpack: Optional[ProviderResult]) -> SnowpackSignal:
    """
    Combine SNOTEL (only when the station is within 80 km) and NOHRSC samples.

    Example:
        >>> signal = evaluate_snowpack_signal(result_with_depth_12in)
        >>> signal.material
        True
    """
    if snowpack is None or not snowpack.usable:
        return NO_SNOWPACK_SIGNAL
    payload = snowpack.payload or {}
    snotel = payload.get("snotel") or {}
    nohrsc = payload.get("nohrsc") or {}

    depths, swes = [], []
    distance = parse_number(snotel.get("distance_km"))
    if snotel and (distance is None or distance <= SNOTEL_REPRESENTATIVE_KM):
        depths.append(parse_number(snotel.get("snow_depth_in")))
        swes.append(parse_number(snotel.get("swe_in")))
    depths.append(parse_number(nohrsc.get("snow_depth_in")))
    swes.append(parse_number(nohrsc.get("swe_in")))
    depths = [d for d in depths if d is not None]
    swes = [s for s in swes if s is not None]
    if not depths and not swes:
        return NO_SNOWPACK_SIGNAL

    max_depth = max(depths) if depths else None
    max_swe = max(swes) if swes else None
    parts = []
    if max_depth is not None:
        parts.append(f"depth ~{max_depth:.1f} in")
    if max_swe is not None:
        parts.append(f"SWE ~{max_swe:.1f} in")
    described = ", ".join(parts)

    material = (max_depth is not None and max_depth >= AVALANCHE_MATERIAL_SNOW_DEPTH_IN) or (
        max_swe is not None and max_swe >= AVALANCHE_MATERIAL_SWE_IN
    )
    measurable = (max_depth is not None and max_depth >= AVALANCHE_MEASURABLE_SNOW_DEPTH_IN) or (
        max_swe is not None and max_swe >= AVALANCHE_MEASURABLE_SWE_IN
    )
    low = max_depth is not None and max_depth <= LOW_SNOW_DEPTH_IN and (max_swe is None or max_swe <= LOW_SNOW_SWE_IN)

    if material:
        reason = f"Snowpack observations show material snowpack ({described})."
    elif measurable:
        reason = f"Snowpack observations show measurable snowpack ({described}), below the material avalanche threshold."
    elif low:
        reason = f"Snowpack observations show a very low snow signal ({described})."
    else:
        reason = "Snowpack observations are patchy and below the material avalanche threshold."
    return SnowpackSignal(max_depth, max_swe, material, measurable, low, reason)


def has_snow_coverage(signal: SnowpackSignal) -> bool:
    return (signal.max_depth_in is not None and signal.max_depth_in >= SNOW_COVERAGE_DEPTH_IN) or (
        signal.max_swe_in is not None and signal.max_swe_in >= SNOW_COVERAGE_SWE_IN
    )


def has_wintry_signal(weather: Optional[ProviderResult]) -> bool:
    """Snow/ice wording, near-freezing temperature, or cold precipitation."""
    if weather is None or not weather.usable:
        return False
    payload = weather.payload or {}
    description = str(payload.get("description") or "").lower()
    temp = parse_number(payload.get("temp_f"))
    feels = parse_number(payload.get("feels_like_f"))
    precip = parse_number(payload.get("precip_chance"))
    return bool(
        re.search(WINTRY_DESCRIPTION_PATTERN, description)
        or (temp is not None and temp <= 34)
        or (feels is not None and feels <= 30)
        or (precip is not None and precip >= 50 and temp is not None and temp <= 38)
    )


def alerts_in_window(alerts: List[Dict[str, Any]], window: PlanningWindow) -> List[Dict[str, Any]]:
    """
    Alerts whose [onset, ends] span intersects [start, start + travel window].

    An alert without onset is treated as already active; one without an end
    as open-ended.
    """
    start, end = window.start_utc, window.end_utc
    matching = []
    for alert in alerts:
        onset = parse_iso_datetime(alert.get("onset"))
        ends = parse_iso_datetime(alert.get("ends"))
        if onset is not None and onset > end:
            continue
        if ends is not None and ends < start:
            continue
        matching.append(alert)
    return matching


def _rainfall_signal(rainfall: ProviderResult) -> bool:
    payload = rainfall.payload or {}
    totals = payload.get("totals") or {}
    expected = payload.get("expected") or {}
    amounts = [parse_number(v) for v in totals.values()]
    amounts += [parse_number(expected.get("rain_window_in")), parse_number(expected.get("snow_window_in"))]
    return any(a is not None and a > 0 for a in amounts)


def _freeze_thaw_signal(weather: ProviderResult) -> bool:
    context = (weather.payload or {}).get("temperature_context") or {}
    low = parse_number(context.get("overnight_low_f"))
    if low is None:
        low = parse_number(context.get("min_temp_f"))
    high = parse_number(context.get("daytime_high_f"))
    if high is None:
        high = parse_number(context.get("max_temp_f"))
    return low is not None and high is not None and low <= FREEZE_THAW_LOW_F and high >= FREEZE_THAW_HIGH_F


class RelevanceEvaluator:
    """Evaluate hazard relevance for one objective + planning window."""

    def evaluate(
        self,
        latitude: float,
        results: Dict[str, ProviderResult],
        window: PlanningWindow,
        now: datetime,
    ) -> Dict[str, Relevance]:
        missing = [category for category in PROVIDER_CATEGORIES if category not in results]
        if missing:
            raise ComputationError(f"Relevance evaluation is missing provider categories: {missing}")

        snowpack_signal = evaluate_snowpack_signal(results["snowpack"])
        wintry = has_wintry_signal(results["weather"])

        relevance = {
            "avalanche": self.avalanche(latitude, results, window, snowpack_signal, wintry),
            "weather": self.weather(results["weather"]),
            "surface": self.surface(results, snowpack_signal, wintry),
            "alerts": self.alerts(results["alerts"], window, now),
            "air_quality": self.air_quality(results["air_quality"]),
            "fire": self.fire(snowpack_signal, wintry),
        }
        logger.debug(
            "Relevance: " + ", ".join(f"{k}={'yes' if v.relevant else 'no'}" for k, v in relevance.items())
        )
        return relevance

    def avalanche(
        self,
        latitude: float,
        results: Dict[str, ProviderResult],
        window: PlanningWindow,
        snowpack: SnowpackSignal,
        wintry: bool,
    ) -> Relevance:
        avalanche = results["avalanche"].payload or {}
        coverage = avalanche.get("coverage_status")
        if results["avalanche"].usable and coverage == "reported" and not avalanche.get("danger_unknown"):
            return Relevance(True, "Official avalanche center forecast covers this objective.")

        expected_snow = parse_number(((results["rainfall"].payload or {}).get("expected") or {}).get("snow_window_in"))
        if expected_snow is not None and expected_snow >= AVALANCHE_EXPECTED_SNOW_IN:
            return Relevance(
                True,
                f"Significant snow accumulation ({expected_snow:.1f} in) expected during the travel window; "
                "active loading raises avalanche hazard.",
            )

        if wintry:
            return Relevance(True, "Forecast includes wintry signals (snow, ice or freezing conditions).")
        if snowpack.material:
            return Relevance(True, snowpack.reason)

        elevation = parse_number((results["weather"].payload or {}).get("elevation_ft"))
        month = window.local_date.month
        season = get_avalanche_season(month)
        high_elevation = elevation is not None and elevation >= AVALANCHE_HIGH_ELEVATION_FT
        mid_elevation = elevation is not None and elevation >= AVALANCHE_MID_ELEVATION_FT
        high_latitude = abs(latitude) >= AVALANCHE_HIGH_LATITUDE
        winter = season == "winter" or (high_elevation and month == 5)
        shoulder = not winter and season == "shoulder"

        if snowpack.measurable:
            if high_elevation and (winter or shoulder):
                return Relevance(True, f"{snowpack.reason} Elevation and season keep avalanche hazard relevant.")
            if mid_elevation and high_latitude and winter:
                return Relevance(True, f"{snowpack.reason} Winter latitude and elevation keep avalanche hazard relevant.")
            return Relevance(
                False,
                f"{snowpack.reason} Avalanche hazard is de-emphasized until snowpack reaches material levels "
                "or wintry signals increase.",
            )

        if snowpack.low and coverage in ("no_active_forecast", "no_center_coverage"):
            suffix = (
                "Local avalanche center is out of forecast season."
                if coverage == "no_active_forecast"
                else "No local avalanche center coverage for this objective."
            )
            return Relevance(False, f"{snowpack.reason} {suffix}")
        if coverage == "no_active_forecast" and not winter and not shoulder:
            return Relevance(False, "Local avalanche center is out of forecast season for this objective and date.")
        if not snowpack.observed and high_elevation and (winter or shoulder):
            return Relevance(True, "High-elevation objective has meaningful seasonal snow potential.")
        if not snowpack.observed and mid_elevation and high_latitude and winter:
            return Relevance(True, "Mid-elevation objective in the winter window at a snow-prone latitude.")
        if snowpack.reason:
            return Relevance(False, snowpack.reason)
        return Relevance(False, "Objective appears typically low-snow for the selected season and forecast.")

    def weather(self, weather: ProviderResult) -> Relevance:
        if weather.usable:
            return Relevance(True, "Forecast weather applies to every objective.")
        return Relevance(True, "Weather data is unavailable; conditions must be treated as unknown.")

    def surface(self, results: Dict[str, ProviderResult], snowpack: SnowpackSignal, wintry: bool) -> Relevance:
        rainfall = results["rainfall"]
        weather = results["weather"]
        if rainfall.status != STATUS_OK:
            return Relevance(True, f"Precipitation feed is {rainfall.status}; surface conditions are uncertain.")
        if _rainfall_signal(rainfall):
            return Relevance(True, "Recent or expected precipitation affects trail surfaces.")
        if has_snow_coverage(snowpack) or wintry:
            return Relevance(True, "Snow or ice is present or forecast on the route.")
        if weather.usable and _freeze_thaw_signal(weather):
            return Relevance(True, "Freeze-thaw cycle expected around the travel window.")
        if not weather.usable:
            return Relevance(True, "Weather data is unavailable; surface conditions are unknown.")
        return Relevance(False, "Dry, firm, snow-free surface expected with good precipitation data.")

    def alerts(self, alerts: ProviderResult, window: PlanningWindow, now: datetime) -> Relevance:
        lead = window.lead_hours(now)
        if lead > ALERT_MAX_LEAD_HOURS:
            return Relevance(
                False,
                f"Planned start is {round(lead)}h ahead; NWS alerts describe current conditions only.",
            )
        if not alerts.usable:
            return Relevance(False, "NWS alerts feed unavailable.")
        active = alerts_in_window((alerts.payload or {}).get("alerts") or [], window)
        if not active:
            return Relevance(False, "No active NWS alert overlaps the travel window.")
        events = ", ".join(sorted({str(a.get("event")) for a in active}))
        return Relevance(True, f"{len(active)} NWS alert(s) overlap the travel window ({events}).")

    def air_quality(self, air_quality: ProviderResult) -> Relevance:
        payload = air_quality.payload or {}
        if air_quality.usable and parse_number(payload.get("us_aqi")) is not None:
            return Relevance(True, "Air-quality sample available near the planned start.")
        if payload.get("status") == "beyond_horizon":
            return Relevance(False, "Planned start is beyond the air-quality forecast horizon.")
        return Relevance(False, "No air-quality sample near the planned start.")

    def fire(self, snowpack: SnowpackSignal, wintry: bool) -> Relevance:
        if snowpack.material:
            return Relevance(False, "Material snowpack suppresses fire hazard.")
        if wintry:
            return Relevance(False, "Wintry forecast suppresses fire hazard.")
        return Relevance(True, "No snow or wintry signal suppresses fire-weather hazard.")
