"""
Risk Scorer - Hazard factors, safety score and confidence

Every hazard category moves through one state machine:

    unknown -> relevant | not_relevant -> scored

A FactorDraft records the relevance decision exactly once and is then scored
exactly once into a frozen HazardFactor. Signals inside a category add up and
are clamped to the category cap; a not-relevant category is still emitted,
with impact 0 and its relevance reason as the explanation.

Safety = clamp(round(100 - sum of impacts), 0, 100).
Confidence starts at 100, loses points for every degraded input, and is
clamped to [20, 100].

Scoring is pure: the same provider results, relevance, sub-signals, window
and clock produce the same output.
"""
import logging
import re
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from summitcast.config import settings
from summitcast.errors import ComputationError
from summitcast.services.algorithm_config import (
    ALERT_DEFAULT_IMPACT,
    ALERT_MAX_LEAD_HOURS,
    ALERT_SEVERITY_IMPACTS,
    ALERT_SEVERITY_RANK,
    AQI_TIERS,
    AVALANCHE_AGE_PENALTIES,
    AVALANCHE_DANGER_IMPACTS,
    AVALANCHE_PROBLEM_COMPLEXITY_COUNT,
    AVALANCHE_PROBLEM_COMPLEXITY_IMPACT,
    AVALANCHE_UNKNOWN_IMPACT,
    COLD_EXPOSURE_HOURS_IMPACT,
    COLD_TIERS,
    CONFIDENCE_CEILING,
    CONFIDENCE_FLOOR,
    CONFIDENCE_PENALTIES,
    CONVECTIVE_IMPACT,
    CONVECTIVE_PATTERN,
    DARKNESS_IMPACT,
    EXPECTED_RAIN_TIERS,
    EXPECTED_SNOW_TIERS,
    EXTREME_COLD_HOURS_IMPACT,
    FIRE_LEVEL_IMPACTS,
    FORECAST_LEAD_TIERS,
    FROZEN_PRECIP_IMPACT,
    FROZEN_PRECIP_PATTERN,
    HAZARD_CAPS,
    HAZARD_CATEGORIES,
    HEAT_LEVEL_IMPACTS,
    HIGH_PRECIP_CHANCE,
    LEAD_TIME_PENALTIES,
    MIN_TREND_POINTS,
    MODERATE_PRECIP_CHANCE,
    PEAK_GUST_IMPACT,
    PEAK_PRECIP_TIERS,
    RAIN_24H_TIERS,
    SEVERE_WIND_GUST_MPH,
    SEVERE_WIND_SUSTAINED_MPH,
    SNOW_24H_TIERS,
    STRONG_WIND_GUST_MPH,
    STRONG_WIND_SUSTAINED_MPH,
    SURFACE_ZEROED_IMPACT,
    VISIBILITY_IMPACT,
    VISIBILITY_PATTERN,
    VISIBILITY_SCORE_TIERS,
    VOLATILITY_IMPACT,
    VOLATILITY_TEMP_RANGE_F,
    WEATHER_AGE_PENALTIES,
    WIND_TIERS,
)
from summitcast.services.provider_base import (
    STATUS_DEGRADED,
    STATUS_STALE,
    STATUS_ZEROED,
    PlanningWindow,
    ProviderResult,
)
from summitcast.services.relevance_evaluator import Relevance, alerts_in_window
from summitcast.services.visibility_risk import build_visibility_risk
from summitcast.utils.time_utils import parse_iso_datetime
from summitcast.utils.weather_math import finite_values, normalize_alert_severity, parse_number

# Configure logging
logger = logging.getLogger(__name__)

WEATHER_UNAVAILABLE_IMPACT = 20


class FactorState(str, Enum):
    UNKNOWN = "unknown"
    RELEVANT = "relevant"
    NOT_RELEVANT = "not_relevant"
    SCORED = "scored"


@dataclass(frozen=True)
class Signal:
    """One contribution to a hazard category."""

    impact: int
    message: str


@dataclass(frozen=True)
class HazardFactor:
    category: str
    impact: int
    cap: int
    relevant: bool
    explanation: str
    signals: Tuple[str, ...] = ()

    def __post_init__(self):
        if self.impact < 0 or self.impact > self.cap:
            raise ComputationError(
                f"{self.category} impact {self.impact} is outside [0, {self.cap}]"
            )
        if not self.relevant and self.impact != 0:
            raise ComputationError(f"{self.category} is not relevant but carries impact {self.impact}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "impact": self.impact,
            "cap": self.cap,
            "relevant": self.relevant,
            "explanation": self.explanation,
            "signals": list(self.signals),
        }


@dataclass(frozen=True)
class FactorDraft:
    """A hazard category on its way from unknown to scored."""

    category: str
    cap: int
    state: FactorState = FactorState.UNKNOWN
    reason: Optional[str] = None

    def with_relevance(self, relevance: Relevance) -> "FactorDraft":
        if self.state is not FactorState.UNKNOWN:
            raise ComputationError(f"{self.category} relevance already decided ({self.state.value})")
        state = FactorState.RELEVANT if relevance.relevant else FactorState.NOT_RELEVANT
        return replace(self, state=state, reason=relevance.reason)

    def scored(self, signals: List[Signal]) -> HazardFactor:
        if self.state is FactorState.UNKNOWN:
            raise ComputationError(f"{self.category} scored before relevance was decided")
        if self.state is FactorState.SCORED:
            raise ComputationError(f"{self.category} was already scored")

        if self.state is FactorState.NOT_RELEVANT:
            return HazardFactor(self.category, 0, self.cap, False, self.reason or "Not relevant.")

        positive = [s for s in signals if s.impact > 0]
        impact = min(self.cap, sum(s.impact for s in positive))
        if positive:
            ranked = sorted(positive, key=lambda s: -s.impact)
            explanation = ranked[0].message
        else:
            explanation = f"No significant {self.category.replace('_', ' ')} signal for this window."
        return HazardFactor(
            self.category,
            impact,
            self.cap,
            True,
            explanation,
            tuple(s.message for s in positive),
        )


@dataclass(frozen=True)
class SafetyScore:
    score: int
    label: str

    def __post_init__(self):
        if not 0 <= self.score <= 100:
            raise ComputationError(f"Safety score {self.score} outside [0, 100]")


@dataclass(frozen=True)
class ConfidenceScore:
    score: int
    reasons: Tuple[str, ...] = ()

    def __post_init__(self):
        if not CONFIDENCE_FLOOR <= self.score <= CONFIDENCE_CEILING:
            raise ComputationError(f"Confidence {self.score} outside [{CONFIDENCE_FLOOR}, {CONFIDENCE_CEILING}]")


@dataclass(frozen=True)
class RiskAssessment:
    safety: SafetyScore
    confidence: ConfidenceScore
    factors: Tuple[HazardFactor, ...]
    primary_hazard: str
    sources_used: Tuple[str, ...] = field(default_factory=tuple)


def safety_label(value: int) -> str:
    if value >= settings.SAFETY_OPTIMAL_THRESHOLD:
        return "Optimal"
    if value >= settings.SAFETY_CAUTION_THRESHOLD:
        return "Caution"
    return "Critical"


def _tier(value: Optional[float], tiers) -> int:
    """First (threshold, impact) tier the value reaches, else 0."""
    if value is None:
        return 0
    for threshold, impact in tiers:
        if value >= threshold:
            return impact
    return 0


def _age_tier(age_hours: float, tiers) -> int:
    """Strictly-older-than tiers used for issuance ages."""
    for threshold, penalty in tiers:
        if age_hours > threshold:
            return penalty
    return 0


# =============================================================================
# CATEGORY SIGNALS
# =============================================================================

def avalanche_signals(avalanche: ProviderResult) -> List[Signal]:
    payload = avalanche.payload or {}
    if not avalanche.usable or payload.get("danger_unknown"):
        return [Signal(
            AVALANCHE_UNKNOWN_IMPACT,
            "Avalanche danger is unknown for this objective; treat avalanche terrain conservatively.",
        )]

    signals = []
    level = parse_number(payload.get("danger_level"))
    if level is not None and level >= 1:
        impact = AVALANCHE_DANGER_IMPACTS[min(5, int(level))]
        messages = {
            5: "Extreme avalanche danger. Avoid all avalanche terrain.",
            4: "High avalanche danger reported. Avoid avalanche terrain and steep loaded slopes.",
            3: "Considerable avalanche danger. Conservative terrain selection and strict spacing are required.",
            2: "Moderate avalanche danger. Evaluate snowpack and avoid connected terrain traps.",
            1: "Low avalanche danger still requires basic avalanche precautions in suspect terrain.",
        }
        signals.append(Signal(impact, messages[min(5, int(level))]))

    problems = payload.get("problems") or []
    if len(problems) >= AVALANCHE_PROBLEM_COMPLEXITY_COUNT:
        signals.append(Signal(
            AVALANCHE_PROBLEM_COMPLEXITY_IMPACT,
            f"{len(problems)} avalanche problems are listed by the center, increasing snowpack complexity.",
        ))
    return signals


def weather_signals(
    weather: ProviderResult,
    rainfall: ProviderResult,
    solar: ProviderResult,
    heat_level: int,
    window: PlanningWindow,
    now: datetime,
) -> List[Signal]:
    """
    Wind, precipitation, storm, visibility, cold, heat, darkness, volatility
    and forecast-lead contributions.
    """
    if weather.status == STATUS_ZEROED:
        return [Signal(
            WEATHER_UNAVAILABLE_IMPACT,
            "Weather data is unavailable; conditions for this window are unknown.",
        )]

    data = weather.payload or {}
    signals: List[Signal] = []
    description = str(data.get("description") or "").lower()
    wind = parse_number(data.get("wind_mph"))
    gust = parse_number(data.get("gust_mph"))
    precip = parse_number(data.get("precip_chance"))
    trend = data.get("trend") or []

    trend_winds = [parse_number(p.get("wind_mph")) for p in trend]
    trend_gusts = [
        parse_number(p.get("gust_mph")) if parse_number(p.get("gust_mph")) is not None else parse_number(p.get("wind_mph"))
        for p in trend
    ]
    trend_temps = finite_values(p.get("temp_f") for p in trend)
    trend_precips = finite_values(p.get("precip_chance") for p in trend)
    trend_feels = finite_values(
        p.get("feels_like_f") if p.get("feels_like_f") is not None else p.get("temp_f") for p in trend
    )

    # Wind
    peak_gust = max(finite_values(trend_gusts)) if finite_values(trend_gusts) else gust
    effective_wind = max(finite_values([wind, gust, peak_gust]) or [0.0])
    sustained = wind if wind is not None else 0.0
    for min_effective, min_sustained, impact in WIND_TIERS:
        if effective_wind >= min_effective or sustained >= min_sustained:
            signals.append(Signal(impact, f"Wind up to {round(effective_wind)} mph increases exposure on ridges and summits."))
            break

    severe_hours = strong_hours = 0
    for row_wind, row_gust in zip(trend_winds, trend_gusts):
        if (row_wind is not None and row_wind >= SEVERE_WIND_SUSTAINED_MPH) or (
            row_gust is not None and row_gust >= SEVERE_WIND_GUST_MPH
        ):
            severe_hours += 1
        if (row_wind is not None and row_wind >= STRONG_WIND_SUSTAINED_MPH) or (
            row_gust is not None and row_gust >= STRONG_WIND_GUST_MPH
        ):
            strong_hours += 1
    if severe_hours >= 4:
        signals.append(Signal(8, f"{severe_hours} hours of severe wind in the travel window."))
    elif severe_hours >= 2:
        signals.append(Signal(5, f"{severe_hours} hours of severe wind in the travel window."))
    elif strong_hours >= 6:
        signals.append(Signal(4, f"{strong_hours} hours of strong wind in the travel window."))
    elif strong_hours >= 3:
        signals.append(Signal(2, f"{strong_hours} hours of strong wind in the travel window."))

    if peak_gust is not None and peak_gust >= SEVERE_WIND_GUST_MPH and (gust is None or gust < SEVERE_WIND_GUST_MPH):
        signals.append(Signal(PEAK_GUST_IMPACT, f"Gusts build to {round(peak_gust)} mph later in the window."))

    # Precipitation
    peak_precip = max(trend_precips) if trend_precips else precip
    impact = _tier(peak_precip, PEAK_PRECIP_TIERS)
    if impact:
        signals.append(Signal(impact, f"Precipitation chance peaks near {round(peak_precip)}%."))
    high_hours = len([p for p in trend_precips if p >= HIGH_PRECIP_CHANCE])
    moderate_hours = len([p for p in trend_precips if p >= MODERATE_PRECIP_CHANCE])
    if high_hours >= 4:
        signals.append(Signal(7, f"{high_hours} hours with precipitation chance of {HIGH_PRECIP_CHANCE}% or more."))
    elif high_hours >= 2:
        signals.append(Signal(4, f"{high_hours} hours with precipitation chance of {HIGH_PRECIP_CHANCE}% or more."))
    elif moderate_hours >= 6:
        signals.append(Signal(3, f"{moderate_hours} hours with precipitation chance of {MODERATE_PRECIP_CHANCE}% or more."))

    if re.search(CONVECTIVE_PATTERN, description):
        signals.append(Signal(CONVECTIVE_IMPACT, "Convective storm or lightning risk in the forecast."))
    elif re.search(FROZEN_PRECIP_PATTERN, description):
        signals.append(Signal(FROZEN_PRECIP_IMPACT, "Winter precipitation reduces traction and visibility."))

    if rainfall.usable:
        expected = (rainfall.payload or {}).get("expected") or {}
        rain = parse_number(expected.get("rain_window_in"))
        snow = parse_number(expected.get("snow_window_in"))
        impact = _tier(rain, EXPECTED_RAIN_TIERS)
        if impact:
            signals.append(Signal(impact, f"About {rain:.2f} in of rain expected during the travel window."))
        impact = _tier(snow, EXPECTED_SNOW_TIERS)
        if impact:
            signals.append(Signal(impact, f"About {snow:.1f} in of snow expected during the travel window."))

    visibility = data.get("visibility_risk") or build_visibility_risk(data)
    visibility_score = parse_number(visibility.get("score"))
    if visibility_score is not None:
        impact = _tier(visibility_score, VISIBILITY_SCORE_TIERS)
        if impact:
            signals.append(Signal(
                impact,
                f"Whiteout/visibility risk is {visibility.get('level')} ({round(visibility_score)}/100).",
            ))
    elif re.search(VISIBILITY_PATTERN, description):
        signals.append(Signal(VISIBILITY_IMPACT, "Reduced visibility (fog, smoke or haze) complicates navigation."))

    # Cold
    feels = parse_number(data.get("feels_like_f"))
    if feels is None:
        feels = parse_number(data.get("temp_f"))
    min_feels = min(trend_feels) if trend_feels else feels
    if min_feels is not None:
        for threshold, tier_impact in COLD_TIERS:
            if min_feels <= threshold:
                signals.append(Signal(tier_impact, f"Apparent temperature drops to {round(min_feels)}F."))
                break
    extreme_cold_hours = len([f for f in trend_feels if f <= 0])
    cold_hours = len([f for f in trend_feels if f <= 15])
    if extreme_cold_hours >= 3:
        signals.append(Signal(EXTREME_COLD_HOURS_IMPACT, f"{extreme_cold_hours} hours at or below 0F apparent temperature."))
    elif cold_hours >= 5:
        signals.append(Signal(COLD_EXPOSURE_HOURS_IMPACT, f"{cold_hours} hours at or below 15F apparent temperature."))

    # Heat
    impact = HEAT_LEVEL_IMPACTS.get(heat_level, 0)
    if impact:
        signals.append(Signal(impact, f"Heat-stress level {heat_level} for this window."))
    else:
        peak_feels = max(trend_feels) if trend_feels else feels
        heat_hours = len([f for f in trend_feels if f >= 85])
        if peak_feels is not None and peak_feels >= 90:
            signals.append(Signal(6, f"Apparent temperature peaks near {round(peak_feels)}F."))
        elif peak_feels is not None and peak_feels >= 82 and heat_hours >= 4:
            signals.append(Signal(3, f"{heat_hours} warm hours at 85F or more apparent temperature."))

    # Darkness (an alpine start before sunrise is expected, not penalized)
    if data.get("is_daytime") is False:
        sunrise = parse_iso_datetime((solar.payload or {}).get("sunrise"))
        before_sunrise = sunrise is not None and window.start < sunrise
        if not before_sunrise:
            signals.append(Signal(DARKNESS_IMPACT, "Selected start is at night, reducing navigation margin and terrain visibility."))

    if len(trend_temps) >= 2 and max(trend_temps) - min(trend_temps) >= VOLATILITY_TEMP_RANGE_F:
        spread = max(trend_temps) - min(trend_temps)
        signals.append(Signal(VOLATILITY_IMPACT, f"Temperature swings {round(spread)}F across the window."))

    lead = window.lead_hours(now)
    for threshold, tier_impact in FORECAST_LEAD_TIERS:
        if lead >= threshold:
            signals.append(Signal(tier_impact, f"Selected start is {round(lead)}h ahead; forecast uncertainty grows."))
            break
    return signals


def surface_signals(rainfall: ProviderResult) -> List[Signal]:
    if rainfall.status == STATUS_ZEROED:
        return [Signal(SURFACE_ZEROED_IMPACT, "Recent precipitation is unknown; trail surface could be wet or icy.")]
    totals = (rainfall.payload or {}).get("totals") or {}
    if totals and all(value is None for value in totals.values()):
        return [Signal(SURFACE_ZEROED_IMPACT, "Recent precipitation is unknown; trail surface could be wet or icy.")]
    signals = []
    rain = parse_number(totals.get("past24h_in"))
    snow = parse_number(totals.get("snow_past24h_in"))
    impact = _tier(rain, RAIN_24H_TIERS)
    if impact:
        signals.append(Signal(impact, f"{rain:.2f} in of rain in the past 24h leaves wet, slick surfaces."))
    impact = _tier(snow, SNOW_24H_TIERS)
    if impact:
        signals.append(Signal(impact, f"{snow:.1f} in of new snow in the past 24h buries the trail surface."))
    return signals


def alert_signals(alerts: ProviderResult, window: PlanningWindow) -> List[Signal]:
    """Only alerts that overlap the travel window count; the most severe one sets the impact."""
    if not alerts.usable:
        return []
    active = alerts_in_window((alerts.payload or {}).get("alerts") or [], window)
    if not active:
        return []
    severity = max(
        (normalize_alert_severity(a.get("severity")) for a in active),
        key=lambda s: ALERT_SEVERITY_RANK[s],
    )
    impact = ALERT_SEVERITY_IMPACTS.get(severity, ALERT_DEFAULT_IMPACT)
    events = ", ".join(sorted({str(a.get("event")) for a in active}))
    return [Signal(impact, f"{len(active)} NWS alert(s) overlap the travel window ({events}); highest severity {severity}.")]


def air_quality_signals(air_quality: ProviderResult) -> List[Signal]:
    payload = air_quality.payload or {}
    aqi = parse_number(payload.get("us_aqi"))
    impact = _tier(aqi, AQI_TIERS)
    if not impact:
        return []
    return [Signal(impact, f"US AQI near {round(aqi)} ({payload.get('category') or 'Unknown'}).")]


def fire_signals(fire_risk: Dict[str, Any]) -> List[Signal]:
    level = int(fire_risk.get("level") or 0)
    impact = FIRE_LEVEL_IMPACTS.get(level, 0)
    if not impact:
        return []
    return [Signal(impact, f"Fire-weather level {level} ({fire_risk.get('label')}): {fire_risk.get('guidance')}")]


# =============================================================================
# CONFIDENCE
# =============================================================================

def confidence_penalties(
    results: Dict[str, ProviderResult],
    relevance: Dict[str, Relevance],
    window: PlanningWindow,
    now: datetime,
) -> List[Tuple[int, str]]:
    """(points, reason) deductions from a starting confidence of 100."""
    penalties: List[Tuple[int, str]] = []
    weather = results["weather"]
    data = weather.payload or {}

    if weather.status == STATUS_ZEROED:
        penalties.append((CONFIDENCE_PENALTIES["weather_zeroed"], "Weather data unavailable."))
    else:
        if weather.status in (STATUS_DEGRADED, STATUS_STALE):
            penalties.append((CONFIDENCE_PENALTIES["weather_degraded"], "Weather data came from a fallback source."))
        issued = parse_iso_datetime(data.get("issued_time"))
        if issued is None:
            penalties.append((CONFIDENCE_PENALTIES["weather_issue_time_missing"], "Weather issuance time unavailable."))
        else:
            age = (now - issued).total_seconds() / 3600.0
            points = _age_tier(age, WEATHER_AGE_PENALTIES)
            if points:
                penalties.append((points, f"Weather issuance is {round(age)}h old."))
    if len(data.get("trend") or []) < MIN_TREND_POINTS:
        penalties.append((CONFIDENCE_PENALTIES["weather_trend_shallow"], f"Limited hourly trend depth (<{MIN_TREND_POINTS} points)."))

    avalanche = results["avalanche"]
    avalanche_payload = avalanche.payload or {}
    if relevance["avalanche"].relevant:
        if not avalanche.usable or avalanche_payload.get("danger_unknown"):
            penalties.append((CONFIDENCE_PENALTIES["avalanche_unknown"], "Avalanche danger is unknown for this objective."))
        else:
            published = parse_iso_datetime(avalanche_payload.get("published_time"))
            if published is None:
                penalties.append((CONFIDENCE_PENALTIES["avalanche_publish_time_missing"], "Avalanche bulletin publish time unavailable."))
            else:
                age = (now - published).total_seconds() / 3600.0
                points = _age_tier(age, AVALANCHE_AGE_PENALTIES)
                if points:
                    penalties.append((points, f"Avalanche bulletin is {round(age)}h old."))
    if avalanche.status == STATUS_STALE:
        penalties.append((CONFIDENCE_PENALTIES["avalanche_stale"], "Avalanche map layer is a stale cached copy."))

    lead = window.lead_hours(now)
    if lead > ALERT_MAX_LEAD_HOURS:
        penalties.append((
            CONFIDENCE_PENALTIES["alerts_not_forecast_valid"],
            "NWS alerts are current-state only and not forecast-valid for the selected start.",
        ))
    elif not results["alerts"].usable:
        penalties.append((CONFIDENCE_PENALTIES["alerts_unavailable"], "NWS alerts feed unavailable."))

    air_quality = results["air_quality"]
    aq_status = (air_quality.payload or {}).get("status")
    if not air_quality.usable:
        penalties.append((CONFIDENCE_PENALTIES["air_quality_unavailable"], "Air quality feed unavailable."))
    elif aq_status == "no_data":
        penalties.append((CONFIDENCE_PENALTIES["air_quality_no_data"], "Air quality point data unavailable."))

    rainfall = results["rainfall"]
    rainfall_no_data = rainfall.usable and (rainfall.payload or {}).get("fallback_mode") == "no_data"
    if rainfall.status == STATUS_ZEROED:
        penalties.append((CONFIDENCE_PENALTIES["rainfall_zeroed"], "Precipitation totals unavailable due to upstream outage."))
        penalties.append((
            CONFIDENCE_PENALTIES["surface_chain_suppressed"],
            "Surface conditions are classified without recent precipitation totals.",
        ))
    elif rainfall_no_data:
        penalties.append((CONFIDENCE_PENALTIES["rainfall_no_data"], "Precipitation totals unavailable for the planned start."))
        penalties.append((
            CONFIDENCE_PENALTIES["surface_chain_suppressed"],
            "Surface conditions are classified without recent precipitation totals.",
        ))
    elif rainfall.status == STATUS_STALE:
        penalties.append((CONFIDENCE_PENALTIES["rainfall_stale"], "Precipitation totals come from a stale cache entry."))
    elif rainfall.status == STATUS_DEGRADED:
        penalties.append((CONFIDENCE_PENALTIES["rainfall_degraded"], "Precipitation totals come from a fallback tier."))

    if not results["snowpack"].usable:
        penalties.append((CONFIDENCE_PENALTIES["snowpack_unavailable"], "Snowpack observations unavailable."))
        if avalanche_payload.get("coverage_status") != "reported":
            penalties.append((
                CONFIDENCE_PENALTIES["avalanche_snowpack_chain_suppressed"],
                "Avalanche relevance is judged without snowpack observations.",
            ))

    if results["solar"].status == STATUS_DEGRADED:
        penalties.append((CONFIDENCE_PENALTIES["solar_degraded"], "Sun times computed locally."))

    for threshold, points in LEAD_TIME_PENALTIES:
        if lead >= threshold:
            penalties.append((points, f"Selected start is {round(lead)}h ahead (lower forecast certainty)."))
            break
    return penalties


def source_names(results: Dict[str, ProviderResult], relevance: Dict[str, Relevance]) -> Tuple[str, ...]:
    sources = []
    for category, result in results.items():
        if not result.usable or not result.source:
            continue
        if category in relevance and not relevance[category].relevant:
            continue
        sources.append(result.source)
    return tuple(sources)


class RiskScorer:
    """Turn provider results and relevance into factors, safety and confidence."""

    def score(
        self,
        results: Dict[str, ProviderResult],
        relevance: Dict[str, Relevance],
        heat_risk: Dict[str, Any],
        fire_risk: Dict[str, Any],
        window: PlanningWindow,
        now: datetime,
    ) -> RiskAssessment:
        missing = [category for category in HAZARD_CATEGORIES if category not in relevance]
        if missing:
            raise ComputationError(f"Relevance missing for hazard categories: {missing}")

        signals = {
            "avalanche": avalanche_signals(results["avalanche"]),
            "weather": weather_signals(
                results["weather"],
                results["rainfall"],
                results["solar"],
                int(heat_risk.get("level") or 0),
                window,
                now,
            ),
            "surface": surface_signals(results["rainfall"]),
            "alerts": alert_signals(results["alerts"], window),
            "air_quality": air_quality_signals(results["air_quality"]),
            "fire": fire_signals(fire_risk),
        }

        factors = []
        for category in HAZARD_CATEGORIES:
            draft = FactorDraft(category, HAZARD_CAPS[category]).with_relevance(relevance[category])
            factors.append(draft.scored(signals[category]))

        total = sum(factor.impact for factor in factors)
        value = max(0, min(100, round(100 - total)))
        safety = SafetyScore(value, safety_label(value))

        penalties = confidence_penalties(results, relevance, window, now)
        confidence_value = CONFIDENCE_CEILING - sum(points for points, _ in penalties)
        confidence_value = max(CONFIDENCE_FLOOR, min(CONFIDENCE_CEILING, confidence_value))
        confidence = ConfidenceScore(confidence_value, tuple(reason for _, reason in penalties))

        ranked = sorted((f for f in factors if f.impact > 0), key=lambda f: -f.impact)
        primary = ranked[0].category if ranked else "none"

        logger.info(f"Scored safety={safety.score} ({safety.label}), confidence={confidence.score}, primary={primary}")
        return RiskAssessment(
            safety=safety,
            confidence=confidence,
            factors=tuple(factors),
            primary_hazard=primary,
            sources_used=source_names(results, relevance),
        )
