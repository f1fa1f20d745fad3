"""
Response Assembler - Build the SafetyResponse from the pipeline outputs

Deterministic and side-effect free: the same inputs always produce the same
model, and therefore the same JSON bytes. Upstream degradation never changes
the HTTP status; every provider whose status is not "ok" is listed in
apiWarning and flips partialData.
"""
import logging
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from summitcast.schemas.safety import (
    AvalancheOut,
    ConfidenceOut,
    HazardFactorOut,
    ProviderStatusOut,
    RainfallOut,
    RainfallTotalsOut,
    RequestEcho,
    SafetyResponse,
    SafetyScoreOut,
    TerrainOut,
    TerrainSegmentOut,
    WeatherOut,
)
from summitcast.services.gear_suggestions import build_gear_suggestions
from summitcast.services.provider_base import (
    PROVIDER_CATEGORIES,
    STATUS_OK,
    STATUS_ZEROED,
    PlanningWindow,
    ProviderResult,
)
from summitcast.services.relevance_evaluator import Relevance, alerts_in_window
from summitcast.services.risk_scorer import RiskAssessment
from summitcast.services.terrain_classifier import TerrainClassification

# Configure logging
logger = logging.getLogger(__name__)

RAINFALL_TOTAL_KEYS = (
    "past12h_in",
    "past24h_in",
    "past48h_in",
    "snow_past12h_in",
    "snow_past24h_in",
    "snow_past48h_in",
)


def build_api_warning(results: Dict[str, ProviderResult]) -> Optional[str]:
    """
    One line naming every provider that is not fully live.

    Example:
        "Partial data: rainfall zeroed (Precipitation feed unavailable); solar degraded"
    """
    parts = []
    for category in PROVIDER_CATEGORIES:
        result = results[category]
        if result.status == STATUS_OK:
            continue
        part = f"{category} {result.status}"
        if result.warning:
            part += f" ({result.warning})"
        parts.append(part)
    if not parts:
        return None
    return "Partial data: " + "; ".join(parts)


def rainfall_block(rainfall: ProviderResult) -> RainfallOut:
    payload = rainfall.payload or {}
    totals = payload.get("totals") or {}
    if rainfall.status == STATUS_ZEROED:
        values = {key: None for key in RAINFALL_TOTAL_KEYS}
    else:
        values = {key: totals.get(key) for key in RAINFALL_TOTAL_KEYS}
    return RainfallOut(
        totals=RainfallTotalsOut(**values),
        status=rainfall.status,
        expected=payload.get("expected"),
        anchor_time=payload.get("anchor_time"),
        fallback_mode=payload.get("fallback_mode"),
        mode=payload.get("mode"),
        source=rainfall.source,
        warning=rainfall.warning,
    )


def avalanche_block(avalanche: ProviderResult, relevance: Relevance) -> AvalancheOut:
    payload = avalanche.payload or {}
    fields = {key: value for key, value in payload.items() if key in AvalancheOut.model_fields}
    fields.update(
        status=avalanche.status,
        relevant=relevance.relevant,
        relevance_reason=relevance.reason,
        source=avalanche.source,
        warning=avalanche.warning,
    )
    return AvalancheOut(**fields)


def weather_block(weather: ProviderResult) -> WeatherOut:
    payload = weather.payload or {}
    fields = {key: value for key, value in payload.items() if key in WeatherOut.model_fields}
    fields.update(status=weather.status, source=payload.get("source") or weather.source, warning=weather.warning)
    return WeatherOut(**fields)


def terrain_block(terrain: TerrainClassification, relevance: Relevance) -> TerrainOut:
    return TerrainOut(
        surface_code=terrain.surface_code,
        label=terrain.label,
        impact=terrain.impact,
        recommended_travel=terrain.recommended_travel,
        freeze_thaw_code=terrain.freeze_thaw_code,
        snow_profile_label=terrain.snow_profile_label,
        confidence=terrain.confidence,
        relevant=relevance.relevant,
        relevance_reason=relevance.reason,
        reasons=list(terrain.reasons),
        by_segment=[TerrainSegmentOut(**asdict(segment)) for segment in terrain.by_segment],
        signals=dict(terrain.signals),
    )


def _block(result: ProviderResult, **extra: Any) -> Dict[str, Any]:
    block = {"status": result.status}
    block.update(result.payload or {})
    block.update(extra)
    block["source"] = result.source
    block["warning"] = result.warning
    return block


class ResponseAssembler:
    """Assemble the final, serializable safety response."""

    def assemble(
        self,
        request: RequestEcho,
        window: PlanningWindow,
        results: Dict[str, ProviderResult],
        relevance: Dict[str, Relevance],
        terrain: TerrainClassification,
        assessment: RiskAssessment,
        heat_risk: Dict[str, Any],
        fire_risk: Dict[str, Any],
    ) -> SafetyResponse:
        api_warning = build_api_warning(results)
        alerts_payload = results["alerts"].payload or {}
        in_window = alerts_in_window(alerts_payload.get("alerts") or [], window)

        factors: List[HazardFactorOut] = [HazardFactorOut(**factor.to_dict()) for factor in assessment.factors]
        gear = build_gear_suggestions(
            results["weather"].payload or {},
            terrain_label=terrain.label,
            rainfall=results["rainfall"].payload if results["rainfall"].usable else None,
            snowpack=results["snowpack"].payload if results["snowpack"].usable else None,
            avalanche=results["avalanche"].payload,
            avalanche_relevant=relevance["avalanche"].relevant,
            air_quality=results["air_quality"].payload,
            alerts={"active_count": len(in_window)},
            fire_risk=fire_risk,
        )
        response = SafetyResponse(
            safety=SafetyScoreOut(
                score=assessment.safety.score,
                label=assessment.safety.label,
                primary_hazard=assessment.primary_hazard,
            ),
            confidence=ConfidenceOut(
                score=assessment.confidence.score,
                reasons=list(assessment.confidence.reasons),
            ),
            factors=factors,
            rainfall=rainfall_block(results["rainfall"]),
            avalanche=avalanche_block(results["avalanche"], relevance["avalanche"]),
            weather=weather_block(results["weather"]),
            terrain=terrain_block(terrain, relevance["surface"]),
            solar=_block(results["solar"]),
            snowpack=_block(results["snowpack"]),
            alerts=_block(
                results["alerts"],
                relevant=relevance["alerts"].relevant,
                relevance_reason=relevance["alerts"].reason,
                in_window_count=len(in_window),
            ),
            air_quality=_block(
                results["air_quality"],
                relevant=relevance["air_quality"].relevant,
                relevance_reason=relevance["air_quality"].reason,
            ),
            heat_risk=dict(heat_risk),
            fire_risk=dict(fire_risk, relevant=relevance["fire"].relevant, relevance_reason=relevance["fire"].reason),
            gear_suggestions=gear,
            providers=[ProviderStatusOut(**results[c].to_dict()) for c in PROVIDER_CATEGORIES],
            request=request,
            sources_used=list(assessment.sources_used),
            partial_data=api_warning is not None,
            api_warning=api_warning,
        )
        if api_warning:
            logger.info(api_warning)
        return response


def render(response: SafetyResponse) -> str:
    """Serialize with the public field names."""
    return response.model_dump_json(by_alias=True)
