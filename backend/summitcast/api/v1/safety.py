"""
Safety Synthesis API Endpoint

GET /api/v1/safety - Backcountry risk assessment for an objective and start time
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from summitcast.schemas.safety import ErrorResponse, SafetyResponse
from summitcast.services.safety_pipeline import SafetyPipeline

router = APIRouter()
logger = logging.getLogger(__name__)

_pipeline: Optional[SafetyPipeline] = None


def get_pipeline() -> SafetyPipeline:
    """Shared pipeline instance (overridable in tests via dependency_overrides)."""
    global _pipeline
    if _pipeline is None:
        _pipeline = SafetyPipeline()
    return _pipeline


@router.get(
    "/safety",
    response_model=SafetyResponse,
    response_model_by_alias=True,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def get_safety(
    lat: float = Query(..., description="Objective latitude in degrees", examples=[39.1178]),
    lon: float = Query(..., description="Objective longitude in degrees", examples=[-106.4454]),
    date: str = Query(..., description="Planned date (YYYY-MM-DD)", examples=["2026-02-14"]),
    start: str = Query(..., description="Planned local start time (24h HH:mm)", examples=["06:30"]),
    travel_window_hours: Optional[int] = Query(
        default=None,
        description="Hours of travel after the start (clamped to 1-24, default 12)",
    ),
    pipeline: SafetyPipeline = Depends(get_pipeline),
):
    """
    Synthesize weather, avalanche, snowpack, precipitation, alert and air
    quality data into one safety score.

    **Statuses**:
    - 200: always, once the request itself is valid. Upstream outages are
      reported through `partialData`, `apiWarning` and `providers`
    - 400: `{"error": ...}` for malformed coordinates, date or start time

    **Scoring**:
    - Each hazard category contributes an impact capped per category
    - Categories judged not relevant contribute 0 and say why
    - `confidence` (20-100) drops with every degraded or missing input
    """
    response = await pipeline.run(lat, lon, date, start, travel_window_hours)
    return response
