"""
Pydantic schemas for the safety synthesis endpoint.

Defines the response model for GET /api/v1/safety. Field order is fixed by
the class definitions, so the same assessment always serializes to the same
bytes. Top-level fields use the camelCase names clients already consume
(partialData, apiWarning, heatRisk, ...); nested blocks keep snake_case.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SafetyScoreOut(BaseModel):
    """Safety score with its band label (Optimal / Caution / Critical)."""

    score: int = Field(..., ge=0, le=100, description="0 (worst) to 100 (best)")
    label: str
    primary_hazard: str = Field(..., description="Hazard category with the largest impact, or 'none'")


class ConfidenceOut(BaseModel):
    score: int = Field(..., ge=20, le=100)
    reasons: List[str] = Field(default_factory=list, description="One line per confidence deduction")


class HazardFactorOut(BaseModel):
    """
    One hazard category's contribution to the score.

    impact never exceeds cap, and is 0 whenever relevant is false.
    """

    category: str
    impact: int = Field(..., ge=0)
    cap: int
    relevant: bool
    explanation: str
    signals: List[str] = Field(default_factory=list)


class RainfallExpectedOut(BaseModel):
    status: Optional[str] = None
    travel_window_hours: Optional[int] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    rain_window_in: Optional[float] = None
    snow_window_in: Optional[float] = None
    note: Optional[str] = None


class RainfallTotalsOut(BaseModel):
    """Rolling totals (inches) ending at the planned start."""

    past12h_in: Optional[float] = None
    past24h_in: Optional[float] = None
    past48h_in: Optional[float] = None
    snow_past12h_in: Optional[float] = None
    snow_past24h_in: Optional[float] = None
    snow_past48h_in: Optional[float] = None


class RainfallOut(BaseModel):
    """
    Precipitation block: rolling totals plus the travel-window outlook.

    When status is "zeroed" every total is null, never 0. fallback_mode is
    "no_data" when the feed answered but covered none of the windows.
    """

    totals: RainfallTotalsOut
    status: str
    expected: Optional[RainfallExpectedOut] = None
    anchor_time: Optional[str] = None
    fallback_mode: Optional[str] = None
    mode: Optional[str] = None
    source: Optional[str] = None
    warning: Optional[str] = None


class ElevationBandOut(BaseModel):
    level: Optional[int] = None
    label: Optional[str] = None


class DangerByBandOut(BaseModel):
    below: ElevationBandOut
    at: ElevationBandOut
    above: ElevationBandOut


class AvalancheProblemOut(BaseModel):
    id: Optional[Any] = None
    name: Optional[str] = None
    likelihood: Optional[str] = None
    size: Optional[Any] = None
    location: List[str] = Field(default_factory=list)
    discussion: Optional[str] = None


class AvalancheOut(BaseModel):
    status: str
    relevant: bool
    relevance_reason: str
    center: Optional[str] = None
    center_id: Optional[str] = None
    zone: Optional[str] = None
    zone_id: Optional[str] = None
    resolution_method: Optional[str] = None
    distance_km: Optional[float] = None
    region_override: Optional[str] = None
    coverage_status: Optional[str] = None
    risk: Optional[str] = None
    danger_level: Optional[int] = None
    danger_unknown: bool = True
    danger_by_elevation_band: Optional[DangerByBandOut] = None
    problems: List[AvalancheProblemOut] = Field(default_factory=list)
    bottom_line: Optional[str] = None
    published_time: Optional[str] = None
    expires_time: Optional[str] = None
    link: Optional[str] = None
    detail_source: Optional[str] = None
    source: Optional[str] = None
    warning: Optional[str] = None


class WeatherOut(BaseModel):
    """Weather snapshot at the planned start plus the travel-window trend."""

    status: str
    temp_f: Optional[float] = None
    feels_like_f: Optional[float] = None
    dew_point_f: Optional[float] = None
    humidity: Optional[float] = None
    wind_mph: Optional[float] = None
    gust_mph: Optional[float] = None
    wind_direction: Optional[str] = None
    pressure_hpa: Optional[float] = None
    cloud_cover: Optional[float] = None
    precip_chance: Optional[float] = None
    description: Optional[str] = None
    is_daytime: Optional[bool] = None
    issued_time: Optional[str] = None
    timezone: Optional[str] = None
    forecast_start_time: Optional[str] = None
    forecast_end_time: Optional[str] = None
    elevation_ft: Optional[float] = None
    trend: List[Dict[str, Any]] = Field(default_factory=list)
    temperature_context: Optional[Dict[str, Any]] = None
    gap_filled_fields: List[str] = Field(default_factory=list)
    visibility_risk: Optional[Dict[str, Any]] = None
    elevation_forecast: List[Dict[str, Any]] = Field(default_factory=list)
    forecast_link: Optional[str] = None
    source: Optional[str] = None
    warning: Optional[str] = None


class TerrainSegmentOut(BaseModel):
    time_of_day: str
    start: Optional[str] = None
    end: Optional[str] = None
    code: str
    label: str
    min_temp_f: Optional[float] = None
    max_temp_f: Optional[float] = None
    peak_sun_elevation_deg: Optional[float] = None
    insolation_index: Optional[float] = None
    forecast_hours: int = 0
    postholing_risk: bool = False
    note: str = ""


class TerrainOut(BaseModel):
    surface_code: str
    label: str
    impact: str
    recommended_travel: str
    freeze_thaw_code: str
    snow_profile_label: str
    confidence: str
    relevant: bool
    relevance_reason: str
    reasons: List[str] = Field(default_factory=list)
    by_segment: List[TerrainSegmentOut] = Field(default_factory=list)
    signals: Dict[str, Any] = Field(default_factory=dict)


class ProviderStatusOut(BaseModel):
    category: str
    status: str
    source: Optional[str] = None
    age_seconds: float = 0.0
    warning: Optional[str] = None


class RequestEcho(BaseModel):
    latitude: float
    longitude: float
    date: str
    start_time: str
    travel_window_hours: int
    timezone: str
    start: str = Field(..., description="Planned start as an ISO-8601 instant in the objective's time zone")
    evaluated_at: str


class SafetyResponse(BaseModel):
    """
    Response schema for GET /api/v1/safety.

    Always returned with HTTP 200 when the request itself is valid; upstream
    trouble is reported through partialData / apiWarning and the providers
    block instead of an error status.
    """

    model_config = ConfigDict(populate_by_name=True)

    safety: SafetyScoreOut
    confidence: ConfidenceOut
    factors: List[HazardFactorOut]
    rainfall: RainfallOut
    avalanche: AvalancheOut
    weather: WeatherOut
    terrain: TerrainOut
    solar: Dict[str, Any]
    snowpack: Dict[str, Any]
    alerts: Dict[str, Any]
    air_quality: Dict[str, Any] = Field(..., alias="airQuality")
    heat_risk: Dict[str, Any] = Field(..., alias="heatRisk")
    fire_risk: Dict[str, Any] = Field(..., alias="fireRisk")
    gear_suggestions: List[str] = Field(default_factory=list, alias="gearSuggestions")
    providers: List[ProviderStatusOut]
    request: RequestEcho
    sources_used: List[str] = Field(default_factory=list, alias="sourcesUsed")
    partial_data: bool = Field(False, alias="partialData")
    api_warning: Optional[str] = Field(None, alias="apiWarning")


class ErrorResponse(BaseModel):
    error: str
