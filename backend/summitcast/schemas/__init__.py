"""
Pydantic schemas export.
"""
from summitcast.schemas.safety import (
    SafetyResponse,
    SafetyScoreOut,
    ConfidenceOut,
    HazardFactorOut,
    RainfallOut,
    AvalancheOut,
    WeatherOut,
    TerrainOut,
    TerrainSegmentOut,
    ProviderStatusOut,
    RequestEcho,
    ErrorResponse,
)

__all__ = [
    # Response
    "SafetyResponse",
    "SafetyScoreOut",
    "ConfidenceOut",
    "HazardFactorOut",
    # Blocks
    "RainfallOut",
    "AvalancheOut",
    "WeatherOut",
    "TerrainOut",
    "TerrainSegmentOut",
    "ProviderStatusOut",
    "RequestEcho",
    # Errors
    "ErrorResponse",
]
