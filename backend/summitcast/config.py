"""
Application configuration settings.
Reads from environment variables and .env file.
"""
import os
from pydantic_settings import BaseSettings, SettingsConfigDict


def parse_cors_origins() -> list[str]:
    """
    Parse CORS_ORIGINS from environment variable.
    Supports comma-separated string format for container deployments.
    Falls back to local development origins.
    """
    cors_env = os.environ.get("CORS_ORIGINS", "")
    if cors_env:
        # Parse comma-separated origins
        return [origin.strip() for origin in cors_env.split(",") if origin.strip()]
    return [
        "http://localhost:3000",
        "http://localhost:5173",
    ]


class Settings(BaseSettings):
    """Application settings."""

    # API
    API_V1_PREFIX: str = "/api/v1"
    PROJECT_NAME: str = "SummitCast"

    # Environment
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # CORS - parsed from environment variable
    CORS_ORIGINS: list[str] = parse_cors_origins()

    # Upstream providers
    REQUEST_TIMEOUT_SECONDS: float = 9.0  # Shared per-request deadline
    HTTP_USER_AGENT: str = "SummitCast/1.0 (backcountry safety planner)"
    DEFAULT_TRAVEL_WINDOW_HOURS: int = 12
    OPEN_METEO_API_KEY: str | None = None  # Commercial endpoints when set

    # Cache
    CACHE_BACKEND: str = "memory"  # "memory" or "redis"
    REDIS_URL: str = "redis://localhost:6379/0"
    CACHE_REDIS_URL: str | None = None
    CACHE_MAX_ENTRIES: int = 2048
    CACHE_STALE_RETENTION_SECONDS: int = 6 * 60 * 60

    # Per-namespace cache TTLs (seconds)
    AVALANCHE_MAP_LAYER_TTL_SECONDS: int = 10 * 60
    SNOTEL_STATION_TTL_SECONDS: int = 12 * 60 * 60
    RAINFALL_TTL_SECONDS: int = 30 * 60
    POINTS_TTL_SECONDS: int = 12 * 60 * 60
    SOLAR_TTL_SECONDS: int = 6 * 60 * 60

    # Safety label cut points
    SAFETY_OPTIMAL_THRESHOLD: int = 80
    SAFETY_CAUTION_THRESHOLD: int = 50

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )

    @property
    def cache_redis_url(self) -> str:
        """Redis URL for application cache operations."""
        return self.CACHE_REDIS_URL or self.REDIS_URL

    @property
    def cache_ttls(self) -> dict[str, int]:
        """TTL per cache namespace."""
        return {
            "avalanche_map": self.AVALANCHE_MAP_LAYER_TTL_SECONDS,
            "snotel_stations": self.SNOTEL_STATION_TTL_SECONDS,
            "rainfall": self.RAINFALL_TTL_SECONDS,
            "points": self.POINTS_TTL_SECONDS,
            "solar": self.SOLAR_TTL_SECONDS,
        }


# Global settings instance
settings = Settings()
