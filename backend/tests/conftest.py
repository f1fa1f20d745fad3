"""
Pytest configuration and shared fixtures for SummitCast backend tests.

Provides:
- async_client / test_client: HTTP clients for API tests
- frozen_clock / cache: deterministic cache with an injected clock
- window: a planning window in the Colorado Rockies
- make_result / weather_payload / rainfall_payload: provider result builders
- fake fetchers for orchestrator and pipeline tests
"""
import time
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncGenerator, Dict, List, Optional
from zoneinfo import ZoneInfo

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from summitcast.main import app
from summitcast.services.provider_base import (
    PROVIDER_CATEGORIES,
    FetchContext,
    PlanningWindow,
    ProviderFetcher,
    ProviderResult,
)
from summitcast.utils.cache import CacheService

# 2026-02-14 06:30 America/Denver (13:30 UTC); "now" is 11:00 UTC that day
DENVER = ZoneInfo("America/Denver")
PLAN_START = datetime(2026, 2, 14, 6, 30, tzinfo=DENVER)
NOW_UTC = datetime(2026, 2, 14, 11, 0, tzinfo=timezone.utc)

LATITUDE = 39.1178
LONGITUDE = -106.4454


@pytest_asyncio.fixture(scope="function")
async def async_client() -> AsyncGenerator[AsyncClient, None]:
    """
    Async HTTP client for testing FastAPI endpoints.

    Usage:
        async def test_example(async_client):
            response = await async_client.get("/api/v1/health")
            assert response.status_code == 200
    """
    transport = ASGITransport(app=app)

    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture(scope="function")
def test_client():
    """
    Synchronous HTTP client for testing FastAPI endpoints.

    Scope: function - Each test gets a fresh client.
    """
    from fastapi.testclient import TestClient
    with TestClient(app) as client:
        yield client


@pytest.fixture(scope="session")
def anyio_backend():
    """Configure anyio backend for pytest-asyncio."""
    return "asyncio"


# ============================================================================
# Clock, cache, window
# ============================================================================


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: float):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def frozen_clock():
    return FrozenClock(NOW_UTC.timestamp())


@pytest.fixture
def cache(frozen_clock):
    return CacheService(clock=frozen_clock, stale_retention_seconds=6 * 60 * 60, max_entries=64)


@pytest.fixture
def window():
    return PlanningWindow(start=PLAN_START, travel_window_hours=12, tz_name="America/Denver")


@pytest.fixture
def now():
    return NOW_UTC


@pytest.fixture
def fetch_ctx(window, cache, frozen_clock):
    return FetchContext(
        latitude=LATITUDE,
        longitude=LONGITUDE,
        window=window,
        cache=cache,
        clock=frozen_clock,
        timeout=2.0,
    )


# ============================================================================
# Payload builders
# ============================================================================


def _trend(start: datetime, hours: int, temp: float = 45.0, **overrides) -> List[Dict[str, Any]]:
    points = []
    for hour in range(hours):
        point = {
            "time": (start + timedelta(hours=hour)).isoformat(),
            "end_time": (start + timedelta(hours=hour + 1)).isoformat(),
            "temp_f": temp,
            "feels_like_f": temp,
            "wind_mph": 5.0,
            "gust_mph": 8.0,
            "wind_direction": "W",
            "precip_chance": 5.0,
            "humidity": 40.0,
            "dew_point_f": 20.0,
            "cloud_cover": 10.0,
            "pressure_hpa": 1015.0,
            "condition": "Sunny",
            "is_daytime": True,
        }
        point.update(overrides)
        points.append(point)
    return points


@pytest.fixture
def weather_payload():
    """
    Factory for a calm, dry weather snapshot; keyword arguments override fields.

    trend_hours controls the number of hourly trend points.
    """

    def build(trend_hours: int = 12, trend: Optional[List[Dict[str, Any]]] = None, **overrides) -> Dict[str, Any]:
        base_temp = overrides.get("temp_f", 45.0)
        payload = {
            "temp_f": base_temp,
            "feels_like_f": base_temp,
            "dew_point_f": 20.0,
            "humidity": 40.0,
            "wind_mph": 5.0,
            "gust_mph": 8.0,
            "wind_direction": "W",
            "pressure_hpa": 1015.0,
            "cloud_cover": 10.0,
            "precip_chance": 5.0,
            "description": "Sunny",
            "is_daytime": True,
            "issued_time": (NOW_UTC - timedelta(hours=1)).isoformat(),
            "timezone": "America/Denver",
            "forecast_start_time": PLAN_START.isoformat(),
            "forecast_end_time": (PLAN_START + timedelta(hours=1)).isoformat(),
            "elevation_ft": 9000,
            "trend": trend if trend is not None else _trend(PLAN_START, trend_hours, temp=base_temp),
            "temperature_context": {
                "window_hours": 24,
                "min_temp_f": base_temp - 5,
                "max_temp_f": base_temp + 5,
                "overnight_low_f": base_temp - 5,
                "daytime_high_f": base_temp + 5,
            },
            "source": "NOAA",
            "forecast_link": "https://forecast.weather.gov/MapClick.php?lat=39.1178&lon=-106.4454",
            "gap_filled_fields": [],
        }
        payload.update(overrides)
        return payload

    return build


@pytest.fixture
def rainfall_payload():
    def build(rain24: Optional[float] = 0.0, snow24: Optional[float] = 0.0, **expected) -> Dict[str, Any]:
        return {
            "fallback_mode": None,
            "mode": "forecast",
            "anchor_time": PLAN_START.astimezone(timezone.utc).isoformat(),
            "timezone": "UTC",
            "totals": {
                "past12h_in": rain24,
                "past24h_in": rain24,
                "past48h_in": rain24,
                "snow_past12h_in": snow24,
                "snow_past24h_in": snow24,
                "snow_past48h_in": snow24,
            },
            "expected": {
                "status": "ok",
                "travel_window_hours": 12,
                "start_time": PLAN_START.isoformat(),
                "end_time": (PLAN_START + timedelta(hours=12)).isoformat(),
                "rain_window_in": expected.get("rain_window_in", 0.0),
                "snow_window_in": expected.get("snow_window_in", 0.0),
                "note": None,
            },
        }

    return build


def default_payloads(weather: Dict[str, Any], rainfall: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    return {
        "weather": weather,
        "solar": {
            "sunrise": datetime(2026, 2, 14, 6, 55, tzinfo=DENVER).isoformat(),
            "sunset": datetime(2026, 2, 14, 17, 40, tzinfo=DENVER).isoformat(),
            "solar_noon": datetime(2026, 2, 14, 12, 17, tzinfo=DENVER).isoformat(),
            "day_length_seconds": 38700,
            "polar": None,
            "elevation_curve": [
                {
                    "time": datetime(2026, 2, 14, hour, 0, tzinfo=DENVER).isoformat(),
                    "elevation_deg": max(-40.0, 38.0 - abs(hour - 12) * 7.5),
                }
                for hour in range(24)
            ],
        },
        "avalanche": {
            "center": "Colorado Avalanche Information Center",
            "center_id": "CAIC",
            "zone": "Aspen",
            "zone_id": "2717",
            "resolution_method": "polygon",
            "distance_km": 0.0,
            "region_override": None,
            "coverage_status": "reported",
            "risk": "Moderate",
            "danger_level": 2,
            "danger_unknown": False,
            "danger_by_elevation_band": {
                "below": {"level": 1, "label": "Low"},
                "at": {"level": 2, "label": "Moderate"},
                "above": {"level": 2, "label": "Moderate"},
            },
            "problems": [],
            "bottom_line": "Watch for wind slabs on leeward slopes near treeline.",
            "published_time": (NOW_UTC - timedelta(hours=4)).isoformat(),
            "expires_time": (NOW_UTC + timedelta(hours=20)).isoformat(),
            "link": "https://avalanche.state.co.us",
            "detail_source": "structured",
        },
        "snowpack": {"snotel": None, "nohrsc": None, "historical": None, "target_date": "2026-02-14"},
        "rainfall": rainfall,
        "alerts": {"alerts": [], "active_count": 0, "highest_severity": "unknown"},
        "air_quality": {
            "status": "ok",
            "us_aqi": 20.0,
            "category": "Good",
            "pm25": 2.0,
            "pm10": 4.0,
            "ozone": 60.0,
            "measured_time": PLAN_START.isoformat(),
            "note": None,
        },
    }


@pytest.fixture
def make_results(weather_payload, rainfall_payload):
    """
    Factory for a full {category: ProviderResult} map.

    Usage:
        results = make_results(statuses={"rainfall": "zeroed"}, payloads={"weather": {...}})
    """

    def build(
        statuses: Optional[Dict[str, str]] = None,
        payloads: Optional[Dict[str, Dict[str, Any]]] = None,
    ) -> Dict[str, ProviderResult]:
        statuses = statuses or {}
        merged = default_payloads(weather_payload(), rainfall_payload())
        merged.update(payloads or {})
        return {
            category: ProviderResult(
                category=category,
                status=statuses.get(category, "ok"),
                payload=merged[category],
                source=f"{category}-source",
            )
            for category in PROVIDER_CATEGORIES
        }

    return build


# ============================================================================
# Fake fetchers
# ============================================================================


class FakeFetcher(ProviderFetcher):
    """Returns a canned payload after an optional blocking delay."""

    def __init__(self, category: str, payload: Dict[str, Any], status: str = "ok", delay: float = 0.0):
        self.category = category
        self.payload = payload
        self.status = status
        self.delay = delay
        self.fallback_reasons: List[str] = []

    def _fetch(self, ctx: FetchContext) -> ProviderResult:
        if self.delay:
            time.sleep(self.delay)
        return self.result(self.status, dict(self.payload))

    def fallback(self, ctx: FetchContext, reason: str) -> ProviderResult:
        self.fallback_reasons.append(reason)
        return self.result("zeroed", {"fallback_mode": "zeroed_totals", "totals": {}}, warning=f"fallback: {reason}")


@pytest.fixture
def fake_fetchers(weather_payload, rainfall_payload):
    """Factory: one FakeFetcher per provider category, with per-category delays/statuses."""

    def build(delays: Optional[Dict[str, float]] = None, statuses: Optional[Dict[str, str]] = None) -> List[FakeFetcher]:
        delays = delays or {}
        statuses = statuses or {}
        payloads = default_payloads(weather_payload(), rainfall_payload())
        return [
            FakeFetcher(category, payloads[category], statuses.get(category, "ok"), delays.get(category, 0.0))
            for category in PROVIDER_CATEGORIES
        ]

    return build
