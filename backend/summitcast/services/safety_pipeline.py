"""
Safety Pipeline - One request from raw query parameters to SafetyResponse

Steps:
1. Validate parameters (RequestValidationFailure -> HTTP 400)
2. Resolve the objective's time zone (NOAA points, longitude-offset fallback)
   in a worker thread, inside the request deadline
3. Build the planning window and fetch context
4. Fan out to every provider (FetchOrchestrator)
5. Relevance -> heat/fire sub-signals -> terrain -> scoring -> response

Only step 4 and the time zone lookup touch the network. Everything after the
fan-out is pure and runs in the event loop.
"""
import asyncio
import logging
import time
from typing import Callable, Optional

from summitcast.config import settings
from summitcast.errors import RequestValidationFailure
from summitcast.schemas.safety import RequestEcho, SafetyResponse
from summitcast.services.fetch_orchestrator import FetchOrchestrator
from summitcast.services.fire_risk import build_fire_risk
from summitcast.services.heat_risk import build_heat_risk
from summitcast.services.provider_base import FetchContext
from summitcast.services.relevance_evaluator import RelevanceEvaluator, alerts_in_window
from summitcast.services.response_assembler import ResponseAssembler
from summitcast.services.risk_scorer import RiskScorer
from summitcast.services.terrain_classifier import TerrainClassifier
from summitcast.services.timezone_service import build_planning_window, longitude_offset_zone, resolve_timezone
from summitcast.utils.cache import CacheService, get_cache_service
from summitcast.utils.time_utils import clamp_travel_window, parse_planning_date, parse_start_time
from summitcast.utils.weather_math import parse_number

# Configure logging
logger = logging.getLogger(__name__)

# Share of the request deadline the time zone lookup may use
TIMEZONE_BUDGET_SHARE = 0.35


def validate_coordinates(latitude: float, longitude: float) -> None:
    if latitude is None or not -90.0 <= latitude <= 90.0:
        raise RequestValidationFailure("lat must be between -90 and 90")
    if longitude is None or not -180.0 <= longitude <= 180.0:
        raise RequestValidationFailure("lon must be between -180 and 180")


class SafetyPipeline:
    """
    Wire the pipeline stages together.

    Every collaborator is injectable so tests can run the whole pipeline
    with fake fetchers and a fixed clock.

    Example:
        >>> pipeline = SafetyPipeline()
        >>> response = await pipeline.run(39.1178, -106.4454, "2026-02-14", "06:30")
        >>> response.safety.label
        'Caution'
    """

    def __init__(
        self,
        orchestrator: Optional[FetchOrchestrator] = None,
        cache: Optional[CacheService] = None,
        clock: Callable[[], float] = time.time,
        deadline_seconds: Optional[float] = None,
        resolve_zone=resolve_timezone,
    ):
        self.deadline_seconds = deadline_seconds if deadline_seconds is not None else settings.REQUEST_TIMEOUT_SECONDS
        self.orchestrator = orchestrator or FetchOrchestrator(deadline_seconds=self.deadline_seconds)
        self.cache = cache
        self.clock = clock
        self.resolve_zone = resolve_zone
        self.relevance = RelevanceEvaluator()
        self.terrain = TerrainClassifier()
        self.scorer = RiskScorer()
        self.assembler = ResponseAssembler()

    async def _resolve_zone(self, latitude: float, longitude: float, cache: CacheService, budget: float):
        timeout = max(0.5, budget * TIMEZONE_BUDGET_SHARE)
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self.resolve_zone, latitude, longitude, cache, timeout),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Time zone lookup exceeded {timeout:.1f}s, using longitude offset")
            zone, name = longitude_offset_zone(longitude)
            return zone, name, None

    async def run(
        self,
        latitude: float,
        longitude: float,
        date: str,
        start: str,
        travel_window_hours: Optional[int] = None,
    ) -> SafetyResponse:
        """
        Produce the safety assessment for one objective and start time.

        Raises:
            RequestValidationFailure: Malformed coordinates, date or start
            ComputationError: A pipeline invariant was broken
        """
        validate_coordinates(latitude, longitude)
        planned_date = parse_planning_date(date)
        start_time = parse_start_time(start)
        window_hours = clamp_travel_window(travel_window_hours, default=settings.DEFAULT_TRAVEL_WINDOW_HOURS)

        started = time.monotonic()
        cache = self.cache or get_cache_service()
        zone, zone_name, points = await self._resolve_zone(latitude, longitude, cache, self.deadline_seconds)
        window = build_planning_window(planned_date, start_time, window_hours, zone, zone_name)

        ctx = FetchContext(
            latitude=latitude,
            longitude=longitude,
            window=window,
            cache=cache,
            clock=self.clock,
            timeout=max(1.0, self.deadline_seconds - 1.0),
        )
        if points:
            ctx.hints["noaa_points"] = points

        remaining = self.deadline_seconds - (time.monotonic() - started)
        results = await self.orchestrator.run(ctx, budget_seconds=remaining)
        now = ctx.now()

        relevance = self.relevance.evaluate(latitude, results, window, now)
        weather = results["weather"]
        heat = build_heat_risk(weather.payload or {}, weather_usable=weather.usable)
        active_alerts = alerts_in_window((results["alerts"].payload or {}).get("alerts") or [], window)
        fire = build_fire_risk(
            weather.payload or {},
            active_alerts if relevance["alerts"].relevant else [],
            parse_number((results["air_quality"].payload or {}).get("us_aqi")),
        )
        terrain = self.terrain.classify(results["weather"], results["snowpack"], results["rainfall"], results["solar"])
        assessment = self.scorer.score(results, relevance, heat, fire, window, now)

        request = RequestEcho(
            latitude=latitude,
            longitude=longitude,
            date=planned_date.isoformat(),
            start_time=start_time.strftime("%H:%M"),
            travel_window_hours=window_hours,
            timezone=zone_name,
            start=window.start.isoformat(),
            evaluated_at=now.isoformat(),
        )
        response = self.assembler.assemble(request, window, results, relevance, terrain, assessment, heat, fire)
        logger.info(
            f"Safety for ({latitude:.4f}, {longitude:.4f}) {window.start.isoformat()}: "
            f"{response.safety.score} {response.safety.label}, confidence {response.confidence.score}, "
            f"partial={response.partial_data} in {time.monotonic() - started:.2f}s"
        )
        return response
