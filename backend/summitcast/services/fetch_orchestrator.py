"""
Fetch Orchestrator - Concurrent provider acquisition under one deadline

Every fetcher runs in the default thread pool (asyncio.to_thread, the
fetchers use blocking requests calls) and all of them are awaited together
with asyncio.gather. Each is bounded by the time left on the shared request
deadline; a fetcher that misses it is answered by its network-free
fallback(ctx, "deadline") instead. A worker thread that outlives the deadline
is not killed, but each of its later upstream calls is clamped to the same
deadline (ctx.call_timeout) so it cannot start a fresh full-length request.

No retries happen here. Output is keyed in PROVIDER_CATEGORIES order no
matter which fetcher finished first.
"""
import asyncio
import logging
import time
from typing import Dict, List, Optional

from summitcast.config import settings
from summitcast.errors import ComputationError
from summitcast.services.air_quality_service import AirQualityFetcher
from summitcast.services.alerts_service import AlertsFetcher
from summitcast.services.avalanche_service import AvalancheFetcher
from summitcast.services.provider_base import PROVIDER_CATEGORIES, FetchContext, ProviderFetcher, ProviderResult
from summitcast.services.rainfall_service import RainfallFetcher
from summitcast.services.snowpack_service import SnowpackFetcher
from summitcast.services.solar_service import SolarFetcher
from summitcast.services.weather_service import WeatherFetcher

# Configure logging
logger = logging.getLogger(__name__)


def default_fetchers() -> List[ProviderFetcher]:
    return [
        WeatherFetcher(),
        SolarFetcher(),
        AvalancheFetcher(),
        SnowpackFetcher(),
        RainfallFetcher(),
        AlertsFetcher(),
        AirQualityFetcher(),
    ]


class FetchOrchestrator:
    """
    Fan out to every provider fetcher and collect one result per category.

    Example:
        >>> orchestrator = FetchOrchestrator()
        >>> results = await orchestrator.run(ctx)
        >>> list(results)
        ['weather', 'solar', 'avalanche', 'snowpack', 'rainfall', 'alerts', 'air_quality']
    """

    def __init__(self, fetchers: Optional[List[ProviderFetcher]] = None, deadline_seconds: Optional[float] = None):
        self.fetchers = fetchers if fetchers is not None else default_fetchers()
        self.deadline_seconds = deadline_seconds if deadline_seconds is not None else settings.REQUEST_TIMEOUT_SECONDS

        by_category = {fetcher.category: fetcher for fetcher in self.fetchers}
        missing = [category for category in PROVIDER_CATEGORIES if category not in by_category]
        if missing or len(by_category) != len(self.fetchers):
            raise ComputationError(f"Fetcher set must cover each provider category exactly once (missing: {missing})")
        self._by_category = by_category

    async def run(self, ctx: FetchContext, budget_seconds: Optional[float] = None) -> Dict[str, ProviderResult]:
        """
        Run all fetchers concurrently.

        Args:
            ctx: Shared fetch context
            budget_seconds: Time left on the request deadline (default: the full deadline)

        Returns:
            {category: ProviderResult} in PROVIDER_CATEGORIES order
        """
        budget = self.deadline_seconds if budget_seconds is None else budget_seconds
        deadline = time.monotonic() + max(0.0, budget)
        # Fetchers clamp every upstream call to the same deadline
        ctx.deadline = deadline

        async def run_one(fetcher: ProviderFetcher) -> ProviderResult:
            remaining = max(0.0, deadline - time.monotonic())
            try:
                return await asyncio.wait_for(asyncio.to_thread(fetcher.fetch, ctx), timeout=remaining)
            except asyncio.TimeoutError:
                logger.warning(f"{fetcher.category} fetcher missed the {budget:.1f}s deadline")
                return fetcher.fallback(ctx, "deadline")

        started = time.monotonic()
        results = await asyncio.gather(*[run_one(f) for f in self.fetchers], return_exceptions=True)

        collected: Dict[str, ProviderResult] = {}
        for fetcher, result in zip(self.fetchers, results):
            if isinstance(result, Exception):
                logger.error(f"{fetcher.category} fetcher raised past its boundary: {result}")
                result = fetcher.fallback(ctx, f"internal error ({type(result).__name__})")
            collected[fetcher.category] = result

        ordered = {category: collected[category] for category in PROVIDER_CATEGORIES}
        summary = ", ".join(f"{category}={result.status}" for category, result in ordered.items())
        logger.info(f"Provider fan-out finished in {time.monotonic() - started:.2f}s: {summary}")
        return ordered
