"""
Tests for the concurrent provider fan-out.
"""
import asyncio
import threading
import time

import pytest

from summitcast.errors import ComputationError, UpstreamTimeout
from summitcast.services.fetch_orchestrator import FetchOrchestrator, default_fetchers
from summitcast.services.provider_base import PROVIDER_CATEGORIES, ProviderFetcher

from conftest import FakeFetcher


class ExplodingFetcher(FakeFetcher):
    """Raises past ProviderFetcher.fetch() so the orchestrator boundary is exercised."""

    def fetch(self, ctx):
        raise RuntimeError("boom")


class TieredFetcher(FakeFetcher):
    """Live tier outlives the deadline, then tries a second upstream tier."""

    def __init__(self, category, tier_delay):
        super().__init__(category, {})
        self.tier_delay = tier_delay
        self.second_tier_timeouts = []
        self.done = threading.Event()

    def _fetch(self, ctx):
        try:
            ctx.call_timeout()
            time.sleep(self.tier_delay)
            try:
                self.second_tier_timeouts.append(ctx.call_timeout())
            except UpstreamTimeout:
                self.second_tier_timeouts.append(None)
                raise
            return self.result("degraded", {})
        finally:
            self.done.set()


class TestFetchOrchestrator:
    """Tests for FetchOrchestrator.run()"""

    @pytest.mark.asyncio
    async def test_results_keyed_in_category_order(self, fetch_ctx, fake_fetchers):
        fetchers = fake_fetchers(delays={"weather": 0.2, "solar": 0.1, "air_quality": 0.0})
        # Reversed registration order must not change the output order
        orchestrator = FetchOrchestrator(fetchers=list(reversed(fetchers)), deadline_seconds=5.0)

        results = await orchestrator.run(fetch_ctx)

        assert list(results) == PROVIDER_CATEGORIES
        assert all(result.status == "ok" for result in results.values())

    @pytest.mark.asyncio
    async def test_fetchers_run_concurrently(self, fetch_ctx, fake_fetchers):
        delays = {category: 0.3 for category in PROVIDER_CATEGORIES}
        orchestrator = FetchOrchestrator(fetchers=fake_fetchers(delays=delays), deadline_seconds=5.0)

        loop = asyncio.get_running_loop()
        started = loop.time()
        await orchestrator.run(fetch_ctx)

        # Seven sequential sleeps would take 2.1s
        assert loop.time() - started < 1.5

    @pytest.mark.asyncio
    async def test_slow_fetcher_gets_deadline_fallback(self, fetch_ctx, fake_fetchers):
        fetchers = fake_fetchers(delays={"rainfall": 1.5})
        orchestrator = FetchOrchestrator(fetchers=fetchers, deadline_seconds=0.3)

        results = await orchestrator.run(fetch_ctx)

        rainfall_fetcher = next(f for f in fetchers if f.category == "rainfall")
        assert rainfall_fetcher.fallback_reasons == ["deadline"]
        assert results["rainfall"].status == "zeroed"
        assert results["rainfall"].warning == "fallback: deadline"
        assert results["weather"].status == "ok"

    @pytest.mark.asyncio
    async def test_budget_overrides_deadline(self, fetch_ctx, fake_fetchers):
        fetchers = fake_fetchers(delays={"alerts": 0.5})
        orchestrator = FetchOrchestrator(fetchers=fetchers, deadline_seconds=10.0)

        results = await orchestrator.run(fetch_ctx, budget_seconds=0.1)

        assert results["alerts"].status == "zeroed"

    @pytest.mark.asyncio
    async def test_late_worker_cannot_start_another_upstream_call(self, fetch_ctx, fake_fetchers):
        tiered = TieredFetcher("rainfall", tier_delay=0.5)
        fetchers = [f for f in fake_fetchers() if f.category != "rainfall"] + [tiered]
        orchestrator = FetchOrchestrator(fetchers=fetchers, deadline_seconds=0.2)

        results = await orchestrator.run(fetch_ctx)

        assert results["rainfall"].warning == "fallback: deadline"
        assert fetch_ctx.deadline is not None
        # The abandoned worker keeps running; its next tier must see the expired deadline
        assert tiered.done.wait(timeout=3.0)
        assert tiered.second_tier_timeouts == [None]

    @pytest.mark.asyncio
    async def test_upstream_calls_share_the_remaining_budget(self, fetch_ctx, fake_fetchers):
        tiered = TieredFetcher("rainfall", tier_delay=0.1)
        fetchers = [f for f in fake_fetchers() if f.category != "rainfall"] + [tiered]
        # fetch_ctx.timeout is 2.0; the budget is smaller
        orchestrator = FetchOrchestrator(fetchers=fetchers, deadline_seconds=1.0)

        results = await orchestrator.run(fetch_ctx)

        assert results["rainfall"].status == "degraded"
        assert len(tiered.second_tier_timeouts) == 1
        assert 0 < tiered.second_tier_timeouts[0] < 1.0

    @pytest.mark.asyncio
    async def test_exception_past_boundary_uses_fallback(self, fetch_ctx, fake_fetchers):
        fetchers = [f for f in fake_fetchers() if f.category != "solar"]
        exploding = ExplodingFetcher("solar", {})
        orchestrator = FetchOrchestrator(fetchers=fetchers + [exploding], deadline_seconds=2.0)

        results = await orchestrator.run(fetch_ctx)

        assert exploding.fallback_reasons == ["internal error (RuntimeError)"]
        assert results["solar"].status == "zeroed"
        assert len(results) == len(PROVIDER_CATEGORIES)

    def test_missing_category_rejected(self, fake_fetchers):
        fetchers = [f for f in fake_fetchers() if f.category != "snowpack"]
        with pytest.raises(ComputationError):
            FetchOrchestrator(fetchers=fetchers)

    def test_duplicate_category_rejected(self, fake_fetchers):
        fetchers = fake_fetchers()
        with pytest.raises(ComputationError):
            FetchOrchestrator(fetchers=fetchers + [FakeFetcher("weather", {})])

    def test_default_fetchers_cover_every_category(self):
        fetchers = default_fetchers()
        assert all(isinstance(f, ProviderFetcher) for f in fetchers)
        assert sorted(f.category for f in fetchers) == sorted(PROVIDER_CATEGORIES)
