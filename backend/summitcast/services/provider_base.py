"""
Provider Fetcher Base - Shared types for upstream data acquisition

Defines:
- PlanningWindow: the objective's timezone-aware start instant + travel window
- FetchContext: everything a fetcher needs (location, window, cache, clock)
- ProviderResult: tagged result with a status every consumer can trust
- ProviderFetcher: base class that keeps upstream faults inside the fetcher

A fetcher never raises. Upstream errors and malformed payloads are logged
and routed to the fetcher's fallback() tier chain, which is network-free so
the orchestrator can also call it when the shared deadline expires.
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from summitcast.errors import UpstreamError, UpstreamTimeout
from summitcast.utils.cache import CacheService

# Configure logging
logger = logging.getLogger(__name__)

# Provider statuses
STATUS_OK = "ok"
STATUS_DEGRADED = "degraded"
STATUS_STALE = "stale"
STATUS_ZEROED = "zeroed"
STATUS_FAILED = "failed"
PROVIDER_STATUSES = (STATUS_OK, STATUS_DEGRADED, STATUS_STALE, STATUS_ZEROED, STATUS_FAILED)

# Fixed output order for provider results
PROVIDER_CATEGORIES = ["weather", "solar", "avalanche", "snowpack", "rainfall", "alerts", "air_quality"]


@dataclass(frozen=True)
class PlanningWindow:
    """
    Planned start instant in the objective's local time zone.

    start is timezone-aware; start_utc/end_utc bound the travel window.
    """

    start: datetime
    travel_window_hours: int
    tz_name: str

    @property
    def local_date(self) -> date:
        return self.start.date()

    @property
    def start_utc(self) -> datetime:
        return self.start.astimezone(timezone.utc)

    @property
    def end_utc(self) -> datetime:
        return self.start_utc + timedelta(hours=self.travel_window_hours)

    @property
    def local_midnight(self) -> datetime:
        return self.start.replace(hour=0, minute=0, second=0, microsecond=0)

    def lead_hours(self, now: datetime) -> float:
        """Hours from now until the planned start (negative when in the past)."""
        return (self.start_utc - now).total_seconds() / 3600.0


@dataclass
class FetchContext:
    """Per-request inputs shared by every fetcher."""

    latitude: float
    longitude: float
    window: PlanningWindow
    cache: CacheService
    clock: Callable[[], float] = time.time
    # Per-call ceiling; call_timeout() also clamps it to the shared deadline
    timeout: float = 8.0
    # Absolute request deadline on the time.monotonic() scale (None: unbounded)
    deadline: Optional[float] = None
    # Scratch space for metadata resolved before the fan-out (e.g. NOAA points)
    hints: Dict[str, Any] = field(default_factory=dict)

    def now(self) -> datetime:
        return datetime.fromtimestamp(self.clock(), tz=timezone.utc)

    def call_timeout(self) -> float:
        """
        Timeout for the next upstream call: the per-call ceiling clamped to
        the time left on the request deadline.

        Raises:
            UpstreamTimeout: The deadline has already passed, so no further
                network tier may start
        """
        if self.deadline is None:
            return self.timeout
        remaining = self.deadline - time.monotonic()
        if remaining <= 0:
            raise UpstreamTimeout("request deadline passed before the upstream call started")
        return min(self.timeout, remaining)


@dataclass
class ProviderResult:
    """
    Outcome of one provider category.

    status is one of ok / degraded / stale / zeroed / failed. age_seconds is
    0 for live data and the cache age for cached tiers.
    """

    category: str
    status: str
    payload: Dict[str, Any]
    age_seconds: float = 0.0
    warning: Optional[str] = None
    source: Optional[str] = None

    def __post_init__(self):
        if self.status not in PROVIDER_STATUSES:
            raise ValueError(f"Unknown provider status '{self.status}'")

    @property
    def usable(self) -> bool:
        """True when the payload carries real (live or cached) data."""
        return self.status in (STATUS_OK, STATUS_DEGRADED, STATUS_STALE)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "status": self.status,
            "source": self.source,
            "age_seconds": round(self.age_seconds, 1),
            "warning": self.warning,
        }


class ProviderFetcher:
    """
    Base class for provider fetchers.

    Subclasses implement _fetch() (the live tier chain, free to raise
    UpstreamError) and fallback() (cache tiers then a terminal result,
    never touching the network).
    """

    category = ""
    source = ""

    def fetch(self, ctx: FetchContext) -> ProviderResult:
        try:
            return self._fetch(ctx)
        except UpstreamError as exc:
            logger.warning(f"{self.category} fetch failed: {exc}")
            return self.fallback(ctx, str(exc))
        except (KeyError, IndexError, ValueError, TypeError) as exc:
            logger.warning(f"{self.category} payload could not be parsed: {exc}")
            return self.fallback(ctx, f"malformed upstream payload ({exc})")

    def _fetch(self, ctx: FetchContext) -> ProviderResult:
        raise NotImplementedError

    def fallback(self, ctx: FetchContext, reason: str) -> ProviderResult:
        raise NotImplementedError

    def result(
        self,
        status: str,
        payload: Dict[str, Any],
        age_seconds: float = 0.0,
        warning: Optional[str] = None,
        source: Optional[str] = None,
    ) -> ProviderResult:
        return ProviderResult(
            category=self.category,
            status=status,
            payload=payload,
            age_seconds=age_seconds or 0.0,
            warning=warning,
            source=source or self.source,
        )
