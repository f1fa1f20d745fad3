"""
Rainfall Service - Rolling rain/snowfall totals around the planned start

Tier chain (first success wins):
1. Live Open-Meteo forecast (past_days=3, hourly precipitation/rain/snowfall,
   UTC). Payload is cached for 30 minutes.
2. Fresh cached payload (status degraded, age reported)
3. Open-Meteo archive for the last 3 days, written back to the cache
   (status degraded; cannot provide forward totals for a future start)
4. Stale cached payload past TTL (status stale)
5. Zeroed fallback: every total None, fallback_mode "zeroed_totals"

A payload that parses but covers none of the rolling windows is served with
fallback_mode "no_data" (a live answer is downgraded to degraded).

Totals are rolling sums over (anchor - N h, anchor] for N = 12/24/48, plus
the forward sum over the travel window. Rain is mm -> in, snowfall cm -> in.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from summitcast.errors import UpstreamError, UpstreamMalformed
from summitcast.services.algorithm_config import RAINFALL_LOOKBACK_DAYS, RAINFALL_ROLLING_WINDOWS
from summitcast.services.http_client import fetch_json, open_meteo_params, open_meteo_url
from summitcast.services.provider_base import (
    STATUS_DEGRADED,
    STATUS_OK,
    STATUS_STALE,
    STATUS_ZEROED,
    FetchContext,
    ProviderFetcher,
    ProviderResult,
)
from summitcast.utils.cache import build_location_key
from summitcast.utils.time_utils import parse_iso_datetime
from summitcast.utils.weather_math import cm_to_inches, mm_to_inches, parse_number

# Configure logging
logger = logging.getLogger(__name__)

HOURLY_FIELDS = "precipitation,rain,snowfall"
FUTURE_TOLERANCE = timedelta(hours=1)

_PARSE_ERRORS = (UpstreamError, KeyError, IndexError, ValueError, TypeError)


def _parse_times(times: List[Any]) -> List[Optional[datetime]]:
    return [parse_iso_datetime(t) for t in times]


def sum_rolling(times: List[Optional[datetime]], values: List[Any], anchor: datetime, hours: int) -> Optional[float]:
    """
    Sum samples in (anchor - hours, anchor].

    Returns:
        Total, or None when no sample falls inside the window
    """
    lower = anchor - timedelta(hours=hours)
    total = 0.0
    samples = 0
    for moment, raw in zip(times, values):
        if moment is None or moment > anchor or moment <= lower:
            continue
        samples += 1
        value = parse_number(raw)
        if value is not None and value >= 0:
            total += value
    return round(total, 2) if samples else None


def sum_forward(times: List[Optional[datetime]], values: List[Any], start: datetime, hours: int) -> Optional[float]:
    """Sum samples in [start, start + hours)."""
    upper = start + timedelta(hours=hours)
    total = 0.0
    samples = 0
    for moment, raw in zip(times, values):
        if moment is None or moment < start or moment >= upper:
            continue
        samples += 1
        value = parse_number(raw)
        if value is not None and value >= 0:
            total += value
    return round(total, 2) if samples else None


def _has_values(series: List[Any]) -> bool:
    for raw in series:
        value = parse_number(raw)
        if value is not None and value >= 0:
            return True
    return False


def _round_in(value: Optional[float]) -> Optional[float]:
    return round(value, 2) if value is not None else None


def empty_totals() -> Dict[str, Optional[float]]:
    totals = {}
    for hours in RAINFALL_ROLLING_WINDOWS:
        totals[f"past{hours}h_in"] = None
        totals[f"snow_past{hours}h_in"] = None
    return totals


def summarize_rainfall(
    payload: Dict[str, Any],
    anchor: datetime,
    travel_window_hours: int,
    now: datetime,
    archive: bool = False,
) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """
    Compute rolling and forward totals from an Open-Meteo hourly payload.

    Args:
        payload: Open-Meteo forecast or archive response (UTC timestamps)
        anchor: Planned start instant
        travel_window_hours: Forward window length
        now: Current time (for the archive-vs-future check)
        archive: Payload came from the historical archive

    Returns:
        (totals, expected) dictionaries, all values in inches

    Raises:
        UpstreamMalformed: Payload has no usable time series
    """
    hourly = payload["hourly"]
    raw_times = hourly.get("time") or []
    precip = hourly.get("precipitation") or []
    rain = hourly.get("rain") or []
    snowfall = hourly.get("snowfall") or []
    if not raw_times or not (precip or rain or snowfall):
        raise UpstreamMalformed("Precipitation time series missing from payload")

    times = _parse_times(raw_times)
    if not any(t is not None for t in times):
        raise UpstreamMalformed("Precipitation time series has no parseable timestamps")

    rain_series = rain if _has_values(rain) else precip if _has_values(precip) else (rain or precip)
    anchor_utc = anchor.astimezone(timezone.utc)

    totals = {}
    for hours in RAINFALL_ROLLING_WINDOWS:
        totals[f"past{hours}h_in"] = _round_in(mm_to_inches(sum_rolling(times, rain_series, anchor_utc, hours)))
        totals[f"snow_past{hours}h_in"] = _round_in(cm_to_inches(sum_rolling(times, snowfall, anchor_utc, hours)))

    future_start = anchor_utc > now + FUTURE_TOLERANCE
    window_end = anchor_utc + timedelta(hours=travel_window_hours)
    if archive and future_start:
        rain_window = snow_window = None
        note = "Archive data is historical only and cannot forecast precipitation for a future start time."
    else:
        rain_window = _round_in(mm_to_inches(sum_forward(times, rain_series, anchor_utc, travel_window_hours)))
        snow_window = _round_in(cm_to_inches(sum_forward(times, snowfall, anchor_utc, travel_window_hours)))
        note = f"Expected precipitation for the {travel_window_hours}h travel window from the planned start."

    expected = {
        "status": "ok" if rain_window is not None or snow_window is not None else "no_data",
        "travel_window_hours": travel_window_hours,
        "start_time": anchor_utc.isoformat(),
        "end_time": window_end.isoformat(),
        "rain_window_in": rain_window,
        "snow_window_in": snow_window,
        "note": note,
    }
    return totals, expected


class RainfallFetcher(ProviderFetcher):
    """Open-Meteo precipitation history with cache, archive, and zeroed tiers."""

    category = "rainfall"
    source = "Open-Meteo Precipitation"

    def _cache_key(self, ctx: FetchContext) -> str:
        # Bucketed by planned date; the forward window differs per start date
        return build_location_key("rainfall", ctx.latitude, ctx.longitude, ctx.window.local_date.isoformat())

    def _fetch(self, ctx: FetchContext) -> ProviderResult:
        cache_key = self._cache_key(ctx)

        # Tier 1: live forecast
        try:
            payload = self._fetch_live(ctx)
            result = self._build(ctx, payload, STATUS_OK, source="Open-Meteo Precipitation (live)")
            ctx.cache.set(cache_key, payload)
            return result
        except _PARSE_ERRORS as exc:
            live_error = str(exc)
            logger.warning(f"Rainfall live fetch failed for {ctx.latitude}, {ctx.longitude}: {exc}")

        # Tier 2: fresh cache
        cached = self._from_fresh_cache(ctx, live_error)
        if cached is not None:
            return cached

        # Tier 3: archive
        try:
            archive_payload = self._fetch_archive(ctx)
            result = self._build(
                ctx,
                archive_payload,
                STATUS_DEGRADED,
                source="Open-Meteo Archive Precipitation",
                warning=f"Live precipitation feed unavailable ({live_error}); using archive observations.",
                archive=True,
            )
            ctx.cache.set(cache_key, dict(archive_payload, archive=True))
            logger.info(f"Rainfall served from archive for {ctx.latitude}, {ctx.longitude}")
            return result
        except _PARSE_ERRORS as exc:
            logger.warning(f"Rainfall archive fetch failed for {ctx.latitude}, {ctx.longitude}: {exc}")
            reason = f"{live_error}; archive unavailable ({exc})"

        # Tiers 4-5
        return self._stale_or_zeroed(ctx, reason)

    def fallback(self, ctx: FetchContext, reason: str) -> ProviderResult:
        cached = self._from_fresh_cache(ctx, reason)
        if cached is not None:
            return cached
        return self._stale_or_zeroed(ctx, reason)

    def _fetch_live(self, ctx: FetchContext) -> Dict[str, Any]:
        params = open_meteo_params({
            "latitude": ctx.latitude,
            "longitude": ctx.longitude,
            "timezone": "UTC",
            "past_days": RAINFALL_LOOKBACK_DAYS,
            "forecast_days": 8,
            "hourly": HOURLY_FIELDS,
        })
        return fetch_json(open_meteo_url("forecast"), params=params, timeout=ctx.call_timeout())

    def _fetch_archive(self, ctx: FetchContext) -> Dict[str, Any]:
        today = ctx.now().date()
        params = open_meteo_params({
            "latitude": ctx.latitude,
            "longitude": ctx.longitude,
            "timezone": "UTC",
            "start_date": (today - timedelta(days=RAINFALL_LOOKBACK_DAYS)).isoformat(),
            "end_date": today.isoformat(),
            "hourly": HOURLY_FIELDS,
        })
        return fetch_json(open_meteo_url("archive"), params=params, timeout=ctx.call_timeout())

    def _from_fresh_cache(self, ctx: FetchContext, reason: str) -> Optional[ProviderResult]:
        cached, age, found = ctx.cache.get(self._cache_key(ctx))
        if not found:
            return None
        try:
            return self._build(
                ctx,
                cached,
                STATUS_DEGRADED,
                age_seconds=age,
                source="Open-Meteo Precipitation (cached)",
                warning=f"Live precipitation feed unavailable ({reason}); using cached data from {int(age or 0)}s ago.",
            )
        except _PARSE_ERRORS as exc:
            logger.warning(f"Cached rainfall payload unusable: {exc}")
            return None

    def _stale_or_zeroed(self, ctx: FetchContext, reason: str) -> ProviderResult:
        stale, age, found = ctx.cache.get_stale(self._cache_key(ctx))
        if found:
            try:
                return self._build(
                    ctx,
                    stale,
                    STATUS_STALE,
                    age_seconds=age,
                    source="Open-Meteo Precipitation (stale cache)",
                    warning=f"Precipitation feed unavailable ({reason}); using stale data from {int(age or 0)}s ago.",
                )
            except _PARSE_ERRORS as exc:
                logger.warning(f"Stale rainfall payload unusable: {exc}")
        return self.zeroed(ctx, reason)

    def zeroed(self, ctx: FetchContext, reason: str) -> ProviderResult:
        window = ctx.window
        logger.info(f"Rainfall zeroed for {ctx.latitude}, {ctx.longitude}: {reason}")
        payload = {
            "fallback_mode": "zeroed_totals",
            "mode": self._mode(ctx),
            "anchor_time": window.start_utc.isoformat(),
            "timezone": "UTC",
            "totals": empty_totals(),
            "expected": {
                "status": "no_data",
                "travel_window_hours": window.travel_window_hours,
                "start_time": window.start_utc.isoformat(),
                "end_time": window.end_utc.isoformat(),
                "rain_window_in": None,
                "snow_window_in": None,
                "note": "Expected precipitation unavailable because the upstream feed could not be reached.",
            },
        }
        return self.result(
            STATUS_ZEROED,
            payload,
            warning=f"Precipitation totals unavailable ({reason}). Verify recent rain/snow before relying on surface conditions.",
            source="Unavailable",
        )

    def _mode(self, ctx: FetchContext) -> str:
        future = ctx.window.start_utc > ctx.now() + FUTURE_TOLERANCE
        return "projected_for_selected_start" if future else "observed_recent"

    def _build(
        self,
        ctx: FetchContext,
        payload: Dict[str, Any],
        status: str,
        age_seconds: float = 0.0,
        source: Optional[str] = None,
        warning: Optional[str] = None,
        archive: bool = False,
    ) -> ProviderResult:
        totals, expected = summarize_rainfall(
            payload,
            ctx.window.start,
            ctx.window.travel_window_hours,
            ctx.now(),
            archive=archive or bool(payload.get("archive")),
        )
        fallback_mode = None
        if all(value is None for value in totals.values()):
            # Series parsed but no hour fell inside any rolling window
            fallback_mode = "no_data"
            if status == STATUS_OK:
                status = STATUS_DEGRADED
            note = "Precipitation series does not cover the hours before the planned start; totals unavailable."
            warning = f"{warning} {note}" if warning else note
            logger.info(f"Rainfall totals empty for {ctx.latitude}, {ctx.longitude} at {ctx.window.start_utc.isoformat()}")
        body = {
            "fallback_mode": fallback_mode,
            "mode": self._mode(ctx),
            "anchor_time": ctx.window.start_utc.isoformat(),
            "timezone": payload.get("timezone") or "UTC",
            "totals": totals,
            "expected": expected,
        }
        return self.result(status, body, age_seconds=age_seconds or 0.0, warning=warning, source=source)
