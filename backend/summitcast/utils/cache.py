"""
Cache Service

Provides TTL-aware caching for upstream provider payloads:
- Avalanche map layer (10 minutes)
- SNOTEL station list and NOAA point metadata (12 hours)
- Rainfall timeseries (30 minutes, with a stale tier behind it)
- Sunrise/sunset lookups (6 hours)

TTL is enforced lazily at read time. Entries past their TTL stay readable
through get_stale() until the stale-retention window also passes, which is
what lets fetchers serve a stale tier during an upstream outage.

Two backends share one facade:
- MemoryCacheBackend: process-local LRU bounded by max_entries
- RedisCacheBackend: Redis with JSON values, fails gracefully (miss + warning)
"""
import fnmatch
import json
import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Optional, Tuple
from urllib.parse import urlparse

import redis

# Configure logging
logger = logging.getLogger(__name__)

# Default TTL constants (seconds), overridable per namespace via settings
AVALANCHE_MAP_TTL = 10 * 60
SNOTEL_STATIONS_TTL = 12 * 60 * 60
RAINFALL_TTL = 30 * 60
POINTS_TTL = 12 * 60 * 60
SOLAR_TTL = 6 * 60 * 60
DEFAULT_TTL = 60 * 60

DEFAULT_NAMESPACE_TTLS = {
    "avalanche_map": AVALANCHE_MAP_TTL,
    "snotel_stations": SNOTEL_STATIONS_TTL,
    "rainfall": RAINFALL_TTL,
    "points": POINTS_TTL,
    "solar": SOLAR_TTL,
}

CacheLookup = Tuple[Any, Optional[float], bool]


class MemoryCacheBackend:
    """
    Process-local LRU store.

    Every read moves the key to the most-recently-used end; a write that pushes
    the store past max_entries evicts from the least-recently-used end.
    """

    def __init__(self, max_entries: Optional[int] = None):
        self.max_entries = max_entries
        self.evictions = 0
        self._entries: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
        self._lock = threading.Lock()

    def read(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                self._entries.move_to_end(key)
            return entry

    def write(self, key: str, entry: Dict[str, Any]) -> bool:
        with self._lock:
            self._entries[key] = entry
            self._entries.move_to_end(key)
            if self.max_entries is not None:
                while len(self._entries) > self.max_entries:
                    evicted_key, _ = self._entries.popitem(last=False)
                    self.evictions += 1
                    logger.debug(f"Cache EVICT (LRU): {evicted_key}")
        return True

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear_pattern(self, pattern: str) -> int:
        with self._lock:
            doomed = [key for key in self._entries if fnmatch.fnmatchcase(key, pattern)]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def size(self) -> int:
        with self._lock:
            return len(self._entries)


class RedisCacheBackend:
    """
    Redis-backed store for multi-worker deployments.

    Entries are written with setex using TTL + stale retention so that Redis
    expiry never removes an entry the stale tier could still use.
    Fails gracefully if Redis is unavailable (returns None, logs warning).
    """

    def __init__(
        self,
        redis_url: str,
        retention_seconds: int = 0,
        client: Optional[redis.Redis] = None,
    ):
        self.redis_url = redis_url
        self.retention_seconds = retention_seconds
        self.evictions = 0
        self._client = client

    def get_client(self) -> Optional[redis.Redis]:
        """
        Get Redis client connection (lazy initialization).

        Returns:
            Redis client if connection successful, None if Redis unavailable
        """
        if self._client is None:
            try:
                parsed = urlparse(self.redis_url)
                client = redis.Redis(
                    host=parsed.hostname or "localhost",
                    port=parsed.port or 6379,
                    db=int(parsed.path.lstrip("/") or 0) if parsed.path else 0,
                    password=parsed.password,
                    decode_responses=True,  # Return strings instead of bytes
                    socket_connect_timeout=2,  # Fail fast if Redis is down
                    socket_timeout=2,
                )
                client.ping()
                self._client = client
                logger.info(f"Redis connection established: {parsed.hostname}:{parsed.port}")
            except (redis.ConnectionError, redis.TimeoutError) as e:
                logger.warning(f"Redis unavailable, caching disabled: {e}")
                return None
        return self._client

    def read(self, key: str) -> Optional[Dict[str, Any]]:
        client = self.get_client()
        if client is None:
            return None
        try:
            cached = client.get(key)
            return json.loads(cached) if cached else None
        except (redis.RedisError, json.JSONDecodeError) as e:
            logger.error(f"Cache get error for key '{key}': {e}")
            return None

    def write(self, key: str, entry: Dict[str, Any]) -> bool:
        client = self.get_client()
        if client is None:
            return False
        try:
            expire_seconds = max(1, int(entry["ttl"] + self.retention_seconds))
            client.setex(key, expire_seconds, json.dumps(entry))
            return True
        except (redis.RedisError, TypeError, ValueError) as e:
            logger.error(f"Cache set error for key '{key}': {e}")
            return False

    def delete(self, key: str) -> bool:
        client = self.get_client()
        if client is None:
            return False
        try:
            return bool(client.delete(key))
        except redis.RedisError as e:
            logger.error(f"Cache delete error for key '{key}': {e}")
            return False

    def clear_pattern(self, pattern: str) -> int:
        client = self.get_client()
        if client is None:
            return 0
        try:
            keys = client.keys(pattern)
            return client.delete(*keys) if keys else 0
        except redis.RedisError as e:
            logger.error(f"Cache clear pattern error for '{pattern}': {e}")
            return 0

    def size(self) -> int:
        client = self.get_client()
        if client is None:
            return 0
        try:
            return int(client.dbsize())
        except redis.RedisError:
            return 0


class CacheService:
    """
    Namespaced TTL cache with an injected clock.

    Keys are "<namespace>:<rest>"; the namespace picks the TTL when set() is
    called without one.

    Example:
        >>> cache = CacheService(clock=lambda: 1000.0)
        >>> cache.set("rainfall:40.255:-105.615", {"hourly": {}})
        True
        >>> cache.get("rainfall:40.255:-105.615")
        ({'hourly': {}}, 0.0, True)
    """

    def __init__(
        self,
        backend=None,
        clock: Callable[[], float] = time.time,
        ttls: Optional[Dict[str, int]] = None,
        stale_retention_seconds: int = 6 * 60 * 60,
        max_entries: Optional[int] = None,
    ):
        self.backend = backend if backend is not None else MemoryCacheBackend(max_entries=max_entries)
        self.clock = clock
        self.ttls = dict(DEFAULT_NAMESPACE_TTLS)
        if ttls:
            self.ttls.update(ttls)
        self.stale_retention_seconds = stale_retention_seconds
        self.hits = 0
        self.misses = 0
        self._stats_lock = threading.Lock()

    def ttl_for(self, key: str) -> int:
        namespace = key.split(":", 1)[0]
        return self.ttls.get(namespace, DEFAULT_TTL)

    def _lookup(self, key: str, allow_stale: bool) -> CacheLookup:
        entry = self.backend.read(key)
        if entry is None:
            self._count(hit=False)
            logger.debug(f"Cache MISS: {key}")
            return None, None, False

        age = max(0.0, self.clock() - float(entry["stored_at"]))
        ttl = float(entry["ttl"])
        if age > ttl + self.stale_retention_seconds:
            self.backend.delete(key)
            self._count(hit=False)
            logger.debug(f"Cache EXPIRED: {key} (age {age:.0f}s)")
            return None, None, False
        if age > ttl and not allow_stale:
            self._count(hit=False)
            logger.debug(f"Cache STALE (skipped): {key} (age {age:.0f}s > ttl {ttl:.0f}s)")
            return None, age, False

        self._count(hit=True)
        logger.debug(f"Cache HIT: {key} (age {age:.0f}s)")
        return entry["value"], age, True

    def _count(self, hit: bool) -> None:
        with self._stats_lock:
            if hit:
                self.hits += 1
            else:
                self.misses += 1

    def get(self, key: str) -> CacheLookup:
        """
        Get a fresh value from cache.

        Args:
            key: Cache key

        Returns:
            (value, age_seconds, found). found is False on a miss or when the
            entry is older than its TTL.
        """
        return self._lookup(key, allow_stale=False)

    def get_stale(self, key: str) -> CacheLookup:
        """Like get(), but also returns entries past TTL that are still inside the retention window."""
        return self._lookup(key, allow_stale=True)

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """
        Set value in cache.

        Args:
            key: Cache key
            value: JSON-serializable value
            ttl: Time to live in seconds (default: namespace TTL)

        Returns:
            True if stored
        """
        ttl_seconds = int(ttl) if ttl is not None else self.ttl_for(key)
        entry = {"value": value, "stored_at": float(self.clock()), "ttl": ttl_seconds}
        stored = self.backend.write(key, entry)
        if stored:
            logger.debug(f"Cache SET: {key} (TTL: {ttl_seconds}s)")
        return stored

    def delete(self, key: str) -> bool:
        return self.backend.delete(key)

    def clear_pattern(self, pattern: str) -> int:
        """
        Delete all keys matching a glob pattern.

        Example:
            >>> deleted = cache.clear_pattern("rainfall:*")
        """
        deleted = self.backend.clear_pattern(pattern)
        if deleted:
            logger.info(f"Cache CLEAR: {deleted} keys matching '{pattern}'")
        return deleted

    def stats(self) -> Dict[str, Any]:
        return {
            "backend": type(self.backend).__name__,
            "entries": self.backend.size(),
            "hits": self.hits,
            "misses": self.misses,
            "evictions": getattr(self.backend, "evictions", 0),
            "stale_retention_seconds": self.stale_retention_seconds,
        }


# Shared cache instance (lazy initialization)
_cache_service: Optional[CacheService] = None
_cache_service_lock = threading.Lock()


def get_cache_service() -> CacheService:
    """
    Get the process-wide CacheService, building it from settings on first use.

    Returns:
        CacheService instance
    """
    global _cache_service

    if _cache_service is None:
        with _cache_service_lock:
            if _cache_service is None:
                # Import settings here to avoid circular imports
                from summitcast.config import settings

                if settings.CACHE_BACKEND == "redis":
                    backend = RedisCacheBackend(
                        settings.cache_redis_url,
                        retention_seconds=settings.CACHE_STALE_RETENTION_SECONDS,
                    )
                else:
                    backend = MemoryCacheBackend(max_entries=settings.CACHE_MAX_ENTRIES)
                _cache_service = CacheService(
                    backend=backend,
                    ttls=settings.cache_ttls,
                    stale_retention_seconds=settings.CACHE_STALE_RETENTION_SECONDS,
                )
                logger.info(f"Cache service initialized ({settings.CACHE_BACKEND} backend)")
    return _cache_service


def set_cache_service(service: Optional[CacheService]) -> None:
    """Replace the shared cache (None resets to lazy construction)."""
    global _cache_service
    _cache_service = service


def get_cache_stats() -> dict:
    """Cache statistics for the shared instance."""
    return get_cache_service().stats()


# Cache key builders for common use cases

def build_location_key(namespace: str, latitude: float, longitude: float, *parts: Any, precision: int = 3) -> str:
    """
    Build a cache key bucketed by rounded coordinates.

    Args:
        namespace: Cache namespace (selects the TTL)
        latitude: Latitude (rounded to `precision` decimals)
        longitude: Longitude (rounded to `precision` decimals)
        *parts: Extra key segments (e.g. a date)

    Returns:
        Cache key string

    Example:
        >>> build_location_key("rainfall", 40.25491, -105.61544)
        'rainfall:40.255:-105.615'
    """
    lat = round(latitude, precision)
    lon = round(longitude, precision)
    suffix = "".join(f":{part}" for part in parts)
    return f"{namespace}:{lat}:{lon}{suffix}"
