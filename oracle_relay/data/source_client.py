"""
ORACLE RELAY — Rate-Limited Source Client
Generic wrapper around one external HTTP provider: API-key pool with
rotation on failure, response cache with TTL, retry with key substitution
and stale-on-error fallback.
"""
import asyncio
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, List, Optional, Sequence, Set, TypeVar

import aiohttp
from cachetools import LRUCache

from oracle_relay.data.errors import NetworkError, NotFound, ProviderError, classify_status
from oracle_relay.utils.logger import get_logger

logger = get_logger("source_client")

T = TypeVar("T")
Clock = Callable[[], float]


class KeyPool:
    """
    Ordered API keys with a failed-index set.

    The failed set is cleared every `rotation_interval` seconds so a key that
    was rate limited once is not starved forever. When every key is marked
    failed the pool falls back to key 0 and clears failures, so a non-empty
    pool always yields a key.
    """

    def __init__(self, keys: Sequence[str], rotation_interval: float = 60.0, clock: Clock = time.monotonic):
        self.keys: List[str] = list(keys)
        self.rotation_interval = rotation_interval
        self.current_index = 0
        self.failed: Set[int] = set()
        self._clock = clock
        self.last_rotation = clock()

    def __len__(self) -> int:
        return len(self.keys)

    def next_key(self) -> Optional[str]:
        if not self.keys:
            return None

        now = self._clock()
        if now - self.last_rotation > self.rotation_interval:
            self.failed.clear()
            self.last_rotation = now

        n = len(self.keys)
        for i in range(n):
            idx = (self.current_index + i) % n
            if idx not in self.failed:
                self.current_index = (idx + 1) % n
                return self.keys[idx]

        # Every key failed: retry the first one anyway
        self.failed.clear()
        return self.keys[0]

    def mark_failed(self, key: str) -> None:
        if key not in self.keys:
            return
        idx = self.keys.index(key)
        self.failed.add(idx)
        logger.info("key_marked_failed", key_index=idx + 1, remaining=len(self.keys) - len(self.failed))

    def status(self) -> Dict[str, int]:
        return {
            "total": len(self.keys),
            "healthy": len(self.keys) - len(self.failed),
            "failed": len(self.failed),
        }


@dataclass
class CacheEntry(Generic[T]):
    value: T
    fetched_at: float


class RateLimitedSourceClient(Generic[T]):
    """One provider endpoint family behind a key pool and a reading cache."""

    def __init__(
        self,
        name: str,
        keys: Sequence[str] = (),
        key_param: Optional[str] = None,
        cache_ttl: float = 30.0,
        rotation_interval: float = 60.0,
        retry_backoff: float = 0.5,
        timeout: float = 5.0,
        cache_size: int = 1024,
        clock: Clock = time.monotonic,
    ):
        self.name = name
        self.key_param = key_param
        self.cache_ttl = cache_ttl
        self.retry_backoff = retry_backoff
        self.timeout = timeout
        self.pool = KeyPool(keys, rotation_interval, clock)
        self._clock = clock
        self._cache: LRUCache = LRUCache(maxsize=cache_size)
        self._session: Optional[aiohttp.ClientSession] = None
        if not self.pool.keys:
            logger.info("source_client_no_keys", provider=name)

    async def connect(self) -> None:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
            logger.info("source_client_connected", provider=self.name)

    async def disconnect(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None
            logger.info("source_client_disconnected", provider=self.name)

    # ─── Cache ──────────────────────────────────────────────────

    def get_cached(self, cache_key: str, allow_stale: bool = False) -> Optional[T]:
        entry: Optional[CacheEntry] = self._cache.get(cache_key)
        if entry is None:
            return None
        if allow_stale or self._clock() - entry.fetched_at < self.cache_ttl:
            return entry.value
        return None

    def put(self, cache_key: str, value: T) -> None:
        self._cache[cache_key] = CacheEntry(value, self._clock())

    def clear_cache(self) -> None:
        self._cache.clear()

    # ─── Fetch ──────────────────────────────────────────────────

    async def fetch(
        self,
        cache_key: str,
        url: str,
        parse: Callable[[Any], T],
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
        method: str = "GET",
    ) -> T:
        """
        Return a normalized reading for `cache_key`.

        Fresh cache hits skip the network. Failures rotate keys and retry
        after `retry_backoff`, up to one attempt per key. If every attempt
        fails the last cached value is returned even when stale; otherwise
        the last provider error is raised.
        """
        cached = self.get_cached(cache_key)
        if cached is not None:
            return cached

        attempts = max(1, len(self.pool))
        last_error: Optional[ProviderError] = None

        for attempt in range(attempts):
            key = self.pool.next_key()
            request_params = dict(params or {})
            if key is not None and self.key_param:
                request_params[self.key_param] = key

            try:
                payload = await self._request(method, url, request_params, json_body)
                value = self._parse(parse, payload)
            except ProviderError as e:
                last_error = e
                if key is not None:
                    self.pool.mark_failed(key)
                logger.warning(
                    "source_fetch_failed",
                    provider=self.name,
                    cache_key=cache_key,
                    attempt=attempt + 1,
                    attempts=attempts,
                    error=type(e).__name__,
                    detail=e.detail,
                )
                if attempt < attempts - 1:
                    await asyncio.sleep(self.retry_backoff)
                continue

            self.put(cache_key, value)
            return value

        stale = self.get_cached(cache_key, allow_stale=True)
        if stale is not None:
            logger.warning("source_serving_stale", provider=self.name, cache_key=cache_key)
            return stale

        raise last_error

    def _parse(self, parse: Callable[[Any], T], payload: Any) -> T:
        try:
            return parse(payload)
        except ProviderError:
            raise
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise NotFound(self.name, f"malformed payload: {e}") from e

    async def _request(
        self,
        method: str,
        url: str,
        params: Dict[str, Any],
        json_body: Optional[Dict[str, Any]],
    ) -> Any:
        await self.connect()
        try:
            async with self._session.request(
                method,
                url,
                params=params or None,
                json=json_body,
                headers={"Accept": "application/json"},
            ) as resp:
                if not 200 <= resp.status < 300:
                    raise classify_status(self.name, resp.status)
                return await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise NetworkError(self.name, str(e) or type(e).__name__) from e

    def key_status(self) -> Dict[str, Any]:
        return {"provider": self.name, "cache_entries": len(self._cache), **self.pool.status()}
