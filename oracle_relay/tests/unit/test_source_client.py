"""
ORACLE RELAY — Unit Tests for KeyPool and RateLimitedSourceClient
"""
import pytest
from unittest.mock import AsyncMock

from oracle_relay.data.errors import AuthFailed, NetworkError, NotFound, RateLimited, classify_status
from oracle_relay.data.source_client import KeyPool, RateLimitedSourceClient


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_client(keys=(), clock=None, ttl=30.0):
    return RateLimitedSourceClient(
        name="test",
        keys=keys,
        key_param="api_key",
        cache_ttl=ttl,
        retry_backoff=0,
        clock=clock or FakeClock(),
    )


def identity(payload):
    return payload


# ─── KeyPool ────────────────────────────────────────────────────

class TestKeyPool:
    def test_empty_pool_yields_none(self):
        pool = KeyPool([])
        assert pool.next_key() is None
        assert len(pool) == 0

    def test_round_robin(self):
        pool = KeyPool(["a", "b", "c"], clock=FakeClock())
        assert [pool.next_key() for _ in range(4)] == ["a", "b", "c", "a"]

    def test_failed_key_skipped(self):
        pool = KeyPool(["a", "b", "c"], clock=FakeClock())
        pool.mark_failed("b")
        assert [pool.next_key() for _ in range(3)] == ["a", "c", "a"]
        assert pool.status() == {"total": 3, "healthy": 2, "failed": 1}

    def test_all_failed_falls_back_to_first_and_clears(self):
        pool = KeyPool(["a", "b"], clock=FakeClock())
        pool.mark_failed("a")
        pool.mark_failed("b")
        assert pool.next_key() == "a"
        assert pool.failed == set()

    def test_never_none_on_non_empty_pool(self):
        pool = KeyPool(["a", "b", "c"], clock=FakeClock())
        for _ in range(10):
            key = pool.next_key()
            assert key is not None
            pool.mark_failed(key)

    def test_failures_cleared_after_rotation_interval(self):
        clock = FakeClock()
        pool = KeyPool(["a", "b"], rotation_interval=60, clock=clock)
        pool.mark_failed("a")
        assert pool.next_key() == "b"
        clock.advance(61)
        pool.next_key()
        assert pool.failed == set()

    def test_unknown_key_ignored(self):
        pool = KeyPool(["a"])
        pool.mark_failed("zzz")
        assert pool.failed == set()


# ─── Status classification ──────────────────────────────────────

class TestClassifyStatus:
    @pytest.mark.parametrize("status,expected", [
        (429, RateLimited),
        (401, AuthFailed),
        (403, AuthFailed),
        (404, NotFound),
        (500, NetworkError),
        (502, NetworkError),
    ])
    def test_mapping(self, status, expected):
        error = classify_status("p", status)
        assert isinstance(error, expected)
        assert error.status == status


# ─── Fetch ──────────────────────────────────────────────────────

class TestFetch:
    @pytest.mark.asyncio
    async def test_cache_hit_within_ttl(self):
        client = make_client()
        client._request = AsyncMock(return_value={"v": 1})

        first = await client.fetch("k", "http://x", identity)
        second = await client.fetch("k", "http://x", identity)

        assert first is second
        assert client._request.await_count == 1

    @pytest.mark.asyncio
    async def test_refetch_after_ttl(self):
        clock = FakeClock()
        client = make_client(clock=clock, ttl=30)
        client._request = AsyncMock(side_effect=[{"v": 1}, {"v": 2}])

        assert await client.fetch("k", "http://x", identity) == {"v": 1}
        clock.advance(31)
        assert await client.fetch("k", "http://x", identity) == {"v": 2}
        assert client._request.await_count == 2

    @pytest.mark.asyncio
    async def test_rotates_key_on_rate_limit(self):
        client = make_client(keys=["k1", "k2"])
        client._request = AsyncMock(side_effect=[RateLimited("test", "429", 429), {"v": 1}])

        result = await client.fetch("k", "http://x", identity, params={"ids": "bitcoin"})

        assert result == {"v": 1}
        first_params = client._request.await_args_list[0].args[2]
        second_params = client._request.await_args_list[1].args[2]
        assert first_params == {"ids": "bitcoin", "api_key": "k1"}
        assert second_params == {"ids": "bitcoin", "api_key": "k2"}
        assert 0 in client.pool.failed

    @pytest.mark.asyncio
    async def test_attempts_bounded_by_pool_size(self):
        client = make_client(keys=["k1", "k2", "k3"])
        client._request = AsyncMock(side_effect=NetworkError("test", "boom"))

        with pytest.raises(NetworkError):
            await client.fetch("k", "http://x", identity)
        assert client._request.await_count == 3

    @pytest.mark.asyncio
    async def test_stale_value_served_on_exhaustion(self):
        clock = FakeClock()
        client = make_client(keys=["k1"], clock=clock, ttl=30)
        client._request = AsyncMock(side_effect=[{"v": 1}, AuthFailed("test", "401", 401)])

        await client.fetch("k", "http://x", identity)
        clock.advance(120)
        assert await client.fetch("k", "http://x", identity) == {"v": 1}

    @pytest.mark.asyncio
    async def test_last_error_raised_without_stale(self):
        client = make_client(keys=["k1", "k2"])
        client._request = AsyncMock(side_effect=[NetworkError("test", "first"), RateLimited("test", "second")])

        with pytest.raises(RateLimited):
            await client.fetch("k", "http://x", identity)

    @pytest.mark.asyncio
    async def test_zero_keys_sends_no_key_param(self):
        client = make_client(keys=[])
        client._request = AsyncMock(return_value={"v": 1})

        await client.fetch("k", "http://x", identity, params={"a": 1})

        assert client._request.await_args.args[2] == {"a": 1}

    @pytest.mark.asyncio
    async def test_zero_keys_single_attempt(self):
        client = make_client(keys=[])
        client._request = AsyncMock(side_effect=NetworkError("test", "down"))

        with pytest.raises(NetworkError):
            await client.fetch("k", "http://x", identity)
        assert client._request.await_count == 1

    @pytest.mark.asyncio
    async def test_malformed_payload_becomes_not_found(self):
        client = make_client()
        client._request = AsyncMock(return_value={})

        with pytest.raises(NotFound):
            await client.fetch("k", "http://x", lambda payload: payload["missing"])

    @pytest.mark.asyncio
    async def test_failed_parse_is_not_cached(self):
        client = make_client()
        client._request = AsyncMock(side_effect=[{}, {"missing": 5}])

        with pytest.raises(NotFound):
            await client.fetch("k", "http://x", lambda p: p["missing"])
        assert await client.fetch("k", "http://x", lambda p: p["missing"]) == 5

    def test_key_status(self):
        client = make_client(keys=["k1", "k2"])
        status = client.key_status()
        assert status["provider"] == "test"
        assert status["total"] == 2
        assert status["cache_entries"] == 0
