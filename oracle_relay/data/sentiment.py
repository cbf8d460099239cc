"""
ORACLE RELAY — Sentiment & Fear/Greed Clients
Crowd vote sentiment from CoinGecko and the market-wide Fear & Greed index
from Alternative.me. Same key rotation and cache discipline as the price
adapters, with longer TTLs since both change slowly.
"""
from typing import Any, Dict, List, Optional

import aiohttp

from oracle_relay.config.settings import ProviderSettings, get_settings
from oracle_relay.data.adapters.coingecko import COINGECKO_IDS, COINGECKO_KEY_PARAM
from oracle_relay.data.errors import NetworkError, NotFound, ProviderError
from oracle_relay.data.models import MAX_SAMPLE_SIZE, FearGreedReading, SentimentReading, zone_from_score
from oracle_relay.data.source_client import RateLimitedSourceClient
from oracle_relay.utils.helpers import normalize_symbol, to_fixed_point, unix_now
from oracle_relay.utils.logger import get_logger

logger = get_logger("sentiment")

FEAR_GREED_SOURCE = "ALTERNATIVE_ME"
SENTIMENT_SOURCE = "COINGECKO"


def parse_coin_sentiment(symbol: str, payload: Dict[str, Any]) -> SentimentReading:
    """Normalize a /coins/{id} response into vote percentages scaled x100."""
    up = payload.get("sentiment_votes_up_percentage")
    down = payload.get("sentiment_votes_down_percentage")
    # Coins with no votes yet report null on both sides
    up = 50 if up is None else up
    down = 50 if down is None else down

    community = payload.get("community_data") or {}
    followers = (community.get("twitter_followers") or 0) + (community.get("reddit_subscribers") or 0)

    up_scaled = to_fixed_point(up, 2)
    down_scaled = to_fixed_point(down, 2)
    return SentimentReading(
        symbol=symbol,
        timestamp=unix_now(),
        up_percent=up_scaled,
        down_percent=down_scaled,
        net_score=up_scaled - down_scaled,
        sample_size=min(int(followers), MAX_SAMPLE_SIZE),
        source=SENTIMENT_SOURCE,
    )


def parse_fear_greed(payload: Dict[str, Any], now: Optional[int] = None) -> FearGreedReading:
    """Normalize an Alternative.me /fng/ response (latest entry only)."""
    metadata = payload.get("metadata") or {}
    if metadata.get("error"):
        raise NetworkError("fear_greed", str(metadata["error"]))

    entries = payload.get("data") or []
    if not entries:
        raise NotFound("fear_greed", "no index data returned")

    latest = entries[0]
    score = int(latest["value"])
    now = unix_now() if now is None else now
    return FearGreedReading(
        timestamp=int(latest["timestamp"]),
        score=score,
        zone=zone_from_score(score),
        source=FEAR_GREED_SOURCE,
        next_update=now + int(latest.get("time_until_update") or 0),
    )


class CoinGeckoSentimentClient:
    """Token crowd sentiment (up/down votes) from CoinGecko coin details."""

    def __init__(self, client: Optional[RateLimitedSourceClient] = None, settings: Optional[ProviderSettings] = None):
        settings = settings or get_settings().providers
        self.base_url = settings.coingecko_base_url
        self.client = client or RateLimitedSourceClient(
            name="coingecko_sentiment",
            keys=settings.coingecko_keys,
            key_param=COINGECKO_KEY_PARAM,
            cache_ttl=settings.sentiment_cache_ttl_seconds,
            rotation_interval=settings.key_rotation_interval_seconds,
            retry_backoff=settings.retry_backoff_seconds,
            timeout=settings.poll_timeout_seconds,
        )

    async def connect(self) -> None:
        await self.client.connect()

    async def disconnect(self) -> None:
        await self.client.disconnect()

    def supports(self, symbol: str) -> bool:
        return normalize_symbol(symbol) in COINGECKO_IDS

    def supported_symbols(self) -> List[str]:
        return list(COINGECKO_IDS)

    async def get_sentiment(self, symbol: str) -> SentimentReading:
        symbol = normalize_symbol(symbol)
        coin_id = COINGECKO_IDS.get(symbol)
        if not coin_id:
            raise NotFound("coingecko_sentiment", f"symbol {symbol} not supported")

        reading = await self.client.fetch(
            cache_key=f"sentiment:{symbol}",
            url=f"{self.base_url}/coins/{coin_id}",
            params={
                "localization": "false",
                "tickers": "false",
                "market_data": "false",
                "community_data": "true",
                "developer_data": "false",
            },
            parse=lambda payload: parse_coin_sentiment(symbol, payload),
        )
        logger.debug("sentiment_reading", symbol=symbol, up=reading.up_percent, down=reading.down_percent)
        return reading

    async def get_sentiment_batch(self, symbols: List[str]) -> Dict[str, SentimentReading]:
        """Fetch sequentially; unsupported or failing symbols are left out."""
        results: Dict[str, SentimentReading] = {}
        for symbol in symbols:
            try:
                results[normalize_symbol(symbol)] = await self.get_sentiment(symbol)
            except ProviderError as e:
                logger.warning("sentiment_fetch_failed", symbol=symbol, error=str(e))
        return results


class FearGreedClient:
    """Crypto Fear & Greed index. Free endpoint, no API key."""

    def __init__(self, client: Optional[RateLimitedSourceClient] = None, settings: Optional[ProviderSettings] = None):
        settings = settings or get_settings().providers
        self.url = settings.fear_greed_url
        self.timeout = settings.poll_timeout_seconds
        self.client = client or RateLimitedSourceClient(
            name="fear_greed",
            cache_ttl=settings.fear_greed_cache_ttl_seconds,
            retry_backoff=settings.retry_backoff_seconds,
            timeout=settings.poll_timeout_seconds,
        )
        self._last: Optional[FearGreedReading] = None
        self._last_published: Optional[FearGreedReading] = None

    async def connect(self) -> None:
        await self.client.connect()

    async def disconnect(self) -> None:
        await self.client.disconnect()

    async def get_fear_greed(self) -> FearGreedReading:
        reading = await self.client.fetch(
            cache_key="fear_greed",
            url=self.url,
            params={"limit": 1},
            parse=parse_fear_greed,
        )
        self._last = reading
        return reading

    def last_value(self) -> Optional[FearGreedReading]:
        return self._last

    def should_publish(self, reading: FearGreedReading) -> bool:
        """Publish on first sight and whenever the score moved."""
        if self._last_published is None:
            return True
        return self._last_published.score != reading.score

    def mark_published(self, reading: FearGreedReading) -> None:
        self._last_published = reading

    async def ping(self) -> bool:
        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(self.url) as resp:
                    return resp.status == 200
        except Exception as e:
            logger.warning("fear_greed_ping_failed", error=str(e))
            return False
