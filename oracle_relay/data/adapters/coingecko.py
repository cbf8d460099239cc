"""
ORACLE RELAY — CoinGecko Price Adapter
Primary off-chain source, demo API keys rotated per request.
"""
from typing import Any, Dict, List, Optional

from oracle_relay.data.adapters.base import BasePriceAdapter
from oracle_relay.data.errors import NotFound, ProviderError
from oracle_relay.data.models import PriceReading, PriceSource
from oracle_relay.data.source_client import RateLimitedSourceClient
from oracle_relay.config.settings import ProviderSettings, get_settings
from oracle_relay.utils.helpers import PRICE_DECIMALS, to_fixed_point, unix_now
from oracle_relay.utils.logger import get_logger

logger = get_logger("coingecko_adapter")

# Mapping from common symbols to CoinGecko IDs
COINGECKO_IDS: Dict[str, str] = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "USDC": "usd-coin",
    "USDT": "tether",
    "ARB": "arbitrum",
    "SOL": "solana",
    "WETH": "weth",
    "SOMI": "somnia",
    "MATIC": "matic-network",
    "AVAX": "avalanche-2",
    "LINK": "chainlink",
    "UNI": "uniswap",
    "AAVE": "aave",
    "CRV": "curve-dao-token",
    "MKR": "maker",
    "COMP": "compound-governance-token",
    "SNX": "synthetix-network-token",
    "DOGE": "dogecoin",
    "SHIB": "shiba-inu",
    "PEPE": "pepe",
    "XRP": "ripple",
    "ADA": "cardano",
    "DOT": "polkadot",
    "ATOM": "cosmos",
    "NEAR": "near",
    "FTM": "fantom",
    "OP": "optimism",
    "APT": "aptos",
    "SUI": "sui",
    "SEI": "sei-network",
}

COINGECKO_KEY_PARAM = "x_cg_demo_api_key"


def build_coingecko_client(settings: Optional[ProviderSettings] = None, cache_ttl: Optional[float] = None) -> RateLimitedSourceClient:
    settings = settings or get_settings().providers
    return RateLimitedSourceClient(
        name="coingecko",
        keys=settings.coingecko_keys,
        key_param=COINGECKO_KEY_PARAM,
        cache_ttl=settings.cache_ttl_seconds if cache_ttl is None else cache_ttl,
        rotation_interval=settings.key_rotation_interval_seconds,
        retry_backoff=settings.retry_backoff_seconds,
        timeout=settings.poll_timeout_seconds,
    )


def parse_simple_price(symbol: str, coin_id: str, payload: Dict[str, Any]) -> PriceReading:
    """Normalize one entry of a /simple/price response."""
    coin = payload.get(coin_id) or {}
    usd = coin.get("usd")
    if not isinstance(usd, (int, float)) or isinstance(usd, bool):
        raise NotFound("coingecko", f"no price data returned for {symbol}")
    return PriceReading(
        symbol=symbol,
        price=to_fixed_point(usd, PRICE_DECIMALS),
        decimals=PRICE_DECIMALS,
        source=PriceSource.COINGECKO,
        timestamp=int(coin.get("last_updated_at") or unix_now()),
    )


class CoinGeckoAdapter(BasePriceAdapter):
    """CoinGecko /simple/price adapter."""

    def __init__(self, client: Optional[RateLimitedSourceClient] = None, base_url: Optional[str] = None):
        super().__init__(PriceSource.COINGECKO, client or build_coingecko_client())
        self.base_url = base_url or get_settings().providers.coingecko_base_url

    def supports(self, symbol: str) -> bool:
        return self._normalize(symbol) in COINGECKO_IDS

    def supported_symbols(self) -> List[str]:
        return list(COINGECKO_IDS)

    async def get_price(self, symbol: str) -> PriceReading:
        symbol = self._normalize(symbol)
        coin_id = COINGECKO_IDS.get(symbol)
        if not coin_id:
            raise NotFound("coingecko", f"symbol {symbol} not supported")

        return await self.client.fetch(
            cache_key=f"price:{symbol}",
            url=f"{self.base_url}/simple/price",
            params={"ids": coin_id, "vs_currencies": "usd", "include_last_updated_at": "true"},
            parse=lambda payload: parse_simple_price(symbol, coin_id, payload),
        )

    async def fetch_prices(self, symbols: List[str]) -> Dict[str, PriceReading]:
        """
        Batch-fetch several symbols in one request and warm the per-symbol
        cache so the aggregator's subsequent single fetches are cache hits.
        A failed batch returns an empty dict; callers fall back per symbol.
        """
        wanted = {s: COINGECKO_IDS[s] for s in map(self._normalize, symbols) if s in COINGECKO_IDS}
        if not wanted:
            return {}

        def parse_batch(payload: Dict[str, Any]) -> Dict[str, PriceReading]:
            readings = {}
            for sym, coin_id in wanted.items():
                try:
                    readings[sym] = parse_simple_price(sym, coin_id, payload)
                except NotFound:
                    continue
            return readings

        ids = ",".join(sorted(set(wanted.values())))
        try:
            readings = await self.client.fetch(
                cache_key=f"batch:{ids}",
                url=f"{self.base_url}/simple/price",
                params={"ids": ids, "vs_currencies": "usd", "include_last_updated_at": "true"},
                parse=parse_batch,
            )
        except ProviderError as e:
            logger.warning("coingecko_batch_failed", symbols=list(wanted), error=str(e))
            return {}

        for sym, reading in readings.items():
            self.client.put(f"price:{sym}", reading)
        logger.info("coingecko_batch_fetched", fetched=len(readings), requested=len(wanted))
        return readings
