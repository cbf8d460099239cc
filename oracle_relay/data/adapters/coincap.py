"""
ORACLE RELAY — CoinCap Price Adapter
Secondary off-chain source.
"""
from typing import Any, Dict, List, Optional

from oracle_relay.data.adapters.base import BasePriceAdapter
from oracle_relay.data.errors import NotFound
from oracle_relay.data.models import PriceReading, PriceSource
from oracle_relay.data.source_client import RateLimitedSourceClient
from oracle_relay.config.settings import ProviderSettings, get_settings
from oracle_relay.utils.helpers import PRICE_DECIMALS, to_fixed_point, unix_now

# Mapping from common symbols to CoinCap asset IDs
COINCAP_IDS: Dict[str, str] = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "USDC": "usd-coin",
    "USDT": "tether",
    "ARB": "arbitrum",
    "SOL": "solana",
    "WETH": "weth",
    "AVAX": "avalanche",
    "MATIC": "polygon",
    "LINK": "chainlink",
    "UNI": "uniswap",
    "AAVE": "aave",
    "DOGE": "dogecoin",
    "SHIB": "shiba-inu",
    "XRP": "xrp",
    "ADA": "cardano",
    "DOT": "polkadot",
    "ATOM": "cosmos",
    "LTC": "litecoin",
    "NEAR": "near-protocol",
}


def build_coincap_client(settings: Optional[ProviderSettings] = None) -> RateLimitedSourceClient:
    settings = settings or get_settings().providers
    return RateLimitedSourceClient(
        name="coincap",
        keys=settings.coincap_keys,
        key_param="apiKey",
        cache_ttl=settings.cache_ttl_seconds,
        rotation_interval=settings.key_rotation_interval_seconds,
        retry_backoff=settings.retry_backoff_seconds,
        timeout=settings.poll_timeout_seconds,
    )


def parse_asset(symbol: str, payload: Dict[str, Any]) -> PriceReading:
    """Normalize an /assets/{id} response. priceUsd arrives as a decimal string."""
    asset = payload.get("data") or {}
    price_usd = asset.get("priceUsd")
    if price_usd in (None, ""):
        raise NotFound("coincap", f"no price data returned for {symbol}")

    ts_ms = payload.get("timestamp")
    return PriceReading(
        symbol=symbol,
        price=to_fixed_point(str(price_usd), PRICE_DECIMALS),
        decimals=PRICE_DECIMALS,
        source=PriceSource.COINCAP,
        timestamp=int(ts_ms) // 1000 if ts_ms else unix_now(),
    )


class CoinCapAdapter(BasePriceAdapter):
    """CoinCap /assets adapter."""

    def __init__(self, client: Optional[RateLimitedSourceClient] = None, base_url: Optional[str] = None):
        super().__init__(PriceSource.COINCAP, client or build_coincap_client())
        self.base_url = base_url or get_settings().providers.coincap_base_url

    def supports(self, symbol: str) -> bool:
        return self._normalize(symbol) in COINCAP_IDS

    def supported_symbols(self) -> List[str]:
        return list(COINCAP_IDS)

    async def get_price(self, symbol: str) -> PriceReading:
        symbol = self._normalize(symbol)
        asset_id = COINCAP_IDS.get(symbol)
        if not asset_id:
            raise NotFound("coincap", f"symbol {symbol} not supported")

        return await self.client.fetch(
            cache_key=f"price:{symbol}",
            url=f"{self.base_url}/assets/{asset_id}",
            parse=lambda payload: parse_asset(symbol, payload),
        )
