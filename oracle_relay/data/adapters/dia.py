"""
ORACLE RELAY — DIA On-Chain Oracle Adapter
Reads DIA price adapter contracts over JSON-RPC (eth_call latestRoundData).
"""
from typing import Any, Dict, List, Optional

from oracle_relay.data.adapters.base import BasePriceAdapter
from oracle_relay.data.errors import NetworkError, NotFound
from oracle_relay.data.models import PriceReading, PriceSource
from oracle_relay.data.source_client import RateLimitedSourceClient
from oracle_relay.config.settings import ProviderSettings, get_settings

DIA_DECIMALS = 8

# latestRoundData() returns (uint80 roundId, int256 answer, uint256 startedAt, uint256 updatedAt, uint80 answeredInRound)
LATEST_ROUND_DATA_SELECTOR = "0xfeaf968c"
_WORD = 64

# DIA adapter contracts on Somnia testnet
DIA_ADAPTERS: Dict[str, str] = {
    "BTC/USD": "0x4803db1ca3A1DA49c3DB991e1c390321c20e1f21",
    "USDT/USD": "0x67d2C2a87A17b7267a6DBb1A59575C0E9A1D1c3e",
    "USDC/USD": "0x235266D5ca6f19F134421C49834C108b32C2124e",
    "ARB/USD": "0x74952812B6a9e4f826b2969C6D189c4425CBc19B",
    "SOL/USD": "0xD5Ea6C434582F827303423dA21729bEa4F87D519",
    "WETH/USD": "0x786c7893F8c26b80d42088749562eDb50Ba9601E",
    "SOMI/USD": "0xaEAa92c38939775d3be39fFA832A92611f7D6aDe",
}

# ETH is served by the WETH feed
DIA_SYMBOL_ALIASES: Dict[str, str] = {"ETH": "WETH"}


def dia_feed_for(symbol: str) -> Optional[str]:
    base = DIA_SYMBOL_ALIASES.get(symbol, symbol)
    feed = f"{base}/USD"
    return feed if feed in DIA_ADAPTERS else None


def build_dia_client(settings: Optional[ProviderSettings] = None) -> RateLimitedSourceClient:
    settings = settings or get_settings().providers
    return RateLimitedSourceClient(
        name="dia",
        cache_ttl=settings.cache_ttl_seconds,
        rotation_interval=settings.key_rotation_interval_seconds,
        retry_backoff=settings.retry_backoff_seconds,
        timeout=settings.poll_timeout_seconds,
    )


def decode_round_data(symbol: str, address: str, payload: Dict[str, Any]) -> PriceReading:
    """Decode the ABI-encoded latestRoundData() return tuple."""
    if payload.get("error"):
        raise NotFound("dia", f"eth_call failed: {payload['error'].get('message', payload['error'])}")

    result = payload.get("result") or ""
    data = result[2:] if result.startswith("0x") else result
    if len(data) < 5 * _WORD:
        raise NetworkError("dia", f"short eth_call result for {symbol}")

    words = [int(data[i * _WORD:(i + 1) * _WORD], 16) for i in range(5)]
    answer = words[1]
    if answer >= 2 ** 255:
        answer -= 2 ** 256

    return PriceReading(
        symbol=symbol,
        price=abs(answer),
        decimals=DIA_DECIMALS,
        source=PriceSource.DIA,
        timestamp=words[3],
        source_address=address,
    )


class DiaOracleAdapter(BasePriceAdapter):
    """On-chain DIA oracle, read through a public RPC endpoint."""

    def __init__(self, client: Optional[RateLimitedSourceClient] = None, rpc_url: Optional[str] = None):
        super().__init__(PriceSource.DIA, client or build_dia_client())
        self.rpc_url = rpc_url or get_settings().providers.rpc_url
        self._request_id = 0

    def supports(self, symbol: str) -> bool:
        return dia_feed_for(self._normalize(symbol)) is not None

    def supported_symbols(self) -> List[str]:
        return sorted({feed.split("/")[0] for feed in DIA_ADAPTERS} | set(DIA_SYMBOL_ALIASES))

    async def get_price(self, symbol: str) -> PriceReading:
        symbol = self._normalize(symbol)
        feed = dia_feed_for(symbol)
        if not feed:
            raise NotFound("dia", f"no DIA adapter configured for {symbol}")

        address = DIA_ADAPTERS[feed]
        self._request_id += 1
        body = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": "eth_call",
            "params": [{"to": address, "data": LATEST_ROUND_DATA_SELECTOR}, "latest"],
        }
        return await self.client.fetch(
            cache_key=f"price:{symbol}",
            url=self.rpc_url,
            method="POST",
            json_body=body,
            parse=lambda payload: decode_round_data(symbol, address, payload),
        )
