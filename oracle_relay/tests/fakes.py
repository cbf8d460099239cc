"""
ORACLE RELAY — Test Doubles
Scripted providers and reading builders shared by unit and integration tests.
"""
from typing import Dict, List, Optional, Union

from oracle_relay.data.adapters.base import BasePriceAdapter
from oracle_relay.data.errors import NotFound, ProviderError
from oracle_relay.data.models import PriceReading, PriceSource
from oracle_relay.data.source_client import RateLimitedSourceClient
from oracle_relay.utils.helpers import parse_price

BTC_PRICE = parse_price("50000.00")
ETH_PRICE = parse_price("3000.00")
USER = "0x1111111111111111111111111111111111111111"


class FakeAdapter(BasePriceAdapter):
    """Scripted provider: a price per symbol, or an error to raise."""

    def __init__(self, source: PriceSource, prices: Dict[str, Union[int, ProviderError]]):
        super().__init__(source, RateLimitedSourceClient(name=source.value.lower()))
        self.prices = dict(prices)
        self.calls: List[str] = []

    def supports(self, symbol: str) -> bool:
        return self._normalize(symbol) in self.prices

    async def get_price(self, symbol: str) -> PriceReading:
        symbol = self._normalize(symbol)
        self.calls.append(symbol)
        value = self.prices.get(symbol)
        if value is None:
            raise NotFound(self.source.value, f"no mapping for {symbol}")
        if isinstance(value, ProviderError):
            raise value
        return make_reading(symbol, value, self.source)


def make_reading(symbol: str = "BTC", price: int = BTC_PRICE, source: PriceSource = PriceSource.COINGECKO,
                 decimals: int = 8, timestamp: Optional[int] = None) -> PriceReading:
    return PriceReading(symbol=symbol, price=price, decimals=decimals, source=source,
                        timestamp=timestamp or 1_700_000_000)
