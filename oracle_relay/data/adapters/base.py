"""
ORACLE RELAY — Base Price Adapter Interface
All price provider adapters must implement this interface.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List

from oracle_relay.data.models import PriceReading, PriceSource
from oracle_relay.data.source_client import RateLimitedSourceClient
from oracle_relay.utils.helpers import normalize_symbol


class BasePriceAdapter(ABC):
    """Abstract base class for provider adapters built on a source client."""

    def __init__(self, source: PriceSource, client: RateLimitedSourceClient):
        self.source = source
        self.client = client

    async def connect(self) -> None:
        """Initialize connection / session."""
        await self.client.connect()

    async def disconnect(self) -> None:
        """Clean up connection / session."""
        await self.client.disconnect()

    @abstractmethod
    def supports(self, symbol: str) -> bool:
        """Whether this provider has a mapping for `symbol`."""

    @abstractmethod
    async def get_price(self, symbol: str) -> PriceReading:
        """Fetch the latest normalized reading or raise a ProviderError."""

    def supported_symbols(self) -> List[str]:
        return []

    def status(self) -> Dict[str, Any]:
        return {"source": self.source.value, **self.client.key_status()}

    @staticmethod
    def _normalize(symbol: str) -> str:
        return normalize_symbol(symbol)
