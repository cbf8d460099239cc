"""
ORACLE RELAY — Price Aggregator
Tries providers strictly in priority order; the first successful reading wins.
"""
from typing import Any, Dict, List, Mapping, Optional

from oracle_relay.config.settings import PublisherSettings, get_settings
from oracle_relay.data.adapters.base import BasePriceAdapter
from oracle_relay.data.errors import NoProviderAvailable, ProviderError
from oracle_relay.data.models import PriceReading, PriceSource, PriorityMode, PublisherConfig
from oracle_relay.utils.helpers import normalize_symbol
from oracle_relay.utils.logger import get_logger

logger = get_logger("aggregator")

PRIORITY_ORDER: Dict[PriorityMode, List[PriceSource]] = {
    PriorityMode.OFFCHAIN_FIRST: [PriceSource.COINGECKO, PriceSource.COINCAP, PriceSource.DIA],
    PriorityMode.ONCHAIN_FIRST: [PriceSource.DIA, PriceSource.COINGECKO, PriceSource.COINCAP],
}


class PublisherConfigStore:
    """Holds the process-wide PublisherConfig. Replaced wholesale on update."""

    def __init__(self, config: Optional[PublisherConfig] = None):
        self._config = config or PublisherConfig()

    @classmethod
    def from_settings(cls, settings: Optional[PublisherSettings] = None) -> "PublisherConfigStore":
        settings = settings or get_settings().publisher
        return cls(PublisherConfig(
            priority=PriorityMode(settings.priority.upper()),
            enabled_providers={PriceSource(p) for p in settings.providers},
            publish_interval_ms=settings.publish_interval_ms,
            symbol_delay_ms=settings.symbol_delay_ms,
        ))

    def get(self) -> PublisherConfig:
        return self._config

    def update(self, **changes: Any) -> PublisherConfig:
        """Apply a partial update; unknown or invalid fields raise ValueError."""
        unknown = set(changes) - set(PublisherConfig.model_fields)
        if unknown:
            raise ValueError(f"unknown publisher config fields: {sorted(unknown)}")
        merged = {**self._config.model_dump(), **{k: v for k, v in changes.items() if v is not None}}
        self._config = PublisherConfig.model_validate(merged)
        logger.info(
            "publisher_config_updated",
            priority=self._config.priority.value,
            enabled=sorted(p.value for p in self._config.enabled_providers),
            interval_ms=self._config.publish_interval_ms,
            delay_ms=self._config.symbol_delay_ms,
        )
        return self._config


class PriceAggregator:
    """Chooses among provider adapters per the configured priority policy."""

    def __init__(self, adapters: Mapping[PriceSource, BasePriceAdapter], config_store: PublisherConfigStore):
        self.adapters = dict(adapters)
        self.config_store = config_store

    def provider_order(self) -> List[PriceSource]:
        config = self.config_store.get()
        return [
            source for source in PRIORITY_ORDER[config.priority]
            if source in config.enabled_providers and source in self.adapters
        ]

    async def fetch_best(self, symbol: str) -> PriceReading:
        """
        Return the reading of the highest-priority provider that succeeds.
        Lower-priority providers are never contacted once one succeeds.
        """
        symbol = normalize_symbol(symbol)
        errors: Dict[str, str] = {}

        for source in self.provider_order():
            adapter = self.adapters[source]
            if not adapter.supports(symbol):
                continue
            try:
                reading = await adapter.get_price(symbol)
            except ProviderError as e:
                errors[source.value] = str(e)
                logger.warning("aggregator_provider_failed", symbol=symbol, source=source.value, error=str(e))
                continue

            logger.debug("aggregator_reading", symbol=symbol, source=source.value, price=reading.price)
            return reading

        raise NoProviderAvailable(symbol, errors)

    async def prefetch(self, symbols: List[str]) -> int:
        """
        Warm provider caches with one batch request when the first provider
        in the order supports it. Returns the number of readings warmed.
        """
        order = self.provider_order()
        if not order:
            return 0
        fetch_prices = getattr(self.adapters[order[0]], "fetch_prices", None)
        if fetch_prices is None:
            return 0
        readings = await fetch_prices(symbols)
        return len(readings)

    async def connect(self) -> None:
        for adapter in self.adapters.values():
            await adapter.connect()

    async def disconnect(self) -> None:
        for adapter in self.adapters.values():
            await adapter.disconnect()

    def status(self) -> Dict[str, Any]:
        config = self.config_store.get()
        return {
            "priority": config.priority.value,
            "order": [s.value for s in self.provider_order()],
            "providers": [adapter.status() for adapter in self.adapters.values()],
        }
