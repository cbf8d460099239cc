"""
ORACLE RELAY — Test Configuration & Fixtures
Shared fixtures for all test modules.
"""
from typing import Dict

import pytest
import pytest_asyncio

from oracle_relay.config.settings import AppSettings, LedgerSettings, PublisherSettings
from oracle_relay.data.aggregator import PriceAggregator, PublisherConfigStore
from oracle_relay.data.models import PriceSource, PublisherConfig
from oracle_relay.ledger.memory import InMemoryLedger
from oracle_relay.ledger.registrar import SchemaRegistrar
from oracle_relay.tests.fakes import BTC_PRICE, ETH_PRICE, FakeAdapter


@pytest.fixture
def fake_adapters() -> Dict[PriceSource, FakeAdapter]:
    return {
        PriceSource.COINGECKO: FakeAdapter(PriceSource.COINGECKO, {"BTC": BTC_PRICE, "ETH": ETH_PRICE}),
        PriceSource.COINCAP: FakeAdapter(PriceSource.COINCAP, {"BTC": BTC_PRICE + 100, "ETH": ETH_PRICE + 100}),
        PriceSource.DIA: FakeAdapter(PriceSource.DIA, {"BTC": BTC_PRICE + 200}),
    }


@pytest.fixture
def config_store() -> PublisherConfigStore:
    return PublisherConfigStore(PublisherConfig(symbol_delay_ms=0, publish_interval_ms=100))


@pytest.fixture
def aggregator(fake_adapters, config_store) -> PriceAggregator:
    return PriceAggregator(fake_adapters, config_store)


@pytest_asyncio.fixture
async def ledger() -> InMemoryLedger:
    """In-memory ledger with every layout already registered."""
    ledger = InMemoryLedger()
    await SchemaRegistrar(ledger).register()
    return ledger


@pytest.fixture
def test_settings() -> AppSettings:
    return AppSettings(
        ledger=LedgerSettings(backend="memory"),
        publisher=PublisherSettings(publish_symbols="BTC,ETH", symbol_delay_ms=0, publish_interval_ms=100),
        downstream_health_url="http://127.0.0.1:9/api/health",
    )
