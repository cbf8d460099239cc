"""
ORACLE RELAY — End-to-End Relay Flow
Aggregate, publish, and trigger alerts against an in-memory ledger with
scripted providers.
"""
import asyncio

import pytest
import pytest_asyncio
from unittest.mock import AsyncMock, MagicMock

from oracle_relay.data.models import AlertCondition, AlertStatus, PriceSource
from oracle_relay.ledger.memory import InMemoryLedger
from oracle_relay.ledger.schemas import ALERT_SCHEMA, PRICE_FEED_SCHEMA
from oracle_relay.services import OracleRelayServices
from oracle_relay.tests.fakes import BTC_PRICE, USER
from oracle_relay.utils.helpers import parse_price


@pytest.fixture
def notifier():
    notifier = MagicMock()
    notifier.initialize = AsyncMock()
    notifier.shutdown = AsyncMock()
    notifier.send_alert_triggered = AsyncMock(return_value=True)
    return notifier


@pytest_asyncio.fixture
async def services(test_settings, fake_adapters, notifier):
    services = OracleRelayServices(test_settings, ledger=InMemoryLedger(), adapters=fake_adapters, notifier=notifier)
    await services.initialize()
    yield services
    await services.shutdown()


@pytest.mark.asyncio
async def test_schemas_registered_on_startup(services):
    assert services.registrar.registered
    assert len(services.ledger.schemas) == 4


@pytest.mark.asyncio
async def test_publish_triggers_alert_exactly_once(services, notifier):
    alert_id, _ = await services.alert_store.create_alert(
        USER, "BTC", AlertCondition.BELOW, parse_price("52500.00"),
    )

    first = await services.publisher.publish_all(["BTC"])
    second = await services.publisher.publish_all(["BTC"])

    assert first.published == ["BTC"] and second.published == ["BTC"]
    assert await services.alert_store.get_active_alerts("BTC") == []
    triggered = await services.alert_store.get_triggered_alerts(USER)
    assert [a.alert_id for a in triggered] == [alert_id]
    assert triggered[0].status == AlertStatus.TRIGGERED

    notifier.send_alert_triggered.assert_awaited_once()
    alert_events = [r for event, r in services.ledger.events if event == ALERT_SCHEMA.event_id]
    assert len(alert_events) == 1


@pytest.mark.asyncio
async def test_price_slot_tracks_latest_source(services, fake_adapters):
    await services.publisher.publish_one("BTC")
    fake_adapters[PriceSource.COINGECKO].prices["BTC"] = BTC_PRICE + 1
    await services.publisher.publish_one("BTC")

    record = await services.ledger.get(PRICE_FEED_SCHEMA.schema_id, "price-btc")
    assert record.fields["price"] == BTC_PRICE + 1
    assert len(await services.ledger.query(PRICE_FEED_SCHEMA.schema_id)) == 1


@pytest.mark.asyncio
async def test_scheduler_publishes_and_triggers(services, notifier):
    await services.alert_store.create_alert(USER, "ETH", AlertCondition.ABOVE, parse_price("2900"))

    services.scheduler.start(["BTC", "ETH"], interval_ms=50)
    await asyncio.sleep(0.12)
    await services.scheduler.shutdown()

    status = services.scheduler.status()
    assert status["cycles_run"] >= 2
    assert status["total_publishes"] == 2 * status["cycles_run"]
    assert services.evaluator.triggered_count == 1
    notifier.send_alert_triggered.assert_awaited_once()


@pytest.mark.asyncio
async def test_provider_outage_falls_back(services, fake_adapters):
    fake_adapters[PriceSource.COINGECKO].prices["BTC"] = None

    result = await services.publisher.publish_one("BTC")

    assert result.reading.source == PriceSource.COINCAP
