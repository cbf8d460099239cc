"""
ORACLE RELAY — Unit Tests for the Alert Store and Evaluator
"""
import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from oracle_relay.alerts.evaluator import AlertEvaluator
from oracle_relay.alerts.store import AlertStore, make_alert_id
from oracle_relay.data.errors import LedgerSubmitFailed, LedgerUnavailable
from oracle_relay.data.models import AlertCondition, AlertRecord, AlertStatus
from oracle_relay.tests.fakes import USER
from oracle_relay.utils.helpers import parse_price


def notifier_mock():
    notifier = MagicMock()
    notifier.send_alert_triggered = AsyncMock(return_value=True)
    return notifier


class TestAlertRecord:
    @pytest.mark.parametrize("condition,price,expected", [
        (AlertCondition.ABOVE, "100.00", True),
        (AlertCondition.ABOVE, "100.01", True),
        (AlertCondition.ABOVE, "99.99", False),
        (AlertCondition.BELOW, "100.00", True),
        (AlertCondition.BELOW, "99.99", True),
        (AlertCondition.BELOW, "100.01", False),
    ])
    def test_crossing_is_inclusive(self, condition, price, expected):
        alert = AlertRecord(alert_id="0x1", user_address=USER, asset="BTC",
                            condition=condition, threshold_price=parse_price("100.00"))
        assert alert.is_crossed_by(parse_price(price)) is expected

    def test_crossing_aligns_decimals(self):
        alert = AlertRecord(alert_id="0x1", user_address=USER, asset="BTC",
                            condition=AlertCondition.ABOVE, threshold_price=10000, decimals=2)
        assert alert.is_crossed_by(parse_price("100.00", 18), 18)
        assert not alert.is_crossed_by(parse_price("99.999999", 18), 18)


class TestAlertStore:
    @pytest.mark.asyncio
    async def test_create_alert_is_active(self, ledger):
        store = AlertStore(ledger)
        alert_id, tx = await store.create_alert(USER, "btc", "below", parse_price("52500.00"))

        assert alert_id.startswith("0x") and len(alert_id) == 66
        assert tx.startswith("0x")
        alert = await store.get_alert(alert_id)
        assert alert.status == AlertStatus.ACTIVE
        assert alert.asset == "BTC"
        assert alert.condition == AlertCondition.BELOW
        assert alert.created_at > 0

    def test_alert_ids_unique(self):
        assert make_alert_id(USER, "BTC") != make_alert_id(USER, "BTC")

    @pytest.mark.asyncio
    async def test_create_failure_leaves_nothing(self, ledger):
        store = AlertStore(ledger)
        ledger.submit = AsyncMock(side_effect=LedgerUnavailable("rpc down"))

        with pytest.raises(LedgerSubmitFailed):
            await store.create_alert(USER, "BTC", AlertCondition.ABOVE, 1)
        assert await store.get_all_alerts() == []

    @pytest.mark.asyncio
    async def test_active_filtered_by_asset(self, ledger):
        store = AlertStore(ledger)
        await store.create_alert(USER, "BTC", AlertCondition.ABOVE, 1)
        await store.create_alert(USER, "ETH", AlertCondition.ABOVE, 1)

        assert len(await store.get_active_alerts()) == 2
        assert [a.asset for a in await store.get_active_alerts("eth")] == ["ETH"]

    @pytest.mark.asyncio
    async def test_triggered_filtered_by_user(self, ledger):
        store = AlertStore(ledger)
        mine, _ = await store.create_alert(USER, "BTC", AlertCondition.ABOVE, 1)
        theirs, _ = await store.create_alert("0x2222222222222222222222222222222222222222", "BTC", AlertCondition.ABOVE, 1)
        for alert_id in (mine, theirs):
            await store.mark_triggered(await store.get_alert(alert_id))

        assert len(await store.get_triggered_alerts()) == 2
        assert [a.alert_id for a in await store.get_triggered_alerts(USER.upper())] == [mine]


class TestAlertEvaluator:
    @pytest.mark.asyncio
    async def test_above_triggers_once(self, ledger):
        store = AlertStore(ledger)
        notifier = notifier_mock()
        evaluator = AlertEvaluator(store, notifier)
        alert_id, _ = await store.create_alert(USER, "BTC", AlertCondition.ABOVE, parse_price("60000"))

        assert await evaluator.check_alerts("BTC", parse_price("59999.99")) == []
        assert await evaluator.check_alerts("BTC", parse_price("60000")) == [alert_id]
        assert await evaluator.check_alerts("BTC", parse_price("61000")) == []

        alert = await store.get_alert(alert_id)
        assert alert.status == AlertStatus.TRIGGERED
        assert alert.triggered_at > 0
        notifier.send_alert_triggered.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_evaluation_order_preserved(self, ledger):
        store = AlertStore(ledger)
        evaluator = AlertEvaluator(store)
        first, _ = await store.create_alert(USER, "ETH", AlertCondition.BELOW, parse_price("3500"))
        await store.create_alert(USER, "ETH", AlertCondition.ABOVE, parse_price("9000"))
        third, _ = await store.create_alert(USER, "ETH", AlertCondition.BELOW, parse_price("3100"))

        assert await evaluator.check_alerts("ETH", parse_price("3000")) == [first, third]

    @pytest.mark.asyncio
    async def test_other_assets_untouched(self, ledger):
        store = AlertStore(ledger)
        evaluator = AlertEvaluator(store)
        await store.create_alert(USER, "ETH", AlertCondition.BELOW, parse_price("3500"))

        assert await evaluator.check_alerts("BTC", 1) == []
        assert len(await store.get_active_alerts("ETH")) == 1

    @pytest.mark.asyncio
    async def test_concurrent_checks_trigger_once(self, ledger):
        store = AlertStore(ledger)
        evaluator = AlertEvaluator(store)
        alert_id, _ = await store.create_alert(USER, "BTC", AlertCondition.BELOW, parse_price("52500"))

        a, b = await asyncio.gather(
            evaluator.check_alerts("BTC", parse_price("50000")),
            evaluator.check_alerts("BTC", parse_price("50000")),
        )

        assert sorted([a, b]) == [[], [alert_id]]
        assert evaluator.triggered_count == 1

    @pytest.mark.asyncio
    async def test_separate_evaluators_rely_on_status_reread(self, ledger):
        store = AlertStore(ledger)
        alert_id, _ = await store.create_alert(USER, "BTC", AlertCondition.BELOW, parse_price("52500"))

        assert await AlertEvaluator(store).check_alerts("BTC", parse_price("50000")) == [alert_id]
        assert await AlertEvaluator(store).check_alerts("BTC", parse_price("50000")) == []

    @pytest.mark.asyncio
    async def test_failed_write_releases_claim(self, ledger):
        store = AlertStore(ledger)
        evaluator = AlertEvaluator(store)
        alert_id, _ = await store.create_alert(USER, "BTC", AlertCondition.BELOW, parse_price("52500"))

        real_submit = ledger.submit
        ledger.submit = AsyncMock(side_effect=LedgerUnavailable("timeout"))
        assert await evaluator.check_alerts("BTC", parse_price("50000")) == []
        assert (await store.get_alert(alert_id)).status == AlertStatus.ACTIVE

        ledger.submit = real_submit
        assert await evaluator.check_alerts("BTC", parse_price("50000")) == [alert_id]

    @pytest.mark.asyncio
    async def test_notifier_failure_is_swallowed(self, ledger):
        store = AlertStore(ledger)
        notifier = MagicMock()
        notifier.send_alert_triggered = AsyncMock(side_effect=RuntimeError("telegram down"))
        evaluator = AlertEvaluator(store, notifier)
        alert_id, _ = await store.create_alert(USER, "BTC", AlertCondition.ABOVE, 1)

        assert await evaluator.check_alerts("BTC", 2) == [alert_id]
        assert (await store.get_alert(alert_id)).status == AlertStatus.TRIGGERED

    @pytest.mark.asyncio
    async def test_claims_released_after_trigger(self, ledger):
        store = AlertStore(ledger)
        evaluator = AlertEvaluator(store)
        alert_id, _ = await store.create_alert(USER, "BTC", AlertCondition.BELOW, parse_price("52500"))

        assert await evaluator.check_alerts("BTC", parse_price("50000")) == [alert_id]
        assert evaluator._claimed == set()
        assert await evaluator.check_alerts("BTC", parse_price("50000")) == []
        assert evaluator.triggered_count == 1
