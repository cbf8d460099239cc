"""
ORACLE RELAY — Alert Evaluator
Crossing detection over ACTIVE alerts. Each alert triggers at most once,
even when checks overlap (post-publish hook plus a manual check).
"""
from typing import List, Optional, Protocol, Set

from oracle_relay.alerts.store import AlertStore
from oracle_relay.data.errors import LedgerError
from oracle_relay.data.models import AlertRecord, AlertStatus
from oracle_relay.utils.helpers import PRICE_DECIMALS, format_price, normalize_symbol
from oracle_relay.utils.logger import get_logger

logger = get_logger("alert_evaluator")


class AlertNotifier(Protocol):
    async def send_alert_triggered(self, alert: AlertRecord, current_price: int, decimals: int) -> bool:
        ...


class AlertEvaluator:
    def __init__(self, store: AlertStore, notifier: Optional[AlertNotifier] = None):
        self.store = store
        self.notifier = notifier
        self._claimed: Set[str] = set()
        self.triggered_count = 0

    async def check_alerts(self, asset: str, current_price: int, decimals: int = PRICE_DECIMALS) -> List[str]:
        """
        Trigger every ACTIVE alert on `asset` crossed by `current_price`.

        Returns the triggered alert ids in evaluation order. Comparison is
        done in integer space after aligning decimals.
        """
        asset = normalize_symbol(asset)
        triggered: List[str] = []

        for alert in await self.store.get_active_alerts(asset):
            if alert.alert_id in self._claimed:
                continue
            if not alert.is_crossed_by(current_price, decimals):
                continue

            # Claim before the first suspension point so an overlapping check skips it
            self._claimed.add(alert.alert_id)
            try:
                current = await self.store.get_alert(alert.alert_id)
                if current is None or current.status != AlertStatus.ACTIVE:
                    continue
                await self.store.mark_triggered(current)
            except LedgerError as e:
                logger.error("alert_trigger_failed", alert_id=alert.alert_id[:10], error=str(e))
                continue
            finally:
                # Once the write lands the status re-read guards against repeats
                self._claimed.discard(alert.alert_id)

            triggered.append(alert.alert_id)
            self.triggered_count += 1
            logger.info(
                "alert_triggered",
                alert_id=alert.alert_id[:10],
                asset=asset,
                condition=alert.condition.value,
                threshold=format_price(alert.threshold_price, alert.decimals),
                price=format_price(current_price, decimals),
            )
            await self._notify(current, current_price, decimals)

        return triggered

    async def _notify(self, alert: AlertRecord, current_price: int, decimals: int) -> None:
        if self.notifier is None:
            return
        try:
            await self.notifier.send_alert_triggered(alert, current_price, decimals)
        except Exception as e:
            logger.warning("alert_notification_failed", alert_id=alert.alert_id[:10], error=str(e))
