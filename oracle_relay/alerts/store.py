"""
ORACLE RELAY — Alert Store
CRUD over alert records. The ledger is the system of record; nothing is
cached here, so a failed write never leaves local state behind.
"""
import hashlib
import time
import uuid
from typing import List, Optional, Tuple, Union

from oracle_relay.data.errors import LedgerError, LedgerSubmitFailed
from oracle_relay.data.models import AlertCondition, AlertRecord, AlertStatus
from oracle_relay.ledger.base import BaseLedger
from oracle_relay.ledger.schemas import ALERT_SCHEMA, decode_alert, encode_alert
from oracle_relay.utils.helpers import PRICE_DECIMALS, normalize_symbol, unix_now
from oracle_relay.utils.logger import get_logger

logger = get_logger("alert_store")


def make_alert_id(user_address: str, asset: str) -> str:
    """0x-prefixed sha256 over user, asset, wall-clock ms and a random nonce."""
    seed = f"{user_address}-{asset}-{int(time.time() * 1000)}-{uuid.uuid4().hex}"
    return "0x" + hashlib.sha256(seed.encode()).hexdigest()


class AlertStore:
    def __init__(self, ledger: BaseLedger):
        self.ledger = ledger

    async def create_alert(
        self,
        user_address: str,
        asset: str,
        condition: Union[AlertCondition, str],
        threshold_price: int,
        decimals: int = PRICE_DECIMALS,
    ) -> Tuple[str, str]:
        """Create an ACTIVE alert. Returns (alert_id, tx_handle)."""
        asset = normalize_symbol(asset)
        alert = AlertRecord(
            alert_id=make_alert_id(user_address, asset),
            user_address=user_address,
            asset=asset,
            condition=AlertCondition(condition.upper()),
            threshold_price=threshold_price,
            decimals=decimals,
            status=AlertStatus.ACTIVE,
            created_at=unix_now(),
        )
        try:
            tx_handle = await self.ledger.submit(encode_alert(alert))
        except LedgerError as e:
            logger.error("alert_create_failed", asset=asset, error=str(e))
            raise LedgerSubmitFailed(f"failed to create alert: {e}") from e

        logger.info(
            "alert_created",
            alert_id=alert.alert_id[:10],
            asset=asset,
            condition=alert.condition.value,
            threshold=threshold_price,
        )
        return alert.alert_id, tx_handle

    async def get_all_alerts(self) -> List[AlertRecord]:
        alerts = []
        for record in await self.ledger.query(ALERT_SCHEMA.schema_id):
            try:
                alerts.append(decode_alert(record.fields))
            except (KeyError, ValueError) as e:
                logger.warning("alert_record_malformed", data_id=record.data_id, error=str(e))
        return alerts

    async def get_alert(self, alert_id: str) -> Optional[AlertRecord]:
        record = await self.ledger.get(ALERT_SCHEMA.schema_id, alert_id)
        if record is None:
            return None
        return decode_alert(record.fields)

    async def get_active_alerts(self, asset: Optional[str] = None) -> List[AlertRecord]:
        wanted = normalize_symbol(asset) if asset else None
        return [
            a for a in await self.get_all_alerts()
            if a.status == AlertStatus.ACTIVE and (wanted is None or a.asset == wanted)
        ]

    async def get_triggered_alerts(self, user_address: Optional[str] = None) -> List[AlertRecord]:
        user = user_address.lower() if user_address else None
        return [
            a for a in await self.get_all_alerts()
            if a.status == AlertStatus.TRIGGERED and (user is None or a.user_address.lower() == user)
        ]

    async def mark_triggered(self, alert: AlertRecord, triggered_at: Optional[int] = None) -> str:
        """Single ledger write moving an alert to TRIGGERED."""
        updated = alert.model_copy(update={
            "status": AlertStatus.TRIGGERED,
            "triggered_at": triggered_at or unix_now(),
        })
        try:
            return await self.ledger.submit(encode_alert(updated, emit=True))
        except LedgerError as e:
            raise LedgerSubmitFailed(f"failed to trigger alert {alert.alert_id[:10]}: {e}") from e
