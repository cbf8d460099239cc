"""
ORACLE RELAY — Record Layouts
Layouts registered with the ledger and the encoders that turn readings and
alerts into ledger records.
"""
from typing import Any, Dict, List

from oracle_relay.data.models import (
    AlertCondition,
    AlertRecord,
    AlertStatus,
    FearGreedReading,
    PriceReading,
    SentimentReading,
)
from oracle_relay.ledger.base import LedgerRecord, SchemaDescriptor

PRICE_FEED_SCHEMA = SchemaDescriptor(
    name="defi_price_feed",
    layout="uint64 timestamp, string symbol, uint256 price, uint8 decimals, string source, address sourceAddress",
    event_id="PriceUpdateV2",
)

ALERT_SCHEMA = SchemaDescriptor(
    name="price_alert",
    layout=(
        "bytes32 alertId, address userAddress, string asset, string condition, "
        "uint256 thresholdPrice, string status, uint64 createdAt, uint64 triggeredAt"
    ),
    event_id="AlertTriggeredV2",
)

FEAR_GREED_SCHEMA = SchemaDescriptor(
    name="market_fear_greed",
    layout="uint64 timestamp, uint8 score, string zone, string source, uint64 nextUpdate",
    event_id="FearGreedUpdateV1",
)

TOKEN_SENTIMENT_SCHEMA = SchemaDescriptor(
    name="token_crowd_sentiment",
    layout=(
        "uint64 timestamp, string symbol, uint16 upPercent, uint16 downPercent, "
        "int16 netScore, uint32 sampleSize, string source"
    ),
    event_id="TokenSentimentUpdateV1",
)

ALL_SCHEMAS: List[SchemaDescriptor] = [
    PRICE_FEED_SCHEMA,
    ALERT_SCHEMA,
    FEAR_GREED_SCHEMA,
    TOKEN_SENTIMENT_SCHEMA,
]


# ─── Encoders ───────────────────────────────────────────────────

def price_data_id(symbol: str) -> str:
    # One slot per symbol, overwritten on every publish
    return f"price-{symbol.lower()}"


def encode_price(reading: PriceReading) -> LedgerRecord:
    return LedgerRecord(
        schema_id=PRICE_FEED_SCHEMA.schema_id,
        data_id=price_data_id(reading.symbol),
        fields={
            "timestamp": reading.timestamp,
            "symbol": reading.symbol,
            "price": reading.price,
            "decimals": reading.decimals,
            "source": reading.source.value,
            "sourceAddress": reading.source_address,
        },
        event_id=PRICE_FEED_SCHEMA.event_id,
    )


def encode_alert(alert: AlertRecord, emit: bool = False) -> LedgerRecord:
    return LedgerRecord(
        schema_id=ALERT_SCHEMA.schema_id,
        data_id=alert.alert_id,
        fields={
            "alertId": alert.alert_id,
            "userAddress": alert.user_address,
            "asset": alert.asset,
            "condition": alert.condition.value,
            "thresholdPrice": alert.threshold_price,
            "decimals": alert.decimals,
            "status": alert.status.value,
            "createdAt": alert.created_at,
            "triggeredAt": alert.triggered_at,
        },
        event_id=ALERT_SCHEMA.event_id if emit else None,
    )


def decode_alert(fields: Dict[str, Any]) -> AlertRecord:
    """Rebuild an AlertRecord; raises KeyError/ValueError on malformed records."""
    return AlertRecord(
        alert_id=fields["alertId"],
        user_address=fields["userAddress"],
        asset=fields["asset"],
        condition=AlertCondition(fields["condition"]),
        threshold_price=int(fields["thresholdPrice"]),
        decimals=int(fields.get("decimals", 8)),
        status=AlertStatus(fields["status"]),
        created_at=int(fields.get("createdAt", 0)),
        triggered_at=int(fields.get("triggeredAt", 0)),
    )


def encode_fear_greed(reading: FearGreedReading) -> LedgerRecord:
    return LedgerRecord(
        schema_id=FEAR_GREED_SCHEMA.schema_id,
        data_id="fear-greed-latest",
        fields={
            "timestamp": reading.timestamp,
            "score": reading.score,
            "zone": reading.zone.value,
            "source": reading.source,
            "nextUpdate": reading.next_update,
        },
        event_id=FEAR_GREED_SCHEMA.event_id,
    )


def encode_sentiment(reading: SentimentReading) -> LedgerRecord:
    return LedgerRecord(
        schema_id=TOKEN_SENTIMENT_SCHEMA.schema_id,
        data_id=f"sentiment-{reading.symbol.lower()}",
        fields={
            "timestamp": reading.timestamp,
            "symbol": reading.symbol,
            "upPercent": reading.up_percent,
            "downPercent": reading.down_percent,
            "netScore": reading.net_score,
            "sampleSize": reading.sample_size,
            "source": reading.source,
        },
        event_id=TOKEN_SENTIMENT_SCHEMA.event_id,
    )
