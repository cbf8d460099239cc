"""
ORACLE RELAY — Data Models
Canonical readings, alert records and publisher configuration.
Prices are always (integer, decimals) pairs, never floats.
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Set, Dict, Any
from enum import Enum

from oracle_relay.utils.helpers import PRICE_DECIMALS, align_decimals, format_price

OFFCHAIN_SOURCE_ADDRESS = "0x0000000000000000000000000000000000000000"
MAX_SAMPLE_SIZE = 65535


class PriceSource(str, Enum):
    COINGECKO = "COINGECKO"  # off-chain aggregator #1
    COINCAP = "COINCAP"      # off-chain aggregator #2
    DIA = "DIA"              # on-chain oracle


class PriorityMode(str, Enum):
    OFFCHAIN_FIRST = "OFFCHAIN_FIRST"
    ONCHAIN_FIRST = "ONCHAIN_FIRST"


class FearGreedZone(str, Enum):
    EXTREME_FEAR = "EXTREME_FEAR"
    FEAR = "FEAR"
    NEUTRAL = "NEUTRAL"
    GREED = "GREED"
    EXTREME_GREED = "EXTREME_GREED"


class AlertCondition(str, Enum):
    ABOVE = "ABOVE"
    BELOW = "BELOW"


class AlertStatus(str, Enum):
    ACTIVE = "ACTIVE"
    TRIGGERED = "TRIGGERED"


def zone_from_score(score: int) -> FearGreedZone:
    """Classify a 0-100 index score."""
    if score <= 24:
        return FearGreedZone.EXTREME_FEAR
    if score <= 49:
        return FearGreedZone.FEAR
    if score <= 50:
        return FearGreedZone.NEUTRAL
    if score <= 74:
        return FearGreedZone.GREED
    return FearGreedZone.EXTREME_GREED


class PriceReading(BaseModel):
    """Single normalized price observation from one provider."""
    model_config = ConfigDict(frozen=True)

    symbol: str
    price: int = Field(ge=0)
    decimals: int = Field(default=PRICE_DECIMALS, ge=0, le=36)
    source: PriceSource
    timestamp: int
    source_address: str = OFFCHAIN_SOURCE_ADDRESS

    @property
    def display_price(self) -> str:
        return format_price(self.price, self.decimals)


class SentimentReading(BaseModel):
    """Crowd vote sentiment; percentages scaled x100."""
    model_config = ConfigDict(frozen=True)

    symbol: str
    timestamp: int
    up_percent: int
    down_percent: int
    net_score: int
    sample_size: int = Field(ge=0, le=MAX_SAMPLE_SIZE)
    source: str


class FearGreedReading(BaseModel):
    """Market-wide fear & greed index value."""
    model_config = ConfigDict(frozen=True)

    timestamp: int
    score: int = Field(ge=0, le=100)
    zone: FearGreedZone
    source: str
    next_update: int


class AlertRecord(BaseModel):
    """User-defined threshold alert; the ledger is the system of record."""
    alert_id: str
    user_address: str
    asset: str
    condition: AlertCondition
    threshold_price: int = Field(ge=0)
    decimals: int = PRICE_DECIMALS
    status: AlertStatus = AlertStatus.ACTIVE
    created_at: int = 0
    triggered_at: int = 0

    def is_crossed_by(self, price: int, price_decimals: int = PRICE_DECIMALS) -> bool:
        """True when `price` satisfies this alert's condition (integer comparison)."""
        current, threshold = align_decimals(price, price_decimals, self.threshold_price, self.decimals)
        if self.condition == AlertCondition.ABOVE:
            return current >= threshold
        return current <= threshold


class PublisherConfig(BaseModel):
    """Process-wide publisher policy."""
    priority: PriorityMode = PriorityMode.OFFCHAIN_FIRST
    enabled_providers: Set[PriceSource] = Field(
        default_factory=lambda: {PriceSource.COINGECKO, PriceSource.COINCAP, PriceSource.DIA}
    )
    publish_interval_ms: int = Field(default=30000, gt=0)
    symbol_delay_ms: int = Field(default=500, ge=0)


class PublishResult(BaseModel):
    """One successful ledger submission."""
    symbol: str
    tx_handle: str
    reading: PriceReading


class PublishReport(BaseModel):
    """Outcome of a publish pass over several symbols."""
    results: List[PublishResult] = Field(default_factory=list)
    failures: Dict[str, str] = Field(default_factory=dict)

    @property
    def published(self) -> List[str]:
        return [r.symbol for r in self.results]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "published": self.published,
            "failed": self.failures,
            "results": [
                {
                    "symbol": r.symbol,
                    "tx_handle": r.tx_handle,
                    "price": str(r.reading.price),
                    "decimals": r.reading.decimals,
                    "display_price": r.reading.display_price,
                    "source": r.reading.source.value,
                    "timestamp": r.reading.timestamp,
                }
                for r in self.results
            ],
        }
