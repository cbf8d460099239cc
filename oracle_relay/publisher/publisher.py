"""
ORACLE RELAY — Publishers
PricePublisher turns aggregated readings into ledger submissions, paced per
symbol, and runs the alert evaluator after each successful write.
SentimentPublisher does the same for crowd sentiment and fear/greed.
"""
import asyncio
from typing import Dict, List, Optional

from oracle_relay.alerts.evaluator import AlertEvaluator
from oracle_relay.data.aggregator import PriceAggregator, PublisherConfigStore
from oracle_relay.data.errors import LedgerError, LedgerSubmitFailed, ProviderError
from oracle_relay.data.models import PriceReading, PublishReport, PublishResult
from oracle_relay.data.sentiment import CoinGeckoSentimentClient, FearGreedClient
from oracle_relay.ledger.base import BaseLedger, LedgerRecord
from oracle_relay.ledger.schemas import encode_fear_greed, encode_price, encode_sentiment
from oracle_relay.utils.helpers import normalize_symbol
from oracle_relay.utils.logger import get_logger

logger = get_logger("publisher")


async def _submit(ledger: BaseLedger, record: LedgerRecord) -> str:
    try:
        return await ledger.submit(record)
    except LedgerSubmitFailed:
        raise
    except LedgerError as e:
        raise LedgerSubmitFailed(str(e)) from e


class PricePublisher:
    def __init__(
        self,
        aggregator: PriceAggregator,
        ledger: BaseLedger,
        config_store: PublisherConfigStore,
        evaluator: Optional[AlertEvaluator] = None,
    ):
        self.aggregator = aggregator
        self.ledger = ledger
        self.config_store = config_store
        self.evaluator = evaluator

    async def publish_one(self, symbol: str) -> PublishResult:
        """Aggregate and submit one symbol. Raises NoProviderAvailable or LedgerSubmitFailed."""
        reading = await self.aggregator.fetch_best(symbol)
        tx_handle = await _submit(self.ledger, encode_price(reading))

        logger.info(
            "price_published",
            symbol=reading.symbol,
            price=reading.display_price,
            source=reading.source.value,
            tx=tx_handle[:18],
        )
        await self._after_publish(reading)
        return PublishResult(symbol=reading.symbol, tx_handle=tx_handle, reading=reading)

    async def publish_all(self, symbols: List[str]) -> PublishReport:
        """
        Publish `symbols` strictly in order with `symbol_delay_ms` between
        them. Failures are recorded per symbol; this method never raises.
        """
        report = PublishReport()
        delay = self.config_store.get().symbol_delay_ms / 1000

        try:
            warmed = await self.aggregator.prefetch(symbols)
            logger.debug("publisher_prefetched", warmed=warmed, requested=len(symbols))
        except ProviderError as e:
            logger.warning("publisher_prefetch_failed", error=str(e))

        for i, symbol in enumerate(symbols):
            if i > 0 and delay > 0:
                await asyncio.sleep(delay)
            try:
                report.results.append(await self.publish_one(symbol))
            except Exception as e:
                report.failures[symbol] = str(e)
                logger.error("price_publish_failed", symbol=symbol, error_type=type(e).__name__, error=str(e))

        logger.info("publish_pass_complete", published=len(report.results), total=len(symbols))
        return report

    async def _after_publish(self, reading: PriceReading) -> None:
        if self.evaluator is None:
            return
        try:
            triggered = await self.evaluator.check_alerts(reading.symbol, reading.price, reading.decimals)
            if triggered:
                logger.info("post_publish_alerts", symbol=reading.symbol, triggered=len(triggered))
        except Exception as e:
            logger.warning("post_publish_hook_failed", symbol=reading.symbol, error=str(e))


class SentimentPublisher:
    """Publishes token crowd sentiment and the fear/greed index."""

    def __init__(
        self,
        ledger: BaseLedger,
        sentiment_client: CoinGeckoSentimentClient,
        fear_greed_client: FearGreedClient,
    ):
        self.ledger = ledger
        self.sentiment_client = sentiment_client
        self.fear_greed_client = fear_greed_client

    async def publish_fear_greed(self) -> Optional[str]:
        """Submit the index when its score changed. Returns the tx handle or None."""
        reading = await self.fear_greed_client.get_fear_greed()
        if not self.fear_greed_client.should_publish(reading):
            logger.debug("fear_greed_unchanged", score=reading.score)
            return None
        tx_handle = await _submit(self.ledger, encode_fear_greed(reading))
        self.fear_greed_client.mark_published(reading)
        logger.info("fear_greed_published", score=reading.score, zone=reading.zone.value, tx=tx_handle[:18])
        return tx_handle

    async def publish_sentiment(self, symbols: List[str]) -> Dict[str, str]:
        """Submit crowd sentiment per symbol; failing symbols are logged and skipped."""
        published: Dict[str, str] = {}
        for symbol in symbols:
            symbol = normalize_symbol(symbol)
            try:
                reading = await self.sentiment_client.get_sentiment(symbol)
                published[symbol] = await _submit(self.ledger, encode_sentiment(reading))
            except (ProviderError, LedgerError) as e:
                logger.warning("sentiment_publish_failed", symbol=symbol, error=str(e))
        logger.info("sentiment_pass_complete", published=len(published), total=len(symbols))
        return published

    async def publish_all(self, symbols: List[str]) -> Dict[str, object]:
        fear_greed_tx = None
        try:
            fear_greed_tx = await self.publish_fear_greed()
        except (ProviderError, LedgerError) as e:
            logger.warning("fear_greed_publish_failed", error=str(e))
        return {
            "fear_greed_tx": fear_greed_tx,
            "sentiment": await self.publish_sentiment(symbols),
        }
