"""
ORACLE RELAY — Service Container
Constructs every long-lived component once and owns their lifecycle.
"""
from typing import Dict, Optional

from oracle_relay.alerts.evaluator import AlertEvaluator
from oracle_relay.alerts.store import AlertStore
from oracle_relay.config.settings import AppSettings, get_settings
from oracle_relay.data.adapters.base import BasePriceAdapter
from oracle_relay.data.adapters.coincap import CoinCapAdapter, build_coincap_client
from oracle_relay.data.adapters.coingecko import CoinGeckoAdapter, build_coingecko_client
from oracle_relay.data.adapters.dia import DiaOracleAdapter, build_dia_client
from oracle_relay.data.aggregator import PriceAggregator, PublisherConfigStore
from oracle_relay.data.models import PriceSource
from oracle_relay.data.sentiment import CoinGeckoSentimentClient, FearGreedClient
from oracle_relay.ledger.base import BaseLedger
from oracle_relay.ledger.memory import InMemoryLedger
from oracle_relay.ledger.registrar import SchemaRegistrar
from oracle_relay.ledger.sql import SqlLedger
from oracle_relay.publisher.publisher import PricePublisher, SentimentPublisher
from oracle_relay.publisher.scheduler import ContinuousScheduler
from oracle_relay.telegram.notifier import TelegramNotifier
from oracle_relay.utils.logger import get_logger

logger = get_logger("services")


def build_ledger(settings: AppSettings) -> BaseLedger:
    if settings.ledger.backend.lower() == "memory":
        return InMemoryLedger()
    return SqlLedger(settings.ledger.db_url, echo=settings.ledger.echo_sql)


def build_adapters(settings: AppSettings) -> Dict[PriceSource, BasePriceAdapter]:
    providers = settings.providers
    return {
        PriceSource.COINGECKO: CoinGeckoAdapter(build_coingecko_client(providers), providers.coingecko_base_url),
        PriceSource.COINCAP: CoinCapAdapter(build_coincap_client(providers), providers.coincap_base_url),
        PriceSource.DIA: DiaOracleAdapter(build_dia_client(providers), providers.rpc_url),
    }


class OracleRelayServices:
    """Explicit service objects with an initialize/shutdown lifecycle."""

    def __init__(
        self,
        settings: Optional[AppSettings] = None,
        ledger: Optional[BaseLedger] = None,
        adapters: Optional[Dict[PriceSource, BasePriceAdapter]] = None,
        notifier: Optional[TelegramNotifier] = None,
    ):
        self.settings = settings or get_settings()
        self.ledger = ledger or build_ledger(self.settings)
        self.config_store = PublisherConfigStore.from_settings(self.settings.publisher)
        self.aggregator = PriceAggregator(adapters or build_adapters(self.settings), self.config_store)
        self.notifier = notifier or TelegramNotifier(self.settings.telegram)

        self.registrar = SchemaRegistrar(self.ledger)
        self.alert_store = AlertStore(self.ledger)
        self.evaluator = AlertEvaluator(self.alert_store, self.notifier)
        self.publisher = PricePublisher(self.aggregator, self.ledger, self.config_store, self.evaluator)
        self.scheduler = ContinuousScheduler(self.publisher, self.config_store)

        self.sentiment_client = CoinGeckoSentimentClient(settings=self.settings.providers)
        self.fear_greed_client = FearGreedClient(settings=self.settings.providers)
        self.sentiment_publisher = SentimentPublisher(self.ledger, self.sentiment_client, self.fear_greed_client)
        self._initialized = False

    @property
    def default_symbols(self):
        return self.settings.publisher.symbols

    async def initialize(self) -> None:
        """Connect the ledger, register schemas and open provider sessions."""
        if self._initialized:
            return
        await self.ledger.connect()
        await self.registrar.register()
        await self.aggregator.connect()
        await self.sentiment_client.connect()
        await self.fear_greed_client.connect()
        await self.notifier.initialize()
        self._initialized = True
        logger.info("services_initialized", ledger=self.ledger.name)

    async def shutdown(self) -> None:
        await self.scheduler.shutdown()
        await self.aggregator.disconnect()
        await self.sentiment_client.disconnect()
        await self.fear_greed_client.disconnect()
        await self.notifier.shutdown()
        await self.ledger.disconnect()
        self._initialized = False
        logger.info("services_shutdown")
