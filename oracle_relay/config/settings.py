"""
ORACLE RELAY — Central Configuration
All settings are loaded from environment variables with sensible defaults.
"""
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional


def _split_csv(raw: str) -> List[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


class ProviderSettings(BaseSettings):
    """Data provider endpoints, API key sets and fetch policy."""
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    coingecko_base_url: str = "https://api.coingecko.com/api/v3"
    coincap_base_url: str = "https://rest.coincap.io/v3"
    fear_greed_url: str = "https://api.alternative.me/fng/"
    rpc_url: str = "https://dream-rpc.somnia.network"

    # Comma-separated key sets, one per provider
    coingecko_api_keys: str = ""
    coincap_api_keys: str = ""

    poll_timeout_seconds: float = 5.0
    cache_ttl_seconds: float = 30.0
    sentiment_cache_ttl_seconds: float = 3600.0
    fear_greed_cache_ttl_seconds: float = 3600.0
    key_rotation_interval_seconds: float = 60.0
    retry_backoff_seconds: float = 0.5

    @property
    def coingecko_keys(self) -> List[str]:
        return _split_csv(self.coingecko_api_keys)

    @property
    def coincap_keys(self) -> List[str]:
        return _split_csv(self.coincap_api_keys)


class PublisherSettings(BaseSettings):
    """Price publishing loop configuration."""
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    priority: str = "OFFCHAIN_FIRST"
    enabled_providers: str = "COINGECKO,COINCAP,DIA"
    publish_interval_ms: int = 30000
    symbol_delay_ms: int = 500
    publish_symbols: str = "BTC,ETH,USDC,USDT,ARB,SOL,WETH"
    sentiment_symbols: str = "BTC,ETH,SOL"
    auto_publish: bool = False

    @property
    def providers(self) -> List[str]:
        return [p.upper() for p in _split_csv(self.enabled_providers)]

    @property
    def symbols(self) -> List[str]:
        return [s.upper() for s in _split_csv(self.publish_symbols)]

    @property
    def sentiment_symbol_list(self) -> List[str]:
        return [s.upper() for s in _split_csv(self.sentiment_symbols)]


class LedgerSettings(BaseSettings):
    """Ledger backend configuration."""
    model_config = SettingsConfigDict(env_file=".env", env_prefix="LEDGER_", extra="ignore")

    backend: str = "sql"  # memory | sql
    db_url: str = "sqlite+aiosqlite:///oracle_relay.db"
    echo_sql: bool = False


class TelegramSettings(BaseSettings):
    """Telegram bot configuration."""
    model_config = SettingsConfigDict(env_file=".env", env_prefix="TELEGRAM_", extra="ignore")

    bot_token: str = ""
    chat_id: str = ""
    rate_limit_per_second: float = 1.0
    max_retries: int = 3
    retry_delay: float = 2.0


class AppSettings(BaseSettings):
    """Top-level application settings."""
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "ORACLE RELAY"
    version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000
    downstream_health_url: str = "http://localhost:3001/api/health"

    providers: ProviderSettings = Field(default_factory=ProviderSettings)
    publisher: PublisherSettings = Field(default_factory=PublisherSettings)
    ledger: LedgerSettings = Field(default_factory=LedgerSettings)
    telegram: TelegramSettings = Field(default_factory=TelegramSettings)


# Singleton
_settings: Optional[AppSettings] = None


def get_settings() -> AppSettings:
    global _settings
    if _settings is None:
        _settings = AppSettings()
    return _settings
