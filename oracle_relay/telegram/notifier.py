"""
ORACLE RELAY — Telegram Notifier
Best-effort delivery of alert-triggered messages with rate limiting and
retry logic. Never raises into the alert path.
"""
import asyncio
import time
from typing import Optional, Dict, Any
from datetime import datetime, timezone

from telegram import Bot

from oracle_relay.config.settings import TelegramSettings, get_settings
from oracle_relay.data.models import AlertCondition, AlertRecord
from oracle_relay.utils.helpers import format_price
from oracle_relay.utils.logger import get_logger

logger = get_logger("telegram_notifier")


def format_alert_message(alert: AlertRecord, current_price: int, decimals: int) -> str:
    threshold = format_price(alert.threshold_price, alert.decimals)
    current = format_price(current_price, decimals)
    direction = "above" if alert.condition == AlertCondition.ABOVE else "below"
    wallet = alert.user_address
    short_wallet = f"{wallet[:6]}...{wallet[-4:]}" if len(wallet) > 10 else wallet

    return (
        f"🔔 <b>Price Alert Triggered!</b>\n"
        f"\n"
        f"<b>Asset:</b> {alert.asset}\n"
        f"<b>Condition:</b> Price went {direction} ${threshold}\n"
        f"<b>Current Price:</b> ${current}\n"
        f"<b>Time:</b> {datetime.now(timezone.utc).strftime('%a, %d %b %Y %H:%M:%S UTC')}\n"
        f"\n"
        f"<i>Wallet: {short_wallet}</i>"
    )


class TelegramNotifier:
    """Alert notification sink backed by python-telegram-bot."""

    def __init__(self, settings: Optional[TelegramSettings] = None):
        self.settings = settings or get_settings().telegram
        self._last_send_time = 0.0
        self._message_count = 0
        self._failed_count = 0
        self._bot: Optional[Bot] = None

    @property
    def enabled(self) -> bool:
        return bool(self.settings.bot_token and self.settings.chat_id)

    async def initialize(self) -> None:
        if not self.settings.bot_token:
            logger.warning("telegram_no_token", msg="Bot token not configured")
            return
        self._bot = Bot(token=self.settings.bot_token)
        logger.info("telegram_initialized")

    async def shutdown(self) -> None:
        if self._bot:
            try:
                await self._bot.shutdown()
            except Exception as e:
                logger.warning("telegram_shutdown_error", error=str(e))
        self._bot = None

    async def _rate_limit(self) -> None:
        """Enforce the configured messages-per-second ceiling."""
        now = time.monotonic()
        min_interval = 1.0 / self.settings.rate_limit_per_second
        elapsed = now - self._last_send_time
        if elapsed < min_interval:
            await asyncio.sleep(min_interval - elapsed)
        self._last_send_time = time.monotonic()

    async def send_message(self, text: str, chat_id: Optional[str] = None) -> bool:
        target_chat = chat_id or self.settings.chat_id
        if not target_chat:
            logger.warning("telegram_no_chat_id")
            return False

        if self._bot is None:
            await self.initialize()
        if self._bot is None:
            return False

        for attempt in range(self.settings.max_retries):
            try:
                await self._rate_limit()
                await self._bot.send_message(chat_id=target_chat, text=text, parse_mode="HTML")
                self._message_count += 1
                logger.info("telegram_sent", attempt=attempt + 1, total_sent=self._message_count)
                return True
            except Exception as e:
                logger.warning("telegram_send_error", attempt=attempt + 1, error=str(e))
                if attempt < self.settings.max_retries - 1:
                    await asyncio.sleep(self.settings.retry_delay * (attempt + 1))

        self._failed_count += 1
        logger.error("telegram_send_failed", max_retries=self.settings.max_retries)
        return False

    async def send_alert_triggered(self, alert: AlertRecord, current_price: int, decimals: int = 8) -> bool:
        return await self.send_message(format_alert_message(alert, current_price, decimals))

    @property
    def stats(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "initialized": self._bot is not None,
            "messages_sent": self._message_count,
            "messages_failed": self._failed_count,
        }
