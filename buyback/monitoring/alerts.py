"""buyback/monitoring/alerts.py

Telegram alerts for buyback audit events.

Sends notifications for:
- Successful buybacks
- Failed attempts
- Circuit breaker trips

Design goals:
- Zero secrets in code (env vars only)
- Fail-safe (never break an attempt on alert failure)
- Strict timeouts (prevent blocking the execution lock)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

import requests

from buyback.monitoring.events import (
    AuditEvent,
    BuybackExecuted,
    CircuitBreakerTriggered,
    ExecutionFailed,
)
from buyback.strategy.amm_math import PRICE_SCALE

logger = logging.getLogger(__name__)

ALERT_INFO = "INFO"
ALERT_WARNING = "WARNING"
ALERT_ERROR = "ERROR"
ALERT_CRITICAL = "CRITICAL"

_LEVEL_PREFIX = {
    ALERT_INFO: "ℹ️",
    ALERT_WARNING: "⚠️",
    ALERT_ERROR: "❌",
    ALERT_CRITICAL: "🚨",
}


@dataclass
class TelegramBot:
    """Telegram bot client for sending alerts.

    Attributes:
        token: Bot token from BUYBACK_TELEGRAM_TOKEN env var.
        chat_id: Chat ID from BUYBACK_TELEGRAM_CHAT_ID env var.
        timeout: Request timeout in seconds (default: 3).
    """

    token: str
    chat_id: str
    timeout: int = 3
    _session: Optional[requests.Session] = None

    @classmethod
    def from_env(cls, timeout: int = 3) -> "TelegramBot":
        token = os.getenv("BUYBACK_TELEGRAM_TOKEN")
        chat_id = os.getenv("BUYBACK_TELEGRAM_CHAT_ID")

        if not token or not chat_id:
            logger.warning("[alerts] BUYBACK_TELEGRAM_TOKEN or BUYBACK_TELEGRAM_CHAT_ID not set, alerts disabled")
            return cls(token="", chat_id="", timeout=timeout)

        return cls(token=token, chat_id=chat_id, timeout=timeout)

    @property
    def enabled(self) -> bool:
        return bool(self.token and self.chat_id)

    def _get_session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def send_message(self, text: str, level: str = ALERT_INFO, disable_notification: bool = False) -> bool:
        """Send a message to the configured chat.

        Returns:
            True if sent successfully, False otherwise.
        """
        if not self.enabled:
            logger.debug(f"[alerts] Would send (disabled): {text[:50]}...")
            return False

        payload = {
            "chat_id": self.chat_id,
            "text": f"{_LEVEL_PREFIX.get(level, _LEVEL_PREFIX[ALERT_INFO])} {text}",
            "parse_mode": "Markdown",
            "disable_notification": disable_notification,
        }
        url = f"https://api.telegram.org/bot{self.token}/sendMessage"

        try:
            response = self._get_session().post(url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            logger.debug(f"[alerts] Sent: {text[:50]}...")
            return True
        except requests.exceptions.Timeout:
            logger.warning(f"[alerts] Timeout sending message: {text[:50]}...")
            return False
        except requests.exceptions.RequestException as e:
            logger.warning(f"[alerts] Request failed: {e}")
            return False


def _fmt_units(amount: int, decimals: int = 18) -> str:
    whole, frac = divmod(amount, 10 ** decimals)
    return f"{whole}.{frac:0{decimals}d}".rstrip("0").rstrip(".")


def compose_buyback_alert(event: BuybackExecuted, revenue_asset: str = "BNB", target_asset: str = "TOKEN") -> str:
    return (
        f"🟢 *Buyback #{event.execution_id}*\n"
        f"• Spent: `{_fmt_units(event.bnb_amount)} {revenue_asset}`\n"
        f"• Received: `{_fmt_units(event.tokens_received)} {target_asset}`\n"
        f"• Rate: `{_fmt_units(event.price_per_token, len(str(PRICE_SCALE)) - 1)}` per {revenue_asset}\n"
        f"• Executor: `{event.executor}`"
    )


def compose_failure_alert(event: ExecutionFailed) -> str:
    return f"❌ *Buyback attempt #{event.execution_id} failed*\n• Reason: `{event.reason}`"


def compose_circuit_breaker_alert(event: CircuitBreakerTriggered) -> str:
    return (
        f"🚨 *CIRCUIT BREAKER OPEN*\n"
        f"• Reason: `{event.reason}`\n"
        f"• Cooldown until: `{event.cooldown_until}`"
    )


class AlertListener:
    """EventBus listener forwarding audit events to Telegram."""

    def __init__(
        self,
        bot: TelegramBot,
        *,
        revenue_asset: str = "BNB",
        target_asset: str = "TOKEN",
        notify_success: bool = True,
    ):
        self.bot = bot
        self.revenue_asset = revenue_asset
        self.target_asset = target_asset
        self.notify_success = notify_success

    def __call__(self, event: AuditEvent) -> None:
        if isinstance(event, BuybackExecuted):
            if self.notify_success:
                self.bot.send_message(
                    compose_buyback_alert(event, self.revenue_asset, self.target_asset),
                    level=ALERT_INFO,
                    disable_notification=True,
                )
        elif isinstance(event, ExecutionFailed):
            self.bot.send_message(compose_failure_alert(event), level=ALERT_WARNING)
        elif isinstance(event, CircuitBreakerTriggered):
            self.bot.send_message(compose_circuit_breaker_alert(event), level=ALERT_CRITICAL)
