"""
TrafficWatch - Alert Dispatchers.

Sends detection-alert notifications via Telegram and Webhooks.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from trafficwatch.config import settings
from trafficwatch.detection.models import Alert, Severity

logger = logging.getLogger("trafficwatch.alerts")

_SEVERITY_ICONS = {
    Severity.LOW: "ℹ️",
    Severity.MEDIUM: "⚠️",
    Severity.HIGH: "🔥",
    Severity.CRITICAL: "🚨",
}


class AlertDispatcher(ABC):
    """Base class for alert dispatchers."""

    @property
    @abstractmethod
    def configured(self) -> bool:
        ...

    @abstractmethod
    async def send(self, alert: Alert) -> bool:
        ...


class TelegramAlert(AlertDispatcher):
    """Send alerts via Telegram Bot API."""

    def __init__(
        self,
        bot_token: Optional[str] = None,
        chat_id: Optional[str] = None,
    ) -> None:
        self.bot_token = bot_token or settings.telegram_bot_token
        self.chat_id = chat_id or settings.telegram_chat_id

    @property
    def configured(self) -> bool:
        return bool(self.bot_token and self.chat_id)

    @staticmethod
    def format(alert: Alert) -> str:
        icon = _SEVERITY_ICONS.get(alert.severity, "📢")
        return (
            f"{icon} *TrafficWatch Alert*\n\n"
            f"*{alert.alert_type}* ({alert.severity.value})\n"
            f"\n🌐 Source IP: `{alert.source_ip}`"
            f"\n🎯 Target: `{alert.target}`"
            f"\n📦 Packets: {alert.packet_count}"
            f"\n📈 Avg rate: {alert.avg_request_rate:.1f} req/s"
        )

    async def send(self, alert: Alert) -> bool:
        if not self.configured:
            logger.debug("Telegram not configured, skipping alert")
            return False

        url = f"https://api.telegram.org/bot{self.bot_token}/sendMessage"
        try:
            async with httpx.AsyncClient() as client:
                resp = await client.post(url, json={
                    "chat_id": self.chat_id,
                    "text": self.format(alert),
                    "parse_mode": "Markdown",
                })
                resp.raise_for_status()
                logger.info("Telegram alert sent: %s", alert.alert_type)
                return True
        except httpx.HTTPError:
            logger.exception("Failed to send Telegram alert")
            return False


class WebhookAlert(AlertDispatcher):
    """POST the alert as JSON to a configurable webhook URL."""

    def __init__(self, url: Optional[str] = None) -> None:
        self.url = url or settings.webhook_url

    @property
    def configured(self) -> bool:
        return bool(self.url)

    async def send(self, alert: Alert) -> bool:
        if not self.configured:
            logger.debug("Webhook not configured, skipping alert")
            return False

        try:
            async with httpx.AsyncClient() as client:
                resp = await client.post(self.url, json=alert.to_dict(), timeout=10)
                resp.raise_for_status()
                logger.info("Webhook alert sent: %s", alert.alert_type)
                return True
        except httpx.HTTPError:
            logger.exception("Failed to send webhook alert")
            return False


class AlertManager:
    """Fans an alert out to every dispatcher; never raises."""

    def __init__(self, dispatchers: Optional[list[AlertDispatcher]] = None) -> None:
        self.dispatchers: list[AlertDispatcher] = (
            dispatchers if dispatchers is not None
            else [TelegramAlert(), WebhookAlert()]
        )

    async def notify(self, alert: Alert) -> int:
        """Send to all configured dispatchers, returning how many succeeded."""
        sent = 0
        for dispatcher in self.dispatchers:
            try:
                if await dispatcher.send(alert):
                    sent += 1
            except Exception:
                logger.exception("Dispatcher %s failed", type(dispatcher).__name__)
        return sent


alert_manager = AlertManager()
