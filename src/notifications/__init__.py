"""Proactive notifications — Slack and Telegram webhooks.

Fires notifications on:
- Database liveness transitions (lost → restored)
- Prolonged outages (escalation after N consecutive failed probes)

All webhook calls are non-blocking (fire-and-forget via httpx async).
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum

import httpx

from src.config import settings

logger = logging.getLogger(__name__)


class NotifyLevel(str, Enum):
    WARNING = "warning"
    CRITICAL = "critical"
    RECOVERY = "recovery"


_EMOJI = {
    NotifyLevel.WARNING: "⚠️",
    NotifyLevel.CRITICAL: "🔴",
    NotifyLevel.RECOVERY: "✅",
}


class NotificationManager:
    """Central dispatcher for Slack / Telegram notifications."""

    def __init__(
        self,
        slack_webhook: str = "",
        telegram_token: str = "",
        telegram_chat_id: str = "",
        service_name: str = "taskflow",
    ) -> None:
        self.slack_webhook = slack_webhook or settings.slack_webhook_url
        self.telegram_token = telegram_token or settings.telegram_bot_token
        self.telegram_chat_id = telegram_chat_id or settings.telegram_chat_id
        self.service_name = service_name
        self._enabled = bool(self.slack_webhook or (self.telegram_token and self.telegram_chat_id))

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    # -- High-level notification methods ------------------------------------

    async def notify_database_transition(self, healthy: bool, detail: str = "") -> None:
        """Notify on database lost / restored."""
        if healthy:
            level = NotifyLevel.RECOVERY
            text = f"{_EMOJI[level]} *Database restored* — `{self.service_name}`\n"
        else:
            level = NotifyLevel.WARNING
            text = f"{_EMOJI[level]} *Database connection lost* — `{self.service_name}`\n"
        if detail:
            text += f"Detail: {detail}\n"
        await self._send(text, level)

    async def notify_database_escalation(self, failures: int, detail: str = "") -> None:
        """Notify when the database has been unreachable for `failures` probes in a row."""
        level = NotifyLevel.CRITICAL
        text = (
            f"{_EMOJI[level]} *Database outage* — `{self.service_name}`\n"
            f"Consecutive failed probes: {failures}\n"
        )
        if detail:
            text += f"Last error: {detail}\n"
        await self._send(text, level)

    # -- Low-level dispatch -------------------------------------------------

    async def _send(self, text: str, level: NotifyLevel) -> None:
        """Dispatch to all configured channels."""
        if not self._enabled:
            return
        tasks = []
        if self.slack_webhook:
            tasks.append(self._send_slack(text))
        if self.telegram_token and self.telegram_chat_id:
            tasks.append(self._send_telegram(text))
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.debug("Sent %s notification to %d channel(s)", level.value, len(tasks))

    async def _send_slack(self, text: str) -> None:
        """POST to Slack incoming webhook."""
        try:
            async with httpx.AsyncClient(timeout=10) as client:
                resp = await client.post(
                    self.slack_webhook,
                    json={"text": text, "mrkdwn": True},
                )
                if resp.status_code != 200:
                    logger.warning("Slack webhook returned %d: %s", resp.status_code, resp.text[:200])
        except Exception as exc:
            logger.warning("Slack notification failed: %s", exc)

    async def _send_telegram(self, text: str) -> None:
        """POST to Telegram Bot API."""
        url = f"https://api.telegram.org/bot{self.telegram_token}/sendMessage"
        try:
            async with httpx.AsyncClient(timeout=10) as client:
                resp = await client.post(
                    url,
                    json={
                        "chat_id": self.telegram_chat_id,
                        "text": text,
                        "parse_mode": "Markdown",
                    },
                )
                if resp.status_code != 200:
                    logger.warning("Telegram API returned %d: %s", resp.status_code, resp.text[:200])
        except Exception as exc:
            logger.warning("Telegram notification failed: %s", exc)
