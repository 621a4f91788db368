"""Operational alerts to a Telegram chat."""

from typing import Optional

import httpx

from hkdesk.config import Settings
from hkdesk.logging_config import get_logger

logger = get_logger("alert_service")

EMOJI = {"INFO": "ℹ️", "WARNING": "⚠️", "ERROR": "❌", "CRITICAL": "🔥"}


class AlertNotifier:
    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.bot_token = settings.alert_bot_token
        self.chat_id = settings.alert_chat_id
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.bot_token and self.chat_id)

    @staticmethod
    def format_alert(level: str, message: str, context: Optional[dict] = None) -> str:
        text = f"{EMOJI.get(level, '📢')} *{level}*\n\n{message}"
        if context:
            context_str = "\n".join(f"  {k}: {v}" for k, v in context.items())
            text += f"\n\n```\n{context_str}\n```"
        return text

    async def send(self, level: str, message: str, context: Optional[dict] = None) -> bool:
        """Send alert to Telegram.

        Args:
            level: INFO, WARNING, ERROR, CRITICAL
            message: Alert message
            context: Optional context dict

        Returns:
            True if sent successfully
        """
        if not self.enabled:
            logger.warning(f"Alert not configured: {level} - {message}")
            return False

        try:
            async with httpx.AsyncClient(timeout=10, transport=self._transport) as client:
                response = await client.post(
                    f"https://api.telegram.org/bot{self.bot_token}/sendMessage",
                    json={
                        "chat_id": self.chat_id,
                        "text": self.format_alert(level, message, context),
                        "parse_mode": "Markdown",
                    },
                )
                return response.status_code == 200
        except httpx.HTTPError as e:
            logger.error(f"Failed to send alert: {e}")
            return False

    async def error(self, message: str, context: Optional[dict] = None) -> bool:
        return await self.send("ERROR", message, context)
