import httpx

from hkdesk.logging_config import get_logger
from hkdesk.services.alert_service import AlertNotifier
from hkdesk.services.history_service import ConversationHistoryStore
from hkdesk.services.whatsapp_service import WhatsAppClient, WhatsAppError

logger = get_logger("response_service")

FALLBACK_REPLY = "Sorry, I encountered an error processing your request. Please try again."


class ResponseDispatcher:
    """Sends one reply per inbound message and records it as an assistant message."""

    def __init__(self, whatsapp: WhatsAppClient, history: ConversationHistoryStore, alerts: AlertNotifier):
        self.whatsapp = whatsapp
        self.history = history
        self.alerts = alerts

    async def deliver(self, sender_phone: str, sender_user_id: str, business_id: str, text: str) -> bool:
        """Send and persist `text`. The message is stored even when the send fails; no retries."""
        sent = False
        try:
            await self.whatsapp.send_message(to=sender_phone, text=text, phone_number_id=business_id)
            sent = True
            logger.info("Reply sent", extra={"context": {"to": sender_phone, "business_id": business_id}})
        except (WhatsAppError, httpx.HTTPError, ValueError) as exc:
            logger.error(
                "Failed to send reply",
                extra={"context": {"to": sender_phone, "business_id": business_id, "error": str(exc)}},
            )

        stored = self.history.append(business_id, sender_user_id, text=text, is_user=False)
        if not stored.ok:
            logger.error(
                "Failed to store reply",
                extra={"context": {"user_id": sender_user_id, "business_id": business_id, "error": stored.error}},
            )
            await self.alerts.error(
                "Failed to store outbound message",
                {"business_id": business_id, "user_id": sender_user_id, "error": stored.error},
            )
        return sent

    async def deliver_fallback(
        self, sender_phone: str, sender_user_id: str, business_id: str, reason: str | None = None
    ) -> bool:
        await self.alerts.error(
            "Agent run failed, fallback reply sent",
            {"business_id": business_id, "user_id": sender_user_id, "error": reason or "unknown"},
        )
        return await self.deliver(sender_phone, sender_user_id, business_id, FALLBACK_REPLY)
