from hkdesk.schemas.webhook import WebhookAck, WebhookEnvelope, WhatsAppMessage

__all__ = ["WebhookAck", "WebhookEnvelope", "WhatsAppMessage"]
