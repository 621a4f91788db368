import asyncio
import json

import httpx

from hkdesk.services.alert_service import AlertNotifier


def notifier(settings, handler):
    settings.alert_bot_token = "bot-token"
    settings.alert_chat_id = "chat-1"
    return AlertNotifier(settings, transport=httpx.MockTransport(handler))


class TestSendAlert:
    def test_returns_false_when_not_configured(self, settings):
        alerts = AlertNotifier(settings)

        assert alerts.enabled is False
        assert asyncio.run(alerts.error("Test message")) is False

    def test_sends_alert_to_telegram(self, settings):
        captured = {}

        def handler(request):
            captured["url"] = str(request.url)
            captured["json"] = json.loads(request.content)
            return httpx.Response(200, json={"ok": True})

        result = asyncio.run(notifier(settings, handler).error("Agent run failed"))

        assert result is True
        assert captured["url"] == "https://api.telegram.org/botbot-token/sendMessage"
        assert captured["json"]["chat_id"] == "chat-1"
        assert "ERROR" in captured["json"]["text"]

    def test_includes_context_in_message(self, settings):
        texts = []

        def handler(request):
            texts.append(json.loads(request.content)["text"])
            return httpx.Response(200)

        asyncio.run(notifier(settings, handler).send("CRITICAL", "db down", {"business_id": "biz-hk"}))

        assert "CRITICAL" in texts[0]
        assert "business_id: biz-hk" in texts[0]

    def test_returns_false_on_telegram_error(self, settings):
        result = asyncio.run(notifier(settings, lambda r: httpx.Response(400)).error("x"))
        assert result is False

    def test_returns_false_on_network_error(self, settings):
        def handler(request):
            raise httpx.ConnectError("Network error")

        assert asyncio.run(notifier(settings, handler).error("x")) is False


class TestFormatAlert:
    def test_without_context(self):
        assert AlertNotifier.format_alert("INFO", "hello") == "ℹ️ *INFO*\n\nhello"

    def test_unknown_level_uses_default_icon(self):
        assert AlertNotifier.format_alert("DEBUG", "x").startswith("📢")
