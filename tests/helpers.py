"""Fakes and payload builders shared by the tests."""

import copy
import json
from typing import List, Optional

from hkdesk.services.alert_service import AlertNotifier
from hkdesk.services.directory_service import PersonDirectory
from hkdesk.services.llm import LLMProvider, LLMResponse, ToolCall
from hkdesk.services.media_service import MediaStore
from hkdesk.services.pipeline import SharedServices
from hkdesk.services.whatsapp_service import MediaDownload, WhatsAppError


class FakeWhatsApp:
    """Records sends; optionally fails them."""

    def __init__(self, fail_sends: bool = False, media: Optional[MediaDownload] = None):
        self.fail_sends = fail_sends
        self.media = media or MediaDownload(content=b"\xff\xd8jpeg-bytes", mime_type="image/jpeg")
        self.sent: List[dict] = []
        self.download_error: Optional[Exception] = None

    async def send_message(self, to, text=None, phone_number_id=None, image_url=None):
        self.sent.append({"to": to, "text": text, "phone_number_id": phone_number_id, "image_url": image_url})
        if self.fail_sends:
            raise WhatsAppError("Failed to send WhatsApp message: 500 - boom")
        return {"messages": [{"id": f"wamid.out.{len(self.sent)}"}]}

    async def download_media(self, media_id):
        if self.download_error:
            raise self.download_error
        return self.media


class ScriptedLLM(LLMProvider):
    """Returns queued responses in order; an Exception in the queue is raised instead."""

    def __init__(self, responses=None, transcript: str = "", transcribe_error: Optional[Exception] = None):
        self.responses = list(responses or [])
        self.transcript = transcript
        self.transcribe_error = transcribe_error
        self.calls: List[dict] = []

    async def generate(self, messages, model=None, tools=None, temperature=None, max_tokens=1000):
        self.calls.append({"messages": copy.deepcopy(messages), "model": model, "tools": tools})
        if not self.responses:
            raise AssertionError("ScriptedLLM ran out of responses")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def transcribe_audio(self, *, audio_bytes, filename, mime_type=None, model=None, language=None):
        if self.transcribe_error:
            raise self.transcribe_error
        return self.transcript


def reply(text: str, usage: Optional[dict] = None) -> LLMResponse:
    return LLMResponse(content=text, model="gpt-test", usage=usage or {"total_tokens": 10})


def tool_call(name: str, arguments: dict, call_id: str = "call_1") -> LLMResponse:
    return LLMResponse(
        content="",
        model="gpt-test",
        usage={"total_tokens": 5},
        tool_calls=[ToolCall(id=call_id, name=name, arguments=json.dumps(arguments))],
    )


def webhook_payload(messages: List[dict], phone_number_id: str = "biz-hk", contacts: Optional[List[dict]] = None):
    if contacts is None:
        contacts = [{"wa_id": messages[0]["from"], "profile": {"name": "Maria"}}] if messages else []
    return {
        "object": "whatsapp_business_account",
        "entry": [
            {
                "id": "waba-1",
                "changes": [
                    {
                        "field": "messages",
                        "value": {
                            "messaging_product": "whatsapp",
                            "metadata": {"display_phone_number": "15550001111", "phone_number_id": phone_number_id},
                            "contacts": contacts,
                            "messages": messages,
                        },
                    }
                ],
            }
        ],
    }


def text_message(body: str, wamid: str = "wamid.1", sender: str = "972509999999") -> dict:
    return {"from": sender, "id": wamid, "timestamp": "1700000000", "type": "text", "text": {"body": body}}


def shared_services(settings, whatsapp, llm, alerts=None):
    return SharedServices(
        settings=settings,
        llm=llm,
        whatsapp=whatsapp,
        people=PersonDirectory(settings.people_directory_path),
        media=MediaStore(settings),
        alerts=alerts or AlertNotifier(settings),
    )
