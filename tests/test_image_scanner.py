import asyncio
import json
import re

from hkdesk.services.history_service import ConversationHistoryStore
from hkdesk.services.image_scanner import ImageScanner, parse_image_urls
from hkdesk.services.llm import LLMError
from hkdesk.services.media_service import MediaStore
from tests.helpers import ScriptedLLM, reply


def seed(db_session):
    history = ConversationHistoryStore(db_session)
    history.append("biz-hk", "u1", image_url="https://desk/media/images/a.jpg")
    history.append("biz-hk", "u1", text="The lamp in 12", image_url="https://desk/media/images/b.jpg")
    history.append("biz-hk", "u1", text="Electrician notified", is_user=False)
    return history


class TestParseImageUrls:
    def test_plain_json(self):
        assert parse_image_urls('{"image_urls": ["u1", "u2"]}') == ["u1", "u2"]

    def test_fenced_json(self):
        assert parse_image_urls('```json\n{"image_urls": ["u1"]}\n```') == ["u1"]

    def test_wrong_shape(self):
        assert parse_image_urls('{"images": "u1"}') == []


class TestImageScanner:
    def test_keeps_only_known_urls(self, db_session):
        history = seed(db_session)
        llm = ScriptedLLM([reply('{"image_urls": ["https://desk/media/images/b.jpg", "https://evil/x.jpg"]}')])

        urls = asyncio.run(ImageScanner(llm).select_images(history, "biz-hk", "u1", "Lamp broken in 12"))

        assert urls == ["https://desk/media/images/b.jpg"]
        prompt = llm.calls[0]["messages"][1]["content"]
        assert "Lamp broken in 12" in prompt
        assert "[Image attached. Image URL: https://desk/media/images/a.jpg]" in prompt

    def test_no_images_skips_llm(self, db_session):
        history = ConversationHistoryStore(db_session)
        history.append("biz-hk", "u1", text="no photos here")
        llm = ScriptedLLM([])

        assert asyncio.run(ImageScanner(llm).select_images(history, "biz-hk", "u1", "x")) == []
        assert llm.calls == []

    def test_llm_error_yields_no_images(self, db_session):
        llm = ScriptedLLM([LLMError("OpenAI API error: 500")])

        assert asyncio.run(ImageScanner(llm).select_images(seed(db_session), "biz-hk", "u1", "x")) == []

    def test_unparseable_answer_yields_no_images(self, db_session):
        llm = ScriptedLLM([reply("the second one")])

        assert asyncio.run(ImageScanner(llm).select_images(seed(db_session), "biz-hk", "u1", "x")) == []

    def test_signed_link_maps_back_to_stored_reference(self, db_session, settings):
        media = MediaStore(settings)
        history = ConversationHistoryStore(db_session, media=media)
        history.append("biz-hk", "u1", text="Broken lamp", image_url="images/lamp.jpg")

        class AnswerWithShownUrl(ScriptedLLM):
            async def generate(self, messages, model=None, tools=None, temperature=None, max_tokens=1000):
                shown = re.search(r"Image URL: (\S+)\]", messages[1]["content"]).group(1)
                return reply(json.dumps({"image_urls": [shown]}))

        refs = asyncio.run(ImageScanner(AnswerWithShownUrl()).select_images(history, "biz-hk", "u1", "Lamp in 12"))

        assert refs == ["images/lamp.jpg"]
