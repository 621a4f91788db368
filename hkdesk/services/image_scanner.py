"""Pick recent conversation images that belong with an outgoing specialist message.

This is a heuristic: a second LLM call reads the formatted history and names the
relevant image URLs. The result is the stored media references of the picked
images (never the signed URLs), limited to images the requester actually sent.
"""

import json
from typing import List, Optional

from hkdesk.logging_config import get_logger
from hkdesk.services.history_service import ConversationHistoryStore, format_turn
from hkdesk.services.llm import LLMError, LLMProvider

logger = get_logger("image_scanner")

SCAN_INSTRUCTIONS = (
    "You receive a conversation between a hotel housekeeper (user) and an assistant, and a message "
    "that is about to be sent to a maintenance specialist. Images appear inline as "
    "'[Image attached ... Image URL: <url>]'. Pick the images that show the problem described in the "
    'outgoing message. Answer only with JSON: {"image_urls": ["<url>", ...]}. '
    'Use {"image_urls": []} when none are relevant.'
)


def parse_image_urls(raw: str) -> List[str]:
    text = (raw or "").strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:]
    data = json.loads(text)
    urls = data.get("image_urls") if isinstance(data, dict) else None
    if not isinstance(urls, list):
        return []
    return [url for url in urls if isinstance(url, str)]


class ImageScanner:
    def __init__(self, llm: LLMProvider, history_limit: int = 10, model: Optional[str] = None):
        self.llm = llm
        self.history_limit = history_limit
        self.model = model

    async def select_images(
        self,
        history: ConversationHistoryStore,
        business_id: str,
        user_id: str,
        outgoing_message: str,
    ) -> List[str]:
        messages = history.get_history(business_id, user_id, self.history_limit)
        candidates = [m.image_url for m in messages if m.is_user and m.image_url]
        if not candidates:
            return []

        # Each reference is signed once; the model answers with those URLs.
        links = {ref: history.link_media(ref) for ref in {m.image_url for m in messages if m.image_url}}
        by_url = {url: ref for ref, url in links.items()}
        turns = [format_turn(m, links.__getitem__) for m in messages]
        transcript = "\n".join(f"{turn.role}: {turn.content}" for turn in turns)
        prompt = [
            {"role": "system", "content": SCAN_INSTRUCTIONS},
            {"role": "user", "content": f"Conversation:\n{transcript}\n\nOutgoing message:\n{outgoing_message}"},
        ]
        try:
            response = await self.llm.generate(prompt, model=self.model, max_tokens=400)
            selected = parse_image_urls(response.content)
        except (LLMError, ValueError) as exc:
            logger.warning(f"Image scan failed, sending without images: {exc}")
            return []

        allowed = set(candidates)
        refs = (by_url.get(url, url) for url in selected)
        picked = [ref for ref in dict.fromkeys(refs) if ref in allowed]
        logger.info("Image scan", extra={"context": {"candidates": len(candidates), "picked": len(picked)}})
        return picked
