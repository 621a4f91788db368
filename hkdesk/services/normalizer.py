"""Turn one inbound WhatsApp message of any type into a text task for the agent."""

from dataclasses import dataclass
from typing import Optional

import httpx

from hkdesk.logging_config import get_logger
from hkdesk.schemas.webhook import WhatsAppMessage
from hkdesk.services.history_service import ConversationHistoryStore
from hkdesk.services.llm import LLMError
from hkdesk.services.media_service import ImageDescriber, ImageDownloader
from hkdesk.services.transcription_service import AudioTranscriber
from hkdesk.services.whatsapp_service import WhatsAppError

logger = get_logger("normalizer")

AUDIO_FAILED_MARKER = "[Audio transcription failed]"


@dataclass
class Attachment:
    local_path: str
    mime_type: str
    media_ref: str


@dataclass
class NormalizedMessage:
    message_text: str
    attachment: Optional[Attachment] = None
    description: Optional[str] = None

    @property
    def image_url(self) -> Optional[str]:
        if not self.attachment:
            return None
        return self.attachment.media_ref


class MessageNormalizer:
    def __init__(
        self,
        transcriber: AudioTranscriber,
        image_downloader: ImageDownloader,
        history: ConversationHistoryStore,
        describer: Optional[ImageDescriber] = None,
    ):
        self.transcriber = transcriber
        self.image_downloader = image_downloader
        self.history = history
        self.describer = describer

    async def normalize(
        self, message: WhatsAppMessage, business_id: str, user_id: str
    ) -> Optional[NormalizedMessage]:
        """Text task for the message, or None when no agent turn should run."""
        if message.type == "text":
            body = (message.text.body if message.text else "").strip()
            if not body:
                logger.info("Empty text message skipped", extra={"context": {"wamid": message.id}})
                return None
            return NormalizedMessage(message_text=body)

        if message.type == "audio":
            return NormalizedMessage(message_text=await self._transcribe(message))

        if message.type == "image":
            return await self._normalize_image(message, business_id, user_id)

        logger.info(f"Unsupported message type skipped: {message.type}", extra={"context": {"wamid": message.id}})
        return None

    async def _transcribe(self, message: WhatsAppMessage) -> str:
        if not message.audio:
            logger.warning("Audio message without media", extra={"context": {"wamid": message.id}})
            return AUDIO_FAILED_MARKER
        try:
            transcript = await self.transcriber.transcribe(message.audio.id, message.audio.mime_type)
        except Exception as exc:
            # Any failure degrades to the marker text.
            logger.error(f"Failed to transcribe audio: {exc}", extra={"context": {"wamid": message.id}})
            return AUDIO_FAILED_MARKER
        logger.info("Audio transcribed", extra={"context": {"wamid": message.id, "chars": len(transcript)}})
        return transcript

    async def _normalize_image(
        self, message: WhatsAppMessage, business_id: str, user_id: str
    ) -> Optional[NormalizedMessage]:
        if not message.image:
            logger.warning("Image message without media", extra={"context": {"wamid": message.id}})
            return None
        try:
            image = await self.image_downloader.download(
                message.image.id, message.image.caption, message.image.mime_type
            )
        except (WhatsAppError, httpx.HTTPError, OSError) as exc:
            logger.error(f"Failed to download image: {exc}", extra={"context": {"wamid": message.id}})
            return None

        description = None
        if self.describer:
            try:
                description = await self.describer.describe(image) or None
            except (LLMError, httpx.HTTPError, OSError) as exc:
                logger.warning(f"Image description failed: {exc}")

        normalized = NormalizedMessage(
            message_text=image.caption,
            attachment=Attachment(
                local_path=str(image.path), mime_type=image.mime_type, media_ref=image.relative_path
            ),
            description=description,
        )
        if normalized.message_text:
            return normalized

        # No caption: keep the image in history but do not run the agent.
        stored = self.history.append(
            business_id,
            user_id,
            image_url=normalized.image_url,
            image_description=description,
            is_user=True,
            external_id=message.id,
        )
        if not stored.ok:
            logger.error(f"Failed to store captionless image: {stored.error}")
        logger.info("Image without caption stored, no agent run", extra={"context": {"wamid": message.id}})
        return None
