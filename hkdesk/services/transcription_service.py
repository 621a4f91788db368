import time
from pathlib import Path
from typing import Optional

from hkdesk.config import Settings
from hkdesk.logging_config import get_logger
from hkdesk.services.llm import OpenAIProvider
from hkdesk.services.media_service import safe_media_id
from hkdesk.services.whatsapp_service import WhatsAppClient

logger = get_logger("transcription_service")

AUDIO_SUBDIR = "audio"


def audio_extension(mime_type: Optional[str]) -> str:
    mime_type = (mime_type or "").lower()
    if "mpeg" in mime_type:
        return ".mp3"
    if "wav" in mime_type:
        return ".wav"
    if "m4a" in mime_type or "mp4" in mime_type:
        return ".m4a"
    return ".ogg"


class AudioTranscriber:
    """Downloads a WhatsApp voice note and transcribes it with OpenAI speech-to-text."""

    def __init__(self, settings: Settings, whatsapp: WhatsAppClient, llm: OpenAIProvider):
        self.whatsapp = whatsapp
        self.llm = llm
        self.model = settings.transcription_model
        self.language = settings.transcription_language
        self.download_dir = Path(settings.media_dir) / AUDIO_SUBDIR

    async def transcribe(self, media_id: str, mime_type: Optional[str] = None) -> str:
        """Return the transcript. Raises on download or transcription failure."""
        media = await self.whatsapp.download_media(media_id)
        mime_type = mime_type or media.mime_type
        stamp = int(time.time() * 1000)
        filename = f"whatsapp_audio_{safe_media_id(media_id)}_{stamp}{audio_extension(mime_type)}"

        self.download_dir.mkdir(parents=True, exist_ok=True)
        path = self.download_dir / filename
        path.write_bytes(media.content)
        logger.debug(f"Audio saved: {path} ({len(media.content)} bytes)")

        try:
            transcript = await self.llm.transcribe_audio(
                audio_bytes=media.content,
                filename=filename,
                mime_type=mime_type,
                model=self.model,
                language=self.language,
            )
        finally:
            try:
                path.unlink()
            except OSError as exc:
                logger.warning(f"Failed to delete audio file {path}: {exc}")

        if not transcript:
            raise ValueError("empty transcript")
        return transcript
