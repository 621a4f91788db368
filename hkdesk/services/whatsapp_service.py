from dataclasses import dataclass
from typing import Optional

import httpx

from hkdesk.config import Settings
from hkdesk.logging_config import get_logger

logger = get_logger("whatsapp_service")


class WhatsAppError(Exception):
    """Raised when the WhatsApp Cloud API rejects a request or is misconfigured."""


@dataclass
class MediaDownload:
    content: bytes
    mime_type: Optional[str]
    file_size: Optional[int] = None


class WhatsAppClient:
    """Client for the WhatsApp Cloud API (outbound messages and inbound media)."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.access_token = settings.whatsapp_access_token
        self.default_phone_number_id = settings.whatsapp_phone_number_id
        self.base_url = f"{settings.whatsapp_api_base_url.rstrip('/')}/{settings.whatsapp_api_version}"
        self.timeout_seconds = settings.http_timeout_seconds
        self._transport = transport

    def _headers(self) -> dict:
        if not self.access_token:
            raise WhatsAppError("WHATSAPP_ACCESS_TOKEN is not set")
        return {"Authorization": f"Bearer {self.access_token}"}

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport)

    @staticmethod
    def build_message_body(to: str, text: Optional[str], image_url: Optional[str] = None) -> dict:
        """Build a Cloud API message body: image (with optional caption) or plain text."""
        if image_url:
            image = {"link": image_url}
            if text:
                image["caption"] = text
            return {"messaging_product": "whatsapp", "to": to, "type": "image", "image": image}
        return {"messaging_product": "whatsapp", "to": to, "type": "text", "text": {"body": text}}

    async def send_message(
        self,
        to: str,
        text: Optional[str] = None,
        phone_number_id: Optional[str] = None,
        image_url: Optional[str] = None,
    ) -> dict:
        """Send a text or image message. Raises WhatsAppError on any failure."""
        phone_number_id = phone_number_id or self.default_phone_number_id
        if not phone_number_id:
            raise WhatsAppError("WHATSAPP_PHONE_NUMBER_ID is not set")
        if not to:
            raise WhatsAppError('Recipient "to" is required')
        if not text and not image_url:
            raise WhatsAppError('Either "text" or "image_url" is required')

        body = self.build_message_body(to, text, image_url)
        url = f"{self.base_url}/{phone_number_id}/messages"
        try:
            async with self._client() as client:
                response = await client.post(url, headers=self._headers(), json=body)
        except httpx.HTTPError as exc:
            raise WhatsAppError(f"Failed to send WhatsApp message: {exc}") from exc

        logger.info(
            "WhatsApp send",
            extra={"context": {"to": to, "status": response.status_code, "type": body["type"]}},
        )
        if response.status_code >= 300:
            raise WhatsAppError(f"Failed to send WhatsApp message: {response.status_code} - {response.text}")
        return response.json()

    async def get_media_info(self, media_id: str) -> dict:
        """Resolve a media id into its temporary download URL and metadata."""
        if not media_id:
            raise WhatsAppError("media_id is required")
        async with self._client() as client:
            response = await client.get(f"{self.base_url}/{media_id}", headers=self._headers())
        if response.status_code >= 300:
            raise WhatsAppError(f"Failed to get media URL: {response.status_code} - {response.text}")
        return response.json()

    async def download_media(self, media_id: str) -> MediaDownload:
        info = await self.get_media_info(media_id)
        media_url = info.get("url")
        if not media_url:
            raise WhatsAppError(f"Media {media_id} has no download URL")

        async with self._client() as client:
            response = await client.get(media_url, headers=self._headers())
        if response.status_code >= 300:
            raise WhatsAppError(f"Failed to download media: {response.status_code}")

        logger.debug(f"Media downloaded: id={media_id}, bytes={len(response.content)}")
        return MediaDownload(
            content=response.content,
            mime_type=info.get("mime_type") or response.headers.get("content-type"),
            file_size=info.get("file_size"),
        )
