import hashlib
import hmac
import mimetypes
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import quote
from uuid import uuid4

from hkdesk.config import Settings
from hkdesk.logging_config import get_logger
from hkdesk.services.whatsapp_service import WhatsAppClient

logger = get_logger("media_service")

IMAGE_SUBDIR = "images"


def guess_extension(mime_type: Optional[str], default: str = ".jpg") -> str:
    if not mime_type:
        return default
    base = mime_type.split(";")[0].strip().lower()
    if base == "image/jpeg":
        return ".jpg"
    return mimetypes.guess_extension(base) or default


def safe_media_id(value: Optional[str]) -> str:
    if not value:
        return uuid4().hex
    cleaned = re.sub(r"[^a-zA-Z0-9_-]", "", value)
    return cleaned or uuid4().hex


@dataclass
class StoredImage:
    caption: str
    path: Path
    filename: str
    media_id: str
    mime_type: str
    relative_path: str = ""


class MediaStore:
    """Local media directory whose files are exposed through signed public URLs."""

    def __init__(self, settings: Settings):
        self.base_dir = Path(settings.media_dir)
        self.public_base_url = settings.public_base_url.rstrip("/")
        self.signing_secret = settings.media_signing_secret
        self.ttl_seconds = settings.media_url_ttl_seconds

    def _sign(self, path: str, expires: int) -> str:
        payload = f"{path}:{expires}".encode("utf-8")
        return hmac.new(self.signing_secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()

    @staticmethod
    def normalize_path(path: str) -> str:
        normalized = (path or "").strip().lstrip("/")
        return normalized.replace("\\", "/")

    def relative_path(self, path: Path) -> str:
        return self.normalize_path(str(path.resolve().relative_to(self.base_dir.resolve())))

    def public_url(self, path: Path, *, now: Optional[int] = None) -> Optional[str]:
        """Signed URL for a file under the media directory."""
        return self.signed_url(self.relative_path(path), now=now)

    def signed_url(self, relative: str, *, now: Optional[int] = None) -> Optional[str]:
        if not self.signing_secret:
            logger.error("MEDIA_SIGNING_SECRET not configured")
            return None
        relative = self.normalize_path(relative)
        expires = int(now if now is not None else time.time()) + max(int(self.ttl_seconds), 60)
        signature = self._sign(relative, expires)
        return f"{self.public_base_url}/media/{quote(relative, safe='/')}?expires={expires}&sig={signature}"

    def link(self, reference: str, *, now: Optional[int] = None) -> str:
        """URL for a stored media reference, signed at call time.

        History stores the path relative to the media dir. Absolute http(s) URLs pass
        through unchanged; without a signing secret the reference is returned as is.
        """
        if reference.startswith(("http://", "https://")):
            return reference
        return self.signed_url(reference, now=now) or reference

    def verify(self, relative_path: str, expires: int, signature: str, *, now: Optional[int] = None) -> bool:
        if not self.signing_secret or not signature:
            return False
        now_ts = int(now if now is not None else time.time())
        if expires < now_ts:
            return False
        expected = self._sign(self.normalize_path(relative_path), expires)
        return hmac.compare_digest(expected, signature)

    def resolve(self, relative_path: str) -> Optional[Path]:
        """Absolute path of a stored file, or None when it escapes the media dir or is missing."""
        base_dir = self.base_dir.resolve()
        target = (base_dir / self.normalize_path(relative_path)).resolve()
        if base_dir not in target.parents:
            return None
        if not target.is_file():
            return None
        return target

    def save(self, subdir: str, filename: str, content: bytes) -> Path:
        target_dir = self.base_dir / subdir
        target_dir.mkdir(parents=True, exist_ok=True)
        target = target_dir / filename
        target.write_bytes(content)
        return target


class ImageDownloader:
    """Downloads inbound WhatsApp images into the media store."""

    def __init__(self, whatsapp: WhatsAppClient, store: MediaStore):
        self.whatsapp = whatsapp
        self.store = store

    async def download(self, media_id: str, caption: Optional[str] = None, mime_type: Optional[str] = None) -> StoredImage:
        media = await self.whatsapp.download_media(media_id)
        mime_type = mime_type or media.mime_type or "image/jpeg"
        filename = f"image_{safe_media_id(media_id)}_{int(time.time() * 1000)}{guess_extension(mime_type)}"
        path = self.store.save(IMAGE_SUBDIR, filename, media.content)
        logger.info("Image downloaded", extra={"context": {"path": str(path), "bytes": len(media.content)}})

        return StoredImage(
            caption=(caption or "").strip(),
            path=path,
            filename=filename,
            media_id=media_id,
            mime_type=mime_type,
            relative_path=self.store.relative_path(path),
        )


class ImageDescriber:
    """Short vision description of a stored image, used in the history placeholder."""

    PROMPT = (
        "Describe this photo from a hotel in one short sentence, focusing on any visible damage, "
        "malfunction or maintenance issue."
    )

    def __init__(self, llm, model: Optional[str] = None):
        self.llm = llm
        self.model = model

    async def describe(self, image: StoredImage) -> str:
        return await self.llm.describe_image(
            image_bytes=image.path.read_bytes(),
            mime_type=image.mime_type,
            prompt=self.PROMPT,
            model=self.model,
        )
