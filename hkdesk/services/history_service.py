"""Conversation history: one Chat per (business, sender), append-only Messages."""

import uuid
from dataclasses import dataclass
from typing import Callable, List, Optional

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from hkdesk.logging_config import get_logger
from hkdesk.models import Chat, Message
from hkdesk.services.clock import next_timestamp
from hkdesk.services.media_service import MediaStore
from hkdesk.services.result import Result

logger = get_logger("history_service")

DEFAULT_HISTORY_LIMIT = 10


class ChatCreationConflict(Exception):
    """Chat creation lost a race against a concurrent insert for the same key."""

    def __init__(self, business_id: str, user_id: str):
        self.business_id = business_id
        self.user_id = user_id
        super().__init__(f"Chat creation conflict for business_id={business_id}, user_id={user_id}")


@dataclass
class Turn:
    role: str  # user | assistant
    content: str
    timestamp: Optional[str] = None

    def to_message(self) -> dict:
        return {"role": self.role, "content": self.content}


def image_placeholder(image_url: str, description: Optional[str] = None) -> str:
    if description:
        return f"[Image attached with {description}. Image URL: {image_url}]"
    return f"[Image attached. Image URL: {image_url}]"


def format_turn(message: Message, link: Optional[Callable[[str], str]] = None) -> Turn:
    """Turn for the agent; `link` turns the stored media reference into a usable URL."""
    content = message.text or ""
    if message.image_url:
        image_url = link(message.image_url) if link else message.image_url
        placeholder = image_placeholder(image_url, message.image_description)
        content = f"{content} {placeholder}" if content else placeholder
    return Turn(
        role="user" if message.is_user else "assistant",
        content=content,
        timestamp=message.created_at.isoformat() if message.created_at else None,
    )


class ConversationHistoryStore:
    def __init__(
        self, db: Session, default_limit: int = DEFAULT_HISTORY_LIMIT, media: Optional[MediaStore] = None
    ):
        self.db = db
        self.default_limit = default_limit
        self.media = media

    def link_media(self, reference: str) -> str:
        return self.media.link(reference) if self.media else reference

    def find_chat(self, business_id: str, user_id: str) -> Optional[Chat]:
        return self.db.query(Chat).filter(Chat.business_id == business_id, Chat.user_id == user_id).first()

    def _insert_chat(self, business_id: str, user_id: str) -> None:
        values = {
            "id": uuid.uuid4(),
            "business_id": business_id,
            "user_id": user_id,
            "created_at": next_timestamp(),
        }
        dialect = self.db.get_bind().dialect.name
        if dialect in ("postgresql", "sqlite"):
            insert = pg_insert if dialect == "postgresql" else sqlite_insert
            stmt = insert(Chat).values(**values).on_conflict_do_nothing(index_elements=["business_id", "user_id"])
            self.db.execute(stmt)
            return

        try:
            with self.db.begin_nested():
                self.db.add(Chat(**values))
        except IntegrityError as exc:
            raise ChatCreationConflict(business_id, user_id) from exc

    def get_or_create_chat(self, business_id: str, user_id: str) -> Chat:
        """Find the chat or create it. Raises ChatCreationConflict if the row is still missing afterwards."""
        chat = self.find_chat(business_id, user_id)
        if chat:
            return chat

        self._insert_chat(business_id, user_id)
        chat = self.find_chat(business_id, user_id)
        if chat is None:
            raise ChatCreationConflict(business_id, user_id)
        logger.info("Chat created", extra={"context": {"business_id": business_id, "user_id": user_id}})
        return chat

    def get_history(self, business_id: str, user_id: str, limit: Optional[int] = None) -> List[Message]:
        """Last `limit` messages of the chat, oldest first."""
        limit = self.default_limit if limit is None else limit
        if limit <= 0:
            return []
        try:
            chat = self.find_chat(business_id, user_id)
            if not chat:
                logger.debug(f"No chat found for business_id={business_id}, user_id={user_id}")
                return []
            rows = (
                self.db.query(Message)
                .filter(Message.chat_id == chat.id)
                .order_by(Message.created_at.desc())
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as exc:
            logger.error(
                "History lookup failed",
                extra={"context": {"business_id": business_id, "user_id": user_id, "error": str(exc)}},
            )
            self.db.rollback()
            return []

        # Reverse to get chronological order
        return list(reversed(rows))

    def get_turns(self, business_id: str, user_id: str, limit: Optional[int] = None) -> List[Turn]:
        messages = self.get_history(business_id, user_id, limit)
        turns = [format_turn(message, self.link_media) for message in messages]
        logger.info(f"Retrieved {len(turns)} previous messages for context")
        return turns

    def has_inbound(self, business_id: str, user_id: str, external_id: Optional[str]) -> bool:
        """True if an inbound message with this WhatsApp id is already stored."""
        if not external_id:
            return False
        try:
            chat = self.find_chat(business_id, user_id)
            if not chat:
                return False
            found = (
                self.db.query(Message.id)
                .filter(Message.chat_id == chat.id, Message.external_id == external_id)
                .first()
            )
        except SQLAlchemyError as exc:
            logger.error(f"Duplicate check failed: {exc}")
            self.db.rollback()
            return False
        return found is not None

    def append(
        self,
        business_id: str,
        user_id: str,
        *,
        text: Optional[str] = None,
        image_url: Optional[str] = None,
        image_description: Optional[str] = None,
        is_user: bool = True,
        external_id: Optional[str] = None,
    ) -> Result[Message]:
        if not text and not image_url:
            return Result.failure("Message needs text or image_url", "empty_message")

        try:
            try:
                chat = self.get_or_create_chat(business_id, user_id)
            except ChatCreationConflict:
                logger.warning(
                    "Chat creation race lost, retrying lookup",
                    extra={"context": {"business_id": business_id, "user_id": user_id}},
                )
                chat = self.find_chat(business_id, user_id)
                if chat is None:
                    raise

            message = Message(
                chat_id=chat.id,
                text=text,
                image_url=image_url,
                image_description=image_description,
                is_user=is_user,
                external_id=external_id,
                created_at=next_timestamp(),
            )
            self.db.add(message)
            self.db.commit()
        except (SQLAlchemyError, ChatCreationConflict) as exc:
            self.db.rollback()
            logger.error(
                "Failed to store message",
                extra={"context": {"business_id": business_id, "user_id": user_id, "error": str(exc)}},
            )
            return Result.from_exception(exc, "db_error")

        logger.debug(f"Message stored: chat_id={chat.id}, is_user={is_user}")
        return Result.success(message)
