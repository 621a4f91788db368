import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Text, Uuid
from sqlalchemy.orm import relationship

from hkdesk.database import Base


class Message(Base):
    __tablename__ = "messages"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    chat_id = Column(Uuid(as_uuid=True), ForeignKey("chats.id"), nullable=False, index=True)
    text = Column(Text)
    image_url = Column(Text)
    image_description = Column(Text)
    is_user = Column(Boolean, nullable=False, default=True)
    external_id = Column(Text, index=True)  # inbound wamid, used to drop redeliveries
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)

    chat = relationship("Chat", back_populates="messages")
