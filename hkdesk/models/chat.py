import uuid

from sqlalchemy import Column, DateTime, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from hkdesk.database import Base


class Chat(Base):
    __tablename__ = "chats"
    __table_args__ = (UniqueConstraint("business_id", "user_id", name="uq_chats_business_user"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_id = Column(Text, nullable=False)  # WhatsApp phone_number_id that received the message
    user_id = Column(Text, nullable=False)  # sender wa_id
    created_at = Column(DateTime(timezone=True), nullable=False)

    messages = relationship("Message", back_populates="chat")
