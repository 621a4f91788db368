import uuid

from sqlalchemy import Boolean, Column, DateTime, Text, Uuid

from hkdesk.database import Base


class Ticket(Base):
    __tablename__ = "tickets"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    description = Column(Text, nullable=False)
    opened_by_phone_number = Column(Text, nullable=False)
    latest = Column(Text, nullable=False, default="")
    is_open = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "description": self.description,
            "opened_by_phone_number": self.opened_by_phone_number,
            "latest": self.latest,
            "is_open": self.is_open,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
