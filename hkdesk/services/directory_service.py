import json
from pathlib import Path
from typing import List, Optional
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hkdesk.logging_config import get_logger
from hkdesk.models import Ticket
from hkdesk.schemas.tools import Person, ProfessionType
from hkdesk.services.clock import next_timestamp
from hkdesk.services.result import Result

logger = get_logger("directory_service")


class PersonDirectory:
    """Read-only specialist directory backed by a JSON file."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> List[Person]:
        data = json.loads(self.path.read_text(encoding="utf-8"))
        return [Person.model_validate(item) for item in data]

    def find_by_type(self, profession: ProfessionType) -> List[Person]:
        """People of the given profession. Any load failure yields an empty list."""
        try:
            people = self.load()
        except (OSError, ValueError, ValidationError) as exc:
            logger.error(f"Failed to load people directory {self.path}: {exc}")
            return []
        return [person for person in people if person.type == profession]


def _parse_ticket_id(ticket_id: str) -> Optional[UUID]:
    try:
        return UUID(str(ticket_id))
    except (TypeError, ValueError):
        return None


class TicketRepository:
    def __init__(self, db: Session):
        self.db = db

    def create(self, description: str, opened_by_phone_number: str, latest: str = "") -> Result[Ticket]:
        ticket = Ticket(
            description=description,
            opened_by_phone_number=opened_by_phone_number,
            latest=latest,
            is_open=True,
            created_at=next_timestamp(),
        )
        try:
            self.db.add(ticket)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(f"Error creating ticket: {exc}")
            return Result.from_exception(exc, "db_error")

        logger.info("Ticket created", extra={"context": {"ticket_id": str(ticket.id)}})
        return Result.success(ticket)

    def list_open(self) -> Result[List[Ticket]]:
        """Open tickets, newest first."""
        try:
            tickets = (
                self.db.query(Ticket)
                .filter(Ticket.is_open.is_(True))
                .order_by(Ticket.created_at.desc())
                .all()
            )
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(f"Error fetching open tickets: {exc}")
            return Result.from_exception(exc, "db_error")

        logger.debug(f"Found {len(tickets)} open tickets")
        return Result.success(tickets)

    def get(self, ticket_id: str) -> Optional[Ticket]:
        parsed = _parse_ticket_id(ticket_id)
        if parsed is None:
            return None
        return self.db.query(Ticket).filter(Ticket.id == parsed).first()

    def update(self, ticket_id: str, changes: dict) -> Result[Ticket]:
        """Partial update; only keys present in `changes` are written."""
        if not changes:
            return Result.failure("No fields provided to update", "no_fields")

        try:
            ticket = self.get(ticket_id)
            if ticket is None:
                return Result.failure("Ticket not found", "not_found")
            for field, value in changes.items():
                setattr(ticket, field, value)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(f"Error updating ticket {ticket_id}: {exc}")
            return Result.from_exception(exc, "db_error")

        logger.info("Ticket updated", extra={"context": {"ticket_id": ticket_id, "fields": list(changes)}})
        return Result.success(ticket)
