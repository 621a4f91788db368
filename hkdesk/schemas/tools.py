from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ProfessionType(str, Enum):
    ELECTRICIAN = "Electrician"
    PLUMBER = "Plumber"
    FOOD_AND_BEVERAGE = "Food & Beverage"
    BLACKSMITH = "Blacksmith"
    RECEPTIONIST = "Receptionist"


class Person(BaseModel):
    name: str
    phone: str
    type: ProfessionType


class GetPersonInput(BaseModel):
    type: ProfessionType = Field(..., description="The type/profession of the person to contact")


class GetOpenTicketsInput(BaseModel):
    pass


class CreateTicketInput(BaseModel):
    description: str = Field(
        ...,
        min_length=1,
        description=(
            "Extensive description of the maintenance issue including: room number, specific problem details, "
            "what needs to be fixed/delivered, and any relevant context. Be thorough and specific."
        ),
    )
    opened_by_phone_number: str = Field(..., description="Phone number of the housekeeper who reported the issue")
    latest: str = Field(
        ...,
        description=(
            "Latest action taken or current status, e.g. 'Contacted <specialist> via WhatsApp, "
            "specialist notified and will address the issue shortly'."
        ),
    )


class UpdateTicketInput(BaseModel):
    ticket_id: str = Field(
        ..., description="The UUID of the ticket to update. Use get_open_tickets first to find the correct ticket ID."
    )
    description: Optional[str] = Field(
        None, description="Updated description of the maintenance issue (only if it needs to change)"
    )
    opened_by_phone_number: Optional[str] = Field(
        None, description="Updated phone number of the person who opened the ticket (rarely needed)"
    )
    latest: Optional[str] = Field(
        None,
        description=(
            "Cumulative summary of everything that happened on this ticket: contacts, progress updates, "
            "completion status and other important details."
        ),
    )
    is_open: Optional[bool] = Field(
        None, description="Whether the ticket stays open (true) or is closed (false). Set false when resolved."
    )

    def changes(self) -> dict:
        """Only the fields the caller actually supplied."""
        fields = ("description", "opened_by_phone_number", "latest", "is_open")
        return {name: getattr(self, name) for name in fields if getattr(self, name) is not None}


class SendMessageToSpecialistInput(BaseModel):
    message: str = Field(..., min_length=1, description="The message to send")
    phone_number: str = Field(..., description="The phone number of the recipient")
    include_recent_images: bool = Field(
        False,
        description="Also forward images the requester sent recently in this conversation that relate to the issue",
    )
