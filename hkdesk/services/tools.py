"""Tools the agent may call.

Every tool is one `Tool` entry: a name, a pydantic input model (its JSON schema is
what the model sees) and an async `execute`. Results are plain dict envelopes with
`success` and a human readable `message`; failures are returned, not raised, so the
agent can react to them.
"""

import json
import re
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional, Type

from pydantic import BaseModel, ValidationError

from hkdesk.logging_config import get_logger
from hkdesk.schemas.tools import (
    CreateTicketInput,
    GetOpenTicketsInput,
    GetPersonInput,
    SendMessageToSpecialistInput,
    UpdateTicketInput,
)
from hkdesk.services.directory_service import PersonDirectory, TicketRepository
from hkdesk.services.history_service import ConversationHistoryStore
from hkdesk.services.image_scanner import ImageScanner
from hkdesk.services.whatsapp_service import WhatsAppClient

logger = get_logger("tools")

GET_PERSON = "get_person"
GET_OPEN_TICKETS = "get_open_tickets"
CREATE_TICKET = "create_ticket"
UPDATE_TICKET = "update_ticket"
SEND_MESSAGE_TO_SPECIALIST = "send_message_to_specialist"

ALL_TOOL_NAMES = (GET_PERSON, GET_OPEN_TICKETS, CREATE_TICKET, UPDATE_TICKET, SEND_MESSAGE_TO_SPECIALIST)


@dataclass
class ToolContext:
    """Per-message collaborators and identity handed to every tool call."""

    people: PersonDirectory
    tickets: TicketRepository
    whatsapp: WhatsAppClient
    history: ConversationHistoryStore
    business_id: str
    user_id: str
    sender_phone: str
    outbound_phone_number_id: Optional[str] = None
    image_scanner: Optional[ImageScanner] = None


def failure(error: str, message: str, **payload) -> dict:
    return {"success": False, "error": error, "message": message, **payload}


def digits_only(phone: str) -> str:
    return re.sub(r"\D", "", phone or "")


def _inline_refs(schema: dict) -> dict:
    """Replace pydantic `$ref`s with their `$defs` bodies; function schemas must be self contained."""
    defs = schema.pop("$defs", {})

    def resolve(node):
        if isinstance(node, dict):
            ref = node.get("$ref")
            if ref and ref.startswith("#/$defs/"):
                return resolve(dict(defs[ref.split("/")[-1]]))
            return {key: resolve(value) for key, value in node.items()}
        if isinstance(node, list):
            return [resolve(item) for item in node]
        return node

    return resolve(schema)


@dataclass(frozen=True)
class Tool:
    name: str
    description: str
    input_model: Type[BaseModel]
    execute: Callable[[ToolContext, BaseModel], Awaitable[dict]]

    def to_openai_schema(self) -> dict:
        parameters = _inline_refs(self.input_model.model_json_schema())
        parameters.pop("title", None)
        parameters.setdefault("properties", {})
        return {
            "type": "function",
            "function": {"name": self.name, "description": self.description, "parameters": parameters},
        }

    async def invoke(self, context: ToolContext, raw_arguments: str | dict | None) -> dict:
        """Validate arguments and run the tool. Never raises."""
        try:
            arguments = json.loads(raw_arguments or "{}") if isinstance(raw_arguments, str) else raw_arguments or {}
            args = self.input_model.model_validate(arguments)
        except (ValueError, ValidationError) as exc:
            logger.warning(f"[Tool:{self.name}] invalid arguments: {exc}")
            return failure("invalid_arguments", f"Invalid arguments for {self.name}: {exc}")

        try:
            return await self.execute(context, args)
        except Exception as exc:
            logger.error(f"[Tool:{self.name}] exception", exc_info=True)
            return failure(str(exc) or exc.__class__.__name__, f"{self.name} failed: {exc}")


async def get_person(context: ToolContext, args: GetPersonInput) -> dict:
    logger.info(f"[Tool:{GET_PERSON}] executing", extra={"context": {"type": args.type.value}})
    people = [person.model_dump(mode="json") for person in context.people.find_by_type(args.type)]
    return {
        "success": True,
        "people": people,
        "count": len(people),
        "message": f"Found {len(people)} {args.type.value} contact(s)",
    }


async def get_open_tickets(context: ToolContext, args: GetOpenTicketsInput) -> dict:
    result = context.tickets.list_open()
    if not result.ok:
        logger.error(f"[Tool:{GET_OPEN_TICKETS}] error: {result.error}")
        return failure(result.error, f"Failed to load open tickets: {result.error}", tickets=[], count=0)

    tickets = [ticket.to_dict() for ticket in result.value]
    return {
        "success": True,
        "tickets": tickets,
        "count": len(tickets),
        "message": f"{len(tickets)} open ticket(s)",
    }


async def create_ticket(context: ToolContext, args: CreateTicketInput) -> dict:
    logger.info(
        f"[Tool:{CREATE_TICKET}] executing",
        extra={"context": {"description": args.description[:100], "phone": args.opened_by_phone_number}},
    )
    result = context.tickets.create(args.description, args.opened_by_phone_number, args.latest)
    if not result.ok:
        return failure(result.error, f"Failed to create ticket: {result.error}")

    ticket = result.value.to_dict()
    return {"success": True, "ticket": ticket, "message": f"Ticket created successfully with ID: {ticket['id']}"}


async def update_ticket(context: ToolContext, args: UpdateTicketInput) -> dict:
    changes = args.changes()
    if not changes:
        return failure("No fields provided to update", "At least one field must be provided to update the ticket")

    result = context.tickets.update(args.ticket_id, changes)
    if not result.ok:
        if result.error_code == "not_found":
            return failure("Ticket not found", f"No ticket found with ID: {args.ticket_id}")
        return failure(result.error, f"Failed to update ticket: {result.error}")

    fields = list(changes)
    return {
        "success": True,
        "ticket": result.value.to_dict(),
        "updated_fields": fields,
        "message": f"Ticket {args.ticket_id} updated successfully. Updated fields: {', '.join(fields)}",
    }


async def send_message_to_specialist(context: ToolContext, args: SendMessageToSpecialistInput) -> dict:
    # Send errors propagate; Tool.invoke turns them into a failure envelope.
    await context.whatsapp.send_message(
        to=args.phone_number,
        text=args.message,
        phone_number_id=context.outbound_phone_number_id,
    )
    logger.info(f"[Tool:{SEND_MESSAGE_TO_SPECIALIST}] sent", extra={"context": {"to": args.phone_number}})

    images_sent = 0
    images_failed = 0
    if args.include_recent_images and context.image_scanner:
        refs = await context.image_scanner.select_images(
            context.history, context.business_id, context.user_id, args.message
        )
        for ref in refs:
            # Signed now so the link is fresh when WhatsApp fetches it.
            url = context.history.link_media(ref)
            if not url.startswith(("http://", "https://")):
                images_failed += 1
                logger.warning(f"[Tool:{SEND_MESSAGE_TO_SPECIALIST}] no public URL for image {ref}")
                continue
            try:
                await context.whatsapp.send_message(
                    to=args.phone_number,
                    image_url=url,
                    phone_number_id=context.outbound_phone_number_id,
                )
                images_sent += 1
            except Exception as exc:
                images_failed += 1
                logger.warning(f"[Tool:{SEND_MESSAGE_TO_SPECIALIST}] image send failed: {exc}")

    # Keep the specialist's own chat in sync so their replies have context.
    if context.outbound_phone_number_id:
        stored = context.history.append(
            context.outbound_phone_number_id,
            digits_only(args.phone_number),
            text=args.message,
            is_user=False,
        )
        if not stored.ok:
            logger.warning(f"[Tool:{SEND_MESSAGE_TO_SPECIALIST}] could not store message: {stored.error}")

    message = f"Message sent to {args.phone_number}"
    if images_sent or images_failed:
        message += f" with {images_sent} image(s)"
        if images_failed:
            message += f" ({images_failed} image(s) failed)"
    return {
        "success": True,
        "to": args.phone_number,
        "images_sent": images_sent,
        "images_failed": images_failed,
        "message": message,
    }


TOOLS: Dict[str, Tool] = {
    tool.name: tool
    for tool in (
        Tool(
            name=GET_PERSON,
            description="Get people from the directory by type (profession)",
            input_model=GetPersonInput,
            execute=get_person,
        ),
        Tool(
            name=GET_OPEN_TICKETS,
            description="Get all open tickets, newest first. Returns tickets that need attention or follow-up.",
            input_model=GetOpenTicketsInput,
            execute=get_open_tickets,
        ),
        Tool(
            name=CREATE_TICKET,
            description=(
                "Create a new maintenance ticket. Use this after contacting specialists to track the request. "
                "The description should be comprehensive and include all relevant details."
            ),
            input_model=CreateTicketInput,
            execute=create_ticket,
        ),
        Tool(
            name=UPDATE_TICKET,
            description=(
                "Update an existing ticket: description, opened_by_phone_number, latest status or is_open. "
                "Use this when receiving updates about ongoing requests or when closing completed tickets."
            ),
            input_model=UpdateTicketInput,
            execute=update_ticket,
        ),
        Tool(
            name=SEND_MESSAGE_TO_SPECIALIST,
            description=(
                "Send a WhatsApp message to a specialist. Optionally forward the images the requester "
                "recently sent about the issue."
            ),
            input_model=SendMessageToSpecialistInput,
            execute=send_message_to_specialist,
        ),
    )
}


def build_tool_set(names: Optional[tuple] = None) -> Dict[str, Tool]:
    """Name -> Tool mapping for an agent; unknown names raise KeyError."""
    return {name: TOOLS[name] for name in (names or ALL_TOOL_NAMES)}
