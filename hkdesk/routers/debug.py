"""Operator endpoints: run the agent on ad-hoc input, send a WhatsApp message by hand."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from hkdesk.database import get_db
from hkdesk.dependencies import get_services
from hkdesk.logging_config import get_logger
from hkdesk.schemas.webhook import AgentDebugRequest, AgentDebugResponse, SendMessageRequest
from hkdesk.services.agent_service import AgentRunError, AgentRunner
from hkdesk.services.directory_service import TicketRepository
from hkdesk.services.history_service import ConversationHistoryStore, Turn
from hkdesk.services.image_scanner import ImageScanner
from hkdesk.services.llm import LLMError
from hkdesk.services.pipeline import SharedServices
from hkdesk.services.prompts import build_agent_definitions
from hkdesk.services.tools import ToolContext, build_tool_set
from hkdesk.services.whatsapp_service import WhatsAppError

logger = get_logger("debug")

router = APIRouter()


@router.post("/agent", response_model=AgentDebugResponse)
async def run_agent(
    request: AgentDebugRequest,
    services: SharedServices = Depends(get_services),
    db: Session = Depends(get_db),
):
    settings = services.settings
    definitions = build_agent_definitions(settings)
    definition = definitions.get(request.agent)
    if definition is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown agent: {request.agent}")

    business_id = settings.whatsapp_phone_number_id or ""
    history = ConversationHistoryStore(db, settings.history_limit, services.media)
    context = ToolContext(
        people=services.people,
        tickets=TicketRepository(db),
        whatsapp=services.whatsapp,
        history=history,
        business_id=business_id,
        user_id="debug",
        sender_phone="debug",
        outbound_phone_number_id=settings.whatsapp_specialist_phone_number_id or business_id or None,
        image_scanner=ImageScanner(services.llm, settings.history_limit),
    )
    turns = [Turn(role=turn.role, content=turn.content) for turn in request.messages]
    turns.append(Turn(role="user", content=request.input))

    runner = AgentRunner(services.llm, settings.agent_max_turns, settings.agent_timeout_seconds)
    try:
        result = await runner.run(definition, turns, build_tool_set(definition.tool_names), context)
    except (AgentRunError, LLMError) as exc:
        logger.error(f"Debug agent run failed: {exc}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))

    return AgentDebugResponse(
        output=result.final_output,
        usage=result.usage,
        tool_calls=[{"name": c.name, "arguments": c.arguments, "result": c.result} for c in result.tool_calls],
    )


@router.post("/send_message")
async def send_message(request: SendMessageRequest, services: SharedServices = Depends(get_services)):
    try:
        return await services.whatsapp.send_message(
            to=request.phone_number, text=request.message, image_url=request.image_url
        )
    except WhatsAppError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
