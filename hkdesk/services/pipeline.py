"""Webhook dispatch loop: normalize -> history -> agent -> reply, one message at a time."""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from hkdesk.config import Settings
from hkdesk.logging_config import MessageLogger, get_logger
from hkdesk.schemas.webhook import WHATSAPP_OBJECT, WebhookEnvelope, WhatsAppMessage, WhatsAppValue
from hkdesk.services.agent_service import AgentDefinition, AgentOrchestrator, AgentRunner
from hkdesk.services.alert_service import AlertNotifier
from hkdesk.services.directory_service import PersonDirectory, TicketRepository
from hkdesk.services.history_service import ConversationHistoryStore, image_placeholder
from hkdesk.services.image_scanner import ImageScanner
from hkdesk.services.llm import OpenAIProvider
from hkdesk.services.media_service import ImageDescriber, ImageDownloader, MediaStore
from hkdesk.services.normalizer import MessageNormalizer, NormalizedMessage
from hkdesk.services.prompts import HOUSEKEEPING_AGENT, SPECIALIST_AGENT, build_agent_definitions
from hkdesk.services.response_service import ResponseDispatcher
from hkdesk.services.tools import ToolContext
from hkdesk.services.transcription_service import AudioTranscriber
from hkdesk.services.whatsapp_service import WhatsAppClient

logger = get_logger("pipeline")

STATUS_REPLIED = "replied"
STATUS_FALLBACK = "fallback"
STATUS_SKIPPED = "skipped"
STATUS_DUPLICATE = "duplicate"
STATUS_FAILED = "failed"


@dataclass
class SenderInfo:
    phone: str
    user_id: str
    name: str


@dataclass
class WebhookBatch:
    envelope: WebhookEnvelope
    value: WhatsAppValue

    @property
    def messages(self) -> List[WhatsAppMessage]:
        return self.value.messages

    @property
    def business_id(self) -> Optional[str]:
        return self.value.metadata.phone_number_id if self.value.metadata else None


def extract_sender(value: WhatsAppValue, message: WhatsAppMessage) -> SenderInfo:
    contact = value.contacts[0] if value.contacts else None
    name = contact.profile.name if contact and contact.profile and contact.profile.name else "Unknown"
    user_id = contact.wa_id if contact and contact.wa_id else message.from_number
    return SenderInfo(phone=message.from_number, user_id=user_id, name=name)


def validate_envelope(payload: Any) -> Optional[WebhookBatch]:
    """Parsed batch, or None for anything that is not a WhatsApp message delivery."""
    if not isinstance(payload, dict) or payload.get("object") != WHATSAPP_OBJECT:
        return None
    entry = payload.get("entry")
    if not isinstance(entry, list) or not entry:
        return None
    try:
        envelope = WebhookEnvelope.model_validate(payload)
    except ValidationError as exc:
        logger.warning(f"Invalid webhook envelope: {exc}")
        return None

    changes = envelope.entry[0].changes
    value = changes[0].value if changes else None
    if value is None or not value.messages:
        return None
    return WebhookBatch(envelope=envelope, value=value)


def agent_text(normalized: NormalizedMessage, link: Optional[Callable[[str], str]] = None) -> str:
    """Message text as the agent sees it, with the image placeholder for captioned images."""
    if normalized.image_url:
        image_url = link(normalized.image_url) if link else normalized.image_url
        return f"{normalized.message_text} {image_placeholder(image_url, normalized.description)}"
    return normalized.message_text


@dataclass
class MessageOutcome:
    wamid: Optional[str]
    status: str
    agent_ran: bool = False
    tool_calls: List[str] = field(default_factory=list)
    error: Optional[str] = None


class WebhookProcessor:
    def __init__(
        self,
        settings: Settings,
        *,
        history: ConversationHistoryStore,
        tickets: TicketRepository,
        people: PersonDirectory,
        whatsapp: WhatsAppClient,
        normalizer: MessageNormalizer,
        orchestrator: AgentOrchestrator,
        dispatcher: ResponseDispatcher,
        agents: Dict[str, AgentDefinition],
        image_scanner: Optional[ImageScanner] = None,
        alerts: Optional[AlertNotifier] = None,
    ):
        self.settings = settings
        self.history = history
        self.tickets = tickets
        self.people = people
        self.whatsapp = whatsapp
        self.normalizer = normalizer
        self.orchestrator = orchestrator
        self.dispatcher = dispatcher
        self.agents = agents
        self.image_scanner = image_scanner
        self.alerts = alerts

    def is_specialist_line(self, business_id: Optional[str]) -> bool:
        specialist_id = self.settings.whatsapp_specialist_phone_number_id
        return bool(specialist_id and business_id == specialist_id)

    def agent_for(self, business_id: Optional[str]) -> AgentDefinition:
        if self.is_specialist_line(business_id):
            return self.agents[SPECIALIST_AGENT]
        return self.agents[HOUSEKEEPING_AGENT]

    def outbound_line_for(self, business_id: str) -> str:
        """Number the agent's tool sends go out from: the other side of the conversation."""
        if self.is_specialist_line(business_id):
            return self.settings.whatsapp_phone_number_id or business_id
        return self.settings.whatsapp_specialist_phone_number_id or business_id

    async def process(self, batch: WebhookBatch) -> List[MessageOutcome]:
        """Process every message of one delivery in order. One failure never stops the rest."""
        business_id = batch.business_id or self.settings.whatsapp_phone_number_id
        outcomes = []
        for message in batch.messages:
            try:
                outcome = await self.process_message(batch.value, message, business_id)
            except Exception as exc:
                logger.error(
                    "Message processing failed",
                    exc_info=True,
                    extra={"context": {"wamid": message.id, "type": message.type, "error": str(exc)}},
                )
                if self.alerts:
                    await self.alerts.error("Message processing failed", {"wamid": message.id, "error": str(exc)})
                outcome = MessageOutcome(wamid=message.id, status=STATUS_FAILED, error=str(exc))
            outcomes.append(outcome)
        return outcomes

    async def process_message(
        self, value: WhatsAppValue, message: WhatsAppMessage, business_id: str
    ) -> MessageOutcome:
        sender = extract_sender(value, message)
        log = MessageLogger(
            logger, {"wamid": message.id, "type": message.type, "user_id": sender.user_id, "name": sender.name}
        )
        log.info("Processing message")

        if self.history.has_inbound(business_id, sender.user_id, message.id):
            log.info("Duplicate delivery skipped")
            return MessageOutcome(wamid=message.id, status=STATUS_DUPLICATE)

        normalized = await self.normalizer.normalize(message, business_id, sender.user_id)
        if normalized is None:
            return MessageOutcome(wamid=message.id, status=STATUS_SKIPPED)

        # History is read before the inbound message is stored; the orchestrator appends it as the newest turn.
        prior_turns = self.history.get_turns(business_id, sender.user_id, self.settings.history_limit)
        stored = self.history.append(
            business_id,
            sender.user_id,
            text=normalized.message_text,
            image_url=normalized.image_url,
            image_description=normalized.description,
            is_user=True,
            external_id=message.id,
        )
        if not stored.ok:
            log.error(f"Failed to store inbound message: {stored.error}")

        definition = self.agent_for(business_id)
        context = ToolContext(
            people=self.people,
            tickets=self.tickets,
            whatsapp=self.whatsapp,
            history=self.history,
            business_id=business_id,
            user_id=sender.user_id,
            sender_phone=sender.phone,
            outbound_phone_number_id=self.outbound_line_for(business_id),
            image_scanner=self.image_scanner,
        )
        outcome = await self.orchestrator.run(
            definition,
            business_id=business_id,
            user_id=sender.user_id,
            input_text=definition.build_input(sender.phone, agent_text(normalized, self.history.link_media)),
            context=context,
            history=prior_turns,
        )
        tool_calls = [call.name for call in outcome.tool_calls]

        if outcome.completed:
            await self.dispatcher.deliver(sender.phone, sender.user_id, business_id, outcome.final_output)
            return MessageOutcome(wamid=message.id, status=STATUS_REPLIED, agent_ran=True, tool_calls=tool_calls)

        await self.dispatcher.deliver_fallback(sender.phone, sender.user_id, business_id, outcome.error)
        return MessageOutcome(
            wamid=message.id, status=STATUS_FALLBACK, agent_ran=True, tool_calls=tool_calls, error=outcome.error
        )


@dataclass
class SharedServices:
    """Process-wide clients, built once at startup."""

    settings: Settings
    llm: OpenAIProvider
    whatsapp: WhatsAppClient
    people: PersonDirectory
    media: MediaStore
    alerts: AlertNotifier

    @classmethod
    def from_settings(cls, settings: Settings) -> "SharedServices":
        return cls(
            settings=settings,
            llm=OpenAIProvider(
                api_key=settings.openai_api_key or "",
                default_model=settings.openai_model,
                timeout_seconds=settings.http_timeout_seconds,
            ),
            whatsapp=WhatsAppClient(settings),
            people=PersonDirectory(settings.people_directory_path),
            media=MediaStore(settings),
            alerts=AlertNotifier(settings),
        )


def build_processor(services: SharedServices, db: Session) -> WebhookProcessor:
    """Per-delivery processor bound to one database session."""
    settings = services.settings
    history = ConversationHistoryStore(db, settings.history_limit, services.media)
    describer = ImageDescriber(services.llm) if settings.image_descriptions_enabled else None
    normalizer = MessageNormalizer(
        transcriber=AudioTranscriber(settings, services.whatsapp, services.llm),
        image_downloader=ImageDownloader(services.whatsapp, services.media),
        history=history,
        describer=describer,
    )
    runner = AgentRunner(services.llm, settings.agent_max_turns, settings.agent_timeout_seconds)
    return WebhookProcessor(
        settings,
        history=history,
        tickets=TicketRepository(db),
        people=services.people,
        whatsapp=services.whatsapp,
        normalizer=normalizer,
        orchestrator=AgentOrchestrator(runner, history, settings.history_limit),
        dispatcher=ResponseDispatcher(services.whatsapp, history, services.alerts),
        agents=build_agent_definitions(settings),
        image_scanner=ImageScanner(services.llm, settings.history_limit),
        alerts=services.alerts,
    )
