from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

WHATSAPP_OBJECT = "whatsapp_business_account"


class WhatsAppText(BaseModel):
    body: str = ""


class WhatsAppMedia(BaseModel):
    id: str
    mime_type: Optional[str] = None
    sha256: Optional[str] = None
    caption: Optional[str] = None
    file_size: Optional[int] = None
    voice: bool = False

    model_config = ConfigDict(extra="allow")


class WhatsAppMessage(BaseModel):
    id: Optional[str] = None  # wamid
    from_number: str = Field(alias="from")  # "from" is reserved in Python
    timestamp: Optional[str] = None
    type: str
    text: Optional[WhatsAppText] = None
    audio: Optional[WhatsAppMedia] = None
    image: Optional[WhatsAppMedia] = None

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class WhatsAppProfile(BaseModel):
    name: Optional[str] = None


class WhatsAppContact(BaseModel):
    wa_id: Optional[str] = None
    profile: Optional[WhatsAppProfile] = None


class WhatsAppMetadata(BaseModel):
    display_phone_number: Optional[str] = None
    phone_number_id: Optional[str] = None


class WhatsAppValue(BaseModel):
    messaging_product: Optional[str] = None
    metadata: Optional[WhatsAppMetadata] = None
    contacts: List[WhatsAppContact] = Field(default_factory=list)
    messages: List[WhatsAppMessage] = Field(default_factory=list)
    statuses: Optional[List[Any]] = None


class WhatsAppChange(BaseModel):
    field: Optional[str] = None
    value: Optional[WhatsAppValue] = None


class WhatsAppEntry(BaseModel):
    id: Optional[str] = None
    changes: List[WhatsAppChange] = Field(default_factory=list)


class WebhookEnvelope(BaseModel):
    object: str
    entry: List[WhatsAppEntry]


class WebhookAck(BaseModel):
    status: str = "received"


class AgentDebugTurn(BaseModel):
    role: str = "user"
    content: str


class AgentDebugRequest(BaseModel):
    input: str = Field(..., min_length=1)
    messages: List[AgentDebugTurn] = Field(default_factory=list)
    agent: str = "housekeeping"


class AgentDebugResponse(BaseModel):
    output: Optional[str] = None
    usage: Optional[dict] = None
    tool_calls: List[dict] = Field(default_factory=list)


class SendMessageRequest(BaseModel):
    phone_number: str
    message: str
    image_url: Optional[str] = None
