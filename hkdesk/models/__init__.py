from hkdesk.models.chat import Chat
from hkdesk.models.message import Message
from hkdesk.models.ticket import Ticket

__all__ = [
    "Chat",
    "Message",
    "Ticket",
]
