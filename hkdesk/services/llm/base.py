from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional


class LLMError(Exception):
    """Raised when the LLM backend returns an error or an unusable response."""


@dataclass
class ToolCall:
    id: str
    name: str
    arguments: str  # raw JSON string as returned by the model


@dataclass
class LLMResponse:
    content: str
    model: str
    usage: Optional[dict] = None
    tool_calls: List[ToolCall] = field(default_factory=list)

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    @abstractmethod
    async def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        tools: Optional[List[dict]] = None,
        temperature: Optional[float] = None,
        max_tokens: int = 1000,
    ) -> LLMResponse:
        """Generate a response, possibly requesting tool calls."""

    @abstractmethod
    async def transcribe_audio(
        self,
        *,
        audio_bytes: bytes,
        filename: str,
        mime_type: Optional[str] = None,
        model: Optional[str] = None,
        language: Optional[str] = None,
    ) -> str:
        """Transcribe audio bytes to text."""
