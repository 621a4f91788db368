"""Agent runtime and orchestration.

`AgentRunner` drives the chat-completions tool loop for one agent definition:
the model either answers or asks for tool calls; each call is executed and its
result fed back, until a final answer arrives. The loop is bounded by a turn
budget and a wall-clock timeout, and a breach is an `AgentRunError`.

`AgentOrchestrator` wraps one run in the `AgentRunState` machine and turns any
failure into a FAILED outcome for the dispatcher.
"""

import asyncio
import json
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from hkdesk.logging_config import get_logger
from hkdesk.services import state_machine
from hkdesk.services.history_service import ConversationHistoryStore, Turn
from hkdesk.services.llm import LLMProvider
from hkdesk.services.state_machine import AgentRunState
from hkdesk.services.tools import Tool, ToolContext, build_tool_set

logger = get_logger("agent_service")

DEFAULT_MAX_TURNS = 12
DEFAULT_TIMEOUT_SECONDS = 90.0


class AgentRunError(Exception):
    """The agent run ended without a usable final output."""


class MaxTurnsExceeded(AgentRunError):
    def __init__(self, max_turns: int):
        self.max_turns = max_turns
        super().__init__(f"Agent exceeded {max_turns} turns without a final answer")


class AgentTimeout(AgentRunError):
    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Agent run timed out after {timeout_seconds}s")


@dataclass(frozen=True)
class AgentDefinition:
    name: str
    instructions: str
    tool_names: Sequence[str]
    model: Optional[str] = None
    input_template: str = "{text}"

    def build_input(self, phone: str, text: str) -> str:
        return self.input_template.format(phone=phone, text=text)


@dataclass
class ToolCallRecord:
    name: str
    arguments: str
    result: dict

    @property
    def success(self) -> bool:
        return bool(self.result.get("success"))


@dataclass
class AgentRunResult:
    final_output: str
    usage: dict = field(default_factory=dict)
    tool_calls: List[ToolCallRecord] = field(default_factory=list)
    turns: int = 0


def _add_usage(total: dict, usage: Optional[dict]) -> None:
    for key, value in (usage or {}).items():
        if isinstance(value, (int, float)):
            total[key] = total.get(key, 0) + value


class AgentRunner:
    def __init__(
        self,
        llm: LLMProvider,
        max_turns: int = DEFAULT_MAX_TURNS,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self.llm = llm
        self.max_turns = max_turns
        self.timeout_seconds = timeout_seconds

    async def run(
        self,
        definition: AgentDefinition,
        turns: List[Turn],
        tools: Dict[str, Tool],
        context: ToolContext,
    ) -> AgentRunResult:
        """Run the agent to a final answer. Raises AgentRunError subclasses on budget breach."""
        try:
            return await asyncio.wait_for(
                self._loop(definition, turns, tools, context), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError as exc:
            raise AgentTimeout(self.timeout_seconds) from exc

    async def _loop(
        self,
        definition: AgentDefinition,
        turns: List[Turn],
        tools: Dict[str, Tool],
        context: ToolContext,
    ) -> AgentRunResult:
        messages = [{"role": "system", "content": definition.instructions}]
        messages.extend(turn.to_message() for turn in turns)
        schemas = [tool.to_openai_schema() for tool in tools.values()]
        result = AgentRunResult(final_output="")

        for turn in range(1, self.max_turns + 1):
            response = await self.llm.generate(messages, model=definition.model, tools=schemas or None)
            _add_usage(result.usage, response.usage)
            result.turns = turn

            if not response.has_tool_calls:
                result.final_output = (response.content or "").strip()
                return result

            messages.append(
                {
                    "role": "assistant",
                    "content": response.content or None,
                    "tool_calls": [
                        {
                            "id": call.id,
                            "type": "function",
                            "function": {"name": call.name, "arguments": call.arguments},
                        }
                        for call in response.tool_calls
                    ],
                }
            )
            for call in response.tool_calls:
                tool = tools.get(call.name)
                if tool is None:
                    outcome = {"success": False, "error": "unknown_tool", "message": f"Unknown tool: {call.name}"}
                else:
                    outcome = await tool.invoke(context, call.arguments)
                result.tool_calls.append(ToolCallRecord(name=call.name, arguments=call.arguments, result=outcome))
                logger.info(
                    f"[Agent:{definition.name}] tool call",
                    extra={"context": {"tool": call.name, "success": bool(outcome.get("success")), "turn": turn}},
                )
                messages.append(
                    {"role": "tool", "tool_call_id": call.id, "content": json.dumps(outcome, default=str)}
                )

        raise MaxTurnsExceeded(self.max_turns)


@dataclass
class OrchestrationOutcome:
    state: AgentRunState
    final_output: Optional[str] = None
    result: Optional[AgentRunResult] = None
    error: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self.state == AgentRunState.COMPLETED

    @property
    def tool_calls(self) -> List[ToolCallRecord]:
        return self.result.tool_calls if self.result else []


class AgentOrchestrator:
    def __init__(self, runner: AgentRunner, history: ConversationHistoryStore, history_limit: int = 10):
        self.runner = runner
        self.history = history
        self.history_limit = history_limit

    async def run(
        self,
        definition: AgentDefinition,
        *,
        business_id: str,
        user_id: str,
        input_text: str,
        context: ToolContext,
        history: Optional[List[Turn]] = None,
    ) -> OrchestrationOutcome:
        """One agent run for one inbound message. Never raises.

        `history` lets the caller pass turns loaded before the inbound message
        was persisted; otherwise they are loaded here.
        """
        state = AgentRunState.IDLE
        started = time.monotonic()
        result = None
        try:
            if history is None:
                history = self.history.get_turns(business_id, user_id, self.history_limit)
            turns = list(history) + [Turn(role="user", content=input_text)]
            state = state_machine.load_history(state)

            state = state_machine.start_run(state)
            result = await self.runner.run(definition, turns, build_tool_set(definition.tool_names), context)
            if not result.final_output:
                raise AgentRunError("Agent returned no final output")
            state = state_machine.complete(state)
        except Exception as exc:
            state = state_machine.fail(state)
            logger.error(
                f"[Agent:{definition.name}] run failed",
                exc_info=True,
                extra={
                    "context": {
                        "business_id": business_id,
                        "user_id": user_id,
                        "error": str(exc),
                        "duration_ms": int((time.monotonic() - started) * 1000),
                    }
                },
            )
            return OrchestrationOutcome(state=state, result=result, error=str(exc) or exc.__class__.__name__)

        logger.info(
            f"[Agent:{definition.name}] run success",
            extra={
                "context": {
                    "business_id": business_id,
                    "user_id": user_id,
                    "turns": result.turns,
                    "tool_calls": [call.name for call in result.tool_calls],
                    "usage": result.usage,
                    "duration_ms": int((time.monotonic() - started) * 1000),
                }
            },
        )
        return OrchestrationOutcome(state=state, final_output=result.final_output, result=result)
