from enum import Enum


class AgentRunState(str, Enum):
    IDLE = "idle"
    HISTORY_LOADED = "history_loaded"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


VALID_TRANSITIONS = {
    AgentRunState.IDLE: [AgentRunState.HISTORY_LOADED, AgentRunState.FAILED],
    AgentRunState.HISTORY_LOADED: [AgentRunState.RUNNING, AgentRunState.FAILED],
    AgentRunState.RUNNING: [AgentRunState.COMPLETED, AgentRunState.FAILED],
    AgentRunState.COMPLETED: [],
    AgentRunState.FAILED: [],
}


class InvalidTransitionError(Exception):
    def __init__(self, from_state: AgentRunState, to_state: AgentRunState):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid transition: {from_state.value} -> {to_state.value}")


def can_transition(from_state: AgentRunState, to_state: AgentRunState) -> bool:
    """Check if transition is valid."""
    allowed = VALID_TRANSITIONS.get(from_state, [])
    return to_state in allowed


def transition(from_state: AgentRunState, to_state: AgentRunState) -> AgentRunState:
    """Perform state transition. Raises InvalidTransitionError if not allowed."""
    if not can_transition(from_state, to_state):
        raise InvalidTransitionError(from_state, to_state)
    return to_state


def load_history(current_state: AgentRunState) -> AgentRunState:
    """History fetched and current input appended."""
    return transition(current_state, AgentRunState.HISTORY_LOADED)


def start_run(current_state: AgentRunState) -> AgentRunState:
    """Agent run handed to the runtime."""
    return transition(current_state, AgentRunState.RUNNING)


def complete(current_state: AgentRunState) -> AgentRunState:
    """Run produced a final output."""
    return transition(current_state, AgentRunState.COMPLETED)


def fail(current_state: AgentRunState) -> AgentRunState:
    """Any stage failed; the fallback reply path takes over."""
    return transition(current_state, AgentRunState.FAILED)
