import pytest

from hkdesk.services.state_machine import (
    AgentRunState,
    InvalidTransitionError,
    can_transition,
    complete,
    fail,
    load_history,
    start_run,
    transition,
)


class TestValidTransitions:
    def test_idle_to_history_loaded(self):
        assert transition(AgentRunState.IDLE, AgentRunState.HISTORY_LOADED) == AgentRunState.HISTORY_LOADED

    def test_history_loaded_to_running(self):
        assert transition(AgentRunState.HISTORY_LOADED, AgentRunState.RUNNING) == AgentRunState.RUNNING

    def test_running_to_completed(self):
        assert transition(AgentRunState.RUNNING, AgentRunState.COMPLETED) == AgentRunState.COMPLETED

    @pytest.mark.parametrize(
        "state", [AgentRunState.IDLE, AgentRunState.HISTORY_LOADED, AgentRunState.RUNNING]
    )
    def test_any_live_state_can_fail(self, state):
        assert fail(state) == AgentRunState.FAILED


class TestInvalidTransitions:
    def test_idle_cannot_skip_to_running(self):
        with pytest.raises(InvalidTransitionError):
            transition(AgentRunState.IDLE, AgentRunState.RUNNING)

    def test_completed_is_final(self):
        with pytest.raises(InvalidTransitionError):
            fail(AgentRunState.COMPLETED)

    def test_failed_is_final(self):
        with pytest.raises(InvalidTransitionError):
            complete(AgentRunState.FAILED)

    def test_same_state(self):
        assert can_transition(AgentRunState.RUNNING, AgentRunState.RUNNING) is False


class TestHelperFunctions:
    def test_happy_path(self):
        state = AgentRunState.IDLE
        state = load_history(state)
        state = start_run(state)
        state = complete(state)
        assert state == AgentRunState.COMPLETED
        assert can_transition(state, AgentRunState.FAILED) is False

    def test_start_run_requires_history(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            start_run(AgentRunState.IDLE)
        assert "idle -> running" in str(exc_info.value)
