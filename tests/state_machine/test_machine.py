"""Tests for the CampaignStateMachine class."""

import pytest

from analytics_refresh.domain.errors import InvalidTransitionError
from analytics_refresh.domain.models import CampaignProgress
from analytics_refresh.domain.types import RefreshStatus
from analytics_refresh.state_machine.machine import CampaignStateMachine
from analytics_refresh.state_machine.transitions import RefreshEvent


def _machine(status: RefreshStatus = RefreshStatus.PENDING) -> CampaignStateMachine:
    return CampaignStateMachine(CampaignProgress(campaign_id="c1", name="Brand", status=status))


# ===================================================================
# Happy paths
# ===================================================================
class TestLifecycle:
    """pending -> processing -> {completed | error}."""

    def test_start_then_complete(self):
        sm = _machine()
        assert sm.trigger(RefreshEvent.START) == RefreshStatus.PROCESSING
        assert sm.trigger(RefreshEvent.COMPLETE) == RefreshStatus.COMPLETED
        assert sm.is_terminal
        assert sm.progress.status == RefreshStatus.COMPLETED

    def test_start_then_fail_records_error(self):
        sm = _machine()
        sm.trigger(RefreshEvent.START)
        sm.trigger(RefreshEvent.FAIL, error="2 of 3 URL(s) failed to refresh")
        assert sm.state == RefreshStatus.ERROR
        assert sm.progress.error == "2 of 3 URL(s) failed to refresh"

    def test_skip_before_start(self):
        sm = _machine()
        sm.trigger("fail", error="Skipped due to resource limits")
        assert sm.state == RefreshStatus.ERROR

    def test_history(self):
        sm = _machine()
        sm.trigger("start")
        sm.trigger("complete")
        assert sm.history == [
            (RefreshStatus.PENDING, "start", RefreshStatus.PROCESSING),
            (RefreshStatus.PROCESSING, "complete", RefreshStatus.COMPLETED),
        ]

    def test_history_is_a_copy(self):
        sm = _machine()
        sm.trigger("start")
        sm.history.clear()
        assert len(sm.history) == 1


# ===================================================================
# Invalid transitions
# ===================================================================
class TestInvalidTransitions:
    """Rejected events leave the record untouched."""

    def test_complete_from_pending(self):
        sm = _machine()
        with pytest.raises(InvalidTransitionError) as exc_info:
            sm.trigger("complete")
        assert exc_info.value.current_state == RefreshStatus.PENDING
        assert exc_info.value.event == "complete"
        assert sm.state == RefreshStatus.PENDING

    def test_start_twice(self):
        sm = _machine()
        sm.trigger("start")
        with pytest.raises(InvalidTransitionError):
            sm.trigger("start")

    @pytest.mark.parametrize("terminal", [RefreshStatus.COMPLETED, RefreshStatus.ERROR])
    @pytest.mark.parametrize("event", [e.value for e in RefreshEvent])
    def test_terminal_states_reject_everything(self, terminal, event):
        sm = _machine(terminal)
        with pytest.raises(InvalidTransitionError):
            sm.trigger(event)
        assert sm.state == terminal

    def test_unknown_event(self):
        with pytest.raises(InvalidTransitionError):
            _machine().trigger("explode")


class TestValidEvents:
    """get_valid_events reflects the transition map."""

    def test_from_pending(self):
        assert _machine().get_valid_events() == ["fail", "start"]

    def test_from_processing(self):
        assert _machine(RefreshStatus.PROCESSING).get_valid_events() == ["complete", "fail"]

    def test_terminal(self):
        assert _machine(RefreshStatus.COMPLETED).get_valid_events() == []
