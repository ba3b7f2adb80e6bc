"""Tests for the campaign refresh transition map."""

from analytics_refresh.domain.types import RefreshStatus
from analytics_refresh.state_machine.transitions import TERMINAL_STATES, TRANSITIONS, RefreshEvent


class TestTransitionMap:
    """Static structure of TRANSITIONS."""

    def test_exactly_four_transitions(self):
        assert len(TRANSITIONS) == 4

    def test_no_transition_leaves_a_terminal_state(self):
        assert all(state not in TERMINAL_STATES for state, _ in TRANSITIONS)

    def test_every_target_is_a_known_status(self):
        assert set(TRANSITIONS.values()) <= set(RefreshStatus)

    def test_processing_is_only_reached_by_start(self):
        sources = [key for key, target in TRANSITIONS.items() if target == RefreshStatus.PROCESSING]
        assert sources == [(RefreshStatus.PENDING, RefreshEvent.START)]

    def test_terminal_states(self):
        assert TERMINAL_STATES == frozenset({RefreshStatus.COMPLETED, RefreshStatus.ERROR})
