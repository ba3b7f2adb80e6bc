"""CampaignStateMachine driving a CampaignProgress record through a batch."""

from __future__ import annotations

from analytics_refresh.domain.errors import InvalidTransitionError
from analytics_refresh.domain.models import CampaignProgress
from analytics_refresh.domain.types import RefreshStatus
from analytics_refresh.state_machine.transitions import TERMINAL_STATES, TRANSITIONS


class CampaignStateMachine:
    """Finite state machine governing one campaign's refresh lifecycle.

    Owns the ``status`` field of the wrapped :class:`CampaignProgress`: every
    accepted transition is written back to the record and appended to the
    history.

    Usage::

        sm = CampaignStateMachine(progress)
        sm.trigger("start")      # -> PROCESSING
        sm.trigger("complete")   # -> COMPLETED (terminal)
    """

    def __init__(self, progress: CampaignProgress) -> None:
        self.progress = progress
        self._history: list[tuple[RefreshStatus, str, RefreshStatus]] = []

    @property
    def state(self) -> RefreshStatus:
        """Return the current refresh status."""
        return self.progress.status

    @property
    def is_terminal(self) -> bool:
        """Return True if the campaign is COMPLETED or ERROR."""
        return self.progress.status in TERMINAL_STATES

    @property
    def history(self) -> list[tuple[RefreshStatus, str, RefreshStatus]]:
        """Return a copy of the ``(from_state, event, to_state)`` history."""
        return list(self._history)

    def trigger(self, event: str, error: str | None = None) -> RefreshStatus:
        """Apply an event to the current state and transition.

        Args:
            event: The event string (e.g. ``"start"``).
            error: Error message recorded on the progress record, if any.

        Returns:
            The new state after the transition.

        Raises:
            InvalidTransitionError: If the transition is not allowed from
                the current state, or if the campaign is already terminal.
        """
        if self.is_terminal:
            raise InvalidTransitionError(self.progress.status, event)

        key = (self.progress.status, event)
        if key not in TRANSITIONS:
            raise InvalidTransitionError(self.progress.status, event)

        old_state = self.progress.status
        new_state = TRANSITIONS[key]
        self._history.append((old_state, event, new_state))
        self.progress.status = new_state
        if error is not None:
            self.progress.error = error
        return new_state

    def get_valid_events(self) -> list[str]:
        """Return a sorted list of events valid from the current state."""
        if self.is_terminal:
            return []
        return sorted(event for state, event in TRANSITIONS if state == self.progress.status)
