"""Transition map defining all valid (state, event) -> state mappings."""

from enum import StrEnum

from analytics_refresh.domain.types import RefreshStatus


class RefreshEvent(StrEnum):
    """Events that move a campaign through one refresh batch."""

    START = "start"
    COMPLETE = "complete"
    FAIL = "fail"


# All valid (current_state, event_string) -> next_state mappings.
# Any pair not in this dict is an invalid transition.
TRANSITIONS: dict[tuple[RefreshStatus, str], RefreshStatus] = {
    # From PENDING
    (RefreshStatus.PENDING, RefreshEvent.START): RefreshStatus.PROCESSING,
    # Skipped before it started (e.g. resource budget exhausted)
    (RefreshStatus.PENDING, RefreshEvent.FAIL): RefreshStatus.ERROR,
    # From PROCESSING
    (RefreshStatus.PROCESSING, RefreshEvent.COMPLETE): RefreshStatus.COMPLETED,
    (RefreshStatus.PROCESSING, RefreshEvent.FAIL): RefreshStatus.ERROR,
}

# States that reject all events -- no outgoing transitions allowed.
TERMINAL_STATES: frozenset[RefreshStatus] = frozenset(
    {RefreshStatus.COMPLETED, RefreshStatus.ERROR}
)
