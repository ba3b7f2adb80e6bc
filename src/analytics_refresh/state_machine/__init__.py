"""Campaign refresh lifecycle state machine with transition validation."""

from analytics_refresh.state_machine.machine import CampaignStateMachine
from analytics_refresh.state_machine.transitions import (
    TERMINAL_STATES,
    TRANSITIONS,
    RefreshEvent,
)

__all__ = [
    "CampaignStateMachine",
    "RefreshEvent",
    "TERMINAL_STATES",
    "TRANSITIONS",
]
