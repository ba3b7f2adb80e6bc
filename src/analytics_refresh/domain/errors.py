"""Domain-specific exception classes for the analytics refresh service."""

from analytics_refresh.domain.types import RefreshStatus


class RefreshError(Exception):
    """Base class for all domain errors in the analytics refresh service."""


class ScrapeError(RefreshError):
    """Raised when a platform scraper call fails for one URL.

    Attributes:
        platform: The platform tag the scraper was invoked for.
        url: The content URL that was being scraped.
    """

    def __init__(self, platform: str, url: str, message: str) -> None:
        self.platform = platform
        self.url = url
        super().__init__(message)


class ResourceLimitError(RefreshError):
    """Raised when the third-party resource quota is exhausted.

    Never retried. Raised either because a provider reported quota exhaustion
    or because the budget tracker refused admission.
    """


class PersistenceError(RefreshError):
    """Raised when an analytics store write fails."""


class BatchSetupError(RefreshError):
    """Raised when a batch cannot be started, e.g. campaign lookup failed."""


class RefreshCancelledError(RefreshError):
    """Raised at a checkpoint once cancellation has been requested."""

    def __init__(self, message: str = "Refresh cancelled") -> None:
        super().__init__(message)


class InvalidTransitionError(RefreshError):
    """Raised when an invalid campaign progress transition is attempted.

    Attributes:
        current_state: The state the campaign was in.
        event: The event that was rejected.
    """

    def __init__(self, current_state: RefreshStatus, event: str) -> None:
        self.current_state = current_state
        self.event = event
        super().__init__(
            f"Cannot apply event '{event}' in state '{current_state}'"
        )
