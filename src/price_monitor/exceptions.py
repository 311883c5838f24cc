"""Custom exceptions for the price monitor."""


class PriceMonitorError(Exception):
    """Base exception for price monitor errors."""

    pass


class LLMProviderError(PriceMonitorError):
    """Raised when LLM provider configuration is invalid."""

    pass


class BrowserError(PriceMonitorError):
    """Raised when browser operations fail."""

    pass


class IntentParseError(PriceMonitorError):
    """Raised when a free-text request cannot be turned into a structured task."""

    pass


class PlanningServiceError(PriceMonitorError):
    """Raised when the remote action-planning model call fails.

    Carries the HTTP-like status code reported by the service when one is known.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class InvalidTransitionError(PriceMonitorError):
    """Raised when a task is moved to a status its current state does not allow."""

    pass


class ResultWriteError(PriceMonitorError):
    """Raised when a finished task cannot be persisted."""

    pass
