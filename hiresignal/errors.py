"""Error taxonomy for search and enrichment."""
from __future__ import annotations


class HireSignalError(Exception):
    """Base class for all errors raised by hiresignal."""


class ConfigurationError(HireSignalError):
    """Credentials missing or provider not selected. Never retried."""


class TransientNetworkError(HireSignalError):
    """Timeout, connection reset or upstream 5xx. Retried at the poll layer."""


class TerminalRunFailure(HireSignalError):
    """Upstream run failed/aborted/timed out, or poll retries ran out."""


class BudgetExceededError(HireSignalError):
    def __init__(self, message: str, *, credits_remaining: float, credits_needed: float):
        super().__init__(message)
        self.credits_remaining = credits_remaining
        self.credits_needed = credits_needed


class CancellationError(HireSignalError):
    """A user-initiated stop. Not a failure."""


class SearchCancelled(CancellationError):
    pass


class EnrichmentCancelled(CancellationError):
    pass
