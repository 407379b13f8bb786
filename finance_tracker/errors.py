"""
Error taxonomy for Finance Tracker.

Local computation (normalization, dedup, aggregation) never raises for
bad-but-well-typed input; it degrades to a safe default instead.
Anything crossing an external boundary (AI service, backup store) is
converted into one of these before it reaches the caller.
"""

from typing import Optional


class FinanceTrackerError(Exception):
    """Base exception for all Finance Tracker errors."""
    pass


class ValidationError(FinanceTrackerError, ValueError):
    """
    Malformed amount, date, category or frequency.

    Routine bad input is recovered locally (amount → 0, category → "Other").
    This is only raised when a caller explicitly asks for strict checking.
    """

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message)


class DuplicateDetected(FinanceTrackerError):
    """
    Import reconciler signal: the candidate already exists in storage.

    Not a failure - it suppresses the insertion of that candidate.
    """

    def __init__(self, existing_id: str, message: str):
        self.existing_id = existing_id
        super().__init__(message)


class AmbiguousAccountError(FinanceTrackerError):
    """
    A provider has more than one known account suffix and the import
    did not say which one it belongs to. The caller must choose.
    """

    def __init__(self, provider: str, options: list[str]):
        self.provider = provider
        self.options = options
        super().__init__(
            f"Multiple accounts found for {provider} "
            f"({', '.join(options)}). Please choose which account this statement belongs to."
        )


class ExternalServiceError(FinanceTrackerError):
    """AI or backup call failed, timed out, or returned an unparseable payload."""

    def __init__(self, service: str, message: str, reason: Optional[str] = None):
        self.service = service
        self.reason = reason
        super().__init__(message)


class DecryptionError(FinanceTrackerError):
    """Wrong password or corrupted backup blob."""

    def __init__(self, message: str = "Incorrect password or corrupted data"):
        super().__init__(message)


class StorageError(FinanceTrackerError):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass
