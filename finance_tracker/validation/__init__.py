"""Entry-time validation of transaction drafts."""

from finance_tracker.validation.validator import TransactionValidator

__all__ = ["TransactionValidator"]
