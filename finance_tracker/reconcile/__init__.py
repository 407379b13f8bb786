"""Import reconciliation of AI-extracted statement batches."""

from finance_tracker.reconcile.importer import (
    DUPLICATE_TOLERANCE,
    ImportReconciler,
    validate_category,
)

__all__ = [
    "DUPLICATE_TOLERANCE",
    "ImportReconciler",
    "validate_category",
]
