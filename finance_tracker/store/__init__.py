"""
Transaction store and legacy snapshot migration.
"""

from finance_tracker.store.migration import MigrationReport, migrate_snapshot
from finance_tracker.store.transaction_store import DATA_KEY, TransactionStore

__all__ = [
    "DATA_KEY",
    "MigrationReport",
    "TransactionStore",
    "migrate_snapshot",
]
