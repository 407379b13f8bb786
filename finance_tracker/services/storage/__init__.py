"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage:
a local key-value store for the ledger and rules, and a remote blob store
for encrypted backups (Google Sheets).
"""

from finance_tracker.errors import NotFoundError, StorageError
from finance_tracker.services.storage.interface import (
    AuditStorageInterface,
    BackupStoreInterface,
    KeyValueStore,
)
from finance_tracker.services.storage.local import (
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueAuditStorage,
)
from finance_tracker.services.storage.google_sheets import (
    GoogleSheetsBackupStore,
    GoogleSheetsClient,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "BackupStoreInterface",
    "KeyValueStore",
    # Exceptions
    "NotFoundError",
    "StorageError",
    # Local implementations
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "KeyValueAuditStorage",
    # Google Sheets implementation
    "GoogleSheetsBackupStore",
    "GoogleSheetsClient",
]
