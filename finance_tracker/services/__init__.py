"""Services package."""

from finance_tracker.services.backup import (
    BackupService,
    EncryptedBlob,
    decrypt_snapshot,
    encrypt_snapshot,
)
from finance_tracker.services.storage import (
    AuditStorageInterface,
    BackupStoreInterface,
    GoogleSheetsBackupStore,
    GoogleSheetsClient,
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueAuditStorage,
    KeyValueStore,
    NotFoundError,
    StorageError,
)

__all__ = [
    # Backup services
    "BackupService",
    "EncryptedBlob",
    "decrypt_snapshot",
    "encrypt_snapshot",
    # Storage services
    "AuditStorageInterface",
    "BackupStoreInterface",
    "GoogleSheetsBackupStore",
    "GoogleSheetsClient",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "KeyValueAuditStorage",
    "KeyValueStore",
    "NotFoundError",
    "StorageError",
]
