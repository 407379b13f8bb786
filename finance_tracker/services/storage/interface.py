"""
Abstract Storage Interfaces

DESIGN DECISION: We define abstract interfaces for storage operations.
This allows us to:
1. Swap the local JSON file for browser storage, a database, etc.
2. Use in-memory storage for testing
3. Keep the reconciliation engine decoupled from where bytes live

The local store is a plain key-value store of strings: the ledger snapshot
and the category rules are each read and written wholesale under one key.
The remote backup store only ever sees opaque encrypted blobs.
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

from finance_tracker.models.audit import AuditEvent

if TYPE_CHECKING:
    from finance_tracker.services.backup.crypto import EncryptedBlob


class KeyValueStore(ABC):
    """
    String-valued key-value store.

    This is also the `RuleStore` the category rule cache is built on:
    one instance is created per application session and injected.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """
        Read a value.

        Args:
            key: Storage key

        Returns:
            The stored string, or None if the key is missing
        """
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """
        Write a value, replacing any previous one.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a key. Missing keys are ignored."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class BackupStoreInterface(ABC):
    """
    Remote store for encrypted snapshots.

    Holds exactly one blob per account. A new backup overwrites the old
    one entirely (last writer wins); there is no field-level merge.
    """

    @abstractmethod
    async def put_blob(self, account: str, blob: "EncryptedBlob") -> bool:
        """
        Store exactly this blob for the account.

        Raises:
            StorageError: If the remote write fails
        """
        pass

    @abstractmethod
    async def get_blob(self, account: str) -> Optional["EncryptedBlob"]:
        """
        Retrieve the blob for the account.

        Returns:
            The stored blob, or None if the account has no backup

        Raises:
            StorageError: If the remote read fails
        """
        pass
