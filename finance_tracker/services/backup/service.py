"""
Encrypted Backup Service

Sits between the ledger and a remote `BackupStoreInterface`.

Contract with the remote store is deliberately tiny:
- "store exactly this serialized snapshot" for an account
- "retrieve exactly this serialized snapshot" for an account

Remote failures become ExternalServiceError; a bad password or damaged
blob becomes DecryptionError. Neither touches the local ledger - the
caller only replaces its store after `fetch_snapshot` returns.
"""

from typing import Any, Optional

import structlog

from finance_tracker.errors import ExternalServiceError, NotFoundError, StorageError
from finance_tracker.services.backup.crypto import (
    EncryptedBlob,
    decrypt_snapshot,
    encrypt_snapshot,
)
from finance_tracker.services.storage.interface import (
    BackupStoreInterface,
    KeyValueStore,
)


logger = structlog.get_logger(__name__)

LAST_BACKUP_KEY = "lastBackupTimestamp"


class BackupService:
    """Encrypts, uploads, downloads and decrypts ledger snapshots."""

    def __init__(
        self,
        remote: BackupStoreInterface,
        local: KeyValueStore,
        timestamp_key: str = LAST_BACKUP_KEY,
    ):
        self._remote = remote
        self._local = local
        self._timestamp_key = timestamp_key

    async def backup(
        self,
        account: str,
        password: str,
        snapshot: dict[str, Any],
    ) -> EncryptedBlob:
        """
        Encrypt and upload a snapshot, overwriting the account's previous blob.

        Raises:
            ExternalServiceError: If the remote store rejects the write
        """
        blob = encrypt_snapshot(snapshot, password)
        try:
            await self._remote.put_blob(account, blob)
        except StorageError as e:
            logger.error("backup_upload_failed", account=account, error=str(e))
            raise ExternalServiceError(
                "backup",
                "Could not upload the backup. Please try again later.",
                reason=str(e),
            ) from e

        self._local.set(self._timestamp_key, str(blob.timestamp))
        logger.info("backup_uploaded", account=account, timestamp=blob.timestamp)
        return blob

    async def fetch_snapshot(
        self,
        account: str,
        password: str,
    ) -> tuple[dict[str, Any], int]:
        """
        Download and decrypt the account's snapshot.

        Returns:
            (snapshot, epoch-ms timestamp of the blob it came from)

        Raises:
            ExternalServiceError: If the remote store cannot be read
            NotFoundError: If the account has no backup
            DecryptionError: Wrong password or corrupted blob
        """
        try:
            blob = await self._remote.get_blob(account)
        except StorageError as e:
            logger.error("backup_download_failed", account=account, error=str(e))
            raise ExternalServiceError(
                "backup",
                "Could not download the backup. Please try again later.",
                reason=str(e),
            ) from e

        if blob is None:
            raise NotFoundError(f"No backup found for {account}")

        return decrypt_snapshot(blob, password), blob.timestamp

    def last_backup_timestamp(self) -> Optional[int]:
        """Epoch milliseconds of the last successful upload, if any."""
        raw = self._local.get(self._timestamp_key)
        try:
            return int(raw) if raw else None
        except ValueError:
            return None
