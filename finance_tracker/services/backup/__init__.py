"""Encrypted backup package."""

from finance_tracker.services.backup.crypto import (
    EncryptedBlob,
    decrypt_snapshot,
    encrypt_snapshot,
)
from finance_tracker.services.backup.service import BackupService

__all__ = [
    "BackupService",
    "EncryptedBlob",
    "decrypt_snapshot",
    "encrypt_snapshot",
]
