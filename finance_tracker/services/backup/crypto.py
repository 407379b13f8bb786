"""
Snapshot Encryption

Backups leave the device only as an opaque, versioned blob:

    {salt, iv, ciphertext, version, timestamp}

- Key: PBKDF2-HMAC-SHA256, 100 000 iterations, random 16-byte salt
- Cipher: AES-256-GCM with a random 12-byte IV
- Binary fields are base64 strings; timestamp is epoch milliseconds

CRITICAL: Decryption either returns the whole snapshot or raises
DecryptionError. A wrong password and a tampered blob look the same
to the caller, and no partial data is ever returned.
"""

import base64
import binascii
import json
import os
import time
from typing import Any, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from pydantic import BaseModel, Field

from finance_tracker.errors import DecryptionError


BLOB_VERSION = 1
PBKDF2_ITERATIONS = 100_000
SALT_BYTES = 16
IV_BYTES = 12


class EncryptedBlob(BaseModel):
    """The only thing the remote backup store ever sees."""

    salt: str
    iv: str
    ciphertext: str
    version: int = Field(default=BLOB_VERSION)
    timestamp: int = Field(
        default_factory=lambda: int(time.time() * 1000),
        description="Creation time, epoch milliseconds"
    )


def _derive_key(password: str, salt: bytes) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=PBKDF2_ITERATIONS,
    )
    return kdf.derive(password.encode("utf-8"))


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def encrypt_snapshot(snapshot: dict[str, Any], password: str) -> EncryptedBlob:
    """Serialize and encrypt a ledger snapshot."""
    salt = os.urandom(SALT_BYTES)
    iv = os.urandom(IV_BYTES)
    key = _derive_key(password, salt)

    plaintext = json.dumps(snapshot, separators=(",", ":")).encode("utf-8")
    ciphertext = AESGCM(key).encrypt(iv, plaintext, None)

    return EncryptedBlob(
        salt=_b64(salt),
        iv=_b64(iv),
        ciphertext=_b64(ciphertext),
    )


def decrypt_snapshot(
    blob: Union[EncryptedBlob, dict[str, Any]],
    password: str,
) -> dict[str, Any]:
    """
    Decrypt a blob back into the snapshot dict.

    Raises:
        DecryptionError: Wrong password, corrupted or unsupported blob
    """
    try:
        if not isinstance(blob, EncryptedBlob):
            blob = EncryptedBlob.model_validate(blob)
        if blob.version != BLOB_VERSION:
            raise DecryptionError(f"Unsupported backup version: {blob.version}")

        salt = base64.b64decode(blob.salt, validate=True)
        iv = base64.b64decode(blob.iv, validate=True)
        ciphertext = base64.b64decode(blob.ciphertext, validate=True)

        key = _derive_key(password, salt)
        plaintext = AESGCM(key).decrypt(iv, ciphertext, None)
        snapshot = json.loads(plaintext.decode("utf-8"))
    except DecryptionError:
        raise
    except (InvalidTag, binascii.Error, ValueError, TypeError) as e:
        # json.JSONDecodeError and UnicodeDecodeError are ValueErrors
        raise DecryptionError() from e

    if not isinstance(snapshot, dict):
        raise DecryptionError()
    return snapshot
