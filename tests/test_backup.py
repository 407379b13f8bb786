"""
Tests for encrypted backup and restore.
"""

import asyncio
import base64

import pytest
from tenacity import wait_none

from finance_tracker.errors import (
    DecryptionError,
    ExternalServiceError,
    NotFoundError,
    StorageError,
)
from finance_tracker.services.backup import BackupService, decrypt_snapshot, encrypt_snapshot
from finance_tracker.services.storage.google_sheets import (
    CELL_CHUNK_SIZE,
    GoogleSheetsBackupStore,
    blob_to_row,
    row_to_blob,
)


SNAPSHOT = {
    "income": [{"id": "i1", "name": "Salary", "amount": "4000", "date": "2025-01-01"}],
    "expenses": [],
    "statements": [],
    "balanceTransfers": [],
}


class FakeSheet:
    """Minimal stand-in for a gspread worksheet."""

    def __init__(self, fail_writes: bool = False):
        self.rows = [["account", "version", "timestamp", "salt", "iv", "chunk_count"]]
        self.col_count = 26
        self.fail_writes = fail_writes

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def add_cols(self, count):
        self.col_count += count

    def update(self, range_name=None, values=None, value_input_option=None):
        if self.fail_writes:
            raise RuntimeError("quota exceeded")
        self.rows[int(range_name[1:]) - 1] = list(values[0])

    def append_row(self, row, value_input_option=None):
        if self.fail_writes:
            raise RuntimeError("quota exceeded")
        self.rows.append(list(row))


class FakeSheetsClient:
    def __init__(self):
        self.sheet = FakeSheet()

    def get_backups_sheet(self):
        return self.sheet


class TestCrypto:
    """Tests for snapshot encryption."""

    def test_round_trip(self):
        """Test the right password returns the exact snapshot."""
        blob = encrypt_snapshot(SNAPSHOT, "correct horse")
        assert decrypt_snapshot(blob, "correct horse") == SNAPSHOT

    def test_fresh_salt_and_iv(self):
        """Two backups of the same data never share salt or IV."""
        first = encrypt_snapshot(SNAPSHOT, "pw")
        second = encrypt_snapshot(SNAPSHOT, "pw")
        assert first.salt != second.salt
        assert first.iv != second.iv
        assert len(base64.b64decode(first.salt)) == 16
        assert len(base64.b64decode(first.iv)) == 12

    def test_wrong_password(self):
        blob = encrypt_snapshot(SNAPSHOT, "correct horse")
        with pytest.raises(DecryptionError, match="Incorrect password or corrupted data"):
            decrypt_snapshot(blob, "battery staple")

    def test_tampered_ciphertext(self):
        """Test a flipped byte is rejected, not partially decoded."""
        blob = encrypt_snapshot(SNAPSHOT, "pw")
        raw = bytearray(base64.b64decode(blob.ciphertext))
        raw[0] ^= 0x01
        tampered = blob.model_copy(update={"ciphertext": base64.b64encode(bytes(raw)).decode()})

        with pytest.raises(DecryptionError):
            decrypt_snapshot(tampered, "pw")

    def test_garbage_blob(self):
        """Test structurally invalid blobs raise DecryptionError."""
        with pytest.raises(DecryptionError):
            decrypt_snapshot({"salt": "!!", "iv": "??", "ciphertext": "x"}, "pw")
        with pytest.raises(DecryptionError):
            decrypt_snapshot({"nothing": "here"}, "pw")

    def test_unsupported_version(self):
        blob = encrypt_snapshot(SNAPSHOT, "pw").model_copy(update={"version": 99})
        with pytest.raises(DecryptionError, match="Unsupported"):
            decrypt_snapshot(blob, "pw")


class TestBackupService:
    """Tests for upload/download through a backup store."""

    def test_backup_then_fetch(self, kv, backup_store):
        """Test a backup can be restored with the same password."""
        service = BackupService(backup_store, kv)

        blob = asyncio.run(service.backup("default", "pw", SNAPSHOT))
        restored, timestamp = asyncio.run(service.fetch_snapshot("default", "pw"))

        assert restored == SNAPSHOT
        assert timestamp == blob.timestamp
        assert service.last_backup_timestamp() == blob.timestamp

    def test_backup_overwrites(self, kv, backup_store):
        """Last writer wins: only the newest blob is kept."""
        service = BackupService(backup_store, kv)

        asyncio.run(service.backup("default", "pw", SNAPSHOT))
        asyncio.run(service.backup("default", "pw", {**SNAPSHOT, "income": []}))

        assert asyncio.run(service.fetch_snapshot("default", "pw"))[0]["income"] == []

    def test_remote_failure(self, kv, failing_backup_store):
        """Test remote errors become ExternalServiceError and no timestamp is set."""
        service = BackupService(failing_backup_store, kv)

        with pytest.raises(ExternalServiceError):
            asyncio.run(service.backup("default", "pw", SNAPSHOT))
        with pytest.raises(ExternalServiceError):
            asyncio.run(service.fetch_snapshot("default", "pw"))
        assert service.last_backup_timestamp() is None

    def test_missing_backup(self, kv, backup_store):
        service = BackupService(backup_store, kv)
        with pytest.raises(NotFoundError):
            asyncio.run(service.fetch_snapshot("nobody", "pw"))

    def test_wrong_password_on_fetch(self, kv, backup_store):
        service = BackupService(backup_store, kv)
        asyncio.run(service.backup("default", "pw", SNAPSHOT))
        with pytest.raises(DecryptionError):
            asyncio.run(service.fetch_snapshot("default", "wrong"))


class TestGoogleSheetsBackupStore:
    """Tests for the spreadsheet row layout."""

    def test_long_ciphertext_chunked(self):
        """Test ciphertext longer than a cell is split and rejoined."""
        blob = encrypt_snapshot(SNAPSHOT, "pw").model_copy(
            update={"ciphertext": "A" * (CELL_CHUNK_SIZE * 2 + 10)}
        )

        row = blob_to_row("default", blob)

        assert row[5] == "3"
        assert all(len(cell) <= CELL_CHUNK_SIZE for cell in row[6:])
        assert row_to_blob(row) == blob

    def test_put_replaces_account_row(self):
        """Test a second backup replaces the first row for the account."""
        client = FakeSheetsClient()
        remote = GoogleSheetsBackupStore(client)
        first = encrypt_snapshot(SNAPSHOT, "pw")
        second = encrypt_snapshot(SNAPSHOT, "pw")

        asyncio.run(remote.put_blob("default", first))
        asyncio.run(remote.put_blob("other", first))
        asyncio.run(remote.put_blob("default", second))

        assert len(client.sheet.rows) == 3
        assert asyncio.run(remote.get_blob("default")) == second
        assert asyncio.run(remote.get_blob("other")) == first
        assert asyncio.run(remote.get_blob("missing")) is None

    def test_shorter_blob_blanks_old_chunks(self):
        """Test leftover chunk cells from a longer backup are cleared."""
        client = FakeSheetsClient()
        remote = GoogleSheetsBackupStore(client)
        long_blob = encrypt_snapshot(SNAPSHOT, "pw").model_copy(
            update={"ciphertext": "A" * (CELL_CHUNK_SIZE + 10)}
        )
        short_blob = encrypt_snapshot(SNAPSHOT, "pw")

        asyncio.run(remote.put_blob("default", long_blob))
        asyncio.run(remote.put_blob("default", short_blob))

        assert client.sheet.rows[1][7] == ""
        assert asyncio.run(remote.get_blob("default")) == short_blob

    def test_failed_write_keeps_previous_backup(self):
        """Test a rejected overwrite leaves the last good blob in place."""
        client = FakeSheetsClient()
        remote = GoogleSheetsBackupStore(client)
        previous = encrypt_snapshot(SNAPSHOT, "pw")
        asyncio.run(remote.put_blob("default", previous))
        client.sheet.fail_writes = True

        put_now = GoogleSheetsBackupStore.put_blob.retry_with(wait=wait_none())
        with pytest.raises(StorageError, match="quota exceeded"):
            asyncio.run(put_now(remote, "default", encrypt_snapshot(SNAPSHOT, "other")))

        assert len(client.sheet.rows) == 2
        assert asyncio.run(remote.get_blob("default")) == previous
