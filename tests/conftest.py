"""
Shared fixtures.

No real API calls in tests: Gemini models and the remote backup store
are replaced by the fakes below.
"""

from typing import Optional

import pytest

from finance_tracker.config.settings import AppSettings, GeminiSettings
from finance_tracker.errors import StorageError
from finance_tracker.rules import CategoryRuleCache
from finance_tracker.services.backup import EncryptedBlob
from finance_tracker.services.storage import BackupStoreInterface, InMemoryKeyValueStore
from finance_tracker.store import TransactionStore


class FakeResponse:
    def __init__(self, text: str):
        self.text = text


class FakeModel:
    """Stands in for genai.GenerativeModel; replies are consumed in order."""

    def __init__(self, replies: Optional[list[str]] = None, error: Optional[Exception] = None):
        self.replies = list(replies or [])
        self.error = error
        self.calls = []

    async def generate_content_async(self, contents):
        self.calls.append(contents)
        if self.error is not None:
            raise self.error
        return FakeResponse(self.replies.pop(0))


class FakeBackupStore(BackupStoreInterface):
    """One blob per account, kept in memory."""

    def __init__(self, fail: bool = False):
        self.blobs: dict[str, EncryptedBlob] = {}
        self.fail = fail

    async def put_blob(self, account: str, blob: EncryptedBlob) -> bool:
        if self.fail:
            raise StorageError("sheet unavailable")
        self.blobs[account] = blob
        return True

    async def get_blob(self, account: str) -> Optional[EncryptedBlob]:
        if self.fail:
            raise StorageError("sheet unavailable")
        return self.blobs.get(account)


@pytest.fixture
def kv():
    return InMemoryKeyValueStore()


@pytest.fixture
def store():
    return TransactionStore()


@pytest.fixture
def rule_cache(kv):
    return CategoryRuleCache(kv)


@pytest.fixture
def gemini_settings():
    return GeminiSettings(api_key="test-key", timeout_seconds=5)


@pytest.fixture
def app_settings():
    return AppSettings(timezone="UTC")


@pytest.fixture
def backup_store():
    return FakeBackupStore()


@pytest.fixture
def failing_backup_store():
    return FakeBackupStore(fail=True)


@pytest.fixture
def fake_model():
    """Factory: fake_model(replies=[...]) or fake_model(error=...)."""
    return FakeModel
