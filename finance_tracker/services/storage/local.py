"""
Local Key-Value Storage

Two implementations of `KeyValueStore`:
- InMemoryKeyValueStore: for tests and throwaway sessions
- JsonFileKeyValueStore: one JSON object on disk, written atomically

Plus an audit storage that appends events under one key of any
key-value store, keeping a bounded history.
"""

import json
import os
from pathlib import Path
from typing import Optional

import structlog

from finance_tracker.errors import StorageError
from finance_tracker.models.audit import AuditEvent
from finance_tracker.services.storage.interface import (
    AuditStorageInterface,
    KeyValueStore,
)


logger = structlog.get_logger(__name__)


class InMemoryKeyValueStore(KeyValueStore):
    """Dictionary-backed store."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileKeyValueStore(KeyValueStore):
    """
    All keys live in a single JSON object file.

    Writes go to a `.tmp` sibling first and are then moved into place
    with `os.replace`, so a crash never leaves a half-written file.
    """

    def __init__(self, path: Path):
        self._path = Path(path)

    def _read_all(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read {self._path}: {e}")
        if not isinstance(data, dict):
            raise StorageError(f"Unexpected content in {self._path}")
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _write_all(self, data: dict[str, str]) -> None:
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(data), encoding="utf-8")
            os.replace(tmp, self._path)
        except OSError as e:
            raise StorageError(f"Failed to write {self._path}: {e}")

    def get(self, key: str) -> Optional[str]:
        return self._read_all().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def delete(self, key: str) -> None:
        data = self._read_all()
        if key in data:
            del data[key]
            self._write_all(data)


class KeyValueAuditStorage(AuditStorageInterface):
    """Append-only audit trail kept as a JSON list under one key."""

    def __init__(
        self,
        store: KeyValueStore,
        key: str = "auditLog",
        history_limit: int = 500,
    ):
        self._store = store
        self._key = key
        self._history_limit = history_limit

    def _load(self) -> list[dict]:
        raw = self._store.get(self._key)
        if not raw:
            return []
        try:
            events = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("audit_log_unreadable", key=self._key)
            return []
        return events if isinstance(events, list) else []

    def append_event(self, event: AuditEvent) -> bool:
        events = self._load()
        events.append(event.model_dump(mode="json"))
        if self._history_limit and len(events) > self._history_limit:
            events = events[-self._history_limit:]
        self._store.set(self._key, json.dumps(events))
        return True

    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = []
        for raw in reversed(self._load()[-limit:]):
            try:
                events.append(AuditEvent.model_validate(raw))
            except ValueError:
                continue
        return events
