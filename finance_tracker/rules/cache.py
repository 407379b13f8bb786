"""
Category Rule Cache

Remembers how the user classified each merchant, so the next time the same
name shows up it is classified locally, without asking the AI service.

CRITICAL: Rules are learned ONLY when the user explicitly saves a
transaction. AI suggestions are never written here - otherwise one bad
guess would silently become permanent.

The cache is stored as a single JSON object (merchant key → rule) under one
key of an injected KeyValueStore. One cache instance per session.
"""

import json
from typing import Optional

import structlog
from pydantic import ValidationError as PydanticValidationError

from finance_tracker.models.transaction import RuleEntry, normalize_name
from finance_tracker.services.storage.interface import KeyValueStore


logger = structlog.get_logger(__name__)


RULES_KEY = "intelligenceCache"

# Very short names ("a", "EB") are too ambiguous to learn from
MIN_NAME_LENGTH = 3


class CategoryRuleCache:
    """
    Merchant name → RuleEntry.

    Usage:
        cache = CategoryRuleCache(kv)
        cache.learn("Netflix", RuleEntry(category="Entertainment", ...))
        cache.lookup("  NETFLIX ")  # same rule
    """

    def __init__(self, kv: KeyValueStore, key: str = RULES_KEY):
        self._kv = kv
        self._key = key
        self._rules: dict[str, RuleEntry] = self._read()

    def _read(self) -> dict[str, RuleEntry]:
        raw = self._kv.get(self._key)
        if not raw:
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("rule_cache_unreadable", key=self._key)
            return {}
        if not isinstance(data, dict):
            return {}

        rules = {}
        for name, entry in data.items():
            try:
                rules[normalize_name(name)] = RuleEntry.model_validate(entry)
            except PydanticValidationError:
                logger.warning("rule_dropped", merchant=name)
        return rules

    def _write(self) -> None:
        self._kv.set(
            self._key,
            json.dumps({name: rule.to_record() for name, rule in self._rules.items()}),
        )

    def lookup(self, name: str) -> Optional[RuleEntry]:
        """Rule for a merchant, matched case-insensitively and trimmed."""
        return self._rules.get(normalize_name(name))

    def learn(self, name: str, entry: RuleEntry) -> bool:
        """
        Record the user's classification for a merchant.

        Returns:
            True if the rule was stored, False if the name was too short
        """
        key = normalize_name(name)
        if len(key) < MIN_NAME_LENGTH:
            return False
        self._rules[key] = entry
        self._write()
        return True

    def forget(self, name: str) -> bool:
        """Drop a learned rule. Returns False if there was none."""
        key = normalize_name(name)
        if key not in self._rules:
            return False
        del self._rules[key]
        self._write()
        return True

    def entries(self) -> dict[str, RuleEntry]:
        return dict(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, name: str) -> bool:
        return normalize_name(name) in self._rules
