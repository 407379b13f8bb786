"""
Tests for the category rule cache.
"""

import json

from finance_tracker.models import RuleEntry
from finance_tracker.rules import RULES_KEY, CategoryRuleCache
from finance_tracker.services.storage import InMemoryKeyValueStore


def netflix_rule():
    return RuleEntry(category="Entertainment", frequency="monthly", isIncome=False, type="subscription")


class TestCategoryRuleCache:
    """Tests for learning and looking up merchant rules."""

    def test_lookup_is_case_and_space_insensitive(self, rule_cache):
        rule_cache.learn("Netflix", netflix_rule())
        assert rule_cache.lookup("  NETFLIX ") == netflix_rule()
        assert "netflix" in rule_cache

    def test_short_names_not_learned(self, rule_cache):
        """Test names under three characters are ignored."""
        assert rule_cache.learn("EB", netflix_rule()) is False
        assert len(rule_cache) == 0

    def test_learn_overwrites(self, rule_cache):
        """The latest confirmed classification replaces the old one."""
        rule_cache.learn("Amazon", RuleEntry(category="Shopping", frequency="one-time"))
        rule_cache.learn("amazon", RuleEntry(category="Entertainment", frequency="monthly"))
        assert rule_cache.lookup("Amazon").category == "Entertainment"
        assert len(rule_cache) == 1

    def test_persists_across_instances(self, kv):
        """Test rules survive a new cache over the same store."""
        CategoryRuleCache(kv).learn("Netflix", netflix_rule())

        reloaded = CategoryRuleCache(kv)

        assert reloaded.lookup("netflix") == netflix_rule()
        stored = json.loads(kv.get(RULES_KEY))
        assert stored["netflix"]["isIncome"] is False

    def test_forget(self, rule_cache):
        rule_cache.learn("Netflix", netflix_rule())
        assert rule_cache.forget("NETFLIX") is True
        assert rule_cache.forget("Netflix") is False
        assert rule_cache.lookup("Netflix") is None

    def test_corrupt_cache_is_empty(self):
        """Test unreadable JSON does not break the session."""
        cache = CategoryRuleCache(InMemoryKeyValueStore({RULES_KEY: "{oops"}))
        assert len(cache) == 0

    def test_legacy_frequency_spellings(self):
        """Test stored rules with old spellings load normalized."""
        kv = InMemoryKeyValueStore({RULES_KEY: json.dumps({
            "Gym": {"category": "Health", "frequency": "Yearly", "isIncome": False},
        })})
        assert CategoryRuleCache(kv).lookup("gym").frequency == "annual"
