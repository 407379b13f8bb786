"""Merchant classification rules learned from explicit saves."""

from finance_tracker.rules.cache import MIN_NAME_LENGTH, RULES_KEY, CategoryRuleCache

__all__ = [
    "CategoryRuleCache",
    "MIN_NAME_LENGTH",
    "RULES_KEY",
]
