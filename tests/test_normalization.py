"""
Tests for the monthly-equivalent conversion.
"""

import pytest
from decimal import Decimal

from finance_tracker.engine import monthly_equivalent, monthly_factor
from finance_tracker.errors import ValidationError


class TestMonthlyEquivalent:
    """Tests for (amount, frequency) → monthly amount."""

    @pytest.mark.parametrize(
        "frequency, factor",
        [
            ("weekly", Decimal(52) / Decimal(12)),
            ("biweekly", Decimal(26) / Decimal(12)),
            ("monthly", Decimal(1)),
            ("quarterly", Decimal(1) / Decimal(3)),
            ("annual", Decimal(1) / Decimal(12)),
            ("one-time", Decimal(1)),
        ],
    )
    def test_factors(self, frequency, factor):
        """Each frequency scales by occurrences per year / 12."""
        assert monthly_equivalent(Decimal("120"), frequency) == Decimal("120") * factor

    def test_zero_amount(self):
        """Test zero stays zero for every frequency."""
        assert monthly_equivalent(0, "weekly") == Decimal("0")

    def test_unknown_frequency_contributes_nothing(self):
        """An unrecognised frequency has factor 0."""
        assert monthly_equivalent(Decimal("100"), "bogus") == Decimal("0")
        assert monthly_factor(None) == Decimal("0")

    def test_strict_unknown_frequency_raises(self):
        """Strict mode surfaces malformed data instead of hiding it."""
        with pytest.raises(ValidationError) as exc_info:
            monthly_equivalent(Decimal("100"), "bogus", strict=True)
        assert exc_info.value.field == "frequency"

    def test_invalid_amount_is_zero(self):
        """Non-numeric amounts yield 0."""
        assert monthly_equivalent("abc", "monthly") == Decimal("0")
        assert monthly_equivalent(None, "monthly") == Decimal("0")
        assert monthly_equivalent(float("nan"), "monthly") == Decimal("0")

    def test_strict_invalid_amount_raises(self):
        """Test strict mode also rejects bad amounts."""
        with pytest.raises(ValidationError):
            monthly_equivalent("abc", "monthly", strict=True)

    def test_string_amounts(self):
        """Formatted amounts are parsed."""
        assert monthly_equivalent("$1,200.00", "monthly") == Decimal("1200.00")

    def test_frequency_aliases(self):
        """Legacy spellings map onto the canonical frequencies."""
        assert monthly_factor("Yearly") == Decimal(1) / Decimal(12)
        assert monthly_factor(" Monthly ") == Decimal(1)
