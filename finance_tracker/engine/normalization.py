"""
Normalization Engine

Converts an (amount, frequency) pair into its average monthly contribution.

Factor = occurrences per year / 12. A one-time amount counts in full toward
the single month it is assigned to; it is not spread across the year.
"""

from decimal import Decimal
from typing import Any

import structlog

from finance_tracker.errors import ValidationError
from finance_tracker.models.transaction import Frequency, parse_frequency, safe_decimal


logger = structlog.get_logger(__name__)


MONTHLY_FACTORS: dict[Frequency, Decimal] = {
    Frequency.WEEKLY: Decimal(52) / Decimal(12),
    Frequency.BIWEEKLY: Decimal(26) / Decimal(12),
    Frequency.MONTHLY: Decimal(1),
    Frequency.QUARTERLY: Decimal(1) / Decimal(3),
    Frequency.ANNUAL: Decimal(1) / Decimal(12),
    Frequency.ONE_TIME: Decimal(1),
}


def monthly_factor(frequency: Any, strict: bool = False) -> Decimal:
    """
    Multiplier for a frequency.

    Unknown frequencies contribute nothing (factor 0) unless `strict`
    is set, in which case they raise ValidationError.
    """
    freq = parse_frequency(frequency)
    if freq is None:
        if strict:
            raise ValidationError("frequency", f"Unknown frequency: {frequency!r}")
        logger.warning("unknown_frequency", frequency=frequency)
        return Decimal(0)
    return MONTHLY_FACTORS[freq]


def monthly_equivalent(amount: Any, frequency: Any, strict: bool = False) -> Decimal:
    """
    Monthly-equivalent of a face amount.

    Invalid or non-numeric amounts yield 0.
    """
    value = safe_decimal(amount)
    if value is None:
        if strict:
            raise ValidationError("amount", f"Invalid amount: {amount!r}")
        return Decimal(0)
    return value * monthly_factor(frequency, strict=strict)
