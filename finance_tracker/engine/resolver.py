"""
Deduplication & Recency Resolver

Decides which recurring transactions are "currently in effect" and
collapses credit-card payments that were imported twice.

RECURRING DEDUP (last write wins):
A recurring bill whose amount changed shows up as several records with the
same merchant name. The newest one is authoritative; older ones stay in
storage for history but drop out of the active set. Two different
obligations that share a merchant name will collapse too - the key is the
name alone.

STALENESS:
A `monthly` item whose latest occurrence is more than 60 days old is
treated as cancelled. Other frequencies are not staleness-checked.

CREDIT-CARD PAYMENTS:
The same payment appears once on the paying bank account's export and once
on the card's export, a few days apart. Amounts within a cent and dates
within 5 days are one posting; the earliest is kept.
"""

from collections.abc import Iterable
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional, TypeVar, Union

from finance_tracker.engine.periods import in_month, local_today, same_day_in_month
from finance_tracker.models.transaction import Expense, Frequency, Income


STALE_AFTER_DAYS = 60
CC_AMOUNT_TOLERANCE = Decimal("0.01")
CC_WINDOW_DAYS = 5

T = TypeVar("T", Income, Expense)


def resolve_active_recurring(
    transactions: Iterable[T],
    today: Optional[date] = None,
    stale_after_days: int = STALE_AFTER_DAYS,
) -> list[T]:
    """
    Latest recurring record per merchant, minus lapsed monthly items.

    One-time transactions are ignored.
    """
    today = today or local_today()

    latest: dict[str, T] = {}
    for tx in transactions:
        if not tx.is_recurring:
            continue
        current = latest.get(tx.merchant_key)
        if current is None or tx.date > current.date:
            latest[tx.merchant_key] = tx

    cutoff = today - timedelta(days=stale_after_days)
    return [
        tx for tx in latest.values()
        if not (tx.frequency == Frequency.MONTHLY.value and tx.date < cutoff)
    ]


def active_subscriptions(
    transactions: Iterable[Union[Income, Expense]],
    today: Optional[date] = None,
    stale_after_days: int = STALE_AFTER_DAYS,
) -> list[Expense]:
    """Active recurring expenses typed as subscriptions."""
    return [
        tx for tx in resolve_active_recurring(transactions, today, stale_after_days)
        if isinstance(tx, Expense) and tx.is_subscription
    ]


def dedupe_credit_card_payments(
    transactions: Iterable[T],
    amount_tolerance: Decimal = CC_AMOUNT_TOLERANCE,
    window_days: int = CC_WINDOW_DAYS,
) -> list[T]:
    """
    Collapse CC payments seen on two statement sources.

    Candidates are walked in date order; each one is dropped if it matches
    an already kept payment, so every cluster keeps its earliest member.
    """
    kept: list[T] = []
    for tx in sorted(transactions, key=lambda t: t.date):
        is_duplicate = any(
            abs(tx.amount - other.amount) <= amount_tolerance
            and abs((tx.date - other.date).days) <= window_days
            for other in kept
        )
        if not is_duplicate:
            kept.append(tx)
    return kept


def project_into_month(tx: T, month: int, year: int) -> Optional[T]:
    """
    Read-time view of a transaction inside a given month.

    Recurring items get a virtual copy dated on their usual day of month.
    One-time items are returned only if they already fall in that month.
    The projection is never written back to the store.
    """
    if not tx.is_recurring:
        return tx if in_month(tx.date, month, year) else None
    projected_date = same_day_in_month(tx.date, month, year)
    if projected_date == tx.date:
        return tx
    return tx.model_copy(update={"date": projected_date, "virtual": True})
