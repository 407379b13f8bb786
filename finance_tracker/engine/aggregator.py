"""
Monthly Aggregator

Turns the store into the numbers the dashboard shows for one (month, year).

CRITICAL: Everything in here is a pure function of (store state, period,
today). Nothing is cached and nothing is written back, so recomputing for
the same input always yields the same `Financials`.

RULES:
- Transfers and credit-card payments are money moving between the user's
  own accounts. They never count as income or expense.
- Recurring income counts in every month; recurring expenses count only
  while they are in the active set (see resolver).
- One-time items count only in the month they are dated in.
- Credit-card payments are summed separately, at face value, after
  cross-statement dedup.
"""

from collections.abc import Iterable
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Optional, Union

from finance_tracker.engine.normalization import monthly_equivalent
from finance_tracker.engine.periods import (
    MONTH_LABELS,
    in_month,
    local_today,
    period_status,
)
from finance_tracker.engine.resolver import (
    CC_AMOUNT_TOLERANCE,
    CC_WINDOW_DAYS,
    STALE_AFTER_DAYS,
    dedupe_credit_card_payments,
    project_into_month,
    resolve_active_recurring,
)
from finance_tracker.models.results import Financials, MonthSeriesPoint
from finance_tracker.models.transaction import (
    CREDIT_CARD_PAYMENT,
    AccountType,
    BalanceTransfer,
    Expense,
    Income,
    Statement,
)

if TYPE_CHECKING:
    from finance_tracker.store.transaction_store import TransactionStore


ZERO = Decimal("0")


def _total(transactions: Iterable[Union[Income, Expense]], strict: bool = False) -> Decimal:
    return sum(
        (monthly_equivalent(tx.amount, tx.frequency, strict=strict) for tx in transactions),
        ZERO,
    )


def _one_time_in_month(
    transactions: Iterable[Union[Income, Expense]], month: int, year: int
) -> list[Union[Income, Expense]]:
    return [
        tx for tx in transactions
        if not tx.is_recurring and not tx.is_special and in_month(tx.date, month, year)
    ]


def compute_monthly_financials(
    store: "TransactionStore",
    month: int,
    year: int,
    today: Optional[date] = None,
    stale_after_days: int = STALE_AFTER_DAYS,
    cc_amount_tolerance: Decimal = CC_AMOUNT_TOLERANCE,
    cc_window_days: int = CC_WINDOW_DAYS,
    strict: bool = False,
) -> Financials:
    """
    Compute cash-flow metrics for one month.

    Args:
        store: Current transaction store
        month: 1-12
        year: Calendar year
        today: Reference date for staleness and period status
        strict: Raise on unknown frequencies instead of counting them as 0

    Returns:
        Financials with totals, category breakdown and the 12-month series
    """
    today = today or local_today()

    # Recurring baselines (identical for every month of the series)
    recurring_income = [
        tx for tx in store.income if tx.is_recurring and not tx.is_special
    ]
    active_expenses = [
        tx for tx in resolve_active_recurring(store.expenses, today, stale_after_days)
        if not tx.is_special
    ]
    subscriptions = [tx for tx in active_expenses if tx.is_subscription]

    recurring_income_total = _total(recurring_income, strict)
    recurring_expense_total = _total(active_expenses, strict)

    # One-time items for the selected month
    one_time_income = _one_time_in_month(store.income, month, year)
    one_time_expenses = _one_time_in_month(store.expenses, month, year)

    total_income = recurring_income_total + _total(one_time_income, strict)
    total_expenses = recurring_expense_total + _total(one_time_expenses, strict)

    by_category: dict[str, Decimal] = {}
    for tx in [*active_expenses, *one_time_expenses]:
        by_category[tx.category] = (
            by_category.get(tx.category, ZERO)
            + monthly_equivalent(tx.amount, tx.frequency, strict=strict)
        )

    # CC payments may appear on both sides (bank debit and card credit)
    cc_payments = [
        tx for tx in store.all_transactions()
        if tx.category == CREDIT_CARD_PAYMENT and in_month(tx.date, month, year)
    ]
    unique_cc_payments = dedupe_credit_card_payments(
        cc_payments, cc_amount_tolerance, cc_window_days
    )

    yearly_data = []
    for series_month in range(1, 13):
        income = recurring_income_total + _total(
            _one_time_in_month(store.income, series_month, year), strict
        )
        expenses = recurring_expense_total + _total(
            _one_time_in_month(store.expenses, series_month, year), strict
        )
        yearly_data.append(
            MonthSeriesPoint(
                month=series_month,
                label=MONTH_LABELS[series_month - 1],
                income=income,
                expenses=expenses,
                net=income - expenses,
            )
        )

    return Financials(
        month=month,
        year=year,
        period_status=period_status(month, year, today),
        total_income=total_income,
        total_expenses=total_expenses,
        net=total_income - total_expenses,
        total_recurring_expenses=recurring_expense_total,
        total_subscriptions_cost=_total(subscriptions, strict),
        active_subscription_count=len(subscriptions),
        total_cc_payments=sum((tx.amount for tx in unique_cc_payments), ZERO),
        by_category=by_category,
        yearly_data=yearly_data,
        active_recurring_items=active_expenses,
        active_subscriptions=subscriptions,
    )


def month_transactions(
    store: "TransactionStore",
    month: int,
    year: int,
    today: Optional[date] = None,
    stale_after_days: int = STALE_AFTER_DAYS,
) -> list[Union[Income, Expense]]:
    """
    Everything to list for a month, newest first.

    Recurring items appear as virtual projections; the store is not touched.
    """
    today = today or local_today()

    recurring = [tx for tx in store.income if tx.is_recurring]
    recurring += resolve_active_recurring(store.expenses, today, stale_after_days)
    one_time = [
        tx for tx in store.all_transactions()
        if not tx.is_recurring and in_month(tx.date, month, year)
    ]

    projected = [project_into_month(tx, month, year) for tx in recurring]
    listing = one_time + [tx for tx in projected if tx is not None]
    return sorted(listing, key=lambda tx: tx.date, reverse=True)


# =============================================================================
# ACCOUNTS & BALANCE TRANSFERS
# =============================================================================

def latest_statements(statements: Iterable[Statement]) -> list[Statement]:
    """Most recent statement per (provider, last4) account."""
    latest: dict[tuple[str, str], Statement] = {}
    for statement in statements:
        current = latest.get(statement.account_key)
        if current is None or statement.date > current.date:
            latest[statement.account_key] = statement
    return list(latest.values())


def total_credit_card_debt(statements: Iterable[Statement]) -> Decimal:
    """Sum of current credit-card balances (unknown balances count as 0)."""
    return sum(
        (
            statement.balance or ZERO
            for statement in latest_statements(statements)
            if statement.type == AccountType.CREDIT_CARD
        ),
        ZERO,
    )


def promo_days_remaining(transfer: BalanceTransfer, today: Optional[date] = None) -> int:
    """Days left on the promotional rate, never negative."""
    today = today or local_today()
    return max(0, (transfer.apr_end_date - today).days)
