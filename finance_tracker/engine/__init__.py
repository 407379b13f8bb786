"""
Reconciliation engine: pure functions over store state.
"""

from finance_tracker.engine.aggregator import (
    compute_monthly_financials,
    latest_statements,
    month_transactions,
    promo_days_remaining,
    total_credit_card_debt,
)
from finance_tracker.engine.normalization import (
    MONTHLY_FACTORS,
    monthly_equivalent,
    monthly_factor,
)
from finance_tracker.engine.periods import (
    days_in_month,
    local_today,
    period_status,
)
from finance_tracker.engine.resolver import (
    active_subscriptions,
    dedupe_credit_card_payments,
    project_into_month,
    resolve_active_recurring,
)

__all__ = [
    # Normalization
    "MONTHLY_FACTORS",
    "monthly_equivalent",
    "monthly_factor",
    # Resolver
    "active_subscriptions",
    "dedupe_credit_card_payments",
    "project_into_month",
    "resolve_active_recurring",
    # Periods
    "days_in_month",
    "local_today",
    "period_status",
    # Aggregator
    "compute_monthly_financials",
    "latest_statements",
    "month_transactions",
    "promo_days_remaining",
    "total_credit_card_debt",
]
