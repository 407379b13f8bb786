"""
Derived Result Models

Everything in here is COMPUTED from the store, never stored itself:
- monthly financials and the 12-month chart series
- import reconciliation outcomes
- validation reports for drafts and AI guesses
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field

from finance_tracker.models.transaction import (
    Expense,
    Income,
    RawCandidate,
    Statement,
)


# =============================================================================
# MONTHLY FINANCIALS
# =============================================================================

class PeriodStatus(str, Enum):
    """Where a (month, year) sits relative to today."""
    PAST = "past"
    CURRENT = "current"
    FUTURE = "future"


class MonthSeriesPoint(BaseModel):
    """One bar of the yearly chart."""

    month: int = Field(..., ge=1, le=12)
    label: str
    income: Decimal = Decimal("0")
    expenses: Decimal = Decimal("0")
    net: Decimal = Decimal("0")


class Financials(BaseModel):
    """
    Monthly cash-flow metrics for one (month, year).

    All totals are monthly equivalents except `total_cc_payments`,
    which sums raw posting amounts. Empty input yields zeros.
    """

    month: int = Field(..., ge=1, le=12)
    year: int
    period_status: PeriodStatus

    total_income: Decimal = Decimal("0")
    total_expenses: Decimal = Decimal("0")
    net: Decimal = Decimal("0")

    # Baseline: active recurring expenses, same for every month
    total_recurring_expenses: Decimal = Decimal("0")

    total_subscriptions_cost: Decimal = Decimal("0")
    active_subscription_count: int = 0

    total_cc_payments: Decimal = Decimal("0")

    by_category: dict[str, Decimal] = Field(default_factory=dict)
    yearly_data: list[MonthSeriesPoint] = Field(default_factory=list)

    active_recurring_items: list[Expense] = Field(default_factory=list)
    active_subscriptions: list[Expense] = Field(default_factory=list)

    def category_share(self, category: str) -> Decimal:
        """Fraction of total expenses for a category (0 when there is no spending)."""
        if not self.total_expenses:
            return Decimal("0")
        return self.by_category.get(category, Decimal("0")) / self.total_expenses


# =============================================================================
# IMPORT RECONCILIATION
# =============================================================================

class SkippedCandidate(BaseModel):
    """A candidate that was not inserted, and why."""

    candidate: RawCandidate
    reason: str
    existing_id: Optional[str] = None


class ReconcileResult(BaseModel):
    """
    Outcome of reconciling one extracted batch.

    Nothing here is applied yet - `TransactionStore.apply_import` commits it.
    """

    new_transactions: list[Union[Income, Expense]] = Field(default_factory=list)
    # Existing records claimed into the statement (same id, statementId attached)
    updated_transactions: list[Union[Income, Expense]] = Field(default_factory=list)
    statement: Optional[Statement] = None
    statement_created: bool = False
    skipped: list[SkippedCandidate] = Field(default_factory=list)

    @property
    def imported_count(self) -> int:
        return len(self.new_transactions) + len(self.updated_transactions)


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single issue found during validation."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'defaulted')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """
    Result of reviewing a draft.

    `transaction` is always usable: whatever was wrong has already been
    replaced by a safe default and reported in `issues`.
    """

    validated_at: datetime = Field(
        default_factory=datetime.utcnow
    )
    transaction: Union[Income, Expense]
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def warnings(self) -> list[str]:
        return [issue.message for issue in self.issues if issue.severity == "warning"]

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")
