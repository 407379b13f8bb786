"""
Two-Stage Transaction Validation

DESIGN DECISION: A draft (form entry, AI guess, chat proposal) is checked
in two stages:

STAGE 1 - SCHEMA REVIEW:
- Required field presence (name)
- Amount, date, frequency and category parse
- Anything unusable is replaced by a safe default AND reported

STAGE 2 - SEMANTIC REVIEW:
- Future-dated one-time items
- Zero amounts
- Probable duplicates already in the store

IMPORTANT: Routine bad input never raises. The returned transaction is
always usable; what was changed to make it usable is listed in `issues`
so the UI can show it before the user confirms.
"""

from datetime import date, timedelta
from typing import Any, Optional, Union

from finance_tracker.config import get_settings
from finance_tracker.engine.periods import local_today
from finance_tracker.models.results import ValidationIssue, ValidationResult
from finance_tracker.models.transaction import (
    DEFAULT_CATEGORY,
    Expense,
    Frequency,
    Income,
    RawCandidate,
    categories_for,
    make_transaction,
    new_id,
    parse_expense_type,
    parse_frequency,
    safe_date,
    safe_decimal,
)
from finance_tracker.reconcile.importer import validate_category
from finance_tracker.store.transaction_store import TransactionStore


Draft = Union[RawCandidate, Income, Expense, dict[str, Any]]


def _as_candidate(draft: Draft) -> RawCandidate:
    if isinstance(draft, RawCandidate):
        return draft
    if isinstance(draft, (Income, Expense)):
        data = draft.model_dump(mode="json", by_alias=True, exclude={"kind", "virtual"})
        data["isIncome"] = draft.is_income
        return RawCandidate.model_validate(data)
    return RawCandidate.model_validate(draft)


class TransactionValidator:
    """
    Reviews drafts before they are saved.

    Stage 1 runs without storage; stage 2 uses the store, when given,
    for duplicate checks.
    """

    def __init__(
        self,
        store: Optional[TransactionStore] = None,
        future_date_tolerance_days: Optional[int] = None,
    ):
        """
        Initialize validator.

        Args:
            store: Ledger used for duplicate checking.
                   If None, duplicate checking is skipped.
            future_date_tolerance_days: Grace period for one-time items
                   dated after today; defaults to the app setting.
        """
        self._store = store
        if future_date_tolerance_days is None:
            future_date_tolerance_days = get_settings().app.future_date_tolerance_days
        self._future_tolerance = future_date_tolerance_days

    def _review_schema(
        self,
        candidate: RawCandidate,
        today: date,
    ) -> tuple[dict[str, Any], list[ValidationIssue]]:
        """
        Stage 1: parse every field, defaulting what cannot be parsed.

        Returns: (clean_fields, list_of_issues)
        """
        issues = []
        is_income = bool(candidate.is_income)

        if not candidate.name:
            issues.append(ValidationIssue(
                field="name",
                issue_type="missing",
                message="A name is required",
                severity="error",
                suggested_fix="Enter the merchant or income source",
            ))

        amount = safe_decimal(candidate.amount)
        if amount is None:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="defaulted",
                message=f"Amount {candidate.amount!r} is not a number; using 0",
                severity="warning",
                suggested_fix="Check the amount",
            ))
            amount = 0
        elif amount < 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Negative amount stored as a positive value",
                severity="warning",
            ))
            amount = abs(amount)

        parsed_date = safe_date(candidate.date)
        if parsed_date is None:
            issues.append(ValidationIssue(
                field="date",
                issue_type="defaulted",
                message="Date missing or unreadable; using today",
                severity="warning",
                suggested_fix="Pick the transaction date",
            ))
            parsed_date = today

        frequency = parse_frequency(candidate.frequency)
        if frequency is None:
            if candidate.frequency:
                issues.append(ValidationIssue(
                    field="frequency",
                    issue_type="defaulted",
                    message=f"Unknown frequency {candidate.frequency!r}; using one-time",
                    severity="warning",
                ))
            frequency = Frequency.ONE_TIME

        category = validate_category(candidate.category, is_income)
        if candidate.category and category == DEFAULT_CATEGORY and (
            candidate.category.strip().lower() != DEFAULT_CATEGORY.lower()
        ):
            issues.append(ValidationIssue(
                field="category",
                issue_type="defaulted",
                message=(
                    f"'{candidate.category}' is not a known "
                    f"{'income' if is_income else 'expense'} category; using {DEFAULT_CATEGORY}"
                ),
                severity="warning",
                suggested_fix=f"Choose one of: {', '.join(categories_for(is_income))}",
            ))

        fields = {
            "id": candidate.id or new_id(),
            "name": candidate.name,
            "amount": amount,
            "date": parsed_date,
            "frequency": frequency.value,
            "category": category,
            "type": parse_expense_type(candidate.type),
            "statement_id": candidate.statement_id,
        }
        return fields, issues

    def _review_semantic(
        self,
        tx: Union[Income, Expense],
        today: date,
    ) -> list[ValidationIssue]:
        """
        Stage 2: business checks on the cleaned record.
        """
        issues = []

        max_future_date = today + timedelta(days=self._future_tolerance)
        if not tx.is_recurring and tx.date > max_future_date:
            issues.append(ValidationIssue(
                field="date",
                issue_type="future_date",
                message=f"Date ({tx.date}) is in the future",
                severity="warning",
                suggested_fix="Please verify the date is correct",
            ))

        if tx.amount == 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message="Amount is zero",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))

        if self._store is not None and tx.name:
            existing = self._store.find_duplicate(tx.name, tx.date, tx.amount, tx.is_income)
            if existing is not None and existing.id != tx.id:
                issues.append(ValidationIssue(
                    field="duplicate",
                    issue_type="potential_duplicate",
                    message=f"'{existing.name}' on {existing.date} may already exist",
                    severity="warning",
                    suggested_fix="Please verify this isn't a duplicate entry",
                ))

        return issues

    def review(self, draft: Draft, today: Optional[date] = None) -> ValidationResult:
        """
        Run both stages.

        Args:
            draft: Form values, an AI guess, or an existing transaction
            today: Reference date for defaults and future-date checks

        Returns:
            ValidationResult holding the cleaned transaction and all issues
        """
        today = today or local_today()
        candidate = _as_candidate(draft)

        fields, issues = self._review_schema(candidate, today)
        tx = make_transaction(bool(candidate.is_income), **fields)
        if tx.statement_id is None and self._store is not None:
            # An edit keeps the statement link of the record it replaces
            existing = self._store.get(tx.id)
            if existing is not None and existing.statement_id:
                tx = tx.model_copy(update={"statement_id": existing.statement_id})

        issues.extend(self._review_semantic(tx, today))
        return ValidationResult(transaction=tx, issues=issues)

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """
        Short summary shown above the confirm button.
        """
        if not result.issues:
            return "✅ All checks passed."

        lines = []
        if result.has_errors:
            lines.append("❌ This entry cannot be saved yet:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"  • {issue.message}")
        if result.warnings:
            lines.append("⚠️ Please double-check:")
            for warning in result.warnings:
                lines.append(f"  • {warning}")
        return "\n".join(lines)
