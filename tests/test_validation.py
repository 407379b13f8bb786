"""
Tests for draft validation.
"""

from datetime import date
from decimal import Decimal

from finance_tracker.models import Expense, Income, RawCandidate
from finance_tracker.store import TransactionStore
from finance_tracker.validation import TransactionValidator


TODAY = date(2025, 3, 10)


def issue_fields(result):
    return {(issue.field, issue.issue_type) for issue in result.issues}


class TestSchemaReview:
    """Tests for stage 1: parsing and defaults."""

    def test_clean_draft(self):
        """Test a complete draft passes without issues."""
        validator = TransactionValidator(future_date_tolerance_days=7)

        result = validator.review(
            {"name": "Rent", "amount": "1500", "date": "2025-03-01", "frequency": "monthly",
             "category": "Housing", "type": "bill"},
            today=TODAY,
        )

        assert result.issues == []
        assert isinstance(result.transaction, Expense)
        assert result.transaction.amount == Decimal("1500")
        assert validator.get_user_friendly_summary(result) == "✅ All checks passed."

    def test_missing_name_is_error(self):
        validator = TransactionValidator(future_date_tolerance_days=7)
        result = validator.review({"amount": 10, "date": "2025-03-01"}, today=TODAY)
        assert result.has_errors
        assert ("name", "missing") in issue_fields(result)
        assert "cannot be saved" in validator.get_user_friendly_summary(result)

    def test_bad_values_defaulted(self):
        """Unparseable fields are replaced and reported as warnings."""
        validator = TransactionValidator(future_date_tolerance_days=7)

        result = validator.review(
            {"name": "Mystery", "amount": "lots", "date": "soon", "frequency": "sometimes",
             "category": "Stuff"},
            today=TODAY,
        )

        tx = result.transaction
        assert tx.amount == Decimal("0")
        assert tx.date == TODAY
        assert tx.frequency == "one-time"
        assert tx.category == "Other"
        assert not result.has_errors
        assert {
            ("amount", "defaulted"),
            ("date", "defaulted"),
            ("frequency", "defaulted"),
            ("category", "defaulted"),
            ("amount", "suspicious_value"),
        } <= issue_fields(result)

    def test_negative_amount(self):
        validator = TransactionValidator(future_date_tolerance_days=7)
        result = validator.review({"name": "Refund", "amount": -20, "date": "2025-03-01"}, today=TODAY)
        assert result.transaction.amount == Decimal("20")
        assert ("amount", "invalid_value") in issue_fields(result)

    def test_income_side(self):
        """Test isIncome picks the income vocabulary and variant."""
        validator = TransactionValidator(future_date_tolerance_days=7)
        result = validator.review(
            RawCandidate(name="Payroll", amount=4000, date="2025-03-01", category="salary", isIncome=True),
            today=TODAY,
        )
        assert isinstance(result.transaction, Income)
        assert result.transaction.category == "Salary"

    def test_existing_transaction_keeps_id_and_statement(self):
        """Re-validating a stored record keeps its id and statement link."""
        validator = TransactionValidator(future_date_tolerance_days=7)
        original = Expense(id="e1", name="Netflix", amount=Decimal("15.49"), date="2025-02-01",
                           frequency="monthly", category="Entertainment", type="subscription",
                           statement_id="s1")

        result = validator.review(original, today=TODAY)

        assert result.transaction.id == "e1"
        assert result.transaction.statement_id == "s1"
        assert result.transaction.is_subscription
        assert result.issues == []


class TestSemanticReview:
    """Tests for stage 2: business checks."""

    def test_future_one_time(self):
        validator = TransactionValidator(future_date_tolerance_days=7)
        result = validator.review({"name": "Concert", "amount": 80, "date": "2025-05-01",
                                   "frequency": "one-time"}, today=TODAY)
        assert ("date", "future_date") in issue_fields(result)

    def test_future_recurring_allowed(self):
        """Test recurring items may be dated ahead."""
        validator = TransactionValidator(future_date_tolerance_days=7)
        result = validator.review({"name": "Insurance", "amount": 900, "date": "2025-06-01",
                                   "frequency": "annual"}, today=TODAY)
        assert ("date", "future_date") not in issue_fields(result)

    def test_probable_duplicate(self):
        """Test a matching record in the store is flagged."""
        store = TransactionStore(expenses=[
            Expense(id="c1", name="Coffee", amount=5, date="2025-03-09", frequency="one-time"),
        ])
        validator = TransactionValidator(store=store, future_date_tolerance_days=7)

        result = validator.review({"name": "coffee", "amount": "5.00", "date": "2025-03-09",
                                   "frequency": "one-time"}, today=TODAY)

        assert ("duplicate", "potential_duplicate") in issue_fields(result)
        assert "double-check" in validator.get_user_friendly_summary(result)

    def test_editing_record_is_not_its_own_duplicate(self):
        store = TransactionStore(expenses=[
            Expense(id="c1", name="Coffee", amount=5, date="2025-03-09", frequency="one-time"),
        ])
        validator = TransactionValidator(store=store, future_date_tolerance_days=7)
        result = validator.review(store.get("c1"), today=TODAY)
        assert ("duplicate", "potential_duplicate") not in issue_fields(result)
