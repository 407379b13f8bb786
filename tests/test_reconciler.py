"""
Tests for statement import reconciliation.
"""

from datetime import date
from decimal import Decimal

import pytest

from finance_tracker.errors import AmbiguousAccountError
from finance_tracker.models import (
    Expense,
    Income,
    RuleEntry,
    Statement,
    StatementMeta,
)
from finance_tracker.reconcile import ImportReconciler, validate_category
from finance_tracker.store import TransactionStore


TODAY = date(2025, 3, 5)


@pytest.fixture
def reconciler(rule_cache):
    return ImportReconciler(rule_cache)


def chase_meta(**overrides):
    fields = {"provider": "Chase", "last4": "1111", "date": "2025-02-28", "balance": "812.40"}
    fields.update(overrides)
    return fields


class TestValidateCategory:
    """Tests for category canonicalisation."""

    def test_case_insensitive_match(self):
        assert validate_category("food", False) == "Food"
        assert validate_category(" SALARY ", True) == "Salary"

    def test_wrong_side_or_unknown(self):
        """Test categories outside the side's vocabulary become Other."""
        assert validate_category("Salary", False) == "Other"
        assert validate_category("Crypto", True) == "Other"
        assert validate_category(None, False) == "Other"


class TestReviewCandidate:
    """Tests for turning loose AI output into typed records."""

    def test_defaults_for_garbage(self, reconciler):
        """Bad fields are replaced by safe defaults."""
        tx = reconciler.review_candidate(
            {"name": "Mystery", "amount": "n/a", "date": "someday", "frequency": "sometimes",
             "category": "Stuff"},
            fallback_date=date(2025, 2, 28),
        )
        assert isinstance(tx, Expense)
        assert tx.amount == Decimal("0")
        assert tx.date == date(2025, 2, 28)
        assert tx.frequency == "one-time"
        assert tx.category == "Other"

    def test_rule_overrides_ai(self, reconciler, rule_cache):
        """A learned rule wins over whatever the AI guessed."""
        rule_cache.learn(
            "Netflix",
            RuleEntry(category="Entertainment", frequency="monthly", isIncome=False, type="subscription"),
        )

        tx = reconciler.review_candidate(
            {"name": "NETFLIX", "amount": 15.49, "date": "2025-02-01", "category": "Shopping",
             "frequency": "one-time", "isIncome": True},
            fallback_date=TODAY,
        )

        assert isinstance(tx, Expense)
        assert tx.category == "Entertainment"
        assert tx.frequency == "monthly"
        assert tx.is_subscription

    def test_income_candidate(self, reconciler):
        tx = reconciler.review_candidate(
            {"name": "Payroll", "amount": "4,000.00", "date": "2025-02-15", "isIncome": "true",
             "category": "salary", "frequency": "biweekly"},
            fallback_date=TODAY,
        )
        assert isinstance(tx, Income)
        assert tx.category == "Salary"
        assert tx.amount == Decimal("4000.00")


class TestReconcile:
    """Tests for the full reconcile flow."""

    def test_claims_manual_entry(self, reconciler):
        """An extracted charge matching a manual entry is linked, not duplicated."""
        manual = Expense(id="n1", name="Netflix", amount=Decimal("15.49"), date="2025-02-01",
                         category="Entertainment")
        store = TransactionStore(expenses=[manual])

        result = reconciler.reconcile(
            [{"name": "Netflix", "amount": "15.49", "date": "2025-02-01", "category": "Entertainment"}],
            chase_meta(),
            store,
            today=TODAY,
        )
        store.apply_import(result)

        assert result.new_transactions == []
        assert len(result.updated_transactions) == 1
        assert len(store) == 1
        claimed = store.get("n1")
        assert claimed.statement_id == result.statement.id
        linked = [tx for tx in store.all_transactions() if tx.statement_id == result.statement.id]
        assert len(linked) == 1

    def test_linked_duplicate_skipped(self, reconciler):
        """A record already attached to a statement is not claimed again."""
        store = TransactionStore(
            expenses=[Expense(id="n1", name="Netflix", amount=Decimal("15.49"), date="2025-02-01",
                              statement_id="old")],
        )

        result = reconciler.reconcile(
            [{"name": "Netflix", "amount": 15.49, "date": "2025-02-01"}],
            chase_meta(),
            store,
            today=TODAY,
        )

        assert result.imported_count == 0
        assert len(result.skipped) == 1
        assert result.skipped[0].existing_id == "n1"
        assert "already exists" in result.skipped[0].reason

    def test_same_existing_record_claimed_once(self, reconciler):
        """Two identical candidates cannot both claim one manual entry."""
        store = TransactionStore(
            expenses=[Expense(id="c1", name="Coffee", amount=5, date="2025-02-10")],
        )
        candidate = {"name": "Coffee", "amount": 5, "date": "2025-02-10"}

        result = reconciler.reconcile([candidate, candidate], chase_meta(), store, today=TODAY)

        assert len(result.updated_transactions) == 1
        assert len(result.skipped) == 1

    def test_new_transactions_linked_to_statement(self, reconciler, store):
        """Test fresh rows get the statement id and fresh ids."""
        result = reconciler.reconcile(
            [
                {"name": "Amazon", "amount": 30, "date": "2025-02-10", "category": "Shopping"},
                {"name": "Refund", "amount": 10, "date": "2025-02-12", "isIncome": True, "category": "Refund"},
            ],
            chase_meta(),
            store,
            today=TODAY,
        )

        assert result.statement_created
        assert result.statement.transaction_count == 2
        assert all(tx.statement_id == result.statement.id for tx in result.new_transactions)
        assert len({tx.id for tx in result.new_transactions}) == 2

    def test_ambiguous_account_raises(self, reconciler):
        """Several known suffixes and none given: ask, and write nothing."""
        store = TransactionStore(statements=[
            Statement(provider="Chase", last4="1111", date="2025-01-31"),
            Statement(provider="Chase", last4="2222", date="2025-01-31"),
        ])
        before = store.to_snapshot()

        with pytest.raises(AmbiguousAccountError) as exc_info:
            reconciler.reconcile(
                [{"name": "Amazon", "amount": 30, "date": "2025-02-10"}],
                chase_meta(last4=None),
                store,
                today=TODAY,
            )

        assert exc_info.value.options == ["1111", "2222"]
        assert exc_info.value.provider == "Chase"
        assert store.to_snapshot() == before

    def test_ambiguity_resolved_by_caller(self, reconciler):
        """Test the user's choice of account is used."""
        store = TransactionStore(statements=[
            Statement(provider="Chase", last4="1111", date="2025-01-31"),
            Statement(provider="Chase", last4="2222", date="2025-01-31"),
        ])

        result = reconciler.reconcile(
            [{"name": "Amazon", "amount": 30, "date": "2025-02-10"}],
            chase_meta(last4="null"),
            store,
            account_last4="2222",
            today=TODAY,
        )

        assert result.statement.last4 == "2222"

    def test_single_known_suffix_adopted(self, reconciler):
        store = TransactionStore(statements=[
            Statement(provider="Chase", last4="1111", date="2025-01-31"),
        ])
        result = reconciler.reconcile(
            [{"name": "Amazon", "amount": 30, "date": "2025-02-10"}],
            chase_meta(last4=None),
            store,
            today=TODAY,
        )
        assert result.statement.last4 == "1111"

    def test_existing_statement_reused(self, reconciler):
        """Re-importing the same statement does not create another one."""
        existing = Statement(id="s1", provider="Chase", last4="1111", date="2025-02-28")
        store = TransactionStore(statements=[existing])

        result = reconciler.reconcile(
            [{"name": "Amazon", "amount": 30, "date": "2025-02-10"}],
            chase_meta(provider="chase"),
            store,
            today=TODAY,
        )
        store.apply_import(result)

        assert result.statement.id == "s1"
        assert not result.statement_created
        assert len(store.statements) == 1

    def test_balance_fallback(self, reconciler, store):
        """No extracted balance on a card: charges minus credits."""
        result = reconciler.reconcile(
            [
                {"name": "Amazon", "amount": 100, "date": "2025-02-10"},
                {"name": "Groceries", "amount": 50, "date": "2025-02-11"},
                {"name": "Return", "amount": 30, "date": "2025-02-12", "isIncome": True},
            ],
            chase_meta(balance=None),
            store,
            today=TODAY,
        )
        assert result.statement.balance == Decimal("120")

    def test_no_balance_fallback_for_bank(self):
        meta = StatementMeta(provider="BofA", type="bank_account")
        assert ImportReconciler.fallback_balance(meta, []) is None

    def test_closing_date_fallback(self, reconciler, store):
        """Without a document date, the latest transaction date closes the statement."""
        result = reconciler.reconcile(
            [
                {"name": "Amazon", "amount": 30, "date": "2025-02-10"},
                {"name": "Gas", "amount": 40, "date": "2025-02-19"},
                {"name": "Undated", "amount": 7},
            ],
            chase_meta(date=None),
            store,
            today=TODAY,
        )

        assert result.statement.date == date(2025, 2, 19)
        undated = next(tx for tx in result.new_transactions if tx.name == "Undated")
        assert undated.date == date(2025, 2, 19)

    def test_loose_batch_without_statement(self, reconciler, store):
        """Test candidates without a statement descriptor get no statement id."""
        result = reconciler.reconcile(
            [{"name": "Amazon", "amount": 30}],
            None,
            store,
            today=TODAY,
        )
        assert result.statement is None
        assert result.new_transactions[0].statement_id is None
        assert result.new_transactions[0].date == TODAY

    def test_reconcile_does_not_mutate(self, reconciler):
        """Test the store is untouched until apply_import."""
        store = TransactionStore(
            expenses=[Expense(id="n1", name="Netflix", amount=Decimal("15.49"), date="2025-02-01")],
        )
        before = store.to_snapshot()

        reconciler.reconcile(
            [
                {"name": "Netflix", "amount": "15.49", "date": "2025-02-01"},
                {"name": "Amazon", "amount": 30, "date": "2025-02-10"},
            ],
            chase_meta(),
            store,
            today=TODAY,
        )

        assert store.to_snapshot() == before
