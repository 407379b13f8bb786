"""
Tests for the transaction store, snapshot migration and persistence.
"""

import json
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

from finance_tracker.errors import NotFoundError, StorageError
from finance_tracker.models import Expense, Income, Statement
from finance_tracker.services.storage import InMemoryKeyValueStore, JsonFileKeyValueStore
from finance_tracker.store import DATA_KEY, TransactionStore, migrate_snapshot


TODAY = date(2025, 3, 1)


class TestTransactions:
    """Tests for saving, moving and deleting transactions."""

    def test_save_creates_then_replaces(self, store):
        """Test save reports whether the record is new."""
        rent = Expense(id="r1", name="Rent", amount=1500, date="2025-01-01")
        assert store.save(rent) is True

        raised = rent.model_copy(update={"amount": Decimal("1600")})
        assert store.save(raised) is False
        assert len(store) == 1
        assert store.get("r1").amount == Decimal("1600")

    def test_changing_side_moves_record(self, store):
        """An expense re-saved as income moves collections, keeping its id."""
        store.save(Expense(id="t1", name="Refund", amount=40, date="2025-02-02"))

        store.save(Income(id="t1", name="Refund", amount=40, date="2025-02-02"))

        assert store.expenses == []
        assert [tx.id for tx in store.income] == ["t1"]

    def test_update_missing_raises(self, store):
        """Test update of an unknown id."""
        with pytest.raises(NotFoundError):
            store.update(Expense(id="nope", name="A", date="2025-01-01"))

    def test_delete(self, store):
        """Test delete returns the removed record and rejects unknown ids."""
        store.add(Expense(id="c1", name="Coffee", amount=5, date="2025-03-14"))
        removed = store.delete("c1")
        assert removed.name == "Coffee"
        assert len(store) == 0
        with pytest.raises(NotFoundError):
            store.delete("c1")

    def test_find_duplicate(self, store):
        """Same name (any case), same date, amount within a cent."""
        netflix = Expense(name="Netflix", amount=Decimal("15.49"), date="2025-02-01")
        store.add(netflix)

        assert store.find_duplicate("NETFLIX", date(2025, 2, 1), Decimal("15.495"), False) == netflix
        assert store.find_duplicate("Netflix", date(2025, 2, 2), Decimal("15.49"), False) is None
        assert store.find_duplicate("Netflix", date(2025, 2, 1), Decimal("15.49"), True) is None


class TestStatements:
    """Tests for statement bookkeeping."""

    def _linked_store(self):
        statement = Statement(id="s1", provider="Chase", last4="1111", date="2025-02-28")
        return TransactionStore(
            expenses=[
                Expense(id="a", name="Amazon", amount=30, date="2025-02-10", statement_id="s1"),
                Expense(id="b", name="Rent", amount=1500, date="2025-02-01"),
            ],
            statements=[statement],
        )

    def test_remove_without_cascade_unlinks(self):
        """Linked transactions stay but lose their statementId."""
        store = self._linked_store()

        affected = store.remove_statement("s1")

        assert affected == 1
        assert store.statements == []
        assert len(store) == 2
        assert store.get("a").statement_id is None

    def test_remove_with_cascade_deletes(self):
        """Test cascade deletes the linked transactions."""
        store = self._linked_store()

        affected = store.remove_statement("s1", cascade=True)

        assert affected == 1
        assert [tx.id for tx in store.all_transactions()] == ["b"]

    def test_remove_unknown_statement(self, store):
        with pytest.raises(NotFoundError):
            store.remove_statement("missing")

    def test_known_last4(self):
        """Test suffixes are collected per provider, case-insensitively."""
        store = TransactionStore(statements=[
            Statement(provider="Chase", last4="2222", date="2025-01-31"),
            Statement(provider="chase", last4="1111", date="2025-02-28"),
            Statement(provider="Chase", last4=None, date="2025-02-28"),
            Statement(provider="Amex", last4="0005", date="2025-02-20"),
        ])
        assert store.known_last4("CHASE") == ["1111", "2222"]
        assert store.known_last4("Citi") == []

    def test_update_statement_balance(self):
        """Test user correction of a balance."""
        store = self._linked_store()
        updated = store.update_statement_balance("s1", Decimal("812.40"))
        assert updated.balance == Decimal("812.40")
        assert store.get_statement("s1").balance == Decimal("812.40")


class TestMigration:
    """Tests for loading legacy snapshots."""

    def test_legacy_records_backfilled(self):
        """Missing ids and dates are filled; isIncome is dropped."""
        raw = {
            "income": [{"name": "Salary", "amount": 4000, "frequency": "monthly", "isIncome": True}],
            "expenses": [{"id": 17, "name": "Rent", "amount": 1500, "date": "2025-01-01"}],
        }

        snapshot, report = migrate_snapshot(raw, TODAY)

        salary = snapshot["income"][0]
        assert salary["id"]
        assert salary["date"] == "2025-03-01"
        assert "isIncome" not in salary
        assert snapshot["expenses"][0]["id"] == "17"
        assert snapshot["statements"] == []
        assert snapshot["balanceTransfers"] == []
        assert report.backfilled_ids == 1
        assert report.backfilled_dates == 1
        assert report.changed

    def test_migration_is_idempotent(self):
        """A migrated snapshot migrates to itself."""
        raw = {"expenses": [{"name": "Rent", "amount": 1500}]}
        once, _ = migrate_snapshot(raw, TODAY)
        twice, report = migrate_snapshot(once, TODAY)
        assert twice == once
        assert not report.changed

    def test_non_dict_records_dropped(self):
        """Test junk entries are counted and removed."""
        snapshot, report = migrate_snapshot({"expenses": ["junk", None]}, TODAY)
        assert snapshot["expenses"] == []
        assert report.dropped_records == 2

    def test_from_snapshot_records_report(self):
        """Test the store remembers what the last load fixed."""
        store = TransactionStore.from_snapshot(
            {"income": [{"name": "Salary", "amount": 4000}]}, today=TODAY
        )
        assert store.income[0].date == TODAY
        assert store.last_migration.backfilled_ids == 1

    def test_null_name_and_category_recovered(self):
        """Test null legacy fields fall back to defaults instead of losing the record."""
        store = TransactionStore.from_snapshot(
            {"expenses": [
                {"id": "a", "name": None, "amount": 12, "date": "2025-01-05", "category": "Food"},
                {"id": "b", "name": "Gym", "amount": 40, "date": "2025-01-06", "category": None},
            ]},
            today=TODAY,
        )

        assert [tx.id for tx in store.expenses] == ["a", "b"]
        assert store.get("a").name == ""
        assert store.get("b").category == "Other"
        assert store.last_migration.unreadable_records == 0

    def test_unreadable_records_kept_verbatim(self, kv):
        """Test a record that cannot be read is left out of totals but written back."""
        bad = {"id": "bad", "name": "Rent", "amount": 1500, "date": "2025-01-01",
               "statementId": {"nested": True}}
        kv.set(DATA_KEY, json.dumps({"expenses": [
            bad,
            {"id": "ok", "name": "Gym", "amount": 40, "date": "2025-01-06"},
        ]}))

        store = TransactionStore.load(kv, today=TODAY)

        assert [tx.id for tx in store.expenses] == ["ok"]
        assert store.last_migration.unreadable_records == 1
        assert not store.last_migration.changed

        store.persist(kv)
        assert bad in json.loads(kv.get(DATA_KEY))["expenses"]

    def test_unknown_frequency_preserved(self):
        """Garbled frequencies survive a load/save round-trip."""
        store = TransactionStore.from_snapshot(
            {"expenses": [{"id": "x", "name": "Gym", "amount": 40, "date": "2025-01-01",
                           "frequency": "every other blue moon"}]},
            today=TODAY,
        )
        assert store.to_snapshot()["expenses"][0]["frequency"] == "every other blue moon"


class TestPersistence:
    """Tests for the key-value round-trip."""

    def test_round_trip(self, kv):
        """Test persist then load gives the same snapshot."""
        store = TransactionStore(
            income=[Income(name="Salary", amount=4000, date="2025-01-01", category="Salary")],
            expenses=[Expense(name="Netflix", amount=Decimal("15.49"), date="2025-02-01",
                              type="subscription", statement_id="s1")],
            statements=[Statement(id="s1", provider="Chase", last4="1111", date="2025-02-28",
                                  balance=Decimal("-812.40"))],
        )

        store.persist(kv)
        loaded = TransactionStore.load(kv, today=TODAY)

        assert loaded.to_snapshot() == store.to_snapshot()
        assert not loaded.last_migration.changed

    def test_persisted_shape(self, kv):
        """Test the stored JSON uses the camelCase collection names."""
        TransactionStore().persist(kv)
        data = json.loads(kv.get(DATA_KEY))
        assert set(data) == {"income", "expenses", "statements", "balanceTransfers"}

    def test_missing_key_is_empty(self, kv):
        store = TransactionStore.load(kv, today=TODAY)
        assert len(store) == 0

    def test_invalid_json_raises(self):
        """Test a corrupted ledger is surfaced instead of silently wiped."""
        kv = InMemoryKeyValueStore({DATA_KEY: "{not json"})
        with pytest.raises(StorageError):
            TransactionStore.load(kv, today=TODAY)

    def test_json_file_store(self, tmp_path: Path):
        """Test the file-backed store survives a fresh instance."""
        path = tmp_path / "finance.json"
        store = TransactionStore(expenses=[Expense(id="r1", name="Rent", amount=1500, date="2025-01-01")])

        store.persist(JsonFileKeyValueStore(path))
        loaded = TransactionStore.load(JsonFileKeyValueStore(path), today=TODAY)

        assert loaded.get("r1").name == "Rent"
        assert not path.with_suffix(".json.tmp").exists()
