"""
Transaction Store

The canonical in-memory ledger: income, expenses, statements and balance
transfers, plus the round-trip to a key-value store.

DESIGN DECISION: Collection membership IS the income/expense flag.
`save()` puts an `Income` into `income` and an `Expense` into `expenses`;
editing a record's side moves it between collections while keeping its id.

CRITICAL: Ids are stable. A record keeps its id through edits, moves and
import claims, and a deleted id is never handed out again (fresh ids are
uuid4).
"""

import json
from datetime import date
from decimal import Decimal
from typing import Optional, Union

import structlog
from pydantic import ValidationError as PydanticValidationError

from finance_tracker.errors import NotFoundError, StorageError
from finance_tracker.models.results import ReconcileResult
from finance_tracker.models.transaction import (
    BalanceTransfer,
    Expense,
    Income,
    Statement,
    normalize_name,
)
from finance_tracker.services.storage.interface import KeyValueStore
from finance_tracker.store.migration import MigrationReport, migrate_snapshot


logger = structlog.get_logger(__name__)


DATA_KEY = "financeData"


class TransactionStore:
    """
    In-memory ledger with snapshot persistence.

    Usage:
        store = TransactionStore.load(kv)
        store.save(Expense(name="Rent", amount=1500, date="2025-01-01"))
        store.persist(kv)
    """

    def __init__(
        self,
        income: Optional[list[Income]] = None,
        expenses: Optional[list[Expense]] = None,
        statements: Optional[list[Statement]] = None,
        balance_transfers: Optional[list[BalanceTransfer]] = None,
    ):
        self.income: list[Income] = list(income or [])
        self.expenses: list[Expense] = list(expenses or [])
        self.statements: list[Statement] = list(statements or [])
        self.balance_transfers: list[BalanceTransfer] = list(balance_transfers or [])
        self.last_migration = MigrationReport()
        # Raw records that failed validation on load, written back untouched
        self.unreadable: dict[str, list[dict]] = {}

    def __len__(self) -> int:
        return len(self.income) + len(self.expenses)

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    def _collection_for(self, tx: Union[Income, Expense]) -> list:
        return self.income if tx.is_income else self.expenses

    def all_transactions(self) -> list[Union[Income, Expense]]:
        return [*self.income, *self.expenses]

    def get(self, tx_id: str) -> Optional[Union[Income, Expense]]:
        for tx in self.all_transactions():
            if tx.id == tx_id:
                return tx
        return None

    def _locate(self, tx_id: str) -> Optional[tuple[list, int]]:
        for collection in (self.income, self.expenses):
            for idx, tx in enumerate(collection):
                if tx.id == tx_id:
                    return collection, idx
        return None

    def save(self, tx: Union[Income, Expense]) -> bool:
        """
        Insert or replace a transaction by id.

        If the id exists in the other collection, the record moves there.

        Returns:
            True if a new record was created, False if one was replaced
        """
        target = self._collection_for(tx)
        location = self._locate(tx.id)

        if location is None:
            target.append(tx)
            return True

        collection, idx = location
        if collection is target:
            collection[idx] = tx
        else:
            del collection[idx]
            target.append(tx)
        return False

    def add(self, tx: Union[Income, Expense]) -> Union[Income, Expense]:
        """Append a new transaction; replaces it if the id is already present."""
        self.save(tx)
        return tx

    def update(self, tx: Union[Income, Expense]) -> Union[Income, Expense]:
        """
        Replace an existing transaction.

        Raises:
            NotFoundError: If no transaction has this id
        """
        if self._locate(tx.id) is None:
            raise NotFoundError(f"Transaction not found: {tx.id}")
        self.save(tx)
        return tx

    def delete(self, tx_id: str) -> Union[Income, Expense]:
        """
        Remove a transaction by id.

        Raises:
            NotFoundError: If no transaction has this id
        """
        location = self._locate(tx_id)
        if location is None:
            raise NotFoundError(f"Transaction not found: {tx_id}")
        collection, idx = location
        return collection.pop(idx)

    def find_duplicate(
        self,
        name: str,
        on: date,
        amount: Decimal,
        is_income: bool,
        tolerance: Decimal = Decimal("0.01"),
    ) -> Optional[Union[Income, Expense]]:
        """Same name (case-insensitive), same date, amount within tolerance."""
        key = normalize_name(name)
        collection = self.income if is_income else self.expenses
        for tx in collection:
            if (
                tx.merchant_key == key
                and tx.date == on
                and abs(tx.amount - amount) <= tolerance
            ):
                return tx
        return None

    # =========================================================================
    # STATEMENTS
    # =========================================================================

    def get_statement(self, statement_id: str) -> Optional[Statement]:
        for statement in self.statements:
            if statement.id == statement_id:
                return statement
        return None

    def find_statement(
        self, provider: str, last4: Optional[str], closing: date
    ) -> Optional[Statement]:
        for statement in self.statements:
            if statement.matches(provider, last4, closing):
                return statement
        return None

    def known_last4(self, provider: str) -> list[str]:
        """Distinct account suffixes already seen for a provider."""
        key = normalize_name(provider)
        return sorted({
            statement.last4
            for statement in self.statements
            if normalize_name(statement.provider) == key and statement.last4
        })

    def add_statement(self, statement: Statement) -> Statement:
        if self.get_statement(statement.id) is None:
            self.statements.append(statement)
        return statement

    def remove_statement(self, statement_id: str, cascade: bool = False) -> int:
        """
        Remove a statement.

        Args:
            statement_id: Statement to remove
            cascade: Also delete linked transactions. Without cascade the
                transactions stay and lose their `statementId`.

        Returns:
            Number of linked transactions affected

        Raises:
            NotFoundError: If the statement does not exist
        """
        statement = self.get_statement(statement_id)
        if statement is None:
            raise NotFoundError(f"Statement not found: {statement_id}")
        self.statements.remove(statement)

        affected = 0
        if cascade:
            before = len(self)
            self.income = [tx for tx in self.income if tx.statement_id != statement_id]
            self.expenses = [tx for tx in self.expenses if tx.statement_id != statement_id]
            affected = before - len(self)
        else:
            for collection in (self.income, self.expenses):
                for idx, tx in enumerate(collection):
                    if tx.statement_id == statement_id:
                        collection[idx] = tx.model_copy(update={"statement_id": None})
                        affected += 1
        return affected

    def update_statement_balance(
        self, statement_id: str, balance: Optional[Decimal]
    ) -> Statement:
        """User correction of a statement's balance."""
        statement = self.get_statement(statement_id)
        if statement is None:
            raise NotFoundError(f"Statement not found: {statement_id}")
        updated = statement.model_copy(update={"balance": balance})
        self.statements[self.statements.index(statement)] = updated
        return updated

    # =========================================================================
    # BALANCE TRANSFERS
    # =========================================================================

    def add_balance_transfer(self, transfer: BalanceTransfer) -> BalanceTransfer:
        self.balance_transfers.append(transfer)
        return transfer

    def remove_balance_transfer(self, transfer_id: str) -> BalanceTransfer:
        for idx, transfer in enumerate(self.balance_transfers):
            if transfer.id == transfer_id:
                return self.balance_transfers.pop(idx)
        raise NotFoundError(f"Balance transfer not found: {transfer_id}")

    # =========================================================================
    # IMPORT
    # =========================================================================

    def apply_import(self, result: ReconcileResult) -> int:
        """
        Commit a reconciliation result.

        Claimed records are replaced in place (same id); new ones appended.

        Returns:
            Number of transactions written
        """
        if result.statement is not None and result.statement_created:
            self.add_statement(result.statement)
        for tx in result.updated_transactions:
            self.save(tx)
        for tx in result.new_transactions:
            self.save(tx)
        return result.imported_count

    # =========================================================================
    # SNAPSHOT & PERSISTENCE
    # =========================================================================

    def to_snapshot(self) -> dict[str, list[dict]]:
        """Serialize to the persisted camelCase wire format."""
        snapshot = {
            "income": [tx.to_record() for tx in self.income],
            "expenses": [tx.to_record() for tx in self.expenses],
            "statements": [s.to_record() for s in self.statements],
            "balanceTransfers": [b.to_record() for b in self.balance_transfers],
        }
        for collection, records in self.unreadable.items():
            snapshot[collection].extend(records)
        return snapshot

    @classmethod
    def from_snapshot(cls, raw: object, today: Optional[date] = None) -> "TransactionStore":
        """
        Build a store from a (possibly legacy) snapshot.

        Records that still fail validation after migration are logged and
        set aside in `unreadable` rather than failing the whole load. They
        stay out of every computation but are written back as they were.
        """
        if today is None:
            from finance_tracker.engine.periods import local_today

            today = local_today()
        snapshot, report = migrate_snapshot(raw, today)

        unreadable: dict[str, list[dict]] = {}

        def build(model, records: list[dict], collection: str) -> list:
            built = []
            for record in records:
                try:
                    built.append(model.model_validate(record))
                except PydanticValidationError as e:
                    report.unreadable_records += 1
                    unreadable.setdefault(collection, []).append(record)
                    logger.warning(
                        "record_unreadable",
                        collection=collection,
                        record_id=record.get("id"),
                        error=str(e),
                    )
            return built

        store = cls(
            income=build(Income, snapshot["income"], "income"),
            expenses=build(Expense, snapshot["expenses"], "expenses"),
            statements=build(Statement, snapshot["statements"], "statements"),
            balance_transfers=build(
                BalanceTransfer, snapshot["balanceTransfers"], "balanceTransfers"
            ),
        )
        store.last_migration = report
        store.unreadable = unreadable
        return store

    @classmethod
    def load(
        cls,
        kv: KeyValueStore,
        key: str = DATA_KEY,
        today: Optional[date] = None,
    ) -> "TransactionStore":
        """
        Read the snapshot under `key`. A missing key yields an empty store.

        Raises:
            StorageError: If the stored value is not valid JSON
        """
        raw = kv.get(key)
        if not raw:
            return cls()
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StorageError(f"Stored ledger under '{key}' is not valid JSON: {e}")
        return cls.from_snapshot(data, today=today)

    def persist(self, kv: KeyValueStore, key: str = DATA_KEY) -> None:
        """Write the whole snapshot under `key`."""
        kv.set(key, json.dumps(self.to_snapshot()))
