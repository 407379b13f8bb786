"""
Import Reconciler

Sits between the AI extraction service and the Transaction Store.

Given a batch of extracted candidates plus the statement descriptor the AI
read off the document, it decides:
1. How each candidate should be classified (learned rules beat AI guesses)
2. Which statement the batch belongs to (reuse or create)
3. Whether each candidate is new, a claim on an existing manual entry,
   or a duplicate to skip

DESIGN DECISION: `reconcile()` never mutates the store. It returns a
ReconcileResult describing what WOULD change; `store.apply_import()`
commits it. This keeps the ambiguous-account case free of partial writes.

CRITICAL: If the provider already has more than one account on file and the
document does not say which one this is, we STOP and ask. Guessing would
attach a month of transactions to the wrong card.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Optional, Union

import structlog

from finance_tracker.engine.periods import local_today
from finance_tracker.errors import AmbiguousAccountError, DuplicateDetected
from finance_tracker.models.results import ReconcileResult, SkippedCandidate
from finance_tracker.models.transaction import (
    DEFAULT_CATEGORY,
    AccountType,
    Expense,
    Frequency,
    Income,
    RawCandidate,
    Statement,
    StatementMeta,
    categories_for,
    make_transaction,
    new_id,
    parse_expense_type,
    parse_frequency,
    safe_amount,
    safe_date,
)
from finance_tracker.rules.cache import CategoryRuleCache
from finance_tracker.store.transaction_store import TransactionStore


logger = structlog.get_logger(__name__)


DUPLICATE_TOLERANCE = Decimal("0.01")


def validate_category(category: Optional[str], is_income: bool) -> str:
    """Canonical vocabulary entry (case-insensitive), else "Other"."""
    if not category:
        return DEFAULT_CATEGORY
    wanted = category.strip().lower()
    for known in categories_for(is_income):
        if known.lower() == wanted:
            return known
    return DEFAULT_CATEGORY


class ImportReconciler:
    """
    Reconciles extracted candidates against the store.

    Usage:
        reconciler = ImportReconciler(rule_cache)
        result = reconciler.reconcile(candidates, meta, store)
        store.apply_import(result)
    """

    def __init__(
        self,
        rule_cache: CategoryRuleCache,
        duplicate_tolerance: Decimal = DUPLICATE_TOLERANCE,
    ):
        self._rules = rule_cache
        self._tolerance = duplicate_tolerance

    # =========================================================================
    # CANDIDATE REVIEW
    # =========================================================================

    def review_candidate(
        self,
        candidate: Union[RawCandidate, dict],
        fallback_date: date,
    ) -> Union[Income, Expense]:
        """
        Turn a loose candidate into a typed transaction.

        A learned rule for the merchant replaces the AI's category,
        frequency, type and income/expense side entirely.
        """
        if not isinstance(candidate, RawCandidate):
            candidate = RawCandidate.model_validate(candidate)

        rule = self._rules.lookup(candidate.name)
        if rule is not None:
            is_income = rule.is_income
            category = rule.category
            frequency = rule.frequency
            expense_type = rule.type
        else:
            is_income = bool(candidate.is_income)
            category = candidate.category
            frequency = candidate.frequency
            expense_type = candidate.type

        parsed_frequency = parse_frequency(frequency) or Frequency.ONE_TIME

        return make_transaction(
            is_income,
            id=new_id(),
            name=candidate.name,
            amount=safe_amount(candidate.amount),
            date=safe_date(candidate.date) or fallback_date,
            frequency=parsed_frequency.value,
            category=validate_category(category, is_income),
            type=parse_expense_type(expense_type),
        )

    # =========================================================================
    # STATEMENT RESOLUTION
    # =========================================================================

    def resolve_last4(
        self,
        meta: StatementMeta,
        store: TransactionStore,
        account_last4: Optional[str] = None,
    ) -> Optional[str]:
        """
        Pick the account suffix for the batch.

        Raises:
            AmbiguousAccountError: Unknown suffix and several on file
        """
        if account_last4:
            return account_last4.strip()
        if meta.last4:
            return meta.last4

        options = store.known_last4(meta.provider)
        if len(options) > 1:
            raise AmbiguousAccountError(meta.provider, options)
        if len(options) == 1:
            return options[0]
        return None

    @staticmethod
    def fallback_balance(
        meta: StatementMeta, transactions: list[Union[Income, Expense]]
    ) -> Optional[Decimal]:
        """Extracted balance, or charges minus credits for credit cards."""
        if meta.balance is not None:
            return meta.balance
        if meta.type != AccountType.CREDIT_CARD:
            return None
        charges = sum((tx.amount for tx in transactions if not tx.is_income), Decimal("0"))
        credits = sum((tx.amount for tx in transactions if tx.is_income), Decimal("0"))
        return charges - credits

    # =========================================================================
    # RECONCILE
    # =========================================================================

    def reconcile(
        self,
        candidates: list[Union[RawCandidate, dict]],
        statement_meta: Optional[Union[StatementMeta, dict[str, Any]]],
        store: TransactionStore,
        account_last4: Optional[str] = None,
        today: Optional[date] = None,
    ) -> ReconcileResult:
        """
        Reconcile a batch. Does not touch the store.

        Args:
            candidates: Extracted transactions (dicts or RawCandidate)
            statement_meta: Account descriptor, or None for a loose batch
            store: Current ledger, read only
            account_last4: User's explicit choice of account, if asked

        Returns:
            ReconcileResult ready for `store.apply_import()`

        Raises:
            AmbiguousAccountError: Provider has several accounts on file
                and neither the document nor the caller picked one
        """
        today = today or local_today()
        raw = [
            c if isinstance(c, RawCandidate) else RawCandidate.model_validate(c)
            for c in candidates
        ]

        statement: Optional[Statement] = None
        statement_created = False
        meta: Optional[StatementMeta] = None

        if statement_meta is not None:
            meta = (
                statement_meta
                if isinstance(statement_meta, StatementMeta)
                else StatementMeta.model_validate(statement_meta)
            )
            # Resolve the account before anything else; ambiguity aborts the batch
            last4 = self.resolve_last4(meta, store, account_last4)

            dated = [safe_date(c.date) for c in raw]
            closing = meta.date or max((d for d in dated if d), default=today)
            reviewed = [self.review_candidate(c, closing) for c in raw]

            statement = store.find_statement(meta.provider, last4, closing)
            if statement is None:
                statement = Statement(
                    provider=meta.provider,
                    last4=last4,
                    date=closing,
                    balance=self.fallback_balance(meta, reviewed),
                    type=meta.type,
                    transaction_count=len(raw),
                )
                statement_created = True
        else:
            reviewed = [self.review_candidate(c, today) for c in raw]

        result = ReconcileResult(statement=statement, statement_created=statement_created)
        claimed: set[str] = set()

        for candidate, tx in zip(raw, reviewed):
            existing = store.find_duplicate(
                tx.name, tx.date, tx.amount, tx.is_income, self._tolerance
            )

            if existing is None:
                if statement is not None:
                    tx = tx.model_copy(update={"statement_id": statement.id})
                result.new_transactions.append(tx)
                continue

            can_claim = (
                statement is not None
                and existing.statement_id is None
                and existing.id not in claimed
            )
            if can_claim:
                claimed.add(existing.id)
                result.updated_transactions.append(
                    tx.model_copy(update={"id": existing.id, "statement_id": statement.id})
                )
                continue

            signal = DuplicateDetected(
                existing.id,
                f"'{tx.name}' on {tx.date.isoformat()} already exists",
            )
            result.skipped.append(
                SkippedCandidate(
                    candidate=candidate,
                    reason=str(signal),
                    existing_id=signal.existing_id,
                )
            )

        logger.info(
            "import_reconciled",
            provider=meta.provider if meta else None,
            statement_id=statement.id if statement else None,
            statement_created=statement_created,
            created=len(result.new_transactions),
            claimed=len(result.updated_transactions),
            skipped=len(result.skipped),
        )
        return result
