"""
Main Orchestrator for Finance Tracker

This module ties together all the components and defines the end-to-end
flows of one application session:
1. Manual entry (draft → validate → save → learn rule → persist)
2. Dashboard (store → resolver + aggregator → Financials)
3. Document scan (images → Gemini → candidates → reconcile → apply)
4. Chat (question + computed numbers → Gemini → answer / proposals)
5. Backup and restore (snapshot ⇄ encrypted blob ⇄ remote store)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Rules are learned on explicit save only, never from AI output
- The store is persisted after every successful mutation
- External failures become user-facing messages and never touch the store
- Every step is audited
"""

import json
from datetime import date
from decimal import Decimal
from typing import Any, Optional, Union

import structlog

from finance_tracker.agents import (
    ChatAnswer,
    ChatMessage,
    ClassificationAgent,
    ExtractionAgent,
    ExtractionResult,
    FinanceChatAgent,
    Suggestion,
)
from finance_tracker.audit import AuditLogger, create_correlation_id
from finance_tracker.config import get_settings
from finance_tracker.config.settings import AppSettings, GeminiSettings
from finance_tracker.engine import compute_monthly_financials, month_transactions
from finance_tracker.errors import (
    AmbiguousAccountError,
    DecryptionError,
    ExternalServiceError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from finance_tracker.models.results import Financials, ReconcileResult, ValidationResult
from finance_tracker.models.transaction import (
    Expense,
    Income,
    RawCandidate,
    RuleEntry,
    StatementMeta,
)
from finance_tracker.reconcile import ImportReconciler
from finance_tracker.rules import CategoryRuleCache
from finance_tracker.services.backup import BackupService
from finance_tracker.services.storage import (
    BackupStoreInterface,
    GoogleSheetsBackupStore,
    JsonFileKeyValueStore,
    KeyValueAuditStorage,
    KeyValueStore,
)
from finance_tracker.store import TransactionStore
from finance_tracker.validation import TransactionValidator


logger = structlog.get_logger(__name__)


CHAT_HISTORY_KEY = "chatHistory"
CHAT_ERROR_MESSAGE = "Error: Could not connect to Gemini. Please check your API Key."
CHAT_HISTORY_STORED = 50


class FinanceApp:
    """
    One application session.

    Usage:
        app = FinanceApp(JsonFileKeyValueStore(path))
        app.load()
        tx, result, message = app.save_transaction({"name": "Rent", ...})
        financials = app.financials(3, 2025)

    The key-value store is injected once and shared by the ledger, the
    rule cache, the chat history and the audit trail.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        backup_store: Optional[BackupStoreInterface] = None,
        classifier: Optional[ClassificationAgent] = None,
        extractor: Optional[ExtractionAgent] = None,
        chat_agent: Optional[FinanceChatAgent] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
        gemini_model: Optional[Any] = None,
        gemini_settings: Optional[GeminiSettings] = None,
        account: str = "default",
    ):
        self._kv = kv
        self._settings = settings or get_settings().app
        self._account = account

        self.store = TransactionStore()
        self.rules = CategoryRuleCache(kv, key=self._settings.rules_key)
        self._reconciler = ImportReconciler(
            self.rules,
            duplicate_tolerance=self._decimal(self._settings.duplicate_amount_tolerance),
        )
        self._audit = audit_logger or AuditLogger(
            KeyValueAuditStorage(
                kv,
                key=self._settings.audit_key,
                history_limit=self._settings.audit_history_limit,
            )
        )

        # Agents are built lazily: they need a Gemini key
        self._gemini_model = gemini_model
        self._gemini_settings = gemini_settings
        self._classifier = classifier
        self._extractor = extractor
        self._chat_agent = chat_agent

        self._backup = BackupService(backup_store, kv) if backup_store else None

    @classmethod
    def from_settings(
        cls,
        settings: Optional[AppSettings] = None,
        with_backup: bool = True,
    ) -> "FinanceApp":
        """
        Session backed by the JSON file under `data_dir`.

        The Google Sheets backup store is attached when `with_backup` is set;
        its credentials are only read on the first backup or restore.
        """
        settings = settings or get_settings().app
        return cls(
            JsonFileKeyValueStore(settings.store_path),
            backup_store=GoogleSheetsBackupStore() if with_backup else None,
            settings=settings,
        )

    @staticmethod
    def _decimal(value: float) -> Decimal:
        return Decimal(str(value))

    @property
    def classifier(self) -> ClassificationAgent:
        if self._classifier is None:
            self._classifier = ClassificationAgent(
                self.rules, model=self._gemini_model, settings=self._gemini_settings
            )
        return self._classifier

    @property
    def extractor(self) -> ExtractionAgent:
        if self._extractor is None:
            self._extractor = ExtractionAgent(
                model=self._gemini_model, settings=self._gemini_settings
            )
        return self._extractor

    @property
    def chat_agent(self) -> FinanceChatAgent:
        if self._chat_agent is None:
            self._chat_agent = FinanceChatAgent(
                model=self._gemini_model, settings=self._gemini_settings
            )
        return self._chat_agent

    # =========================================================================
    # LEDGER
    # =========================================================================

    def load(self, today: Optional[date] = None) -> TransactionStore:
        """
        Read the ledger, migrating legacy records.

        A migrated ledger is written straight back so ids stay stable.

        Raises:
            StorageError: If the stored ledger cannot be decoded. The
                in-memory store is left as it was.
        """
        try:
            self.store = TransactionStore.load(self._kv, self._settings.data_key, today=today)
        except StorageError as e:
            self._audit.log_error(error_type="ledger_unreadable", error_message=str(e))
            raise
        migration = self.store.last_migration
        if migration.changed:
            self._persist()
            self._audit.log_store_migrated(
                backfilled_ids=migration.backfilled_ids,
                backfilled_dates=migration.backfilled_dates,
            )
        return self.store

    def _persist(self) -> None:
        self.store.persist(self._kv, self._settings.data_key)

    def save_transaction(
        self,
        draft: Union[RawCandidate, Income, Expense, dict[str, Any]],
        today: Optional[date] = None,
    ) -> tuple[Optional[Union[Income, Expense]], ValidationResult, str]:
        """
        Validate, store and learn from a user-confirmed entry.

        Returns:
            (saved_transaction or None, validation_result, user_message)
        """
        validator = TransactionValidator(
            self.store,
            future_date_tolerance_days=self._settings.future_date_tolerance_days,
        )
        result = validator.review(draft, today=today)
        message = validator.get_user_friendly_summary(result)
        if result.has_errors:
            return None, result, message

        tx = result.transaction
        created = self.store.save(tx)
        self._persist()
        self._audit.log_transaction_saved(
            transaction_id=tx.id,
            name=tx.name,
            kind=tx.kind,
            created=created,
        )

        rule = RuleEntry(
            category=tx.category,
            frequency=tx.frequency,
            is_income=tx.is_income,
            type=None if tx.is_income else tx.type,
        )
        if self.rules.learn(tx.name, rule):
            self._audit.log_rule_learned(
                merchant=tx.merchant_key,
                category=tx.category,
                frequency=tx.frequency,
            )

        return tx, result, message

    def delete_transaction(self, tx_id: str) -> Union[Income, Expense]:
        """
        Delete by id.

        Raises:
            NotFoundError: If no transaction has this id
        """
        tx = self.store.delete(tx_id)
        self._persist()
        self._audit.log_transaction_deleted(transaction_id=tx.id, name=tx.name)
        return tx

    def remove_statement(self, statement_id: str, cascade: bool = False) -> int:
        """Remove a statement, optionally with its transactions."""
        statement = self.store.get_statement(statement_id)
        affected = self.store.remove_statement(statement_id, cascade=cascade)
        self._persist()
        self._audit.log_statement_removed(
            statement_id=statement_id,
            provider=statement.provider if statement else "",
            cascaded=affected if cascade else 0,
        )
        return affected

    # =========================================================================
    # DASHBOARD
    # =========================================================================

    def financials(self, month: int, year: int, today: Optional[date] = None) -> Financials:
        return compute_monthly_financials(
            self.store,
            month,
            year,
            today=today,
            stale_after_days=self._settings.stale_recurring_days,
            cc_amount_tolerance=self._decimal(self._settings.cc_payment_amount_tolerance),
            cc_window_days=self._settings.cc_payment_window_days,
            strict=self._settings.strict_frequency,
        )

    def transactions(
        self, month: int, year: int, today: Optional[date] = None
    ) -> list[Union[Income, Expense]]:
        return month_transactions(
            self.store,
            month,
            year,
            today=today,
            stale_after_days=self._settings.stale_recurring_days,
        )

    # =========================================================================
    # AI FLOWS
    # =========================================================================

    async def suggest(self, name: str) -> tuple[Optional[Suggestion], str]:
        """
        Form suggestion for a merchant name. Never learns.

        Returns:
            (suggestion or None, user_message)
        """
        cached = self.classifier.cached(name)
        if cached is not None:
            self._audit.log_ai_suggestion(merchant=name, category=cached.category, from_cache=True)
            return cached, "Filled in from your previous entries"

        try:
            suggestion = await self.classifier.classify(name)
        except ExternalServiceError as e:
            self._audit.log_external_service_error(service=e.service, error_message=str(e))
            return None, str(e)

        if suggestion is None:
            return None, ""
        self._audit.log_ai_suggestion(
            merchant=name, category=suggestion.category, from_cache=False
        )
        return suggestion, "Suggested by AI - please review"

    async def scan_documents(
        self,
        images: list[Any],
        correlation_id=None,
    ) -> tuple[Optional[ExtractionResult], str]:
        """
        Read receipts or statement pages.

        Returns:
            (extraction or None, user_message)
        """
        correlation_id = correlation_id or create_correlation_id()
        try:
            extraction = await self.extractor.extract(images, known_rules=self.rules.entries())
        except ValidationError as e:
            return None, str(e)
        except ExternalServiceError as e:
            self._audit.log_external_service_error(
                service=e.service,
                error_message=str(e),
                correlation_id=correlation_id,
            )
            return None, str(e)

        self._audit.log_extraction_completed(
            image_count=len(images),
            transaction_count=len(extraction.transactions),
            is_statement=extraction.is_statement,
            correlation_id=correlation_id,
        )
        if not extraction.transactions:
            return extraction, "No transactions found in the document"
        return extraction, f"Found {len(extraction.transactions)} transaction(s) - please review"

    def import_statement(
        self,
        candidates: list[Union[RawCandidate, dict]],
        statement_meta: Optional[Union[StatementMeta, dict]] = None,
        account_last4: Optional[str] = None,
        today: Optional[date] = None,
        correlation_id=None,
    ) -> tuple[ReconcileResult, str]:
        """
        Reconcile an extracted batch and commit it.

        Raises:
            AmbiguousAccountError: The user must pick the account and call
                again with `account_last4`. Nothing has been written.
        """
        correlation_id = correlation_id or create_correlation_id()
        try:
            result = self._reconciler.reconcile(
                candidates,
                statement_meta,
                self.store,
                account_last4=account_last4,
                today=today,
            )
        except AmbiguousAccountError as e:
            self._audit.log_import_needs_account(
                provider=e.provider,
                options=e.options,
                correlation_id=correlation_id,
            )
            raise

        self.store.apply_import(result)
        self._persist()
        self._audit.log_import_reconciled(
            statement_id=result.statement.id if result.statement else None,
            provider=result.statement.provider if result.statement else "manual",
            created=len(result.new_transactions),
            claimed=len(result.updated_transactions),
            skipped=len(result.skipped),
            correlation_id=correlation_id,
        )

        message = f"Imported {result.imported_count} transaction(s)"
        if result.skipped:
            message += f", skipped {len(result.skipped)} duplicate(s)"
        return result, message

    def chat_history(self) -> list[ChatMessage]:
        raw = self._kv.get(CHAT_HISTORY_KEY)
        if not raw:
            return []
        try:
            return [ChatMessage.model_validate(m) for m in json.loads(raw)]
        except (json.JSONDecodeError, TypeError, ValueError):
            logger.warning("chat_history_unreadable")
            return []

    async def ask(
        self,
        question: str,
        month: int,
        year: int,
        today: Optional[date] = None,
    ) -> ChatAnswer:
        """
        Answer a question about the selected month.

        Failures come back as an answer carrying the error text, as the
        chat window shows them inline.
        """
        history = self.chat_history()
        try:
            answer = await self.chat_agent.answer(
                question,
                self.financials(month, year, today=today),
                self.store,
                history=history,
            )
        except ExternalServiceError as e:
            self._audit.log_external_service_error(service=e.service, error_message=str(e))
            answer = ChatAnswer(text=CHAT_ERROR_MESSAGE)
        else:
            self._audit.log_chat_answered(
                question_length=len(question),
                proposed_count=len(answer.proposed),
            )

        history += [
            ChatMessage(role="user", text=question),
            ChatMessage(role="model", text=answer.text),
        ]
        self._kv.set(
            CHAT_HISTORY_KEY,
            json.dumps([m.model_dump() for m in history[-CHAT_HISTORY_STORED:]]),
        )
        return answer

    # =========================================================================
    # BACKUP
    # =========================================================================

    async def backup(self, password: str) -> tuple[bool, str]:
        """Encrypt and upload the whole ledger."""
        if self._backup is None:
            return False, "Backup is not configured"
        try:
            blob = await self._backup.backup(self._account, password, self.store.to_snapshot())
        except ExternalServiceError as e:
            self._audit.log_external_service_error(service=e.service, error_message=str(e))
            return False, str(e)

        self._audit.log_backup_created(account=self._account, timestamp=blob.timestamp)
        return True, "Backup saved"

    async def restore(self, password: str, today: Optional[date] = None) -> tuple[bool, str]:
        """
        Replace the local ledger with the remote backup.

        The local store is only replaced after the blob decrypted and parsed.
        """
        if self._backup is None:
            return False, "Backup is not configured"
        try:
            snapshot, timestamp = await self._backup.fetch_snapshot(self._account, password)
            restored = TransactionStore.from_snapshot(snapshot, today=today)
        except (DecryptionError, NotFoundError, ExternalServiceError) as e:
            self._audit.log_restore_failed(account=self._account, error_message=str(e))
            return False, str(e)

        self.store = restored
        self._persist()
        self._audit.log_backup_restored(account=self._account, timestamp=timestamp)
        return True, f"Restored {len(restored)} transaction(s)"

    def last_backup_timestamp(self) -> Optional[int]:
        return self._backup.last_backup_timestamp() if self._backup else None

    def recent_activity(self, limit: int = 50):
        return self._audit.recent(limit)

