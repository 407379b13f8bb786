"""
Audit Logger

DESIGN DECISION: Every significant action in the system is logged.
This provides:
1. Traceability of what changed the ledger, and from which source
2. Debugging capability for AI and backup failures
3. A history the user can look at

The audit logger:
- Is synchronous, like the rest of the core (events are tiny local writes)
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events of one import
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from finance_tracker.models.audit import AuditEvent, AuditEventBuilder
from finance_tracker.services.storage.interface import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An append-only audit storage (for user-visible history), if given
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("finance_tracker.audit")

    def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value == "error":
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    def recent(self, limit: int = 50) -> list[AuditEvent]:
        """Newest events first; empty without storage."""
        if not self._storage:
            return []
        return self._storage.get_recent_events(limit=limit)

    def log_transaction_saved(
        self,
        transaction_id: str,
        name: str,
        kind: str,
        created: bool,
    ) -> None:
        self.log(AuditEventBuilder.transaction_saved(
            transaction_id=transaction_id,
            name=name,
            kind=kind,
            created=created,
        ))

    def log_transaction_deleted(self, transaction_id: str, name: str) -> None:
        self.log(AuditEventBuilder.transaction_deleted(
            transaction_id=transaction_id,
            name=name,
        ))

    def log_statement_removed(self, statement_id: str, provider: str, cascaded: int) -> None:
        self.log(AuditEventBuilder.statement_removed(
            statement_id=statement_id,
            provider=provider,
            cascaded=cascaded,
        ))

    def log_store_migrated(self, backfilled_ids: int, backfilled_dates: int) -> None:
        self.log(AuditEventBuilder.store_migrated(
            backfilled_ids=backfilled_ids,
            backfilled_dates=backfilled_dates,
        ))

    def log_rule_learned(self, merchant: str, category: str, frequency: str) -> None:
        self.log(AuditEventBuilder.rule_learned(
            merchant=merchant,
            category=category,
            frequency=frequency,
        ))

    def log_import_reconciled(
        self,
        statement_id: Optional[str],
        provider: str,
        created: int,
        claimed: int,
        skipped: int,
        correlation_id: UUID,
    ) -> None:
        """Log a committed statement import."""
        self.log(AuditEventBuilder.import_reconciled(
            statement_id=statement_id,
            provider=provider,
            created=created,
            claimed=claimed,
            skipped=skipped,
            correlation_id=correlation_id,
        ))

    def log_import_needs_account(
        self,
        provider: str,
        options: list[str],
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.import_needs_account(
            provider=provider,
            options=options,
            correlation_id=correlation_id,
        ))

    def log_ai_suggestion(self, merchant: str, category: str, from_cache: bool) -> None:
        self.log(AuditEventBuilder.ai_suggestion(
            merchant=merchant,
            category=category,
            from_cache=from_cache,
        ))

    def log_extraction_completed(
        self,
        image_count: int,
        transaction_count: int,
        is_statement: bool,
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.ai_extraction_completed(
            image_count=image_count,
            transaction_count=transaction_count,
            is_statement=is_statement,
            correlation_id=correlation_id,
        ))

    def log_chat_answered(self, question_length: int, proposed_count: int) -> None:
        self.log(AuditEventBuilder.chat_answered(
            question_length=question_length,
            proposed_count=proposed_count,
        ))

    def log_backup_created(self, account: str, timestamp: int) -> None:
        self.log(AuditEventBuilder.backup_created(account=account, timestamp=timestamp))

    def log_backup_restored(self, account: str, timestamp: int) -> None:
        self.log(AuditEventBuilder.backup_restored(account=account, timestamp=timestamp))

    def log_restore_failed(self, account: str, error_message: str) -> None:
        self.log(AuditEventBuilder.restore_failed(
            account=account,
            error_message=error_message,
        ))

    def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))

    def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., a statement scan).
    Pass it through all subsequent operations.
    """
    return uuid4()
