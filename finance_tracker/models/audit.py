"""
Audit Models for Finance Tracker

Every mutation of the ledger and every trip across an external boundary
is recorded. This provides:
1. Traceability of what changed the numbers on the dashboard
2. Debugging information when an import or backup goes wrong
3. Ability to reconstruct history

DESIGN DECISION: Audit logs are append-only. We never modify events.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Ledger mutations
    TRANSACTION_SAVED = "transaction_saved"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    STATEMENT_REMOVED = "statement_removed"
    STORE_MIGRATED = "store_migrated"

    # Learning
    RULE_LEARNED = "rule_learned"

    # Import
    IMPORT_RECONCILED = "import_reconciled"
    IMPORT_NEEDS_ACCOUNT = "import_needs_account"

    # AI boundary
    AI_SUGGESTION = "ai_suggestion"
    AI_EXTRACTION_COMPLETED = "ai_extraction_completed"
    CHAT_ANSWERED = "chat_answered"

    # Backup
    BACKUP_CREATED = "backup_created"
    BACKUP_RESTORED = "backup_restored"
    RESTORE_FAILED = "restore_failed"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'statement', 'backup')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one statement import)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_saved(tx_id, "Netflix", "expense", created=True)
        event = AuditEventBuilder.backup_created(account, timestamp)
    """

    @staticmethod
    def transaction_saved(
        transaction_id: str,
        name: str,
        kind: str,
        created: bool,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.TRANSACTION_SAVED
                if created
                else AuditEventType.TRANSACTION_UPDATED
            ),
            entity_type="transaction",
            entity_id=transaction_id,
            description=f"{kind.capitalize()} {'added' if created else 'updated'}: {name}",
            details={"kind": kind, "name": name},
            is_user_action=True,
        )

    @staticmethod
    def transaction_deleted(
        transaction_id: str,
        name: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            entity_type="transaction",
            entity_id=transaction_id,
            description=f"Transaction deleted: {name}",
            details={"name": name},
            is_user_action=True,
        )

    @staticmethod
    def statement_removed(
        statement_id: str,
        provider: str,
        cascaded: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATEMENT_REMOVED,
            entity_type="statement",
            entity_id=statement_id,
            description=f"Statement removed: {provider}",
            details={"provider": provider, "transactions_removed": cascaded},
            is_user_action=True,
        )

    @staticmethod
    def store_migrated(
        backfilled_ids: int,
        backfilled_dates: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORE_MIGRATED,
            severity=AuditSeverity.WARNING,
            entity_type="store",
            description=(
                f"Legacy records migrated: {backfilled_ids} ids, "
                f"{backfilled_dates} dates backfilled"
            ),
            details={
                "backfilled_ids": backfilled_ids,
                "backfilled_dates": backfilled_dates,
            },
        )

    @staticmethod
    def rule_learned(
        merchant: str,
        category: str,
        frequency: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RULE_LEARNED,
            entity_type="rule",
            entity_id=merchant,
            description=f"Rule learned for {merchant}: {category}",
            details={"category": category, "frequency": frequency},
            is_user_action=True,
        )

    @staticmethod
    def import_reconciled(
        statement_id: Optional[str],
        provider: str,
        created: int,
        claimed: int,
        skipped: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_RECONCILED,
            entity_type="statement",
            entity_id=statement_id,
            correlation_id=correlation_id,
            description=(
                f"Import from {provider}: {created} new, "
                f"{claimed} claimed, {skipped} skipped"
            ),
            details={
                "provider": provider,
                "created": created,
                "claimed": claimed,
                "skipped": skipped,
            },
            is_user_action=True,
        )

    @staticmethod
    def import_needs_account(
        provider: str,
        options: list[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_NEEDS_ACCOUNT,
            severity=AuditSeverity.WARNING,
            entity_type="statement",
            correlation_id=correlation_id,
            description=f"Import for {provider} needs an explicit account choice",
            details={"provider": provider, "options": options},
        )

    @staticmethod
    def ai_suggestion(
        merchant: str,
        category: str,
        from_cache: bool,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AI_SUGGESTION,
            severity=AuditSeverity.DEBUG,
            entity_type="rule",
            entity_id=merchant,
            description=f"Suggested {category} for {merchant}",
            details={"category": category, "from_cache": from_cache},
        )

    @staticmethod
    def ai_extraction_completed(
        image_count: int,
        transaction_count: int,
        is_statement: bool,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AI_EXTRACTION_COMPLETED,
            entity_type="extraction",
            correlation_id=correlation_id,
            description=f"Extracted {transaction_count} transactions from {image_count} images",
            details={
                "image_count": image_count,
                "transaction_count": transaction_count,
                "is_statement": is_statement,
            },
        )

    @staticmethod
    def chat_answered(
        question_length: int,
        proposed_count: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CHAT_ANSWERED,
            entity_type="chat",
            description=f"Answered chat question ({proposed_count} proposed transactions)",
            details={
                "question_length": question_length,
                "proposed_count": proposed_count,
            },
            is_user_action=True,
        )

    @staticmethod
    def backup_created(
        account: str,
        timestamp: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_CREATED,
            entity_type="backup",
            entity_id=account,
            description=f"Encrypted backup stored for {account}",
            details={"timestamp": timestamp},
            is_user_action=True,
        )

    @staticmethod
    def backup_restored(
        account: str,
        timestamp: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_RESTORED,
            entity_type="backup",
            entity_id=account,
            description=f"Backup restored for {account}",
            details={"timestamp": timestamp},
            is_user_action=True,
        )

    @staticmethod
    def restore_failed(
        account: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RESTORE_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="backup",
            entity_id=account,
            description=f"Restore failed for {account}",
            error_message=error_message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
