"""
Data Models Package

This package contains all Pydantic models used in Finance Tracker.
All data flowing through the system must conform to these schemas.
"""

from finance_tracker.models.transaction import (
    CREDIT_CARD_PAYMENT,
    DEFAULT_CATEGORY,
    EXPENSE_CATEGORIES,
    INCOME_CATEGORIES,
    SPECIAL_CATEGORIES,
    TRANSFER,
    AccountType,
    BalanceTransfer,
    Expense,
    ExpenseType,
    Frequency,
    Income,
    RawCandidate,
    RuleEntry,
    Statement,
    StatementMeta,
    Transaction,
    categories_for,
    is_special_category,
    make_transaction,
    new_id,
    normalize_name,
    parse_expense_type,
    parse_frequency,
    safe_amount,
    safe_date,
    safe_decimal,
)
from finance_tracker.models.results import (
    Financials,
    MonthSeriesPoint,
    PeriodStatus,
    ReconcileResult,
    SkippedCandidate,
    ValidationIssue,
    ValidationResult,
)
from finance_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Transaction models
    "CREDIT_CARD_PAYMENT",
    "DEFAULT_CATEGORY",
    "EXPENSE_CATEGORIES",
    "INCOME_CATEGORIES",
    "SPECIAL_CATEGORIES",
    "TRANSFER",
    "AccountType",
    "BalanceTransfer",
    "Expense",
    "ExpenseType",
    "Frequency",
    "Income",
    "RawCandidate",
    "RuleEntry",
    "Statement",
    "StatementMeta",
    "Transaction",
    "categories_for",
    "is_special_category",
    "make_transaction",
    "new_id",
    "normalize_name",
    "parse_expense_type",
    "parse_frequency",
    "safe_amount",
    "safe_date",
    "safe_decimal",
    # Result models
    "Financials",
    "MonthSeriesPoint",
    "PeriodStatus",
    "ReconcileResult",
    "SkippedCandidate",
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
