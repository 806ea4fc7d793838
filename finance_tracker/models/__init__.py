"""
Data Models Package

This package contains all Pydantic models used in the Finance Tracker system.
All data flowing through the system must conform to these schemas.
"""

from finance_tracker.models.ledger import (
    CATALOG_MODELS,
    AggregateBalance,
    AmountType,
    BalanceClass,
    CatalogItem,
    CatalogKind,
    Category,
    EntityStatus,
    EntryCreate,
    EntryFilter,
    EntryKind,
    EntrySnapshot,
    EntryUpdate,
    ExpenseStats,
    LedgerEntry,
    PaymentMethod,
    PaymentMethodBalance,
    PaymentMethodStats,
    SavingTotal,
    ValidationIssue,
    ValidationResult,
)
from finance_tracker.models.account import (
    ALLOWED_TRANSACTION_TYPES,
    Account,
    AccountCreate,
    AccountStatus,
    AccountSummary,
    AccountTransaction,
    AccountType,
    AccountView,
    TransactionCreate,
    TransactionType,
)
from finance_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "CATALOG_MODELS",
    "AggregateBalance",
    "AmountType",
    "BalanceClass",
    "CatalogItem",
    "CatalogKind",
    "Category",
    "EntityStatus",
    "EntryCreate",
    "EntryFilter",
    "EntryKind",
    "EntrySnapshot",
    "EntryUpdate",
    "ExpenseStats",
    "LedgerEntry",
    "PaymentMethod",
    "PaymentMethodBalance",
    "PaymentMethodStats",
    "SavingTotal",
    "ValidationIssue",
    "ValidationResult",
    # Account models
    "ALLOWED_TRANSACTION_TYPES",
    "Account",
    "AccountCreate",
    "AccountStatus",
    "AccountSummary",
    "AccountTransaction",
    "AccountType",
    "AccountView",
    "TransactionCreate",
    "TransactionType",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
