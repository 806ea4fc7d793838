"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Ships an in-memory backend (default, used by tests) and a Google Sheets
backend, selected through settings.
"""

from finance_tracker.services.storage.interface import (
    AccountStorageInterface,
    AuditStorageInterface,
    BalanceStorageInterface,
    CatalogStorageInterface,
    ConnectionError,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)
from finance_tracker.services.storage.memory import (
    InMemoryAccountStorage,
    InMemoryAuditStorage,
    InMemoryBalanceStorage,
    InMemoryCatalogStorage,
    InMemoryLedgerStorage,
)
from finance_tracker.services.storage.google_sheets import (
    GoogleSheetsAccountStorage,
    GoogleSheetsAuditStorage,
    GoogleSheetsBalanceStorage,
    GoogleSheetsCatalogStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
)

__all__ = [
    # Interfaces
    "AccountStorageInterface",
    "AuditStorageInterface",
    "BalanceStorageInterface",
    "CatalogStorageInterface",
    "LedgerStorageInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAccountStorage",
    "InMemoryAuditStorage",
    "InMemoryBalanceStorage",
    "InMemoryCatalogStorage",
    "InMemoryLedgerStorage",
    # Google Sheets implementation
    "GoogleSheetsAccountStorage",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsBalanceStorage",
    "GoogleSheetsCatalogStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStorage",
]
