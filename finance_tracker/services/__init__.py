"""Services package."""

from finance_tracker.services.storage import (
    AccountStorageInterface,
    AuditStorageInterface,
    BalanceStorageInterface,
    CatalogStorageInterface,
    ConnectionError,
    DuplicateError,
    GoogleSheetsAccountStorage,
    GoogleSheetsAuditStorage,
    GoogleSheetsBalanceStorage,
    GoogleSheetsCatalogStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryAccountStorage,
    InMemoryAuditStorage,
    InMemoryBalanceStorage,
    InMemoryCatalogStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)

__all__ = [
    "AccountStorageInterface",
    "AuditStorageInterface",
    "BalanceStorageInterface",
    "CatalogStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "GoogleSheetsAccountStorage",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsBalanceStorage",
    "GoogleSheetsCatalogStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStorage",
    "InMemoryAccountStorage",
    "InMemoryAuditStorage",
    "InMemoryBalanceStorage",
    "InMemoryCatalogStorage",
    "InMemoryLedgerStorage",
    "LedgerStorageInterface",
    "NotFoundError",
    "StorageError",
]
