"""
Shared fixtures.

Every service test runs against the in-memory backend.
"""

from typing import NamedTuple

import pytest
import pytest_asyncio

from finance_tracker.audit import AuditLogger
from finance_tracker.balances import BalanceReconciler
from finance_tracker.models import AmountType, CatalogKind, Category, PaymentMethod
from finance_tracker.services.storage import (
    InMemoryAuditStorage,
    InMemoryBalanceStorage,
    InMemoryCatalogStorage,
    InMemoryLedgerStorage,
    StorageError,
)


class SeededCatalog(NamedTuple):
    income: AmountType      # credit
    spend: AmountType       # debit
    groceries: Category
    cash: PaymentMethod
    upi: PaymentMethod


class FlakyBalanceStorage(InMemoryBalanceStorage):
    """Raises StorageError on the n-th payment method balance write."""

    def __init__(self, fail_on_write: int):
        super().__init__()
        self.fail_on_write = fail_on_write
        self.writes = 0

    async def save_payment_method_balance(self, row):
        self.writes += 1
        if self.writes == self.fail_on_write:
            raise StorageError("Sheets quota exceeded")
        return await super().save_payment_method_balance(row)


@pytest.fixture
def catalog() -> InMemoryCatalogStorage:
    return InMemoryCatalogStorage()


@pytest.fixture
def balance_storage() -> InMemoryBalanceStorage:
    return InMemoryBalanceStorage()


@pytest.fixture
def ledger_storage() -> InMemoryLedgerStorage:
    return InMemoryLedgerStorage()


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage) -> AuditLogger:
    return AuditLogger(audit_storage)


@pytest.fixture
def reconciler(catalog, balance_storage, audit_logger) -> BalanceReconciler:
    return BalanceReconciler(catalog, balance_storage, audit_logger=audit_logger)


@pytest_asyncio.fixture
async def seeded(catalog) -> SeededCatalog:
    """A small catalog: one credit type, one debit type, two payment methods."""
    seeded = SeededCatalog(
        income=AmountType(name="Salary Income"),
        spend=AmountType(name="Cash Spend"),
        groceries=Category(name="Groceries"),
        cash=PaymentMethod(name="Cash"),
        upi=PaymentMethod(name="UPI"),
    )
    await catalog.save_item(CatalogKind.AMOUNT_TYPE, seeded.income)
    await catalog.save_item(CatalogKind.AMOUNT_TYPE, seeded.spend)
    await catalog.save_item(CatalogKind.CATEGORY, seeded.groceries)
    await catalog.save_item(CatalogKind.PAYMENT_METHOD, seeded.cash)
    await catalog.save_item(CatalogKind.PAYMENT_METHOD, seeded.upi)
    return seeded
