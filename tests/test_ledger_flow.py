"""
Tests for the expense/saving flows and the catalog flow.

These run the full path: parse → validate → persist → reconcile → audit.
"""

import asyncio
from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

import pytest

from finance_tracker.audit import AuditLogger
from finance_tracker.balances import BalanceReconciler
from finance_tracker.models import (
    AuditEventType,
    CatalogKind,
    EntityStatus,
    EntryFilter,
    EntryKind,
)
from finance_tracker.orchestrator import CatalogFlow, LedgerEntryFlow, create_app_components
from finance_tracker.services.storage import (
    DuplicateError,
    InMemoryLedgerStorage,
    NotFoundError,
    StorageError,
)
from finance_tracker.validation import EntryValidationError

from tests.conftest import FlakyBalanceStorage


USER = "user-1"


@pytest.fixture
def expenses(ledger_storage, catalog, reconciler, audit_logger) -> LedgerEntryFlow:
    return LedgerEntryFlow(EntryKind.EXPENSE, ledger_storage, catalog, reconciler, audit_logger=audit_logger)


@pytest.fixture
def savings(ledger_storage, catalog, reconciler, audit_logger) -> LedgerEntryFlow:
    return LedgerEntryFlow(EntryKind.SAVING, ledger_storage, catalog, reconciler, audit_logger=audit_logger)


def entry_data(seeded, amount="100", amount_type=None, payment_method=None, **extra) -> dict:
    return {
        "amount": amount,
        "category_id": seeded.groceries.id,
        "payment_method_id": (payment_method or seeded.cash).id,
        "amount_type_id": (amount_type or seeded.spend).id,
        **extra,
    }


class TestCreateEntry:
    """Tests for creating expenses and savings."""

    @pytest.mark.asyncio
    async def test_create_persists_and_reconciles(self, expenses, reconciler, seeded):
        """A debit expense is stored and moves its payment method by +amount."""
        entry = await expenses.create_entry(USER, entry_data(seeded, description="  milk  "))

        assert entry.kind == EntryKind.EXPENSE
        assert entry.description == "milk"
        assert await expenses.get_entry(USER, entry.id) == entry

        row = await reconciler.get_payment_method_balance(USER, seeded.cash.id)
        assert row.balance == Decimal("100")
        aggregate = await reconciler.get_aggregate_balance(USER)
        assert aggregate.current_balance == Decimal("100")

    @pytest.mark.asyncio
    async def test_saving_moves_balances_too(self, savings, reconciler, seeded):
        """Savings reconcile exactly like expenses."""
        await savings.create_entry(USER, entry_data(seeded, amount="40", amount_type=seeded.income))
        row = await reconciler.get_payment_method_balance(USER, seeded.cash.id)
        assert row.balance == Decimal("-40")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("override", [
        {"amount": "0"},
        {"amount": "-10"},
        {"amount": "abc"},
        {"category_id": "not-a-uuid"},
    ])
    async def test_schema_errors_persist_nothing(self, expenses, balance_storage, seeded, override):
        """Malformed input is rejected before anything is stored."""
        with pytest.raises(EntryValidationError):
            await expenses.create_entry(USER, {**entry_data(seeded), **override})

        assert await expenses.list_entries(USER) == []
        assert await balance_storage.list_payment_method_balances(USER) == []

    @pytest.mark.asyncio
    async def test_inactive_reference_rejected(self, expenses, catalog, balance_storage, seeded):
        """Inactive payment methods cannot be used."""
        inactive = seeded.upi.model_copy(update={"status": EntityStatus.INACTIVE})
        await catalog.save_item(CatalogKind.PAYMENT_METHOD, inactive)

        with pytest.raises(EntryValidationError) as exc_info:
            await expenses.create_entry(USER, entry_data(seeded, payment_method=seeded.upi))

        assert "Invalid or inactive payment method" in str(exc_info.value)
        assert await expenses.list_entries(USER) == []
        assert await balance_storage.list_payment_method_balances(USER) == []

    @pytest.mark.asyncio
    async def test_validation_failure_is_audited(self, expenses, audit_storage, seeded):
        """Rejected input leaves a validation_failed audit event."""
        with pytest.raises(EntryValidationError):
            await expenses.create_entry(USER, {**entry_data(seeded), "amount_type_id": uuid4()})

        events = await audit_storage.get_recent_events()
        assert events[0].event_type == AuditEventType.VALIDATION_FAILED

    @pytest.mark.asyncio
    async def test_storage_failure_removes_entry(self, catalog, ledger_storage, seeded):
        """If reconciliation fails, the new entry is deleted again."""
        reconciler = BalanceReconciler(catalog, FlakyBalanceStorage(fail_on_write=1))
        flow = LedgerEntryFlow(EntryKind.EXPENSE, ledger_storage, catalog, reconciler)

        with pytest.raises(StorageError):
            await flow.create_entry(USER, entry_data(seeded))

        assert await flow.list_entries(USER) == []


class TestUpdateEntry:
    """Tests for updating entries."""

    @pytest.mark.asyncio
    async def test_update_reconciles_old_and_new(self, expenses, reconciler, seeded):
        """Moving 100 on cash to 30 on UPI leaves cash 0 and UPI 30."""
        entry = await expenses.create_entry(USER, entry_data(seeded))

        updated = await expenses.update_entry(USER, entry.id, {
            "amount": "30",
            "payment_method_id": seeded.upi.id,
        })

        assert updated.amount == Decimal("30")
        assert updated.category_id == entry.category_id
        assert (await reconciler.get_payment_method_balance(USER, seeded.cash.id)).balance == Decimal("0")
        assert (await reconciler.get_payment_method_balance(USER, seeded.upi.id)).balance == Decimal("30")
        assert (await reconciler.get_aggregate_balance(USER)).current_balance == Decimal("30")

    @pytest.mark.asyncio
    async def test_update_description_only(self, expenses, reconciler, seeded):
        """A description-only update keeps balances unchanged."""
        entry = await expenses.create_entry(USER, entry_data(seeded, description="old"))
        updated = await expenses.update_entry(USER, entry.id, {"description": None})

        assert updated.description == ""
        assert (await reconciler.get_payment_method_balance(USER, seeded.cash.id)).balance == Decimal("100")

    @pytest.mark.asyncio
    async def test_update_rejects_inactive_amount_type(self, expenses, catalog, seeded):
        """New references must be active."""
        entry = await expenses.create_entry(USER, entry_data(seeded))
        inactive = seeded.income.model_copy(update={"status": EntityStatus.INACTIVE})
        await catalog.save_item(CatalogKind.AMOUNT_TYPE, inactive)

        with pytest.raises(EntryValidationError):
            await expenses.update_entry(USER, entry.id, {"amount_type_id": seeded.income.id})

        assert (await expenses.get_entry(USER, entry.id)).amount_type_id == seeded.spend.id

    @pytest.mark.asyncio
    async def test_update_other_users_entry_not_found(self, expenses, seeded):
        """Entries of another user look missing."""
        entry = await expenses.create_entry(USER, entry_data(seeded))
        with pytest.raises(NotFoundError):
            await expenses.update_entry("intruder", entry.id, {"amount": "1"})

    @pytest.mark.asyncio
    async def test_failed_reconciliation_restores_entry(self, catalog, ledger_storage, seeded):
        """If the update cannot be reconciled the stored entry is put back."""
        reconciler = BalanceReconciler(catalog, FlakyBalanceStorage(fail_on_write=2))
        flow = LedgerEntryFlow(EntryKind.EXPENSE, ledger_storage, catalog, reconciler)
        entry = await flow.create_entry(USER, entry_data(seeded))

        with pytest.raises(StorageError):
            await flow.update_entry(USER, entry.id, {"amount": "5"})

        assert (await flow.get_entry(USER, entry.id)).amount == Decimal("100")
        row = await reconciler.get_payment_method_balance(USER, seeded.cash.id)
        assert row.balance == Decimal("100")


class TestDeleteEntry:
    """Tests for deleting entries."""

    @pytest.mark.asyncio
    async def test_delete_reverses_balance(self, expenses, reconciler, seeded):
        """Deleting an entry removes its contribution."""
        entry = await expenses.create_entry(USER, entry_data(seeded))
        await expenses.delete_entry(USER, entry.id)

        assert await expenses.list_entries(USER) == []
        assert (await reconciler.get_aggregate_balance(USER)).current_balance == Decimal("0")

    @pytest.mark.asyncio
    async def test_delete_with_removed_amount_type(self, expenses, catalog, reconciler, seeded):
        """Deleting an entry whose amount type is gone succeeds, balance untouched."""
        entry = await expenses.create_entry(USER, entry_data(seeded))
        await catalog.delete_item(CatalogKind.AMOUNT_TYPE, seeded.spend.id)

        await expenses.delete_entry(USER, entry.id)

        assert await expenses.list_entries(USER) == []
        row = await reconciler.get_payment_method_balance(USER, seeded.cash.id)
        assert row.balance == Decimal("100")

    @pytest.mark.asyncio
    async def test_delete_unknown_entry(self, expenses):
        """Unknown ids raise NotFoundError."""
        with pytest.raises(NotFoundError):
            await expenses.delete_entry(USER, uuid4())

    @pytest.mark.asyncio
    async def test_saving_flow_cannot_see_expenses(self, expenses, savings, seeded):
        """Each flow only sees its own kind."""
        entry = await expenses.create_entry(USER, entry_data(seeded))
        with pytest.raises(NotFoundError):
            await savings.get_entry(USER, entry.id)


class TestListingAndStats:
    """Tests for filters and statistics."""

    @pytest.mark.asyncio
    async def test_filters_and_ordering(self, expenses, seeded):
        """Date filters are inclusive; newest first."""
        for day in (1, 15, 31):
            await expenses.create_entry(USER, entry_data(seeded, entry_date=datetime(2024, 1, day, 18)))
        await expenses.create_entry(USER, entry_data(seeded, payment_method=seeded.upi, entry_date=datetime(2024, 2, 1)))

        january = await expenses.list_entries(
            USER, EntryFilter(start_date=date(2024, 1, 1), end_date=date(2024, 1, 31))
        )
        assert [e.entry_date.day for e in january] == [31, 15, 1]

        upi_only = await expenses.list_entries(USER, EntryFilter(payment_method_id=seeded.upi.id))
        assert len(upi_only) == 1

    @pytest.mark.asyncio
    async def test_expense_stats(self, expenses, seeded):
        """Credit and debit totals, overall and per payment method."""
        await expenses.create_entry(USER, entry_data(seeded, amount="100"))
        await expenses.create_entry(USER, entry_data(seeded, amount="30", amount_type=seeded.income))
        await expenses.create_entry(USER, entry_data(seeded, amount="5", payment_method=seeded.upi))

        stats = await expenses.expense_stats(USER)

        assert stats.total_debit == Decimal("105")
        assert stats.total_credit == Decimal("30")
        by_name = {s.name: s for s in stats.payment_method_stats}
        assert by_name["Cash"].debit == Decimal("100")
        assert by_name["Cash"].credit == Decimal("30")
        assert by_name["UPI"].debit == Decimal("5")

    @pytest.mark.asyncio
    async def test_saving_total_is_credit_minus_debit(self, savings, seeded):
        """Net saving = credits - debits."""
        await savings.create_entry(USER, entry_data(seeded, amount="500", amount_type=seeded.income))
        await savings.create_entry(USER, entry_data(seeded, amount="120"))

        total = await savings.saving_total(USER)
        assert total.total == Decimal("380")


class TestCatalogFlow:
    """Tests for reference data maintenance."""

    @pytest.mark.asyncio
    async def test_create_and_list(self, catalog, audit_logger):
        """Items are created active and listed by name."""
        flow = CatalogFlow(catalog, audit_logger)
        await flow.create_item(CatalogKind.CATEGORY, "Rent")
        await flow.create_item(CatalogKind.CATEGORY, "Fuel")

        names = [item.name for item in await flow.list_items(CatalogKind.CATEGORY)]
        assert names == ["Fuel", "Rent"]

    @pytest.mark.asyncio
    async def test_duplicate_names_rejected_case_insensitively(self, catalog):
        """Names are unique within a kind."""
        flow = CatalogFlow(catalog)
        await flow.create_item(CatalogKind.PAYMENT_METHOD, "Cash")
        with pytest.raises(DuplicateError):
            await flow.create_item(CatalogKind.PAYMENT_METHOD, "cash")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ["x", "y" * 51, "   "])
    async def test_name_length_enforced(self, catalog, name):
        """Names must be 2-50 characters after stripping."""
        with pytest.raises(EntryValidationError):
            await CatalogFlow(catalog).create_item(CatalogKind.AMOUNT_TYPE, name)

    @pytest.mark.asyncio
    async def test_set_status_and_active_filter(self, catalog):
        """Inactive items are hidden when only active ones are requested."""
        flow = CatalogFlow(catalog)
        item = await flow.create_item(CatalogKind.AMOUNT_TYPE, "Card Credit")
        await flow.set_status(CatalogKind.AMOUNT_TYPE, item.id, "inactive")

        assert await flow.list_items(CatalogKind.AMOUNT_TYPE, active_only=True) == []
        with pytest.raises(EntryValidationError):
            await flow.set_status(CatalogKind.AMOUNT_TYPE, item.id, "paused")

    @pytest.mark.asyncio
    async def test_rename_and_delete(self, catalog):
        """Renaming keeps the id; deleting an unknown item raises NotFoundError."""
        flow = CatalogFlow(catalog)
        item = await flow.create_item(CatalogKind.CATEGORY, "Food")
        renamed = await flow.rename_item(CatalogKind.CATEGORY, item.id, "Food & Dining")
        assert renamed.id == item.id
        assert (await flow.get_item(CatalogKind.CATEGORY, item.id)).name == "Food & Dining"

        await flow.delete_item(CatalogKind.CATEGORY, item.id)
        with pytest.raises(NotFoundError):
            await flow.delete_item(CatalogKind.CATEGORY, item.id)


class YieldingLedgerStorage(InMemoryLedgerStorage):
    """Yields to the event loop after every entry read, like a network backend."""

    async def get_entry(self, entry_id):
        entry = await super().get_entry(entry_id)
        await asyncio.sleep(0)
        return entry


class VanishingLedgerStorage(InMemoryLedgerStorage):
    """Reports a delete as a miss, as if another writer removed the row first."""

    async def delete_entry(self, entry_id):
        await super().delete_entry(entry_id)
        return False


class TestOverlappingMutations:
    """Tests for mutations of the same entry that overlap in time."""

    @pytest.mark.asyncio
    async def test_overlapping_deletes_reverse_once(self, catalog, reconciler, seeded):
        """Two deletes of one entry: one succeeds, one is not found, balance back to zero."""
        flow = LedgerEntryFlow(EntryKind.EXPENSE, YieldingLedgerStorage(), catalog, reconciler)
        entry = await flow.create_entry(USER, entry_data(seeded))

        results = await asyncio.gather(
            flow.delete_entry(USER, entry.id),
            flow.delete_entry(USER, entry.id),
            return_exceptions=True,
        )

        assert sum(1 for r in results if isinstance(r, NotFoundError)) == 1
        assert sum(1 for r in results if getattr(r, "id", None) == entry.id) == 1

        row = await reconciler.get_payment_method_balance(USER, seeded.cash.id)
        assert row.balance == Decimal("0")
        aggregate = await reconciler.get_aggregate_balance(USER)
        assert aggregate.current_balance == Decimal("0")

    @pytest.mark.asyncio
    async def test_overlapping_updates_reverse_stored_values(self, catalog, reconciler, seeded):
        """Each update reverses what was stored when it ran, so the balance tracks the entry."""
        storage = YieldingLedgerStorage()
        flow = LedgerEntryFlow(EntryKind.EXPENSE, storage, catalog, reconciler)
        entry = await flow.create_entry(USER, entry_data(seeded))

        await asyncio.gather(
            flow.update_entry(USER, entry.id, {"amount": "50"}),
            flow.update_entry(USER, entry.id, {"amount": "70"}),
        )

        stored = await storage.get_entry(entry.id)
        assert stored.amount in (Decimal("50"), Decimal("70"))
        row = await reconciler.get_payment_method_balance(USER, seeded.cash.id)
        assert row.balance == stored.amount

    @pytest.mark.asyncio
    async def test_delete_missed_by_storage_is_not_reconciled(self, catalog, reconciler, seeded):
        """A delete the backend reports as a miss raises NotFoundError and leaves balances alone."""
        flow = LedgerEntryFlow(EntryKind.EXPENSE, VanishingLedgerStorage(), catalog, reconciler)
        entry = await flow.create_entry(USER, entry_data(seeded))

        with pytest.raises(NotFoundError):
            await flow.delete_entry(USER, entry.id)

        row = await reconciler.get_payment_method_balance(USER, seeded.cash.id)
        assert row.balance == Decimal("100")


class TestAppComponents:
    """Tests for the component factory."""

    @pytest.mark.asyncio
    async def test_in_memory_components_work_end_to_end(self):
        """The factory wires a working in-memory application."""
        app = create_app_components(use_storage=False)
        assert app.sheets_client is None

        spend = await app.catalog.create_item(CatalogKind.AMOUNT_TYPE, "Daily Spend")
        category = await app.catalog.create_item(CatalogKind.CATEGORY, "Groceries")
        cash = await app.catalog.create_item(CatalogKind.PAYMENT_METHOD, "Cash")

        await app.expenses.create_entry(USER, {
            "amount": "12.50",
            "category_id": category.id,
            "payment_method_id": cash.id,
            "amount_type_id": spend.id,
        })

        aggregate = await app.reconciler.get_aggregate_balance(USER)
        assert aggregate.current_balance == Decimal("12.50")
        assert isinstance(app.audit_logger, AuditLogger)
