"""
Main Orchestrator for Finance Tracker

This module ties together all the components and defines the
end-to-end flows for:
1. Expenses and savings (validate → persist → reconcile balances)
2. Reference data (amount types, categories, payment methods)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing is persisted unless validation passed
- Balances are reconciled only after the entry itself is persisted
- If reconciliation hits a storage failure, the entry is put back the
  way it was, so entries and balances never disagree
- Every step is audited

This is the "glue" that ensures the system works correctly
even when individual components might behave unexpectedly.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Awaitable, NamedTuple, Optional
from uuid import UUID

import structlog

from finance_tracker.accounts import AccountLedger
from finance_tracker.audit import AuditLogger, create_correlation_id
from finance_tracker.balances import AmountTypeClassifier, BalanceReconciler
from finance_tracker.config import get_settings
from finance_tracker.models.ledger import (
    CATALOG_MODELS,
    CatalogItem,
    CatalogKind,
    EntityStatus,
    EntryCreate,
    EntryFilter,
    EntryKind,
    EntryUpdate,
    ExpenseStats,
    LedgerEntry,
    PaymentMethodStats,
    SavingTotal,
    ValidationIssue,
)
from finance_tracker.services.storage import (
    CatalogStorageInterface,
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
from finance_tracker.validation import (
    EntryValidationError,
    LedgerEntryValidator,
    parse_model,
    schema_failure,
)


logger = structlog.get_logger()


class LedgerEntryFlow:
    """
    Orchestrates the expense (or saving) lifecycle.

    One instance per EntryKind. Both kinds behave identically and both
    move payment method balances.

    Flow for every mutation:
    1. Parse → pydantic input model
    2. Validate → two-stage validation (schema, references)
    3. Persist → ledger storage
    4. Reconcile → balance reconciler lifecycle hook
    5. Audit
    """

    def __init__(
        self,
        kind: EntryKind,
        ledger_storage: LedgerStorageInterface,
        catalog: CatalogStorageInterface,
        reconciler: BalanceReconciler,
        validator: Optional[LedgerEntryValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        classifier: Optional[AmountTypeClassifier] = None,
    ):
        self._kind = kind
        self._storage = ledger_storage
        self._catalog = catalog
        self._reconciler = reconciler
        self._validator = validator or LedgerEntryValidator(catalog)
        self._audit_logger = audit_logger
        self._classifier = classifier or AmountTypeClassifier()

    @property
    def kind(self) -> EntryKind:
        return self._kind

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _reject(
        self,
        user_id: str,
        error: EntryValidationError,
        correlation_id: UUID,
    ) -> EntryValidationError:
        """Audit a validation failure and hand back the error to raise."""
        if self._audit_logger:
            issues = [
                {"field": i.field, "type": i.issue_type, "message": i.message}
                for i in error.issues
            ]
            await self._audit_logger.log_validation_failed(
                user_id=user_id,
                entity_type=self._kind.value,
                issues=issues,
                correlation_id=correlation_id,
            )
        return error

    async def _parse(self, model: type, data: Any, user_id: str, correlation_id: UUID):
        try:
            return parse_model(model, data)
        except EntryValidationError as e:
            raise await self._reject(user_id, e, correlation_id)

    async def _load(self, user_id: str, entry_id: UUID) -> LedgerEntry:
        """Fetch an entry of this kind owned by user_id."""
        entry = await self._storage.get_entry(entry_id)
        if entry is None or entry.user_id != user_id or entry.kind != self._kind:
            raise NotFoundError(f"{self._kind.value.capitalize()} not found")
        return entry

    async def _compensate(
        self,
        operation: str,
        action: Awaitable,
        user_id: str,
        correlation_id: UUID,
    ) -> None:
        """
        Undo an entry write after reconciliation failed.

        A failure here is audited; the caller re-raises the original error.
        """
        try:
            await action
        except StorageError as e:
            if self._audit_logger:
                await self._audit_logger.log_storage_error(
                    operation=operation,
                    error_message=str(e),
                    user_id=user_id,
                    correlation_id=correlation_id,
                )

    # =========================================================================
    # CRUD
    # =========================================================================

    async def create_entry(
        self,
        user_id: str,
        data: EntryCreate | dict[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> LedgerEntry:
        """
        Validate, persist and reconcile a new entry.

        Raises:
            EntryValidationError: Nothing was persisted
            StorageError: Nothing was persisted (entry removed again)
        """
        correlation_id = correlation_id or create_correlation_id()

        request = await self._parse(EntryCreate, data, user_id, correlation_id)
        result = await self._validator.validate_create(request)
        if not result.is_valid:
            raise await self._reject(user_id, EntryValidationError(result), correlation_id)

        entry = LedgerEntry(
            user_id=user_id,
            kind=self._kind,
            amount=request.amount,
            category_id=request.category_id,
            payment_method_id=request.payment_method_id,
            amount_type_id=request.amount_type_id,
            entry_date=request.entry_date or datetime.utcnow(),
            description=request.description or "",
        )

        async with self._reconciler.user_lock(user_id):
            await self._storage.save_entry(entry)

            try:
                await self._reconciler.on_entry_created(
                    user_id=user_id,
                    payment_method_id=entry.payment_method_id,
                    amount=entry.amount,
                    amount_type_id=entry.amount_type_id,
                    correlation_id=correlation_id,
                )
            except StorageError:
                await self._compensate(
                    f"{self._kind.value}_create_rollback",
                    self._storage.delete_entry(entry.id),
                    user_id,
                    correlation_id,
                )
                raise

        if self._audit_logger:
            await self._audit_logger.log_entry_created(
                user_id=user_id,
                entry_id=entry.id,
                kind=self._kind.value,
                amount=entry.amount,
                correlation_id=correlation_id,
            )

        return entry

    async def get_entry(self, user_id: str, entry_id: UUID) -> LedgerEntry:
        return await self._load(user_id, entry_id)

    async def list_entries(
        self,
        user_id: str,
        entry_filter: Optional[EntryFilter] = None,
    ) -> list[LedgerEntry]:
        """Newest first."""
        return await self._storage.list_entries(user_id, self._kind, entry_filter)

    async def update_entry(
        self,
        user_id: str,
        entry_id: UUID,
        data: EntryUpdate | dict[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> LedgerEntry:
        """
        Apply a partial update and reconcile old → new.

        Reconciliation always reverses the old values and applies the new
        ones, even when only the description changed.
        """
        correlation_id = correlation_id or create_correlation_id()

        request = await self._parse(EntryUpdate, data, user_id, correlation_id)
        await self._load(user_id, entry_id)

        result = await self._validator.validate_update(request)
        if not result.is_valid:
            raise await self._reject(user_id, EntryValidationError(result), correlation_id)

        changes = request.changes()

        # Reversed values must be the ones stored when the lock was taken
        async with self._reconciler.user_lock(user_id):
            existing = await self._load(user_id, entry_id)
            updated = existing.model_copy(update={**changes, "updated_at": datetime.utcnow()})

            await self._storage.update_entry(updated)

            try:
                await self._reconciler.on_entry_updated(
                    existing.snapshot(),
                    updated.snapshot(),
                    correlation_id=correlation_id,
                )
            except StorageError:
                await self._compensate(
                    f"{self._kind.value}_update_rollback",
                    self._storage.update_entry(existing),
                    user_id,
                    correlation_id,
                )
                raise

        if self._audit_logger:
            await self._audit_logger.log_entry_updated(
                user_id=user_id,
                entry_id=updated.id,
                kind=self._kind.value,
                changed_fields=sorted(changes),
                correlation_id=correlation_id,
            )

        return updated

    async def delete_entry(
        self,
        user_id: str,
        entry_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerEntry:
        """
        Delete an entry and reverse its balance contribution.

        Returns the deleted entry.
        """
        correlation_id = correlation_id or create_correlation_id()

        async with self._reconciler.user_lock(user_id):
            existing = await self._load(user_id, entry_id)
            if not await self._storage.delete_entry(existing.id):
                # Removed by someone else since the load; its balance is already reversed
                raise NotFoundError(f"{self._kind.value.capitalize()} not found")

            try:
                await self._reconciler.on_entry_deleted(
                    user_id=user_id,
                    payment_method_id=existing.payment_method_id,
                    amount=existing.amount,
                    amount_type_id=existing.amount_type_id,
                    correlation_id=correlation_id,
                )
            except StorageError:
                await self._compensate(
                    f"{self._kind.value}_delete_rollback",
                    self._storage.save_entry(existing),
                    user_id,
                    correlation_id,
                )
                raise

        if self._audit_logger:
            await self._audit_logger.log_entry_deleted(
                user_id=user_id,
                entry_id=existing.id,
                kind=self._kind.value,
                amount=existing.amount,
                correlation_id=correlation_id,
            )

        return existing

    # =========================================================================
    # STATISTICS
    # =========================================================================

    async def expense_stats(
        self,
        user_id: str,
        entry_filter: Optional[EntryFilter] = None,
    ) -> ExpenseStats:
        """
        Credit/debit totals, overall and per payment method.

        Entries whose amount type or payment method no longer resolves
        are left out.
        """
        entries = await self.list_entries(user_id, entry_filter)

        amount_types: dict[UUID, Optional[CatalogItem]] = {}
        payment_methods: dict[UUID, Optional[CatalogItem]] = {}
        per_method: dict[UUID, PaymentMethodStats] = {}
        stats = ExpenseStats()

        for entry in entries:
            if entry.amount_type_id not in amount_types:
                amount_types[entry.amount_type_id] = await self._catalog.get_amount_type(
                    entry.amount_type_id
                )
            if entry.payment_method_id not in payment_methods:
                payment_methods[entry.payment_method_id] = await self._catalog.get_payment_method(
                    entry.payment_method_id
                )

            amount_type = amount_types[entry.amount_type_id]
            payment_method = payment_methods[entry.payment_method_id]
            if amount_type is None or payment_method is None:
                continue

            method_stats = per_method.setdefault(
                payment_method.id,
                PaymentMethodStats(payment_method_id=payment_method.id, name=payment_method.name),
            )
            if self._classifier.is_credit(amount_type):
                stats.total_credit += entry.amount
                method_stats.credit += entry.amount
            else:
                stats.total_debit += entry.amount
                method_stats.debit += entry.amount

        stats.payment_method_stats = sorted(per_method.values(), key=lambda s: s.name.lower())
        return stats

    async def saving_total(
        self,
        user_id: str,
        entry_filter: Optional[EntryFilter] = None,
    ) -> SavingTotal:
        """Net total: credit entries minus debit entries."""
        entries = await self.list_entries(user_id, entry_filter)

        amount_types: dict[UUID, Optional[CatalogItem]] = {}
        total = Decimal("0")

        for entry in entries:
            if entry.amount_type_id not in amount_types:
                amount_types[entry.amount_type_id] = await self._catalog.get_amount_type(
                    entry.amount_type_id
                )
            amount_type = amount_types[entry.amount_type_id]
            if amount_type is None:
                continue
            if self._classifier.is_credit(amount_type):
                total += entry.amount
            else:
                total -= entry.amount

        return SavingTotal(total=total)


class CatalogFlow:
    """
    Orchestrates reference data maintenance.

    Names are 2-50 characters and unique per kind (case-insensitive).
    Deactivated items stay resolvable, so existing entries keep reconciling,
    but can no longer be used by new or updated entries.
    """

    def __init__(
        self,
        catalog: CatalogStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._catalog = catalog
        self._audit_logger = audit_logger

    async def _load(self, kind: CatalogKind, item_id: UUID) -> CatalogItem:
        item = await self._catalog.get_item(kind, item_id)
        if item is None:
            raise NotFoundError(f"{kind.value.replace('_', ' ').capitalize()} not found")
        return item

    async def _save(self, kind: CatalogKind, item: CatalogItem) -> CatalogItem:
        await self._catalog.save_item(kind, item)
        if self._audit_logger:
            await self._audit_logger.log_catalog_item(
                kind=kind.value,
                item_id=item.id,
                name=item.name,
            )
        return item

    async def create_item(self, kind: CatalogKind, name: str) -> CatalogItem:
        """
        Raises:
            EntryValidationError: Name too short/long
            DuplicateError: Name already used
        """
        item = parse_model(CATALOG_MODELS[kind], {"name": name})
        return await self._save(kind, item)

    async def rename_item(self, kind: CatalogKind, item_id: UUID, name: str) -> CatalogItem:
        item = await self._load(kind, item_id)
        renamed = parse_model(
            CATALOG_MODELS[kind],
            {**item.model_dump(), "name": name, "updated_at": datetime.utcnow()},
        )
        return await self._save(kind, renamed)

    async def set_status(
        self,
        kind: CatalogKind,
        item_id: UUID,
        status: EntityStatus | str,
    ) -> CatalogItem:
        try:
            status = EntityStatus(status)
        except ValueError:
            raise EntryValidationError(schema_failure([
                ValidationIssue(
                    field="status",
                    issue_type="invalid_value",
                    message='Status must be either "active" or "inactive"',
                    severity="error",
                )
            ]))

        item = await self._load(kind, item_id)
        item = item.model_copy(update={"status": status, "updated_at": datetime.utcnow()})
        return await self._save(kind, item)

    async def delete_item(self, kind: CatalogKind, item_id: UUID) -> None:
        item = await self._load(kind, item_id)
        await self._catalog.delete_item(kind, item_id)
        if self._audit_logger:
            await self._audit_logger.log_catalog_item(
                kind=kind.value,
                item_id=item.id,
                name=item.name,
                deleted=True,
            )

    async def get_item(self, kind: CatalogKind, item_id: UUID) -> CatalogItem:
        return await self._load(kind, item_id)

    async def list_items(self, kind: CatalogKind, active_only: bool = False) -> list[CatalogItem]:
        items = await self._catalog.list_items(kind)
        if active_only:
            items = [item for item in items if item.is_active]
        return items


class AppComponents(NamedTuple):
    """Everything the UI (or a test) needs, wired together."""

    expenses: LedgerEntryFlow
    savings: LedgerEntryFlow
    accounts: AccountLedger
    catalog: CatalogFlow
    reconciler: BalanceReconciler
    audit_logger: AuditLogger
    sheets_client: Optional[GoogleSheetsClient]


def create_app_components(
    use_storage: bool = True,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to use the configured persistent backend.
                    Set to False for in-memory storage (testing/demo).

    Returns:
        AppComponents
    """
    sheets_client = None
    backend = get_settings().app.storage_backend if use_storage else "memory"

    if backend == "google_sheets":
        try:
            sheets_client = GoogleSheetsClient()
            catalog_storage = GoogleSheetsCatalogStorage(sheets_client)
            ledger_storage = GoogleSheetsLedgerStorage(sheets_client)
            balance_storage = GoogleSheetsBalanceStorage(sheets_client)
            account_storage = GoogleSheetsAccountStorage(sheets_client)
            audit_storage = GoogleSheetsAuditStorage(sheets_client)
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))
            backend = "memory"
            sheets_client = None

    if backend == "memory":
        catalog_storage = InMemoryCatalogStorage()
        ledger_storage = InMemoryLedgerStorage()
        balance_storage = InMemoryBalanceStorage()
        account_storage = InMemoryAccountStorage()
        audit_storage = InMemoryAuditStorage()

    audit_logger = AuditLogger(audit_storage)
    classifier = AmountTypeClassifier()
    reconciler = BalanceReconciler(
        catalog_storage,
        balance_storage,
        audit_logger=audit_logger,
        classifier=classifier,
    )
    validator = LedgerEntryValidator(catalog_storage)

    def entry_flow(kind: EntryKind) -> LedgerEntryFlow:
        return LedgerEntryFlow(
            kind,
            ledger_storage,
            catalog_storage,
            reconciler,
            validator=validator,
            audit_logger=audit_logger,
            classifier=classifier,
        )

    return AppComponents(
        expenses=entry_flow(EntryKind.EXPENSE),
        savings=entry_flow(EntryKind.SAVING),
        accounts=AccountLedger(account_storage, audit_logger),
        catalog=CatalogFlow(catalog_storage, audit_logger),
        reconciler=reconciler,
        audit_logger=audit_logger,
        sheets_client=sheets_client,
    )
