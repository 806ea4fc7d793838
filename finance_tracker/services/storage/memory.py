"""
In-Memory Storage Implementation

Default backend for development and the backend every test runs against.

Models are deep-copied on the way in and on the way out, so callers can
never mutate stored state without going through the interface - the same
isolation a real backend gives.
"""

from typing import Optional
from uuid import UUID

from finance_tracker.models.account import Account, AccountStatus
from finance_tracker.models.audit import AuditEvent
from finance_tracker.models.ledger import (
    AggregateBalance,
    CatalogItem,
    CatalogKind,
    EntryFilter,
    EntryKind,
    LedgerEntry,
    PaymentMethodBalance,
)
from finance_tracker.services.storage.interface import (
    AccountStorageInterface,
    AuditStorageInterface,
    BalanceStorageInterface,
    CatalogStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
)


class InMemoryCatalogStorage(CatalogStorageInterface):
    """Reference data held in per-kind dicts."""

    def __init__(self):
        self._items: dict[CatalogKind, dict[UUID, CatalogItem]] = {
            kind: {} for kind in CatalogKind
        }

    async def get_item(self, kind: CatalogKind, item_id: UUID) -> Optional[CatalogItem]:
        item = self._items[kind].get(item_id)
        return item.model_copy(deep=True) if item else None

    async def list_items(self, kind: CatalogKind) -> list[CatalogItem]:
        items = sorted(self._items[kind].values(), key=lambda i: i.name.lower())
        return [item.model_copy(deep=True) for item in items]

    async def save_item(self, kind: CatalogKind, item: CatalogItem) -> bool:
        for existing in self._items[kind].values():
            if existing.id != item.id and existing.name.lower() == item.name.lower():
                raise DuplicateError(
                    f"{kind.value.replace('_', ' ').capitalize()} with this name already exists"
                )
        self._items[kind][item.id] = item.model_copy(deep=True)
        return True

    async def delete_item(self, kind: CatalogKind, item_id: UUID) -> bool:
        return self._items[kind].pop(item_id, None) is not None


class InMemoryLedgerStorage(LedgerStorageInterface):
    """Expenses and savings keyed by entry id."""

    def __init__(self):
        self._entries: dict[UUID, LedgerEntry] = {}

    async def save_entry(self, entry: LedgerEntry) -> bool:
        if entry.id in self._entries:
            raise DuplicateError(f"Entry already exists: {entry.id}")
        self._entries[entry.id] = entry.model_copy(deep=True)
        return True

    async def get_entry(self, entry_id: UUID) -> Optional[LedgerEntry]:
        entry = self._entries.get(entry_id)
        return entry.model_copy(deep=True) if entry else None

    async def update_entry(self, entry: LedgerEntry) -> bool:
        if entry.id not in self._entries:
            raise NotFoundError(f"Entry not found: {entry.id}")
        self._entries[entry.id] = entry.model_copy(deep=True)
        return True

    async def delete_entry(self, entry_id: UUID) -> bool:
        return self._entries.pop(entry_id, None) is not None

    async def list_entries(
        self,
        user_id: str,
        kind: EntryKind,
        entry_filter: Optional[EntryFilter] = None,
    ) -> list[LedgerEntry]:
        entries = [
            entry for entry in self._entries.values()
            if entry.user_id == user_id
            and entry.kind == kind
            and (entry_filter is None or entry_filter.matches(entry))
        ]
        entries.sort(key=lambda e: (e.entry_date, e.created_at), reverse=True)
        return [entry.model_copy(deep=True) for entry in entries]


class InMemoryBalanceStorage(BalanceStorageInterface):
    """Payment method balances keyed by (user_id, payment_method_id)."""

    def __init__(self):
        self._method_balances: dict[tuple[str, UUID], PaymentMethodBalance] = {}
        self._aggregates: dict[str, AggregateBalance] = {}

    async def get_payment_method_balance(
        self,
        user_id: str,
        payment_method_id: UUID,
    ) -> Optional[PaymentMethodBalance]:
        row = self._method_balances.get((user_id, payment_method_id))
        return row.model_copy() if row else None

    async def list_payment_method_balances(self, user_id: str) -> list[PaymentMethodBalance]:
        return [
            row.model_copy()
            for (owner, _), row in self._method_balances.items()
            if owner == user_id
        ]

    async def save_payment_method_balance(self, row: PaymentMethodBalance) -> bool:
        self._method_balances[(row.user_id, row.payment_method_id)] = row.model_copy()
        return True

    async def delete_payment_method_balance(
        self,
        user_id: str,
        payment_method_id: UUID,
    ) -> bool:
        return self._method_balances.pop((user_id, payment_method_id), None) is not None

    async def get_aggregate_balance(self, user_id: str) -> Optional[AggregateBalance]:
        row = self._aggregates.get(user_id)
        return row.model_copy() if row else None

    async def save_aggregate_balance(self, row: AggregateBalance) -> bool:
        self._aggregates[row.user_id] = row.model_copy()
        return True


class InMemoryAccountStorage(AccountStorageInterface):
    """Loan accounts keyed by account id."""

    def __init__(self):
        self._accounts: dict[UUID, Account] = {}

    async def save_account(self, account: Account) -> bool:
        if account.id in self._accounts:
            raise DuplicateError(f"Account already exists: {account.id}")
        self._accounts[account.id] = account.model_copy(deep=True)
        return True

    async def get_account(self, account_id: UUID) -> Optional[Account]:
        account = self._accounts.get(account_id)
        return account.model_copy(deep=True) if account else None

    async def update_account(self, account: Account) -> bool:
        if account.id not in self._accounts:
            raise NotFoundError(f"Account not found: {account.id}")
        self._accounts[account.id] = account.model_copy(deep=True)
        return True

    async def list_accounts(
        self,
        user_id: str,
        status: Optional[AccountStatus] = None,
    ) -> list[Account]:
        accounts = [
            account for account in self._accounts.values()
            if account.user_id == user_id
            and (status is None or account.status == status)
        ]
        accounts.sort(key=lambda a: a.updated_at, reverse=True)
        return [account.model_copy(deep=True) for account in accounts]


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return sorted(self._events, key=lambda e: e.timestamp, reverse=True)[:limit]
