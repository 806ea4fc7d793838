"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Add caching layers transparently
4. Keep business logic decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
Ownership checks (user_id) are the caller's job; storage only keys by id.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from finance_tracker.models.account import Account, AccountStatus
from finance_tracker.models.audit import AuditEvent
from finance_tracker.models.ledger import (
    AggregateBalance,
    AmountType,
    CatalogItem,
    CatalogKind,
    Category,
    EntryFilter,
    EntryKind,
    LedgerEntry,
    PaymentMethod,
    PaymentMethodBalance,
)


class CatalogStorageInterface(ABC):
    """
    Abstract interface for reference data (amount types, categories,
    payment methods).

    Names are unique per kind, compared case-insensitively.
    """

    @abstractmethod
    async def get_item(self, kind: CatalogKind, item_id: UUID) -> Optional[CatalogItem]:
        """
        Retrieve a catalog item by id.

        Returns:
            The item if found, None otherwise
        """
        pass

    @abstractmethod
    async def list_items(self, kind: CatalogKind) -> list[CatalogItem]:
        """List all items of a kind, ordered by name."""
        pass

    @abstractmethod
    async def save_item(self, kind: CatalogKind, item: CatalogItem) -> bool:
        """
        Insert or replace a catalog item.

        Raises:
            DuplicateError: If another item of the same kind has this name
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def delete_item(self, kind: CatalogKind, item_id: UUID) -> bool:
        """
        Delete a catalog item.

        Returns:
            True if an item was deleted
        """
        pass

    async def get_amount_type(self, amount_type_id: UUID) -> Optional[AmountType]:
        """Resolve an amount type, or None if it does not exist."""
        return await self.get_item(CatalogKind.AMOUNT_TYPE, amount_type_id)

    async def get_category(self, category_id: UUID) -> Optional[Category]:
        return await self.get_item(CatalogKind.CATEGORY, category_id)

    async def get_payment_method(self, payment_method_id: UUID) -> Optional[PaymentMethod]:
        return await self.get_item(CatalogKind.PAYMENT_METHOD, payment_method_id)


class LedgerStorageInterface(ABC):
    """
    Abstract interface for expense and saving entries.
    """

    @abstractmethod
    async def save_entry(self, entry: LedgerEntry) -> bool:
        """
        Save a new ledger entry.

        Raises:
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def get_entry(self, entry_id: UUID) -> Optional[LedgerEntry]:
        """
        Retrieve an entry by its ID.

        Returns:
            The entry if found, None otherwise
        """
        pass

    @abstractmethod
    async def update_entry(self, entry: LedgerEntry) -> bool:
        """
        Replace an existing entry.

        Raises:
            NotFoundError: If entry doesn't exist
            StorageError: If update fails
        """
        pass

    @abstractmethod
    async def delete_entry(self, entry_id: UUID) -> bool:
        """
        Delete an entry by ID.

        Returns:
            True if deleted, False if it did not exist
        """
        pass

    @abstractmethod
    async def list_entries(
        self,
        user_id: str,
        kind: EntryKind,
        entry_filter: Optional[EntryFilter] = None,
    ) -> list[LedgerEntry]:
        """
        List a user's entries of one kind.

        Returns:
            Matching entries, newest entry_date first (ties: newest created_at first)
        """
        pass


class BalanceStorageInterface(ABC):
    """
    Abstract interface for stored balances.

    Rows here are owned by the reconciler. Nothing else should write them
    except the manual override paths.
    """

    @abstractmethod
    async def get_payment_method_balance(
        self,
        user_id: str,
        payment_method_id: UUID,
    ) -> Optional[PaymentMethodBalance]:
        """Return the stored row, or None if it was never created."""
        pass

    @abstractmethod
    async def list_payment_method_balances(self, user_id: str) -> list[PaymentMethodBalance]:
        """Return all existing rows for a user."""
        pass

    @abstractmethod
    async def save_payment_method_balance(self, row: PaymentMethodBalance) -> bool:
        """Insert or replace the row for (user_id, payment_method_id)."""
        pass

    @abstractmethod
    async def delete_payment_method_balance(
        self,
        user_id: str,
        payment_method_id: UUID,
    ) -> bool:
        """Remove a row. Used when rolling back a lazily created row."""
        pass

    @abstractmethod
    async def get_aggregate_balance(self, user_id: str) -> Optional[AggregateBalance]:
        """Return the stored aggregate row, or None."""
        pass

    @abstractmethod
    async def save_aggregate_balance(self, row: AggregateBalance) -> bool:
        """Insert or replace the aggregate row for a user."""
        pass


class AccountStorageInterface(ABC):
    """
    Abstract interface for loan accounts.

    Transactions are stored embedded in their account.
    """

    @abstractmethod
    async def save_account(self, account: Account) -> bool:
        """Save a new account."""
        pass

    @abstractmethod
    async def get_account(self, account_id: UUID) -> Optional[Account]:
        """Retrieve an account (with its transactions) by id."""
        pass

    @abstractmethod
    async def update_account(self, account: Account) -> bool:
        """
        Replace an existing account.

        Raises:
            NotFoundError: If account doesn't exist
        """
        pass

    @abstractmethod
    async def list_accounts(
        self,
        user_id: str,
        status: Optional[AccountStatus] = None,
    ) -> list[Account]:
        """
        List a user's accounts.

        Returns:
            Accounts, most recently updated first
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one entry update).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage (or not owned by the caller)."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
