"""
Balance Reconciler

Keeps payment method balances and the aggregate balance consistent with
the user's expenses and savings. Loan account transactions never pass
through here.

SIGN CONVENTION (must be preserved exactly):
- Credit-classified entry of amount A contributes -A
- Debit-classified entry of amount A contributes +A

Every entry point ends with a full recompute of the aggregate balance:
    Apply   (entry created)  adjust(pm, signed(A))
    Reverse (entry deleted)  adjust(pm, -signed(A)), using the ORIGINAL values
    Update                   Reverse(old) then Apply(new), always both steps

DESIGN DECISION: Each sequence runs under a per-user asyncio.Lock, so two
mutations for the same user can never interleave their read-modify-write
cycles. The expense/saving flows take the same lock (user_lock) around
their own entry read and write. If storage fails part-way, every payment method balance touched by
the sequence is restored to its value at the start of the sequence and the
error is re-raised.

DESIGN DECISION: An amount type that no longer resolves makes its step a
no-op. The step is logged as a warning audit event and the parent
mutation still succeeds.
"""

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import AsyncIterator, Optional
from uuid import UUID

from finance_tracker.audit import AuditLogger
from finance_tracker.balances.classifier import AmountTypeClassifier
from finance_tracker.balances.stores import AggregateBalanceStore, PaymentMethodBalanceStore
from finance_tracker.models.ledger import (
    AggregateBalance,
    EntrySnapshot,
    PaymentMethodBalance,
)
from finance_tracker.services.storage import (
    BalanceStorageInterface,
    CatalogStorageInterface,
    StorageError,
)


class BalanceReconciler:
    """
    The balance engine.

    Usage:
        reconciler = BalanceReconciler(catalog, balance_storage, audit_logger)
        await reconciler.on_entry_created(user_id, pm_id, amount, amount_type_id)
    """

    def __init__(
        self,
        catalog: CatalogStorageInterface,
        balance_storage: BalanceStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        classifier: Optional[AmountTypeClassifier] = None,
    ):
        self._catalog = catalog
        self._storage = balance_storage
        self._methods = PaymentMethodBalanceStore(balance_storage)
        self._aggregate = AggregateBalanceStore(balance_storage, self._methods)
        self._classifier = classifier or AmountTypeClassifier()
        self._audit_logger = audit_logger
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._lock_owners: dict[str, asyncio.Task] = {}

    @asynccontextmanager
    async def user_lock(self, user_id: str) -> AsyncIterator[None]:
        """
        Hold the user's reconciliation lock.

        Re-entrant within one task, so a flow can read and write its entry
        under the lock and then call the lifecycle hooks below.

        The locks belong to the event loop that drives this reconciler;
        callers on other threads must submit work to that loop
        (see finance_tracker.runner).
        """
        task = asyncio.current_task()
        if self._lock_owners.get(user_id) is task:
            yield
            return

        async with self._locks[user_id]:
            self._lock_owners[user_id] = task
            try:
                yield
            finally:
                del self._lock_owners[user_id]

    # =========================================================================
    # LIFECYCLE HOOKS - called by the expense/saving flows after persistence
    # =========================================================================

    async def on_entry_created(
        self,
        user_id: str,
        payment_method_id: UUID,
        amount: Decimal,
        amount_type_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AggregateBalance:
        snapshot = EntrySnapshot(
            user_id=user_id,
            payment_method_id=payment_method_id,
            amount=amount,
            amount_type_id=amount_type_id,
        )
        return await self.apply(snapshot, correlation_id)

    async def on_entry_deleted(
        self,
        user_id: str,
        payment_method_id: UUID,
        amount: Decimal,
        amount_type_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AggregateBalance:
        snapshot = EntrySnapshot(
            user_id=user_id,
            payment_method_id=payment_method_id,
            amount=amount,
            amount_type_id=amount_type_id,
        )
        return await self.reverse(snapshot, correlation_id)

    async def on_entry_updated(
        self,
        old: EntrySnapshot,
        new: EntrySnapshot,
        correlation_id: Optional[UUID] = None,
    ) -> AggregateBalance:
        return await self.update(old, new, correlation_id)

    # =========================================================================
    # CORE OPERATIONS
    # =========================================================================

    async def apply(
        self,
        entry: EntrySnapshot,
        correlation_id: Optional[UUID] = None,
    ) -> AggregateBalance:
        """Add an entry's contribution to its payment method balance."""
        return await self._reconcile(entry.user_id, [(entry, False)], correlation_id)

    async def reverse(
        self,
        entry: EntrySnapshot,
        correlation_id: Optional[UUID] = None,
    ) -> AggregateBalance:
        """Remove an entry's contribution. Exact negation of apply()."""
        return await self._reconcile(entry.user_id, [(entry, True)], correlation_id)

    async def update(
        self,
        old: EntrySnapshot,
        new: EntrySnapshot,
        correlation_id: Optional[UUID] = None,
    ) -> AggregateBalance:
        """
        Reverse the old values, then apply the new ones.

        Both adjustments always happen, even when the payment method and
        amount are unchanged.
        """
        if old.user_id != new.user_id:
            raise ValueError("An entry cannot change owner")
        return await self._reconcile(
            old.user_id,
            [(old, True), (new, False)],
            correlation_id,
        )

    async def recompute_aggregate(
        self,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AggregateBalance:
        async with self.user_lock(user_id):
            return await self._recompute(user_id, correlation_id)

    # =========================================================================
    # READ SURFACE
    # =========================================================================

    async def get_payment_method_balances(self, user_id: str) -> list[PaymentMethodBalance]:
        """Existing rows only."""
        return await self._methods.list(user_id)

    async def get_payment_method_balance(
        self,
        user_id: str,
        payment_method_id: UUID,
    ) -> PaymentMethodBalance:
        """Zero (not persisted) when the user never touched this method."""
        return await self._methods.get(user_id, payment_method_id)

    async def get_aggregate_balance(self, user_id: str) -> AggregateBalance:
        async with self.user_lock(user_id):
            return await self._aggregate.get(user_id)

    # =========================================================================
    # MANUAL OVERRIDES
    # =========================================================================

    async def override_payment_method_balance(
        self,
        user_id: str,
        payment_method_id: UUID,
        balance: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> PaymentMethodBalance:
        """Set a payment method balance outright, then recompute the aggregate."""
        async with self.user_lock(user_id):
            row = await self._methods.set(user_id, payment_method_id, balance)
            await self._recompute(user_id, correlation_id)

        if self._audit_logger:
            await self._audit_logger.log_balance_overridden(
                user_id=user_id,
                target="payment_method_balance",
                balance=balance,
                payment_method_id=payment_method_id,
                correlation_id=correlation_id,
            )
        return row

    async def override_aggregate_balance(
        self,
        user_id: str,
        balance: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AggregateBalance:
        """
        Set the aggregate balance outright.

        The next reconciliation recomputes it from the payment method balances.
        """
        async with self.user_lock(user_id):
            row = await self._aggregate.set(user_id, balance)

        if self._audit_logger:
            await self._audit_logger.log_balance_overridden(
                user_id=user_id,
                target="balance",
                balance=balance,
                correlation_id=correlation_id,
            )
        return row

    # =========================================================================
    # INTERNALS
    # =========================================================================

    async def _signed_delta(
        self,
        entry: EntrySnapshot,
        reverse: bool,
        correlation_id: Optional[UUID],
    ) -> Optional[Decimal]:
        """Resolve the amount type and compute the delta, or None to skip."""
        amount_type = await self._catalog.get_amount_type(entry.amount_type_id)
        if amount_type is None:
            if self._audit_logger:
                await self._audit_logger.log_reconciliation_skipped(
                    user_id=entry.user_id,
                    payment_method_id=entry.payment_method_id,
                    amount_type_id=entry.amount_type_id,
                    amount=entry.amount,
                    correlation_id=correlation_id,
                )
            return None

        delta = self._classifier.signed_amount(entry.amount, amount_type)
        return -delta if reverse else delta

    async def _reconcile(
        self,
        user_id: str,
        steps: list[tuple[EntrySnapshot, bool]],
        correlation_id: Optional[UUID],
    ) -> AggregateBalance:
        async with self.user_lock(user_id):
            # Payment method id -> row before this sequence (None = no row)
            touched: dict[UUID, Optional[PaymentMethodBalance]] = {}
            aggregate_before: Optional[AggregateBalance] = None

            try:
                aggregate_before = await self._storage.get_aggregate_balance(user_id)

                for entry, reverse in steps:
                    delta = await self._signed_delta(entry, reverse, correlation_id)
                    if delta is None:
                        continue

                    pm_id = entry.payment_method_id
                    if pm_id not in touched:
                        touched[pm_id] = await self._storage.get_payment_method_balance(
                            user_id, pm_id
                        )
                    row = await self._methods.adjust(user_id, pm_id, delta)

                    if self._audit_logger:
                        await self._audit_logger.log_balance_adjusted(
                            user_id=user_id,
                            payment_method_id=pm_id,
                            delta=delta,
                            new_balance=row.balance,
                            correlation_id=correlation_id,
                        )

                return await self._recompute(user_id, correlation_id)

            except StorageError as e:
                await self._rollback(user_id, touched, aggregate_before, e, correlation_id)
                raise

    async def _recompute(
        self,
        user_id: str,
        correlation_id: Optional[UUID],
    ) -> AggregateBalance:
        row = await self._aggregate.recompute(user_id)
        if self._audit_logger:
            await self._audit_logger.log_balance_recomputed(
                user_id=user_id,
                current_balance=row.current_balance,
                correlation_id=correlation_id,
            )
        return row

    async def _rollback(
        self,
        user_id: str,
        touched: dict[UUID, Optional[PaymentMethodBalance]],
        aggregate_before: Optional[AggregateBalance],
        error: StorageError,
        correlation_id: Optional[UUID],
    ) -> None:
        """
        Restore balances to their values at the start of the sequence.

        Failures here are audited; the caller re-raises the original error.
        """
        try:
            for pm_id, original in touched.items():
                if original is None:
                    await self._storage.delete_payment_method_balance(user_id, pm_id)
                else:
                    await self._storage.save_payment_method_balance(original)

            if aggregate_before is not None:
                await self._storage.save_aggregate_balance(aggregate_before)
            else:
                await self._aggregate.recompute(user_id)
        except StorageError as rollback_error:
            if self._audit_logger:
                await self._audit_logger.log_storage_error(
                    operation="balance_rollback",
                    error_message=str(rollback_error),
                    user_id=user_id,
                    correlation_id=correlation_id,
                )

        if self._audit_logger:
            await self._audit_logger.log_reconciliation_rolled_back(
                user_id=user_id,
                payment_method_ids=list(touched),
                error_message=str(error),
                correlation_id=correlation_id,
            )
