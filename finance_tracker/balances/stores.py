"""
Balance Stores

Thin domain wrappers over BalanceStorageInterface.

- PaymentMethodBalanceStore: one running balance per (user, payment method)
- AggregateBalanceStore: one running balance per user, always derived
  from the sum of that user's payment method balances

Neither store guards against concurrent writers on its own; the
reconciler serializes access per user.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from finance_tracker.models.ledger import AggregateBalance, PaymentMethodBalance
from finance_tracker.services.storage import BalanceStorageInterface


class PaymentMethodBalanceStore:
    """Per-(user, payment method) balances."""

    def __init__(self, storage: BalanceStorageInterface):
        self._storage = storage

    async def get(self, user_id: str, payment_method_id: UUID) -> PaymentMethodBalance:
        """
        Return the balance for one payment method.

        A missing row is reported as zero but NOT created.
        """
        row = await self._storage.get_payment_method_balance(user_id, payment_method_id)
        if row is None:
            return PaymentMethodBalance(
                user_id=user_id,
                payment_method_id=payment_method_id,
            )
        return row

    async def list(self, user_id: str) -> list[PaymentMethodBalance]:
        """Only rows that exist; nothing is synthesized here."""
        return await self._storage.list_payment_method_balances(user_id)

    async def adjust(
        self,
        user_id: str,
        payment_method_id: UUID,
        delta: Decimal,
    ) -> PaymentMethodBalance:
        """Add delta to the balance, creating the row at zero if absent."""
        row = await self.get(user_id, payment_method_id)
        row = row.model_copy(update={
            "balance": row.balance + delta,
            "updated_at": datetime.utcnow(),
        })
        await self._storage.save_payment_method_balance(row)
        return row

    async def set(
        self,
        user_id: str,
        payment_method_id: UUID,
        balance: Decimal,
    ) -> PaymentMethodBalance:
        """Overwrite a balance (manual correction path)."""
        row = PaymentMethodBalance(
            user_id=user_id,
            payment_method_id=payment_method_id,
            balance=balance,
        )
        await self._storage.save_payment_method_balance(row)
        return row

    async def total(self, user_id: str) -> Decimal:
        rows = await self.list(user_id)
        return sum((row.balance for row in rows), Decimal("0"))


class AggregateBalanceStore:
    """Per-user aggregate balance."""

    def __init__(
        self,
        storage: BalanceStorageInterface,
        method_store: PaymentMethodBalanceStore,
    ):
        self._storage = storage
        self._methods = method_store

    async def get(self, user_id: str) -> AggregateBalance:
        """Return the aggregate row, creating it at zero on first read."""
        row = await self._storage.get_aggregate_balance(user_id)
        if row is None:
            row = AggregateBalance(user_id=user_id)
            await self._storage.save_aggregate_balance(row)
        return row

    async def set(self, user_id: str, balance: Decimal) -> AggregateBalance:
        row = AggregateBalance(user_id=user_id, current_balance=balance)
        await self._storage.save_aggregate_balance(row)
        return row

    async def recompute(self, user_id: str) -> AggregateBalance:
        """
        Overwrite the aggregate with the sum of the payment method balances.

        Never incremental: any drift in the stored aggregate is discarded.
        """
        return await self.set(user_id, await self._methods.total(user_id))
