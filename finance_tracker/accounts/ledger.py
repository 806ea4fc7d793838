"""
Loan Account Ledger

Tracks money borrowed from, or lent to, a counterparty.

DESIGN DECISION: Accounts are completely separate from payment method
balances. Nothing here calls the reconciler.

DESIGN DECISION: The summary is a pure fold over the transaction list,
recomputed on every read. Nothing derived is stored.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from finance_tracker.audit import AuditLogger
from finance_tracker.config import get_settings
from finance_tracker.models.account import (
    Account,
    AccountCreate,
    AccountStatus,
    AccountSummary,
    AccountTransaction,
    AccountType,
    AccountView,
    TransactionCreate,
)
from finance_tracker.models.ledger import ValidationIssue
from finance_tracker.services.storage import AccountStorageInterface, NotFoundError
from finance_tracker.validation import EntryValidationError, parse_model, schema_failure


def build_account_summary(account: Account) -> AccountSummary:
    """
    Fold an account's transactions into its summary.

    Only the two transaction types belonging to the account type count.
    last_repayment_date only moves on a strictly later date, so ties keep
    the first repayment seen.
    """
    principal_type = account.principal_type
    repayment_type = account.repayment_type

    total_borrowed = Decimal("0")
    total_repaid = Decimal("0")
    last_repayment_date: Optional[datetime] = None

    for txn in account.transactions:
        if txn.type == principal_type:
            total_borrowed += txn.amount
        elif txn.type == repayment_type:
            total_repaid += txn.amount
            if last_repayment_date is None or txn.transaction_date > last_repayment_date:
                last_repayment_date = txn.transaction_date

    return AccountSummary(
        total_borrowed=total_borrowed,
        total_repaid=total_repaid,
        outstanding=total_borrowed - total_repaid,
        last_repayment_date=last_repayment_date,
    )


def _rejected(field: str, message: str, suggested_fix: Optional[str] = None) -> EntryValidationError:
    return EntryValidationError(schema_failure([
        ValidationIssue(
            field=field,
            issue_type="invalid_value",
            message=message,
            severity="error",
            suggested_fix=suggested_fix,
        )
    ]))


class AccountLedger:
    """
    Service for loan accounts.

    Usage:
        ledger = AccountLedger(account_storage, audit_logger)
        view = await ledger.create_account(user_id, {"name": "Alice", "initial_amount": "100"})
        await ledger.add_transaction(user_id, view.account.id, {"amount": "40", "type": "repay"})
    """

    def __init__(
        self,
        storage: AccountStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger
        self._settings = get_settings().app

    @staticmethod
    def _view(account: Account) -> AccountView:
        return AccountView(account=account, summary=build_account_summary(account))

    async def _load(self, user_id: str, account_id: UUID) -> Account:
        """Fetch an account owned by user_id. Foreign accounts look missing."""
        account = await self._storage.get_account(account_id)
        if account is None or account.user_id != user_id:
            raise NotFoundError("Account not found")
        return account

    async def create_account(
        self,
        user_id: str,
        data: AccountCreate | dict[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> AccountView:
        """
        Open an account with its opening transaction.

        The opening transaction is a borrow (borrowed accounts) or a
        lent (lent accounts) of the initial amount.
        """
        request = parse_model(AccountCreate, data)

        account = Account(
            user_id=user_id,
            name=request.name,
            description=request.description or "",
            account_type=request.account_type,
        )
        opening = AccountTransaction(
            amount=request.initial_amount,
            type=account.principal_type,
            payment_channel=request.payment_channel or self._settings.default_payment_channel,
            note=request.note or self._settings.opening_transaction_note,
            transaction_date=request.transaction_date or datetime.utcnow(),
        )
        account.transactions.append(opening)

        await self._storage.save_account(account)

        if self._audit_logger:
            await self._audit_logger.log_account_created(
                user_id=user_id,
                account_id=account.id,
                account_type=account.account_type.value,
                initial_amount=request.initial_amount,
                correlation_id=correlation_id,
            )

        return self._view(account)

    async def add_transaction(
        self,
        user_id: str,
        account_id: UUID,
        data: TransactionCreate | dict[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> AccountView:
        request = parse_model(TransactionCreate, data)
        account = await self._load(user_id, account_id)

        if not account.allows(request.type):
            if account.account_type == AccountType.LENT:
                message = 'For lent accounts, use "lent" or "received" transaction types'
            else:
                message = 'For borrowed accounts, use "borrow" or "repay" transaction types'
            raise _rejected("type", message)

        txn = AccountTransaction(
            amount=request.amount,
            type=request.type,
            payment_channel=request.payment_channel or self._settings.default_payment_channel,
            note=request.note or "",
            transaction_date=request.transaction_date or datetime.utcnow(),
        )
        account.transactions.append(txn)
        account.updated_at = datetime.utcnow()
        await self._storage.update_account(account)

        if self._audit_logger:
            await self._audit_logger.log_account_transaction(
                user_id=user_id,
                account_id=account.id,
                transaction_id=txn.id,
                transaction_type=txn.type.value,
                amount=txn.amount,
                correlation_id=correlation_id,
            )

        return self._view(account)

    async def remove_transaction(
        self,
        user_id: str,
        account_id: UUID,
        transaction_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AccountView:
        """
        Remove one transaction by id.

        The last remaining transaction cannot be removed.
        """
        account = await self._load(user_id, account_id)

        txn = account.find_transaction(transaction_id)
        if txn is None:
            raise NotFoundError("Transaction not found")
        if len(account.transactions) == 1:
            raise _rejected(
                "transactions",
                "An account must keep at least one transaction",
                suggested_fix="Archive the account instead",
            )

        account.transactions = [t for t in account.transactions if t.id != transaction_id]
        account.updated_at = datetime.utcnow()
        await self._storage.update_account(account)

        if self._audit_logger:
            await self._audit_logger.log_account_transaction(
                user_id=user_id,
                account_id=account.id,
                transaction_id=txn.id,
                transaction_type=txn.type.value,
                amount=txn.amount,
                removed=True,
                correlation_id=correlation_id,
            )

        return self._view(account)

    async def get_account(self, user_id: str, account_id: UUID) -> AccountView:
        return self._view(await self._load(user_id, account_id))

    async def list_accounts(self, user_id: str) -> list[AccountView]:
        """Active accounts, most recently updated first."""
        accounts = await self._storage.list_accounts(user_id, status=AccountStatus.ACTIVE)
        return [self._view(account) for account in accounts]

    async def archive_account(
        self,
        user_id: str,
        account_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AccountView:
        """Hide an account from the list. Its history is kept."""
        account = await self._load(user_id, account_id)
        if account.status != AccountStatus.ARCHIVED:
            account.status = AccountStatus.ARCHIVED
            account.updated_at = datetime.utcnow()
            await self._storage.update_account(account)

            if self._audit_logger:
                await self._audit_logger.log_account_archived(
                    user_id=user_id,
                    account_id=account.id,
                    correlation_id=correlation_id,
                )

        return self._view(account)
