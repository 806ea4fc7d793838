"""
Loan Account Models

An account tracks money borrowed from, or lent to, one counterparty.
It is a self-contained ledger: its transactions never touch payment
method balances.

DESIGN DECISION: The account stores no balance field.
The summary (totals, outstanding, last repayment) is always folded
from the transaction list on read.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from finance_tracker.models.ledger import PositiveAmount


class AccountType(str, Enum):
    """Direction of the loan."""
    BORROWED = "borrowed"  # We owe the counterparty
    LENT = "lent"          # The counterparty owes us


class AccountStatus(str, Enum):
    """Archived accounts are hidden from the account list."""
    ACTIVE = "active"
    ARCHIVED = "archived"


class TransactionType(str, Enum):
    """Account transaction types. Which ones apply depends on AccountType."""
    BORROW = "borrow"
    REPAY = "repay"
    LENT = "lent"
    RECEIVED = "received"


# Principal type first, repayment type second
ALLOWED_TRANSACTION_TYPES: dict[AccountType, tuple[TransactionType, TransactionType]] = {
    AccountType.BORROWED: (TransactionType.BORROW, TransactionType.REPAY),
    AccountType.LENT: (TransactionType.LENT, TransactionType.RECEIVED),
}


class AccountTransaction(BaseModel):
    """One movement of money on a loan account."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    amount: PositiveAmount
    type: TransactionType
    payment_channel: str = Field(default="Cash")
    note: str = Field(default="")
    transaction_date: datetime = Field(default_factory=datetime.utcnow)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Account(BaseModel):
    """
    A borrowed/lent loan ledger.

    INVARIANT: after creation an account always holds its opening transaction.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="")
    account_type: AccountType = Field(default=AccountType.BORROWED)
    status: AccountStatus = Field(default=AccountStatus.ACTIVE)
    transactions: list[AccountTransaction] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def principal_type(self) -> TransactionType:
        return ALLOWED_TRANSACTION_TYPES[self.account_type][0]

    @property
    def repayment_type(self) -> TransactionType:
        return ALLOWED_TRANSACTION_TYPES[self.account_type][1]

    def allows(self, transaction_type: TransactionType) -> bool:
        """Can a transaction of this type be recorded on this account?"""
        return transaction_type in ALLOWED_TRANSACTION_TYPES[self.account_type]

    def find_transaction(self, transaction_id: UUID) -> Optional[AccountTransaction]:
        for txn in self.transactions:
            if txn.id == transaction_id:
                return txn
        return None


class AccountSummary(BaseModel):
    """
    Derived totals of an account.

    For lent accounts "borrowed" means principal moved out and
    "repaid" means money received back.
    """

    total_borrowed: Decimal = Decimal("0")
    total_repaid: Decimal = Decimal("0")
    outstanding: Decimal = Decimal("0")  # may be negative when over-repaid
    last_repayment_date: Optional[datetime] = None


class AccountView(BaseModel):
    """An account together with its freshly computed summary."""

    account: Account
    summary: AccountSummary


class AccountCreate(BaseModel):
    """Input for opening an account."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=200)
    initial_amount: PositiveAmount
    account_type: AccountType = AccountType.BORROWED
    description: Optional[str] = None
    payment_channel: Optional[str] = None
    note: Optional[str] = None
    transaction_date: Optional[datetime] = None


class TransactionCreate(BaseModel):
    """Input for adding a transaction to an account."""
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: PositiveAmount
    type: TransactionType
    payment_channel: Optional[str] = None
    note: Optional[str] = None
    transaction_date: Optional[datetime] = None
