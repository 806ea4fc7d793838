"""
Core Data Models for Finance Tracker

These models define the strict schemas for all data flowing through the system.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging
4. Support the audit trail

DESIGN DECISION: Money is always Decimal, never float.
Balances are summed and compared for equality, which floats cannot do reliably.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class EntityStatus(str, Enum):
    """Status of a catalog item (amount type, category, payment method)."""
    ACTIVE = "active"
    INACTIVE = "inactive"


class EntryKind(str, Enum):
    """
    The two kinds of ledger entries.

    Both share the same shape and both move payment method balances.
    """
    EXPENSE = "expense"
    SAVING = "saving"


class BalanceClass(str, Enum):
    """Credit (money in) or debit (money out), derived from the amount type name."""
    CREDIT = "credit"
    DEBIT = "debit"


class CatalogKind(str, Enum):
    """Reference collections that ledger entries point at."""
    AMOUNT_TYPE = "amount_type"
    CATEGORY = "category"
    PAYMENT_METHOD = "payment_method"


# =============================================================================
# CATALOG MODELS
# =============================================================================

class CatalogItem(BaseModel):
    """
    A named, activatable reference item.

    Names are unique within their collection (enforced by storage).
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(
        ...,
        min_length=2,
        max_length=50,
        description="Display name, unique within the collection"
    )
    status: EntityStatus = Field(default=EntityStatus.ACTIVE)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_active(self) -> bool:
        return self.status == EntityStatus.ACTIVE


class AmountType(CatalogItem):
    """
    A user-facing label such as "Cash Income" or "Credit Card".

    The name decides credit/debit classification (see balances.classifier).
    """


class Category(CatalogItem):
    """Spending/saving category (e.g. Groceries, Rent)."""


class PaymentMethod(CatalogItem):
    """A payment method (e.g. Cash, UPI, HDFC Card). Balances are tracked per method."""


CATALOG_MODELS: dict[CatalogKind, type[CatalogItem]] = {
    CatalogKind.AMOUNT_TYPE: AmountType,
    CatalogKind.CATEGORY: Category,
    CatalogKind.PAYMENT_METHOD: PaymentMethod,
}


# =============================================================================
# LEDGER ENTRY MODELS
# =============================================================================

PositiveAmount = Annotated[
    Decimal,
    Field(gt=0, description="Positive amount")
]


class EntrySnapshot(BaseModel):
    """
    The balance-relevant fields of a ledger entry.

    Captured before a mutation so the old contribution can be reversed.
    """
    model_config = ConfigDict(frozen=True)

    user_id: str
    payment_method_id: UUID
    amount: PositiveAmount
    amount_type_id: UUID


class LedgerEntry(BaseModel):
    """
    An expense or saving record.

    CRITICAL: amount, payment_method_id and amount_type_id drive balances.
    Changing any of them must go through the reconciler.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: str = Field(..., min_length=1, description="Owner user id")
    kind: EntryKind

    amount: PositiveAmount
    category_id: UUID
    payment_method_id: UUID
    amount_type_id: UUID
    entry_date: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the money moved"
    )
    description: str = Field(default="")

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    def snapshot(self) -> EntrySnapshot:
        """Capture the fields the reconciler needs."""
        return EntrySnapshot(
            user_id=self.user_id,
            payment_method_id=self.payment_method_id,
            amount=self.amount,
            amount_type_id=self.amount_type_id,
        )


class EntryCreate(BaseModel):
    """Input for creating a ledger entry."""
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: PositiveAmount
    category_id: UUID
    payment_method_id: UUID
    amount_type_id: UUID
    entry_date: Optional[datetime] = None
    description: Optional[str] = None


class EntryUpdate(BaseModel):
    """
    Input for updating a ledger entry.

    Only fields explicitly provided are changed (see model_fields_set).
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: Optional[PositiveAmount] = None
    category_id: Optional[UUID] = None
    payment_method_id: Optional[UUID] = None
    amount_type_id: Optional[UUID] = None
    entry_date: Optional[datetime] = None
    description: Optional[str] = None

    def changes(self) -> dict:
        """Fields to apply to the stored entry."""
        changes = {}
        for name in ("amount", "category_id", "payment_method_id", "amount_type_id", "entry_date"):
            value = getattr(self, name)
            if value is not None:
                changes[name] = value
        # An explicit empty/None description clears it
        if "description" in self.model_fields_set:
            changes["description"] = self.description or ""
        return changes


class EntryFilter(BaseModel):
    """Filters for listing ledger entries. Dates are inclusive."""

    start_date: Optional[date] = None
    end_date: Optional[date] = None
    category_id: Optional[UUID] = None
    payment_method_id: Optional[UUID] = None
    amount_type_id: Optional[UUID] = None

    def matches(self, entry: LedgerEntry) -> bool:
        day = entry.entry_date.date()
        if self.start_date and day < self.start_date:
            return False
        if self.end_date and day > self.end_date:
            return False
        if self.category_id and entry.category_id != self.category_id:
            return False
        if self.payment_method_id and entry.payment_method_id != self.payment_method_id:
            return False
        if self.amount_type_id and entry.amount_type_id != self.amount_type_id:
            return False
        return True


# =============================================================================
# BALANCE MODELS
# =============================================================================

class PaymentMethodBalance(BaseModel):
    """Running balance for one (user, payment method) pair."""

    user_id: str
    payment_method_id: UUID
    balance: Decimal = Field(default=Decimal("0"))
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class AggregateBalance(BaseModel):
    """
    A user's single running balance.

    INVARIANT (at rest): current_balance == sum of the user's
    PaymentMethodBalance rows.
    """

    user_id: str
    current_balance: Decimal = Field(default=Decimal("0"))
    updated_at: datetime = Field(default_factory=datetime.utcnow)


# =============================================================================
# STATISTICS MODELS
# =============================================================================

class PaymentMethodStats(BaseModel):
    """Credit/debit totals for one payment method."""

    payment_method_id: UUID
    name: str
    credit: Decimal = Decimal("0")
    debit: Decimal = Decimal("0")


class ExpenseStats(BaseModel):
    """Credit/debit totals across a user's entries."""

    total_credit: Decimal = Decimal("0")
    total_debit: Decimal = Decimal("0")
    payment_method_stats: list[PaymentMethodStats] = Field(default_factory=list)


class SavingTotal(BaseModel):
    """Net saved amount: credits minus debits."""

    total: Decimal = Decimal("0")


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'inactive_reference')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """
    Result of the two-stage validation.

    Stage 1: Schema validation (types, required fields, ranges)
    Stage 2: Reference validation (category, payment method, amount type)
    """

    validated_at: datetime = Field(
        default_factory=datetime.utcnow
    )

    schema_valid: bool = Field(
        ...,
        description="Did schema validation pass?"
    )
    references_valid: bool = Field(
        ...,
        description="Did reference validation pass?"
    )
    is_valid: bool = Field(
        ...,
        description="Overall validation result"
    )

    issues: list[ValidationIssue] = Field(
        default_factory=list,
        description="All validation issues found"
    )

    # Warnings don't block but should be shown
    warnings: list[str] = Field(
        default_factory=list,
        description="Non-blocking warnings"
    )

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")
