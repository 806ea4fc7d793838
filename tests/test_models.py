"""
Tests for Finance Tracker

Test strategy:
1. Unit tests for individual components (models, validators)
2. Integration tests for flows (with in-memory storage)
3. No real API calls in tests (use fakes)
"""

import pytest
from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

from finance_tracker.models.ledger import (
    AmountType,
    Category,
    EntityStatus,
    EntryCreate,
    EntryFilter,
    EntryKind,
    EntryUpdate,
    LedgerEntry,
    ValidationIssue,
    ValidationResult,
)
from finance_tracker.models.account import (
    Account,
    AccountCreate,
    AccountTransaction,
    AccountType,
    TransactionType,
)
from finance_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


def make_entry(**overrides) -> LedgerEntry:
    data = dict(
        user_id="user-1",
        kind=EntryKind.EXPENSE,
        amount=Decimal("100.00"),
        category_id=uuid4(),
        payment_method_id=uuid4(),
        amount_type_id=uuid4(),
        entry_date=datetime(2024, 2, 15, 18, 0),
    )
    data.update(overrides)
    return LedgerEntry(**data)


class TestLedgerModels:
    """Tests for ledger-related Pydantic models."""

    def test_catalog_item_strips_whitespace(self):
        """Test that whitespace is stripped from catalog names."""
        item = Category(name="  Groceries  ")
        assert item.name == "Groceries"
        assert item.is_active

    def test_catalog_item_name_too_short(self):
        """Test that one-character names are rejected."""
        with pytest.raises(ValueError):
            AmountType(name="x")

    def test_inactive_catalog_item(self):
        item = AmountType(name="Card Credit", status=EntityStatus.INACTIVE)
        assert item.is_active is False

    def test_entry_rejects_non_positive_amount(self):
        """Test that zero and negative amounts are rejected."""
        for amount in (Decimal("0"), Decimal("-100")):
            with pytest.raises(ValueError):
                make_entry(amount=amount)

    def test_entry_snapshot(self):
        """Test that the snapshot carries the balance-relevant fields."""
        entry = make_entry()
        snapshot = entry.snapshot()
        assert snapshot.user_id == entry.user_id
        assert snapshot.payment_method_id == entry.payment_method_id
        assert snapshot.amount == entry.amount
        assert snapshot.amount_type_id == entry.amount_type_id

    def test_entry_create_requires_references(self):
        """Test that all three references are required."""
        with pytest.raises(ValueError):
            EntryCreate(amount=Decimal("10"), category_id=uuid4())

    def test_entry_update_changes_only_provided_fields(self):
        """Test that unset fields are left alone."""
        update = EntryUpdate(amount=Decimal("25"))
        assert update.changes() == {"amount": Decimal("25")}

    def test_entry_update_explicit_description_clears(self):
        """Test that an explicit empty description clears it."""
        assert EntryUpdate(description=None).changes() == {"description": ""}
        assert EntryUpdate(description="  lunch ").changes() == {"description": "lunch"}


class TestEntryFilter:
    """Tests for EntryFilter matching."""

    def test_date_range_is_inclusive(self):
        """Test that both boundary days match."""
        entry_filter = EntryFilter(start_date=date(2024, 2, 15), end_date=date(2024, 2, 15))
        assert entry_filter.matches(make_entry())

    def test_date_outside_range(self):
        entry_filter = EntryFilter(start_date=date(2024, 3, 1))
        assert not entry_filter.matches(make_entry())

    def test_reference_filters(self):
        """Test filtering by payment method and amount type."""
        entry = make_entry()
        assert EntryFilter(payment_method_id=entry.payment_method_id).matches(entry)
        assert not EntryFilter(amount_type_id=uuid4()).matches(entry)
        assert not EntryFilter(category_id=uuid4()).matches(entry)

    def test_empty_filter_matches_everything(self):
        assert EntryFilter().matches(make_entry())


class TestAccountModels:
    """Tests for loan account models."""

    def test_borrowed_account_types(self):
        """Test principal and repayment types of a borrowed account."""
        account = Account(user_id="user-1", name="Ravi")
        assert account.account_type == AccountType.BORROWED
        assert account.principal_type == TransactionType.BORROW
        assert account.repayment_type == TransactionType.REPAY
        assert account.allows(TransactionType.REPAY)
        assert not account.allows(TransactionType.RECEIVED)

    def test_lent_account_types(self):
        account = Account(user_id="user-1", name="Priya", account_type=AccountType.LENT)
        assert account.principal_type == TransactionType.LENT
        assert account.repayment_type == TransactionType.RECEIVED
        assert not account.allows(TransactionType.BORROW)

    def test_find_transaction(self):
        """Test lookup of a transaction by id."""
        txn = AccountTransaction(amount=Decimal("50"), type=TransactionType.BORROW)
        account = Account(user_id="user-1", name="Ravi", transactions=[txn])
        assert account.find_transaction(txn.id) is txn
        assert account.find_transaction(uuid4()) is None

    def test_transaction_defaults(self):
        txn = AccountTransaction(amount=Decimal("50"), type=TransactionType.REPAY)
        assert txn.payment_channel == "Cash"
        assert txn.note == ""

    def test_account_create_rejects_empty_name(self):
        """Test that whitespace-only names are rejected after stripping."""
        with pytest.raises(ValueError):
            AccountCreate(name="   ", initial_amount=Decimal("10"))


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.ENTRY_CREATED,
            description="Expense created",
        )
        assert event.event_type == AuditEventType.ENTRY_CREATED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.BALANCE_ADJUSTED,
            description="Balance adjusted",
            details={"delta": "-100", "balance": "400"},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "balance_adjusted"
        assert log_dict["details"]["delta"] == "-100"

    def test_audit_event_to_sheets_row(self):
        """Test conversion to sheets row."""
        event = AuditEvent(
            event_type=AuditEventType.ACCOUNT_CREATED,
            description="Account opened",
            is_user_action=True,
        )
        row = event.to_sheets_row()
        assert len(row) == 12  # Expected number of columns
        assert row[2] == "account_created"  # event_type
        assert row[11] == "True"  # is_user_action

    def test_audit_event_builder_entry_created(self):
        """Test AuditEventBuilder.entry_created."""
        correlation_id = uuid4()
        entry_id = uuid4()

        event = AuditEventBuilder.entry_created(
            user_id="user-1",
            entry_id=entry_id,
            kind="expense",
            amount=Decimal("42.50"),
            correlation_id=correlation_id,
        )

        assert event.event_type == AuditEventType.ENTRY_CREATED
        assert event.entity_id == entry_id
        assert event.correlation_id == correlation_id
        assert event.details == {"amount": "42.50"}
        assert event.is_user_action is True

    def test_audit_event_builder_rolled_back(self):
        """Test AuditEventBuilder.reconciliation_rolled_back."""
        pm_ids = [uuid4(), uuid4()]

        event = AuditEventBuilder.reconciliation_rolled_back(
            user_id="user-1",
            payment_method_ids=pm_ids,
            error_message="write failed",
        )

        assert event.severity == AuditSeverity.ERROR
        assert event.details["payment_method_ids"] == [str(pm) for pm in pm_ids]
        assert event.error_message == "write failed"

    def test_audit_event_builder_account_transaction_removed(self):
        """Test that removed=True selects the removal event type."""
        event = AuditEventBuilder.account_transaction(
            user_id="user-1",
            account_id=uuid4(),
            transaction_id=uuid4(),
            transaction_type="repay",
            amount=Decimal("10"),
            removed=True,
        )
        assert event.event_type == AuditEventType.ACCOUNT_TRANSACTION_REMOVED


class TestValidationResult:
    """Tests for ValidationResult model."""

    def test_validation_result_has_errors(self):
        """Test has_errors property."""
        result = ValidationResult(
            schema_valid=True,
            references_valid=False,
            is_valid=False,
            issues=[
                ValidationIssue(
                    field="category_id",
                    issue_type="unknown_reference",
                    message="Invalid or inactive category",
                    severity="error",
                ),
            ],
        )
        assert result.has_errors is True
        assert result.error_count == 1

    def test_validation_result_warnings_only(self):
        """Test that warnings don't count as errors."""
        result = ValidationResult(
            schema_valid=True,
            references_valid=True,
            is_valid=True,
            issues=[
                ValidationIssue(
                    field="description",
                    issue_type="empty",
                    message="No description",
                    severity="warning",
                ),
            ],
        )
        assert result.has_errors is False
        assert result.error_count == 0

    def test_validation_issue_severity_pattern(self):
        """Test that unknown severities are rejected."""
        with pytest.raises(ValueError):
            ValidationIssue(field="amount", issue_type="x", message="x", severity="fatal")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
