"""
Audit Models for Finance Tracker

Every money movement and every balance change is logged for audit purposes.
This provides:
1. Complete traceability of all operations
2. Debugging information when balances drift
3. Accountability for manual balance overrides
4. Ability to reconstruct history

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.
    """
    # Ledger entries (expenses and savings)
    ENTRY_CREATED = "entry_created"
    ENTRY_UPDATED = "entry_updated"
    ENTRY_DELETED = "entry_deleted"
    VALIDATION_FAILED = "validation_failed"
    SAVE_FAILED = "save_failed"

    # Reconciliation
    BALANCE_ADJUSTED = "balance_adjusted"
    BALANCE_RECOMPUTED = "balance_recomputed"
    BALANCE_OVERRIDDEN = "balance_overridden"
    RECONCILIATION_SKIPPED = "reconciliation_skipped"
    RECONCILIATION_ROLLED_BACK = "reconciliation_rolled_back"

    # Loan accounts
    ACCOUNT_CREATED = "account_created"
    ACCOUNT_ARCHIVED = "account_archived"
    ACCOUNT_TRANSACTION_ADDED = "account_transaction_added"
    ACCOUNT_TRANSACTION_REMOVED = "account_transaction_removed"

    # Reference data
    CATALOG_ITEM_SAVED = "catalog_item_saved"
    CATALOG_ITEM_DELETED = "catalog_item_deleted"

    # System events
    SYSTEM_ERROR = "system_error"
    STORAGE_ERROR = "storage_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - who and what is this about?
    user_id: Optional[str] = Field(
        default=None,
        description="Owner of the affected data"
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'expense', 'payment_method_balance', 'account')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., an entry update and its balance adjustments)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": self.user_id,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, user_id, entity_type,
         entity_id, correlation_id, description, details_json,
         error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.user_id or "",
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


def _money(value: Decimal) -> str:
    return str(value)


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.entry_created(entry, correlation_id)
        event = AuditEventBuilder.reconciliation_skipped(user_id, ...)
    """

    @staticmethod
    def entry_created(
        user_id: str,
        entry_id: UUID,
        kind: str,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_CREATED,
            user_id=user_id,
            entity_type=kind,
            entity_id=entry_id,
            correlation_id=correlation_id,
            description=f"{kind.capitalize()} created: {amount}",
            details={"amount": _money(amount)},
            is_user_action=True,
        )

    @staticmethod
    def entry_updated(
        user_id: str,
        entry_id: UUID,
        kind: str,
        changed_fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_UPDATED,
            user_id=user_id,
            entity_type=kind,
            entity_id=entry_id,
            correlation_id=correlation_id,
            description=f"{kind.capitalize()} updated",
            details={"changed_fields": changed_fields},
            is_user_action=True,
        )

    @staticmethod
    def entry_deleted(
        user_id: str,
        entry_id: UUID,
        kind: str,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_DELETED,
            user_id=user_id,
            entity_type=kind,
            entity_id=entry_id,
            correlation_id=correlation_id,
            description=f"{kind.capitalize()} deleted: {amount}",
            details={"amount": _money(amount)},
            is_user_action=True,
        )

    @staticmethod
    def validation_failed(
        user_id: str,
        entity_type: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type=entity_type,
            correlation_id=correlation_id,
            description=f"Validation failed with {len(issues)} issues",
            details={"issues": issues},
        )

    @staticmethod
    def balance_adjusted(
        user_id: str,
        payment_method_id: UUID,
        delta: Decimal,
        new_balance: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_ADJUSTED,
            user_id=user_id,
            entity_type="payment_method_balance",
            entity_id=payment_method_id,
            correlation_id=correlation_id,
            description=f"Payment method balance adjusted by {delta}",
            details={"delta": _money(delta), "balance": _money(new_balance)},
        )

    @staticmethod
    def balance_recomputed(
        user_id: str,
        current_balance: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_RECOMPUTED,
            user_id=user_id,
            entity_type="balance",
            correlation_id=correlation_id,
            description=f"Aggregate balance recomputed: {current_balance}",
            details={"current_balance": _money(current_balance)},
        )

    @staticmethod
    def balance_overridden(
        user_id: str,
        target: str,
        balance: Decimal,
        payment_method_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_OVERRIDDEN,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type=target,
            entity_id=payment_method_id,
            correlation_id=correlation_id,
            description=f"Balance manually set to {balance}",
            details={"balance": _money(balance)},
            is_user_action=True,
        )

    @staticmethod
    def reconciliation_skipped(
        user_id: str,
        payment_method_id: UUID,
        amount_type_id: UUID,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECONCILIATION_SKIPPED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="payment_method_balance",
            entity_id=payment_method_id,
            correlation_id=correlation_id,
            description="Balance adjustment skipped: amount type not found",
            details={
                "amount_type_id": str(amount_type_id),
                "amount": _money(amount),
            },
        )

    @staticmethod
    def reconciliation_rolled_back(
        user_id: str,
        payment_method_ids: list[UUID],
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECONCILIATION_ROLLED_BACK,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            entity_type="payment_method_balance",
            correlation_id=correlation_id,
            description=f"Reconciliation rolled back for {len(payment_method_ids)} payment methods",
            details={"payment_method_ids": [str(pm) for pm in payment_method_ids]},
            error_message=error_message,
        )

    @staticmethod
    def account_created(
        user_id: str,
        account_id: UUID,
        account_type: str,
        initial_amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_CREATED,
            user_id=user_id,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Account opened ({account_type}): {initial_amount}",
            details={
                "account_type": account_type,
                "initial_amount": _money(initial_amount),
            },
            is_user_action=True,
        )

    @staticmethod
    def account_archived(
        user_id: str,
        account_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_ARCHIVED,
            user_id=user_id,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description="Account archived",
            is_user_action=True,
        )

    @staticmethod
    def account_transaction(
        user_id: str,
        account_id: UUID,
        transaction_id: UUID,
        transaction_type: str,
        amount: Decimal,
        removed: bool = False,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        event_type = (
            AuditEventType.ACCOUNT_TRANSACTION_REMOVED
            if removed
            else AuditEventType.ACCOUNT_TRANSACTION_ADDED
        )
        verb = "removed" if removed else "added"
        return AuditEvent(
            event_type=event_type,
            user_id=user_id,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Account transaction {verb}: {transaction_type} {amount}",
            details={
                "transaction_id": str(transaction_id),
                "transaction_type": transaction_type,
                "amount": _money(amount),
            },
            is_user_action=True,
        )

    @staticmethod
    def catalog_item(
        kind: str,
        item_id: UUID,
        name: str,
        deleted: bool = False,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.CATALOG_ITEM_DELETED
                if deleted
                else AuditEventType.CATALOG_ITEM_SAVED
            ),
            entity_type=kind,
            entity_id=item_id,
            correlation_id=correlation_id,
            description=f"{kind.replace('_', ' ').capitalize()} {'deleted' if deleted else 'saved'}: {name}",
            details={"name": name},
            is_user_action=True,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            description=f"Storage error during {operation}",
            error_message=error_message,
            details={"operation": operation},
            correlation_id=correlation_id,
        )
