"""
Audit Logger

DESIGN DECISION: Every money movement in the system is logged.
This provides:
1. Complete traceability of balance changes
2. Debugging capability when a balance looks wrong
3. Accountability for manual overrides and skipped reconciliations
4. Ability to replay history

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from finance_tracker.models.audit import AuditEvent, AuditEventBuilder
from finance_tracker.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger()

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_entry_created(
        self,
        user_id: str,
        entry_id: UUID,
        kind: str,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.entry_created(
            user_id=user_id,
            entry_id=entry_id,
            kind=kind,
            amount=amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_entry_updated(
        self,
        user_id: str,
        entry_id: UUID,
        kind: str,
        changed_fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.entry_updated(
            user_id=user_id,
            entry_id=entry_id,
            kind=kind,
            changed_fields=changed_fields,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_entry_deleted(
        self,
        user_id: str,
        entry_id: UUID,
        kind: str,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.entry_deleted(
            user_id=user_id,
            entry_id=entry_id,
            kind=kind,
            amount=amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_validation_failed(
        self,
        user_id: str,
        entity_type: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log validation failure."""
        event = AuditEventBuilder.validation_failed(
            user_id=user_id,
            entity_type=entity_type,
            issues=issues,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_balance_adjusted(
        self,
        user_id: str,
        payment_method_id: UUID,
        delta: Decimal,
        new_balance: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.balance_adjusted(
            user_id=user_id,
            payment_method_id=payment_method_id,
            delta=delta,
            new_balance=new_balance,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_balance_recomputed(
        self,
        user_id: str,
        current_balance: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.balance_recomputed(
            user_id=user_id,
            current_balance=current_balance,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_balance_overridden(
        self,
        user_id: str,
        target: str,
        balance: Decimal,
        payment_method_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a manual balance override."""
        event = AuditEventBuilder.balance_overridden(
            user_id=user_id,
            target=target,
            balance=balance,
            payment_method_id=payment_method_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_reconciliation_skipped(
        self,
        user_id: str,
        payment_method_id: UUID,
        amount_type_id: UUID,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a balance step skipped because its amount type is gone."""
        event = AuditEventBuilder.reconciliation_skipped(
            user_id=user_id,
            payment_method_id=payment_method_id,
            amount_type_id=amount_type_id,
            amount=amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_reconciliation_rolled_back(
        self,
        user_id: str,
        payment_method_ids: list[UUID],
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.reconciliation_rolled_back(
            user_id=user_id,
            payment_method_ids=payment_method_ids,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_account_created(
        self,
        user_id: str,
        account_id: UUID,
        account_type: str,
        initial_amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.account_created(
            user_id=user_id,
            account_id=account_id,
            account_type=account_type,
            initial_amount=initial_amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_account_archived(
        self,
        user_id: str,
        account_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.account_archived(
            user_id=user_id,
            account_id=account_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_account_transaction(
        self,
        user_id: str,
        account_id: UUID,
        transaction_id: UUID,
        transaction_type: str,
        amount: Decimal,
        removed: bool = False,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a transaction added to (or removed from) an account."""
        event = AuditEventBuilder.account_transaction(
            user_id=user_id,
            account_id=account_id,
            transaction_id=transaction_id,
            transaction_type=transaction_type,
            amount=amount,
            removed=removed,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_catalog_item(
        self,
        kind: str,
        item_id: UUID,
        name: str,
        deleted: bool = False,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.catalog_item(
            kind=kind,
            item_id=item_id,
            name=name,
            deleted=deleted,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log storage backend error."""
        event = AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            user_id=user_id,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., an entry update).
    Pass it through all subsequent operations.
    """
    return uuid4()
