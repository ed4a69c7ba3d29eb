"""
Ledger Event Models

Every committed ledger mutation and every ownership migration produces
one LedgerEvent. Events are logged, not stored: the engine keeps no
append-only history.

DESIGN DECISION: Events are emitted after the atomic operation has
committed (or failed). A reader of the log never sees an event for a
mutation that was rolled back, except as a failure.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from kakeibo_core.models.entities import Transaction, TransactionType, utcnow


class LedgerEventType(str, Enum):
    """Types of events we log."""
    # Transactions
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"

    # Goals
    GOAL_CONTRIBUTION = "goal_contribution"
    GOAL_WITHDRAWAL = "goal_withdrawal"
    GOAL_DELETED = "goal_deleted"

    # Accounts
    ACCOUNT_OPENED = "account_opened"
    ACCOUNT_ARCHIVED = "account_archived"
    ACCOUNT_DELETED = "account_deleted"

    # Ownership
    OWNERSHIP_MIGRATED = "ownership_migrated"
    MIGRATION_FAILED = "migration_failed"

    # Backup
    DATA_EXPORTED = "data_exported"
    DATA_IMPORTED = "data_imported"

    MUTATION_FAILED = "mutation_failed"


class LedgerSeverity(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class LedgerEvent(BaseModel):
    """A single ledger event."""

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="When the event occurred (UTC)"
    )
    event_type: LedgerEventType
    severity: LedgerSeverity = LedgerSeverity.INFO

    owner_id: Optional[str] = Field(
        default=None,
        description="Owner scope the event happened in"
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'goal', 'account')"
    )
    entity_id: Optional[str] = None
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate events of one user action"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "owner_id": self.owner_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }


def _deltas(deltas: dict[str, Decimal]) -> dict[str, str]:
    return {account_id: str(delta) for account_id, delta in deltas.items()}


class LedgerEventBuilder:
    """
    Helper class to build ledger events with common patterns.

    Usage:
        event = LedgerEventBuilder.transaction_created(txn, deltas)
        event = LedgerEventBuilder.ownership_migrated(from_id, to_id, counts)
    """

    @staticmethod
    def transaction_created(
        transaction: Transaction,
        balance_deltas: dict[str, Decimal],
        correlation_id: Optional[UUID] = None,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.TRANSACTION_CREATED,
            owner_id=transaction.owner_id,
            entity_type="transaction",
            entity_id=transaction.id,
            correlation_id=correlation_id,
            description=f"{transaction.type.value} of {transaction.amount} recorded",
            details={
                "type": transaction.type.value,
                "amount": str(transaction.amount),
                "balance_deltas": _deltas(balance_deltas),
            },
        )

    @staticmethod
    def transaction_updated(
        before: Transaction,
        after: Transaction,
        balance_deltas: dict[str, Decimal],
        correlation_id: Optional[UUID] = None,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.TRANSACTION_UPDATED,
            owner_id=after.owner_id,
            entity_type="transaction",
            entity_id=after.id,
            correlation_id=correlation_id,
            description=f"Transaction updated: {before.amount} -> {after.amount}",
            details={
                "old_type": before.type.value,
                "new_type": after.type.value,
                "old_amount": str(before.amount),
                "new_amount": str(after.amount),
                "balance_deltas": _deltas(balance_deltas),
            },
        )

    @staticmethod
    def transaction_deleted(
        transaction: Transaction,
        balance_deltas: dict[str, Decimal],
        correlation_id: Optional[UUID] = None,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.TRANSACTION_DELETED,
            owner_id=transaction.owner_id,
            entity_type="transaction",
            entity_id=transaction.id,
            correlation_id=correlation_id,
            description=f"{transaction.type.value} of {transaction.amount} deleted",
            details={"balance_deltas": _deltas(balance_deltas)},
        )

    @staticmethod
    def goal_movement(
        transaction: Transaction,
        goal_amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerEvent:
        contribution = transaction.type == TransactionType.GOAL_CONTRIBUTION
        return LedgerEvent(
            event_type=(
                LedgerEventType.GOAL_CONTRIBUTION if contribution
                else LedgerEventType.GOAL_WITHDRAWAL
            ),
            owner_id=transaction.owner_id,
            entity_type="goal",
            entity_id=transaction.goal_id,
            correlation_id=correlation_id,
            description=(
                f"{'Contributed' if contribution else 'Withdrew'} {transaction.amount} "
                f"{'to' if contribution else 'from'} goal"
            ),
            details={
                "transaction_id": transaction.id,
                "account_id": transaction.account_id,
                "amount": str(transaction.amount),
                "goal_current_amount": str(goal_amount),
            },
        )

    @staticmethod
    def goal_deleted(
        owner_id: str,
        goal_id: str,
        removed_transactions: int,
        balance_deltas: dict[str, Decimal],
        correlation_id: Optional[UUID] = None,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.GOAL_DELETED,
            owner_id=owner_id,
            entity_type="goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description=f"Goal deleted with {removed_transactions} ledger entries",
            details={
                "removed_transactions": removed_transactions,
                "balance_deltas": _deltas(balance_deltas),
            },
        )

    @staticmethod
    def account_changed(
        event_type: LedgerEventType,
        owner_id: str,
        account_id: str,
        description: str,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=event_type,
            owner_id=owner_id,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=description,
        )

    @staticmethod
    def mutation_failed(
        operation: str,
        owner_id: Optional[str],
        error: Exception,
        entity_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.MUTATION_FAILED,
            severity=LedgerSeverity.WARNING,
            owner_id=owner_id,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{operation} rolled back",
            details={"operation": operation, "error_type": type(error).__name__},
            error_message=str(error),
        )

    @staticmethod
    def ownership_migrated(
        from_owner_id: str,
        to_owner_id: str,
        counts: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.OWNERSHIP_MIGRATED,
            owner_id=to_owner_id,
            entity_type="user",
            entity_id=from_owner_id,
            correlation_id=correlation_id,
            description=f"Data of {from_owner_id} moved to {to_owner_id}",
            details={"migrated_counts": counts},
        )

    @staticmethod
    def migration_failed(
        from_owner_id: str,
        to_owner_id: str,
        collection: Optional[str],
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.MIGRATION_FAILED,
            severity=LedgerSeverity.ERROR,
            owner_id=to_owner_id,
            entity_type="user",
            entity_id=from_owner_id,
            correlation_id=correlation_id,
            description=f"Migration of {from_owner_id} rolled back",
            details={"collection": collection},
            error_message=error_message,
        )

    @staticmethod
    def backup(
        event_type: LedgerEventType,
        owner_id: Optional[str],
        record_counts: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=event_type,
            owner_id=owner_id,
            correlation_id=correlation_id,
            description=f"{event_type.value.replace('_', ' ').capitalize()}: "
                        f"{sum(record_counts.values())} records",
            details={"record_counts": record_counts},
        )
