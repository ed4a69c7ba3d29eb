"""
Ledger and migration exceptions.

Storage failures live with the storage interface
(kakeibo_core.services.storage). Everything here is a rule violation
detected by the engines; none of them is ever retried internally.
"""

from typing import Optional


class LedgerError(Exception):
    """Base exception for ledger rule violations."""
    pass


class InvalidStateError(LedgerError):
    """The operation is not allowed in the current state of the data."""
    pass


class InsufficientFundsError(LedgerError):
    """A goal does not hold enough to cover the requested amount."""

    def __init__(self, goal_id: str, available, requested):
        self.goal_id = goal_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Goal {goal_id} holds {available}, cannot remove {requested}"
        )


class MigrationError(Exception):
    """
    Ownership migration failed and was rolled back.

    Carries the collection being processed when the failure happened.
    """

    def __init__(self, message: str, collection: Optional[str] = None):
        self.collection = collection
        super().__init__(message)
