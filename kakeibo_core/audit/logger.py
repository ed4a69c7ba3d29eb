"""
Audit Logger

DESIGN DECISION: Every ledger mutation and every ownership migration is
logged as one structured event. This provides:
1. Traceability of every balance change (which accounts moved, by how much)
2. Debugging capability when a balance looks wrong
3. Failure diagnostics (which step of which operation rolled back)

The audit logger:
- Logs after the store has committed or rolled back, never in between
- Gracefully handles failures (a committed mutation stays committed)
- Supports correlation IDs to trace related events
- Does not persist events: the ledger keeps no append-only history
"""

import sys
from typing import Optional
from uuid import UUID, uuid4

import structlog

from kakeibo_core.models.audit import LedgerEvent, LedgerEventBuilder, LedgerSeverity


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
    Central ledger event logging service.

    Logs events to the structured local log at a level derived from the
    event severity.
    """

    def __init__(self, logger_name: str = "kakeibo_core.audit"):
        self._logger = structlog.get_logger(logger_name)

    async def log(self, event: LedgerEvent) -> bool:
        """
        Log a ledger event.

        Returns True if the event was written.
        """
        log_dict = event.to_log_dict()

        try:
            if event.severity == LedgerSeverity.ERROR:
                self._logger.error("ledger_event", **log_dict)
            elif event.severity == LedgerSeverity.WARNING:
                self._logger.warning("ledger_event", **log_dict)
            elif event.severity == LedgerSeverity.DEBUG:
                self._logger.debug("ledger_event", **log_dict)
            else:
                self._logger.info("ledger_event", **log_dict)
        except Exception as e:
            # The operation already committed; a logging failure must not undo that
            print(f"WARNING: Failed to log ledger event: {e}", file=sys.stderr)
            return False

        return True

    async def log_mutation_failed(
        self,
        operation: str,
        owner_id: Optional[str],
        error: Exception,
        entity_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a ledger mutation that was rolled back."""
        event = LedgerEventBuilder.mutation_failed(
            operation=operation,
            owner_id=owner_id,
            error=error,
            entity_id=entity_id,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., a sign-in migration).
    Pass it through all subsequent operations.
    """
    return uuid4()
