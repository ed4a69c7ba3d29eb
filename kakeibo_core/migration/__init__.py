"""Ownership migration package."""

from kakeibo_core.migration.engine import (
    GUEST_ID_PREFIX,
    MigrationEngine,
    should_attempt_migration,
)

__all__ = ["GUEST_ID_PREFIX", "MigrationEngine", "should_attempt_migration"]
