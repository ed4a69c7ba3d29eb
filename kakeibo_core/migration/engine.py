"""
Ownership Migration Engine

When a guest signs in, everything they created on the device has to
become theirs under the authenticated identity.

DESIGN DECISION: Migration is ONE atomic unit of work:
1. Reassign accounts, non-default categories, transactions, budgets
   and goals from the source owner to the target owner
2. Delete the source owner's default categories (the target has its own)
3. Delete the source user record
4. Verify nothing references the source owner any more

Any failure rolls back all of it. The result then reports zero counts
and the collection being processed when the failure happened.

CRITICAL: Migration is not idempotent from the caller's point of view.
Once it succeeded, the caller must stop offering it for that guest id.
"""

from typing import Optional

from kakeibo_core.audit import AuditLogger, create_correlation_id
from kakeibo_core.exceptions import MigrationError
from kakeibo_core.models.audit import LedgerEventBuilder
from kakeibo_core.models.results import MigrationCounts, MigrationResult
from kakeibo_core.services.storage import Collection, EntityStore


GUEST_ID_PREFIX = "guest-"

# Order records are reassigned in
MIGRATED_COLLECTIONS = (
    Collection.ACCOUNTS,
    Collection.CATEGORIES,
    Collection.TRANSACTIONS,
    Collection.BUDGETS,
    Collection.GOALS,
)


def should_attempt_migration(guest_user_id: Optional[str]) -> bool:
    """Only guest identities are ever migrated."""
    return bool(guest_user_id) and guest_user_id.startswith(GUEST_ID_PREFIX)


class MigrationEngine:
    """
    Reassigns an owner's whole data set to another owner.

    Usage:
        result = await migration.migrate(guest_id, user_id)
        result.raise_for_status()
    """

    def __init__(
        self,
        store: EntityStore,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._audit_logger = audit_logger or AuditLogger()

    async def migrate(self, from_owner_id: str, to_owner_id: str) -> MigrationResult:
        """
        Move every record of from_owner_id to to_owner_id.

        Returns:
            MigrationResult with per-collection counts on success, or
            success=False with the error and failing collection

        Raises:
            ValueError: If either id is empty or both are the same
        """
        if not from_owner_id or not to_owner_id:
            raise ValueError("Both source and target owner ids are required")
        if from_owner_id == to_owner_id:
            raise ValueError(f"Cannot migrate {from_owner_id} onto itself")

        correlation_id = create_correlation_id()
        counts: dict[str, int] = {}
        current: Optional[Collection] = None

        try:
            async with self._store.atomic() as uow:
                for collection in MIGRATED_COLLECTIONS:
                    current = collection
                    counts[collection.value] = await uow.reassign_owner(
                        collection,
                        from_owner_id,
                        to_owner_id,
                        exclude_defaults=collection == Collection.CATEGORIES,
                    )

                current = Collection.CATEGORIES
                await uow.delete_default_categories(from_owner_id)

                current = Collection.USERS
                await uow.delete(Collection.USERS, from_owner_id)

                # Nothing may still point at the source identity
                for collection in Collection:
                    current = collection
                    remaining = await uow.count_owned(collection, from_owner_id)
                    if remaining:
                        raise MigrationError(
                            f"{remaining} {collection.value} record(s) still reference "
                            f"{from_owner_id}",
                            collection=collection.value,
                        )
        except Exception as e:
            failed_collection = getattr(e, "collection", None) or (
                current.value if current else None
            )
            await self._audit_logger.log(
                LedgerEventBuilder.migration_failed(
                    from_owner_id,
                    to_owner_id,
                    failed_collection,
                    str(e),
                    correlation_id,
                )
            )
            return MigrationResult(
                success=False,
                error=str(e),
                failed_collection=failed_collection,
            )

        migrated = MigrationCounts(**counts)
        await self._audit_logger.log(
            LedgerEventBuilder.ownership_migrated(
                from_owner_id, to_owner_id, migrated.model_dump(), correlation_id
            )
        )
        return MigrationResult(success=True, migrated_counts=migrated)
