"""
Main Orchestrator for Kakeibo Core

This module ties together all the components and defines the
end-to-end flow for:
1. Guest session (anonymous user record on this device)
2. Sign-in (authenticated user record + migration of the guest's data)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Balances change only through the ledger engine
- A guest's data moves to the signed-in user only through the
  migration engine, in one atomic operation
- Every step is audited

This is the "glue" the UI layer calls into.
"""

from typing import Optional

from kakeibo_core.audit import AuditLogger
from kakeibo_core.backup import BackupService
from kakeibo_core.config import Settings, get_settings
from kakeibo_core.ledger import LedgerEngine
from kakeibo_core.migration import (
    GUEST_ID_PREFIX,
    MigrationEngine,
    should_attempt_migration,
)
from kakeibo_core.models.entities import User, UserMode, new_id, utcnow
from kakeibo_core.models.results import MigrationResult
from kakeibo_core.services.storage import (
    Collection,
    EntityStore,
    SQLiteClient,
    SQLiteEntityStore,
)


class SignInFlow:
    """
    Orchestrates user identity on the device.

    Flow:
    1. start_guest_session → guest user record ("guest-<uuid>")
    2. complete_sign_in → authenticated user record, then migrate the
       guest's data to it

    The caller must forget the guest id once complete_sign_in returned
    a successful result. Migration is never attempted twice by this flow
    for ids that are not guest ids.
    """

    def __init__(
        self,
        store: EntityStore,
        migration_engine: Optional[MigrationEngine] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._audit_logger = audit_logger or AuditLogger()
        self._migration_engine = migration_engine or MigrationEngine(store, self._audit_logger)

    async def start_guest_session(self) -> User:
        """Create a fresh guest user."""
        user = User(id=f"{GUEST_ID_PREFIX}{new_id()}", mode=UserMode.GUEST)
        async with self._store.atomic() as uow:
            await uow.insert(user)
        return user

    async def ensure_user(
        self,
        user_id: str,
        mode: UserMode = UserMode.AUTHENTICATED,
        email: Optional[str] = None,
        display_name: str = "",
    ) -> User:
        """Get the user record, creating it or upgrading its mode as needed."""
        async with self._store.atomic() as uow:
            user = await uow.get(Collection.USERS, user_id)
            if user is None:
                user = User(id=user_id, mode=mode, email=email, display_name=display_name)
                await uow.insert(user)
            elif user.mode != mode or (email and user.email != email):
                user.mode = mode
                user.email = email or user.email
                user.display_name = display_name or user.display_name
                user.updated_at = utcnow()
                await uow.save(user)
        return user

    async def complete_sign_in(
        self,
        guest_id: Optional[str],
        user_id: str,
        email: Optional[str] = None,
        display_name: str = "",
    ) -> Optional[MigrationResult]:
        """
        Record the authenticated user and move the guest's data to them.

        Returns:
            The migration result, or None when there was no guest data
            to migrate
        """
        await self.ensure_user(user_id, UserMode.AUTHENTICATED, email, display_name)

        if not should_attempt_migration(guest_id) or guest_id == user_id:
            return None

        return await self._migration_engine.migrate(guest_id, user_id)


class AppComponents:
    """Everything the UI layer needs, wired to one store."""

    def __init__(
        self,
        store: EntityStore,
        ledger: LedgerEngine,
        migration: MigrationEngine,
        backups: BackupService,
        sign_in: SignInFlow,
        audit_logger: AuditLogger,
    ):
        self.store = store
        self.ledger = ledger
        self.migration = migration
        self.backups = backups
        self.sign_in = sign_in
        self.audit_logger = audit_logger

    def close(self) -> None:
        self.store.close()


def create_app_components(
    settings: Optional[Settings] = None,
    store: Optional[EntityStore] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        settings: Settings to use. Defaults to get_settings().
        store: Entity store to use. Defaults to SQLite at the configured URL.

    Returns:
        AppComponents sharing one store and one audit logger
    """
    settings = settings or get_settings()
    store = store or SQLiteEntityStore(SQLiteClient(settings.database))
    audit_logger = AuditLogger()

    migration = MigrationEngine(store, audit_logger)
    return AppComponents(
        store=store,
        ledger=LedgerEngine(store, settings.ledger, audit_logger),
        migration=migration,
        backups=BackupService(store, audit_logger),
        sign_in=SignInFlow(store, migration, audit_logger),
        audit_logger=audit_logger,
    )
