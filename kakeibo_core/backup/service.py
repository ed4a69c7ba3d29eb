"""
Backup Export / Import

DESIGN DECISION: A backup is one owner's six collections written as a
single JSON document (ExportData). Import is the reverse and runs as one
atomic unit of work: a backup is restored completely or not at all.

Import never applies balance effects. Records are written exactly as
they were exported, because the exported balances already include the
effect of every exported transaction. Accounts whose balance disagrees
with the owner's stored ledger entries after the import are reported,
not silently fixed.

Older backups are normalized before validation:
- records without an id are dropped
- prefixed category ids ("<user>-expense-food") become "expense-food"
- "&" in category ids becomes "and"
- budgets with a single category_id get category_ids
"""

import json
import re
from typing import Any, Optional, Union

import structlog

from kakeibo_core.audit import AuditLogger, create_correlation_id
from kakeibo_core.ledger.verification import calculate_account_balance, validate_balance
from kakeibo_core.models.audit import LedgerEventBuilder, LedgerEventType
from kakeibo_core.models.backup import BackupReport, ExportData, ImportResult
from kakeibo_core.models.entities import User
from kakeibo_core.services.storage import Collection, EntityStore, NotFoundError


logger = structlog.get_logger(__name__)

# Collections in the order they are written on import
RECORD_COLLECTIONS = ("users", "accounts", "categories", "transactions", "budgets", "goals")
OWNED_COLLECTIONS = RECORD_COLLECTIONS[1:]

_LEGACY_CATEGORY_ID = re.compile(r"^.*-((?:expense|income)-.+)$")


# =============================================================================
# LEGACY NORMALIZATION (pure, on raw backup dicts)
# =============================================================================

def normalize_category_id(category_id: str) -> str:
    """
    Bring a category id into the current format.

    Example:
        normalize_category_id("guest-123-expense-food&drink") -> "expense-foodanddrink"
    """
    if not category_id:
        return category_id
    match = _LEGACY_CATEGORY_ID.match(category_id)
    if match:
        category_id = match.group(1)
    return category_id.replace("&", "and")


def normalize_category_ids_in_record(record: dict) -> dict:
    normalized = dict(record)
    if normalized.get("parent_id"):
        normalized["parent_id"] = normalize_category_id(normalized["parent_id"])
    if normalized.get("category_id"):
        normalized["category_id"] = normalize_category_id(normalized["category_id"])
    if isinstance(normalized.get("category_ids"), list):
        normalized["category_ids"] = [
            normalize_category_id(category_id) for category_id in normalized["category_ids"]
        ]
    return normalized


def migrate_budget_category_ids(budget: dict) -> dict:
    """Convert a single-category budget into the category_ids form."""
    if isinstance(budget.get("category_ids"), list) and budget["category_ids"]:
        return budget

    migrated = {key: value for key, value in budget.items() if key != "category_id"}
    category_id = budget.get("category_id")
    migrated["category_ids"] = [category_id] if category_id else []
    return migrated


def remap_owner_id(record: dict, owner_id: str) -> dict:
    return {**record, "owner_id": owner_id}


def detect_backup_owner_id(data: dict) -> Optional[str]:
    """Find whose data a backup holds, looking at owned records first."""
    for collection in OWNED_COLLECTIONS:
        records = data.get(collection) or []
        if records and records[0].get("owner_id"):
            return records[0]["owner_id"]

    users = data.get("users") or []
    if users and users[0].get("id"):
        return users[0]["id"]
    return None


def clean_export_data(data: dict) -> dict:
    """Drop records that have no id."""
    cleaned = dict(data)
    for collection in RECORD_COLLECTIONS:
        records = data.get(collection)
        cleaned[collection] = (
            [record for record in records if isinstance(record, dict) and record.get("id")]
            if isinstance(records, list) else []
        )
    return cleaned


def generate_migration_report(data: dict) -> BackupReport:
    """Summarize a raw backup before importing it."""
    record_counts = {
        collection: len(data.get(collection) or [])
        for collection in RECORD_COLLECTIONS
    }
    return BackupReport(
        total_records=sum(record_counts.values()),
        record_counts=record_counts,
        has_settings=bool(data.get("settings")),
        detected_owner_id=detect_backup_owner_id(data),
    )


def prepare_import(data: dict, target_owner_id: Optional[str] = None) -> ExportData:
    """
    Normalize a raw backup and validate it.

    Args:
        data: Parsed backup JSON
        target_owner_id: Import the data as this owner instead of the
                         one it was exported from

    Raises:
        ValidationError: If a record is invalid after normalization
    """
    cleaned = clean_export_data(data)
    remap = target_owner_id is not None and detect_backup_owner_id(cleaned) is not None

    def owned(record: dict) -> dict:
        return remap_owner_id(record, target_owner_id) if remap else record

    prepared = {
        **cleaned,
        "users": [
            {**user, "id": target_owner_id} if remap else user
            for user in cleaned["users"][:1]
        ],
        "accounts": [owned(a) for a in cleaned["accounts"]],
        "categories": [
            {**normalize_category_ids_in_record(owned(c)), "id": normalize_category_id(c["id"])}
            for c in cleaned["categories"]
        ],
        "transactions": [
            normalize_category_ids_in_record(owned(t)) for t in cleaned["transactions"]
        ],
        "budgets": [
            normalize_category_ids_in_record(migrate_budget_category_ids(owned(b)))
            for b in cleaned["budgets"]
        ],
        "goals": [owned(g) for g in cleaned["goals"]],
    }
    return ExportData.model_validate(prepared)


# =============================================================================
# SERVICE
# =============================================================================

class BackupService:
    """
    Exports and imports one owner's data set.

    Usage:
        payload = await backups.export_json(user_id)
        result = await backups.import_data(payload, target_owner_id=user_id)
    """

    def __init__(
        self,
        store: EntityStore,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._audit_logger = audit_logger or AuditLogger()

    async def export_owner(self, owner_id: str) -> ExportData:
        """
        Collect everything an owner has.

        Raises:
            NotFoundError: If the user record does not exist
        """
        async with self._store.read() as uow:
            user = await uow.get(Collection.USERS, owner_id)
            if user is None:
                raise NotFoundError(f"User not found: {owner_id}")

            data = ExportData(
                users=[user],
                accounts=await uow.list_accounts(owner_id),
                categories=await uow.list_categories(owner_id),
                transactions=await uow.list_transactions(owner_id),
                budgets=await uow.list_budgets(owner_id),
                goals=await uow.list_goals(owner_id),
                settings=user.settings,
            )

        await self._audit_logger.log(
            LedgerEventBuilder.backup(
                LedgerEventType.DATA_EXPORTED,
                owner_id,
                data.record_counts(),
                create_correlation_id(),
            )
        )
        return data

    async def export_json(self, owner_id: str) -> str:
        data = await self.export_owner(owner_id)
        return data.model_dump_json(indent=2)

    async def import_data(
        self,
        data: Union[ExportData, dict[str, Any], str],
        target_owner_id: Optional[str] = None,
    ) -> ImportResult:
        """
        Restore a backup, inserting or replacing every record.

        Args:
            data: ExportData, parsed backup JSON, or the JSON text
            target_owner_id: Owner to import the data as

        Raises:
            ValueError: If the backup has no user record or is invalid
            StorageError: If the store rejects the import (nothing is kept)
        """
        if isinstance(data, str):
            data = json.loads(data)
        elif isinstance(data, ExportData):
            data = data.model_dump()

        prepared = prepare_import(data, target_owner_id)
        if not prepared.users:
            raise ValueError("No user data in import")

        user: User = prepared.users[0]
        if prepared.settings is not None:
            user = user.model_copy(update={"settings": prepared.settings})

        async with self._store.atomic() as uow:
            await uow.upsert(user)
            for collection in OWNED_COLLECTIONS:
                for record in getattr(prepared, collection):
                    await uow.upsert(record)

        async with self._store.read() as uow:
            stored_accounts = await uow.list_accounts(user.id)
            stored_transactions = await uow.list_transactions(user.id)

        drifted = {}
        for account in stored_accounts:
            derived = calculate_account_balance(
                account.id, account.initial_balance, stored_transactions
            )
            is_valid, difference = validate_balance(account.balance, derived)
            if not is_valid:
                drifted[account.id] = difference

        if drifted:
            logger.warning(
                "imported_balances_drifted",
                owner_id=user.id,
                accounts={account_id: str(diff) for account_id, diff in drifted.items()},
            )

        record_counts = prepared.record_counts()
        await self._audit_logger.log(
            LedgerEventBuilder.backup(
                LedgerEventType.DATA_IMPORTED,
                user.id,
                record_counts,
                create_correlation_id(),
            )
        )
        return ImportResult(
            owner_id=user.id,
            record_counts=record_counts,
            drifted_accounts=drifted,
        )
