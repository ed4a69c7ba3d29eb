"""Tests for backup export and import."""

import json
import pytest
from datetime import datetime
from decimal import Decimal

from kakeibo_core.backup import (
    BackupService,
    clean_export_data,
    detect_backup_owner_id,
    generate_migration_report,
    migrate_budget_category_ids,
    normalize_category_id,
    prepare_import,
)
from kakeibo_core.config import DatabaseSettings
from kakeibo_core.ledger import LedgerEngine
from kakeibo_core.models.audit import LedgerEventType
from kakeibo_core.models.entities import (
    Transaction,
    TransactionCreate,
    TransactionType,
    User,
    UserMode,
)
from kakeibo_core.services.storage import (
    Collection,
    NotFoundError,
    SQLiteClient,
    SQLiteEntityStore,
)


def legacy_backup():
    """A backup written by an older version of the app."""
    return {
        "version": "1.0.0",
        "users": [{"id": "guest-123", "mode": "guest"}],
        "accounts": [
            {
                "id": "acc-1",
                "owner_id": "guest-123",
                "name": "Wallet",
                "initial_balance": "0",
                "balance": "100",
            },
            {"name": "no id, dropped"},
        ],
        "categories": [
            {"id": "guest-123-expense-food&drink", "owner_id": "guest-123", "name": "Food"},
        ],
        "transactions": [],
        "budgets": [
            {
                "id": "bud-1",
                "owner_id": "guest-123",
                "name": "Food",
                "category_id": "guest-123-expense-food&drink",
                "amount": "200",
                "start_date": "2024-01-01T00:00:00",
            },
        ],
        "goals": None,
    }


@pytest.fixture
def second_store(tmp_path):
    store = SQLiteEntityStore(
        SQLiteClient(DatabaseSettings(url=f"sqlite:///{tmp_path}/restore.db"))
    )
    yield store
    store.close()


class TestLegacyNormalization:
    """Tests for the pure backup helpers."""

    def test_normalize_category_id(self):
        """Test prefixed and ampersand category ids."""
        assert normalize_category_id("guest-123-expense-food&drink") == "expense-foodanddrink"
        assert normalize_category_id("user-1-income-salary") == "income-salary"
        assert normalize_category_id("expense-food") == "expense-food"
        assert normalize_category_id("") == ""

    def test_migrate_budget_category_ids(self):
        """Test single category budgets get category_ids."""
        migrated = migrate_budget_category_ids({"id": "b", "category_id": "expense-food"})
        assert migrated == {"id": "b", "category_ids": ["expense-food"]}

        current = {"id": "b", "category_ids": ["expense-a", "expense-b"]}
        assert migrate_budget_category_ids(current) is current

    def test_clean_export_data_drops_records_without_id(self):
        """Test clean_export_data."""
        cleaned = clean_export_data(legacy_backup())
        assert len(cleaned["accounts"]) == 1
        assert cleaned["goals"] == []

    def test_detect_owner(self):
        """Test the owner is found on owned records first, then on the user."""
        assert detect_backup_owner_id(legacy_backup()) == "guest-123"
        assert detect_backup_owner_id({"users": [{"id": "user-5"}]}) == "user-5"
        assert detect_backup_owner_id({}) is None

    def test_report(self):
        """Test generate_migration_report."""
        report = generate_migration_report(legacy_backup())
        assert report.record_counts["accounts"] == 2
        assert report.record_counts["goals"] == 0
        assert report.total_records == 5
        assert report.detected_owner_id == "guest-123"
        assert not report.has_settings

    def test_prepare_import_remaps_and_normalizes(self):
        """Test prepare_import on a legacy backup."""
        data = prepare_import(legacy_backup(), target_owner_id="user-1")

        assert data.users[0].id == "user-1"
        assert {a.owner_id for a in data.accounts} == {"user-1"}
        assert data.categories[0].id == "expense-foodanddrink"
        assert data.budgets[0].category_ids == ["expense-foodanddrink"]

    def test_prepare_import_keeps_category_references_resolvable(self):
        """Test that budgets and subcategories point at imported category ids."""
        backup = legacy_backup()
        backup["categories"].append(
            {
                "id": "guest-123-expense-snacks",
                "owner_id": "guest-123",
                "name": "Snacks",
                "parent_id": "guest-123-expense-food&drink",
            }
        )
        data = prepare_import(backup, target_owner_id="user-1")

        category_ids = {category.id for category in data.categories}
        assert category_ids == {"expense-foodanddrink", "expense-snacks"}
        assert data.categories[1].parent_id == "expense-foodanddrink"
        assert set(data.budgets[0].category_ids) <= category_ids


class TestBackupService:
    """Tests for export and import through the store."""

    @pytest.mark.asyncio
    async def test_export_requires_user(self, store, audit_logger):
        """Test NotFoundError when the owner has no user record."""
        with pytest.raises(NotFoundError):
            await BackupService(store, audit_logger).export_owner("nobody")

    @pytest.mark.asyncio
    async def test_round_trip_to_new_owner(
        self, store, second_store, engine, audit_logger, ledger_settings
    ):
        """Test export from one device and import as another owner elsewhere."""
        async with store.atomic() as uow:
            await uow.insert(User(id="guest-1", mode=UserMode.GUEST))
        guest = engine.for_owner("guest-1")
        account = await guest.open_account("Checking", initial_balance=Decimal("100"))
        await guest.create_transaction(
            TransactionCreate(
                type=TransactionType.EXPENSE,
                amount=Decimal("30.10"),
                account_id=account.id,
                category_id="expense-food",
                date=datetime(2024, 5, 1),
            )
        )
        goal = await guest.add_goal("Trip", Decimal("500"))
        await guest.contribute_to_goal(goal.id, Decimal("20"), account.id)

        payload = await BackupService(store, audit_logger).export_json("guest-1")
        assert json.loads(payload)["accounts"][0]["balance"] == "49.90"

        result = await BackupService(second_store, audit_logger).import_data(
            payload, target_owner_id="user-1"
        )

        assert result.owner_id == "user-1"
        assert result.record_counts["transactions"] == 2
        assert result.drifted_accounts == {}

        restored = LedgerEngine(second_store, ledger_settings, audit_logger).for_owner("user-1")
        assert (await restored.get_account(account.id)).balance == Decimal("49.90")
        assert (await restored.get_goal(goal.id)).current_amount == Decimal("20")
        assert len(await restored.list_transactions()) == 2
        assert audit_logger.of_type(LedgerEventType.DATA_IMPORTED)

    @pytest.mark.asyncio
    async def test_import_reports_drift(self, store, audit_logger):
        """Test that imported balances are kept as stored, and drift is reported."""
        result = await BackupService(store, audit_logger).import_data(legacy_backup())

        assert result.owner_id == "guest-123"
        assert result.drifted_accounts == {"acc-1": Decimal("100")}

        ledger = LedgerEngine(store, audit_logger=audit_logger).for_owner("guest-123")
        assert (await ledger.get_account("acc-1")).balance == Decimal("100")

    @pytest.mark.asyncio
    async def test_import_checks_entries_already_stored(self, store, audit_logger):
        """Test drift includes stored entries the backup does not contain."""
        async with store.atomic() as uow:
            await uow.insert(
                Transaction(
                    id="txn-local",
                    owner_id="user-1",
                    type=TransactionType.EXPENSE,
                    amount=Decimal("10"),
                    account_id="acc-1",
                    category_id="expense-food",
                )
            )

        result = await BackupService(store, audit_logger).import_data(
            legacy_backup(), target_owner_id="user-1"
        )

        assert result.drifted_accounts == {"acc-1": Decimal("110")}
        async with store.read() as uow:
            assert await uow.get(Collection.TRANSACTIONS, "txn-local") is not None

    @pytest.mark.asyncio
    async def test_import_is_repeatable(self, store, audit_logger):
        """Test importing the same backup twice replaces records instead of failing."""
        service = BackupService(store, audit_logger)
        await service.import_data(legacy_backup(), target_owner_id="user-1")
        await service.import_data(legacy_backup(), target_owner_id="user-1")

        ledger = LedgerEngine(store, audit_logger=audit_logger).for_owner("user-1")
        assert len(await ledger.list_accounts()) == 1
        assert len(await ledger.list_budgets()) == 1

    @pytest.mark.asyncio
    async def test_import_without_user_fails(self, store, audit_logger):
        """Test ValueError for a backup without user data."""
        with pytest.raises(ValueError):
            await BackupService(store, audit_logger).import_data({"users": []})
