"""Tests for configuration and the SQLite store plumbing."""

import pytest
from decimal import Decimal

from kakeibo_core.config import (
    DatabaseSettings,
    LedgerSettings,
    get_settings,
    validate_all_settings,
)
from kakeibo_core.models.entities import Account, Category, User
from kakeibo_core.services.storage import (
    Collection,
    DuplicateError,
    NotFoundError,
    SQLiteClient,
    SQLiteEntityStore,
)


class TestSettings:
    """Tests for pydantic-settings configuration."""

    def test_ledger_defaults(self):
        """Test LedgerSettings defaults."""
        settings = LedgerSettings()
        assert settings.enforce_goal_funds
        assert settings.auto_complete_goals
        assert settings.alert_thresholds_list == [50, 80, 100]

    def test_ledger_settings_from_env(self, monkeypatch):
        """Test environment variables with the ledger prefix."""
        monkeypatch.setenv("KAKEIBO_LEDGER_ENFORCE_GOAL_FUNDS", "false")
        monkeypatch.setenv("KAKEIBO_LEDGER_DEFAULT_ALERT_THRESHOLDS", "90, 75")
        settings = LedgerSettings()
        assert not settings.enforce_goal_funds
        assert settings.alert_thresholds_list == [75, 90]

    def test_invalid_thresholds_rejected(self):
        """Test threshold validation."""
        with pytest.raises(ValueError):
            LedgerSettings(default_alert_thresholds="50,abc")

    def test_in_memory_detection(self):
        """Test DatabaseSettings.is_in_memory."""
        assert DatabaseSettings(url="sqlite://").is_in_memory
        assert not DatabaseSettings(url="sqlite:///kakeibo.db").is_in_memory

    def test_validate_all_settings(self, monkeypatch):
        """Test validate_all_settings reports broken sections."""
        get_settings.cache_clear()
        monkeypatch.setenv("KAKEIBO_LEDGER_DEFAULT_ALERT_THRESHOLDS", "x")
        try:
            results = validate_all_settings()
        finally:
            get_settings.cache_clear()
        assert results["database"]
        assert not results["ledger"]
        assert "ledger_error" in results


class TestSQLiteStore:
    """Tests for the unit of work against SQLite."""

    @pytest.mark.asyncio
    async def test_in_memory_store_keeps_data_between_blocks(self):
        """Test that an in-memory store shares one database."""
        store = SQLiteEntityStore(SQLiteClient(DatabaseSettings(url="sqlite://")))
        try:
            async with store.atomic() as uow:
                await uow.insert(User(id="user-1"))
            async with store.read() as uow:
                assert await uow.get(Collection.USERS, "user-1") is not None
        finally:
            store.close()

    @pytest.mark.asyncio
    async def test_decimal_precision_survives_storage(self, store):
        """Test that money is stored exactly."""
        async with store.atomic() as uow:
            await uow.insert(Account(id="a", owner_id="u", name="A",
                                     balance=Decimal("0.1") + Decimal("0.2")))
        async with store.read() as uow:
            account = await uow.get(Collection.ACCOUNTS, "a")
        assert account.balance == Decimal("0.3")

    @pytest.mark.asyncio
    async def test_insert_and_save_errors(self, store):
        """Test DuplicateError and NotFoundError."""
        async with store.atomic() as uow:
            await uow.insert(User(id="user-1"))
            with pytest.raises(DuplicateError):
                await uow.insert(User(id="user-1"))
            with pytest.raises(NotFoundError):
                await uow.save(User(id="user-2"))

    @pytest.mark.asyncio
    async def test_rollback_discards_writes(self, store):
        """Test that an exception inside atomic() keeps nothing."""
        with pytest.raises(RuntimeError):
            async with store.atomic() as uow:
                await uow.insert(User(id="user-1"))
                raise RuntimeError("boom")

        async with store.read() as uow:
            assert await uow.get(Collection.USERS, "user-1") is None

    @pytest.mark.asyncio
    async def test_reassign_and_defaults(self, store):
        """Test reassign_owner with default categories excluded."""
        async with store.atomic() as uow:
            await uow.insert(Category(id="c1", owner_id="a", name="Food", is_default=True))
            await uow.insert(Category(id="c2", owner_id="a", name="Hobbies"))
            moved = await uow.reassign_owner(
                Collection.CATEGORIES, "a", "b", exclude_defaults=True
            )
            removed = await uow.delete_default_categories("a")
            remaining = await uow.count_owned(Collection.CATEGORIES, "a")
            moved_category = await uow.get(Collection.CATEGORIES, "c2")

        assert (moved, removed, remaining) == (1, 1, 0)
        assert moved_category.owner_id == "b"
