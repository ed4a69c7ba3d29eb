"""
Shared fixtures.

Every test gets its own SQLite file under tmp_path, so tests never see
each other's data.
"""

from decimal import Decimal

import pytest
import pytest_asyncio

from kakeibo_core.audit import AuditLogger
from kakeibo_core.config import DatabaseSettings, LedgerSettings
from kakeibo_core.ledger import LedgerEngine
from kakeibo_core.services.storage import SQLiteClient, SQLiteEntityStore


OWNER_ID = "user-1"


class RecordingAuditLogger(AuditLogger):
    """Audit logger that keeps events in memory for assertions."""

    def __init__(self):
        super().__init__("kakeibo_core.tests.audit")
        self.events = []

    async def log(self, event) -> bool:
        self.events.append(event)
        return True

    def of_type(self, event_type):
        return [event for event in self.events if event.event_type == event_type]


@pytest.fixture
def ledger_settings():
    return LedgerSettings()


@pytest.fixture
def store(tmp_path):
    store = SQLiteEntityStore(
        SQLiteClient(DatabaseSettings(url=f"sqlite:///{tmp_path}/test.db"))
    )
    yield store
    store.close()


@pytest.fixture
def audit_logger():
    return RecordingAuditLogger()


@pytest.fixture
def engine(store, ledger_settings, audit_logger):
    return LedgerEngine(store, ledger_settings, audit_logger)


@pytest.fixture
def ledger(engine):
    return engine.for_owner(OWNER_ID)


@pytest_asyncio.fixture
async def accounts(ledger):
    """Account A with 100, account B with 0."""
    account_a = await ledger.open_account("Checking", initial_balance=Decimal("100"))
    account_b = await ledger.open_account("Savings")
    return account_a, account_b
