"""
SQLite Storage Implementation

DESIGN DECISION: SQLite is the local entity store because:
1. The data belongs to one person on one device
2. No server setup required
3. Real transactions: a ledger mutation touches up to four records and
   they must commit together
4. The database is a single file the user can copy

TRADEOFFS:
- One writer at a time (we serialize atomic blocks ourselves anyway)
- SQLAlchemy calls are synchronous; the async interface runs them
  inline since every call is a local file operation

The implementation follows the abstract interface, so the engines
never import SQLAlchemy.
"""

import asyncio
from contextlib import asynccontextmanager
from enum import Enum
from typing import AsyncIterator, Optional

import structlog
from sqlalchemy import create_engine, delete, func, or_, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from kakeibo_core.config import DatabaseSettings, get_settings
from kakeibo_core.models.entities import (
    Account,
    Budget,
    Category,
    CategoryType,
    Goal,
    GoalStatus,
    Transaction,
    TransactionFilters,
    User,
)
from kakeibo_core.services.storage.interface import (
    Collection,
    ConnectionError,
    DuplicateError,
    EntityStore,
    NotFoundError,
    Record,
    StorageError,
    UnitOfWork,
)
from kakeibo_core.services.storage.tables import (
    AccountRow,
    Base,
    BudgetRow,
    CategoryRow,
    GoalRow,
    TransactionRow,
    UserRow,
)


logger = structlog.get_logger(__name__)


# Row class and record model per collection
TABLES = {
    Collection.USERS: (UserRow, User),
    Collection.ACCOUNTS: (AccountRow, Account),
    Collection.CATEGORIES: (CategoryRow, Category),
    Collection.TRANSACTIONS: (TransactionRow, Transaction),
    Collection.BUDGETS: (BudgetRow, Budget),
    Collection.GOALS: (GoalRow, Goal),
}

COLLECTION_OF = {model: collection for collection, (_, model) in TABLES.items()}


def _record_to_row_values(record: Record) -> dict:
    """Convert a record to column values."""
    values = record.model_dump()
    for key, value in values.items():
        if isinstance(value, Enum):
            values[key] = value.value
    return values


def _row_to_record(collection: Collection, row) -> Record:
    """Convert a row to a detached record."""
    _, model = TABLES[collection]
    return model.model_validate(
        {column.key: getattr(row, column.key) for column in row.__table__.columns}
    )


def _collection_of(record: Record) -> Collection:
    try:
        return COLLECTION_OF[type(record)]
    except KeyError:
        raise StorageError(f"Not a storable record: {type(record).__name__}")


class SQLiteClient:
    """
    Low-level SQLite client wrapper.

    Opens the database and creates the schema, retrying while the file
    is locked by another process.
    """

    def __init__(self, settings: Optional[DatabaseSettings] = None):
        self._settings = settings or get_settings().database
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker[Session]] = None

    def _create_engine(self) -> Engine:
        if self._settings.is_in_memory:
            # One shared connection, otherwise every session sees an empty database
            return create_engine(
                self._settings.url,
                echo=self._settings.echo,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        return create_engine(self._settings.url, echo=self._settings.echo)

    def connect(self) -> sessionmaker[Session]:
        """
        Open the database and make sure every table exists.

        Raises:
            ConnectionError: If the database cannot be opened after
                             the configured number of attempts
        """
        if self._session_factory is None:
            retrying = Retrying(
                stop=stop_after_attempt(self._settings.connect_attempts),
                wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
                retry=retry_if_exception_type(OperationalError),
                reraise=True,
            )
            try:
                for attempt in retrying:
                    with attempt:
                        engine = self._create_engine()
                        try:
                            Base.metadata.create_all(engine)
                        except OperationalError:
                            engine.dispose()
                            raise
            except SQLAlchemyError as e:
                raise ConnectionError(f"Failed to open database {self._settings.url}: {e}")

            self._engine = engine
            self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)
            logger.info("store_opened", url=self._settings.url)

        return self._session_factory

    def session(self) -> Session:
        return self.connect()()

    def dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._session_factory = None


class SQLiteUnitOfWork(UnitOfWork):
    """
    Unit of work over one SQLAlchemy session.

    Rows never leave this class: every read returns a fresh Pydantic
    record, and every write copies the record's fields into a row.
    """

    def __init__(self, session: Session):
        self._session = session

    async def get(self, collection: Collection, record_id: str) -> Optional[Record]:
        row_class, _ = TABLES[collection]
        row = self._session.get(row_class, record_id)
        if row is None:
            return None
        return _row_to_record(collection, row)

    async def insert(self, record: Record) -> Record:
        collection = _collection_of(record)
        row_class, _ = TABLES[collection]
        if self._session.get(row_class, record.id) is not None:
            raise DuplicateError(f"{collection.value} record already exists: {record.id}")
        self._session.add(row_class(**_record_to_row_values(record)))
        self._session.flush()
        return record

    async def save(self, record: Record) -> Record:
        collection = _collection_of(record)
        row_class, _ = TABLES[collection]
        row = self._session.get(row_class, record.id)
        if row is None:
            raise NotFoundError(f"{collection.value} record not found: {record.id}")
        for key, value in _record_to_row_values(record).items():
            setattr(row, key, value)
        self._session.flush()
        return record

    async def upsert(self, record: Record) -> Record:
        collection = _collection_of(record)
        row_class, _ = TABLES[collection]
        self._session.merge(row_class(**_record_to_row_values(record)))
        self._session.flush()
        return record

    async def delete(self, collection: Collection, record_id: str) -> bool:
        row_class, _ = TABLES[collection]
        row = self._session.get(row_class, record_id)
        if row is None:
            return False
        self._session.delete(row)
        self._session.flush()
        return True

    async def list_accounts(
        self,
        owner_id: str,
        is_active: Optional[bool] = None,
    ) -> list[Account]:
        stmt = select(AccountRow).where(AccountRow.owner_id == owner_id)
        if is_active is not None:
            stmt = stmt.where(AccountRow.is_active == is_active)
        stmt = stmt.order_by(AccountRow.created_at, AccountRow.id)
        return [
            _row_to_record(Collection.ACCOUNTS, row)
            for row in self._session.scalars(stmt)
        ]

    async def list_categories(
        self,
        owner_id: str,
        category_type: Optional[CategoryType] = None,
    ) -> list[Category]:
        stmt = select(CategoryRow).where(CategoryRow.owner_id == owner_id)
        if category_type is not None:
            stmt = stmt.where(CategoryRow.type == category_type.value)
        stmt = stmt.order_by(CategoryRow.order, CategoryRow.name)
        return [
            _row_to_record(Collection.CATEGORIES, row)
            for row in self._session.scalars(stmt)
        ]

    async def list_transactions(
        self,
        owner_id: str,
        filters: Optional[TransactionFilters] = None,
    ) -> list[Transaction]:
        filters = filters or TransactionFilters()
        stmt = select(TransactionRow).where(TransactionRow.owner_id == owner_id)

        # Apply filters
        if filters.type is not None:
            stmt = stmt.where(TransactionRow.type == filters.type.value)
        if filters.account_id:
            stmt = stmt.where(
                or_(
                    TransactionRow.account_id == filters.account_id,
                    TransactionRow.to_account_id == filters.account_id,
                )
            )
        if filters.category_id:
            stmt = stmt.where(TransactionRow.category_id == filters.category_id)
        if filters.goal_id:
            stmt = stmt.where(TransactionRow.goal_id == filters.goal_id)
        if filters.date_from is not None:
            stmt = stmt.where(TransactionRow.date >= filters.date_from)
        if filters.date_to is not None:
            stmt = stmt.where(TransactionRow.date <= filters.date_to)

        # Newest first, then pagination
        stmt = stmt.order_by(
            TransactionRow.date.desc(),
            TransactionRow.created_at.desc(),
            TransactionRow.id,
        )
        if filters.offset:
            stmt = stmt.offset(filters.offset)
        if filters.limit is not None:
            stmt = stmt.limit(filters.limit)

        return [
            _row_to_record(Collection.TRANSACTIONS, row)
            for row in self._session.scalars(stmt)
        ]

    async def list_budgets(
        self,
        owner_id: str,
        is_active: Optional[bool] = None,
    ) -> list[Budget]:
        stmt = select(BudgetRow).where(BudgetRow.owner_id == owner_id)
        if is_active is not None:
            stmt = stmt.where(BudgetRow.is_active == is_active)
        stmt = stmt.order_by(BudgetRow.created_at, BudgetRow.id)
        return [
            _row_to_record(Collection.BUDGETS, row)
            for row in self._session.scalars(stmt)
        ]

    async def list_goals(
        self,
        owner_id: str,
        status: Optional[GoalStatus] = None,
    ) -> list[Goal]:
        stmt = select(GoalRow).where(GoalRow.owner_id == owner_id)
        if status is not None:
            stmt = stmt.where(GoalRow.status == status.value)
        stmt = stmt.order_by(GoalRow.created_at, GoalRow.id)
        return [
            _row_to_record(Collection.GOALS, row)
            for row in self._session.scalars(stmt)
        ]

    async def count_account_references(self, account_id: str) -> int:
        stmt = select(func.count()).select_from(TransactionRow).where(
            or_(
                TransactionRow.account_id == account_id,
                TransactionRow.to_account_id == account_id,
            )
        )
        return self._session.scalar(stmt) or 0

    async def count_owned(self, collection: Collection, owner_id: str) -> int:
        row_class, _ = TABLES[collection]
        if collection == Collection.USERS:
            return 1 if self._session.get(UserRow, owner_id) is not None else 0
        stmt = select(func.count()).select_from(row_class).where(
            row_class.owner_id == owner_id
        )
        return self._session.scalar(stmt) or 0

    async def reassign_owner(
        self,
        collection: Collection,
        from_owner_id: str,
        to_owner_id: str,
        exclude_defaults: bool = False,
    ) -> int:
        if collection == Collection.USERS:
            raise StorageError("User records are not owned and cannot be reassigned")

        row_class, _ = TABLES[collection]
        stmt = update(row_class).where(row_class.owner_id == from_owner_id)
        if exclude_defaults and collection == Collection.CATEGORIES:
            stmt = stmt.where(CategoryRow.is_default.is_(False))
        stmt = stmt.values(owner_id=to_owner_id).execution_options(
            synchronize_session=False
        )
        result = self._session.execute(stmt)
        self._session.expire_all()
        return result.rowcount

    async def delete_default_categories(self, owner_id: str) -> int:
        stmt = (
            delete(CategoryRow)
            .where(CategoryRow.owner_id == owner_id)
            .where(CategoryRow.is_default.is_(True))
            .execution_options(synchronize_session=False)
        )
        result = self._session.execute(stmt)
        self._session.expire_all()
        return result.rowcount


class SQLiteEntityStore(EntityStore):
    """
    SQLite implementation of the entity store.

    CRITICAL: atomic() and read() blocks are serialized by one lock.
    Never open a block from inside another block on the same store:
    the lock is not reentrant.
    """

    def __init__(self, client: Optional[SQLiteClient] = None):
        self._client = client or SQLiteClient()
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[UnitOfWork]:
        async with self._lock:
            session = self._client.session()
            logger.debug("transaction_started")
            try:
                yield SQLiteUnitOfWork(session)
                session.commit()
                logger.debug("transaction_committed")
            except SQLAlchemyError as e:
                session.rollback()
                logger.warning("transaction_rolled_back", error=str(e))
                raise StorageError(f"Store transaction failed: {e}") from e
            except Exception as e:
                session.rollback()
                logger.warning(
                    "transaction_rolled_back",
                    error_type=type(e).__name__,
                    error=str(e),
                )
                raise
            finally:
                session.close()

    @asynccontextmanager
    async def read(self) -> AsyncIterator[UnitOfWork]:
        async with self._lock:
            session = self._client.session()
            try:
                yield SQLiteUnitOfWork(session)
            except SQLAlchemyError as e:
                raise StorageError(f"Store read failed: {e}") from e
            finally:
                session.rollback()
                session.close()

    def close(self) -> None:
        self._client.dispose()
        logger.info("store_closed")
