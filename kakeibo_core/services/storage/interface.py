"""
Abstract Entity Store Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap the embedded SQLite store for another backend
2. Keep ledger logic decoupled from the storage implementation
3. Make the atomic-transaction boundary explicit in the engines

Every read and write happens through a UnitOfWork obtained from
EntityStore.atomic() (mutations, committed as one transaction) or
EntityStore.read() (queries, never committed). The interface is
intentionally small - we're not building a full ORM.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from enum import Enum
from typing import Optional, Union

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


Record = Union[User, Account, Category, Transaction, Budget, Goal]


class Collection(str, Enum):
    """The six persisted entity collections."""
    USERS = "users"
    ACCOUNTS = "accounts"
    CATEGORIES = "categories"
    TRANSACTIONS = "transactions"
    BUDGETS = "budgets"
    GOALS = "goals"


class UnitOfWork(ABC):
    """
    Reads and writes inside one store transaction.

    Records returned by get/list are detached copies: changing them has
    no effect until they are passed back to save().
    """

    @abstractmethod
    async def get(self, collection: Collection, record_id: str) -> Optional[Record]:
        """
        Retrieve a record by its ID.

        Returns:
            The record if found, None otherwise
        """
        pass

    @abstractmethod
    async def insert(self, record: Record) -> Record:
        """
        Insert a new record.

        Raises:
            DuplicateError: If a record with the same ID exists
        """
        pass

    @abstractmethod
    async def save(self, record: Record) -> Record:
        """
        Overwrite an existing record.

        Raises:
            NotFoundError: If the record doesn't exist
        """
        pass

    @abstractmethod
    async def upsert(self, record: Record) -> Record:
        """Insert the record, replacing any existing record with the same ID."""
        pass

    @abstractmethod
    async def delete(self, collection: Collection, record_id: str) -> bool:
        """
        Delete a record by ID.

        Returns:
            True if a record was deleted
        """
        pass

    @abstractmethod
    async def list_accounts(
        self,
        owner_id: str,
        is_active: Optional[bool] = None,
    ) -> list[Account]:
        pass

    @abstractmethod
    async def list_categories(
        self,
        owner_id: str,
        category_type: Optional[CategoryType] = None,
    ) -> list[Category]:
        pass

    @abstractmethod
    async def list_transactions(
        self,
        owner_id: str,
        filters: Optional[TransactionFilters] = None,
    ) -> list[Transaction]:
        """
        List an owner's transactions, newest first.

        Args:
            owner_id: Owner scope
            filters: Optional type/account/category/goal/date filters
                     and pagination
        """
        pass

    @abstractmethod
    async def list_budgets(
        self,
        owner_id: str,
        is_active: Optional[bool] = None,
    ) -> list[Budget]:
        pass

    @abstractmethod
    async def list_goals(
        self,
        owner_id: str,
        status: Optional[GoalStatus] = None,
    ) -> list[Goal]:
        pass

    @abstractmethod
    async def count_account_references(self, account_id: str) -> int:
        """Count transactions using the account as source or destination."""
        pass

    @abstractmethod
    async def count_owned(self, collection: Collection, owner_id: str) -> int:
        """
        Count records referencing owner_id.

        For the users collection this is 1 if the user record exists.
        """
        pass

    @abstractmethod
    async def reassign_owner(
        self,
        collection: Collection,
        from_owner_id: str,
        to_owner_id: str,
        exclude_defaults: bool = False,
    ) -> int:
        """
        Move every record of a collection from one owner to another.

        Args:
            collection: Any collection except users
            exclude_defaults: Leave default categories untouched

        Returns:
            Number of records reassigned
        """
        pass

    @abstractmethod
    async def delete_default_categories(self, owner_id: str) -> int:
        """Delete an owner's default categories. Returns the number deleted."""
        pass


class EntityStore(ABC):
    """
    Abstract interface for the local entity store.

    Any storage implementation must guarantee that everything done
    through one atomic() unit of work is committed together or not at
    all, and that atomic() blocks never interleave.
    """

    @abstractmethod
    def atomic(self) -> AbstractAsyncContextManager[UnitOfWork]:
        """
        Open a unit of work that commits on success.

        Usage:
            async with store.atomic() as uow:
                account = await uow.get(Collection.ACCOUNTS, account_id)
                ...

        Raises:
            StorageError: If the store rejects the transaction. Nothing
                          done inside the block is kept.
        """
        pass

    @abstractmethod
    def read(self) -> AbstractAsyncContextManager[UnitOfWork]:
        """Open a unit of work for queries. Nothing is committed."""
        pass

    @abstractmethod
    def close(self) -> None:
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not open the storage backend."""
    pass
