"""
Storage Services Package

Provides the abstract entity store interface and its concrete implementation.
Currently implements SQLite as the backend, but designed to be swappable.
"""

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
from kakeibo_core.services.storage.sqlite import (
    SQLiteClient,
    SQLiteEntityStore,
    SQLiteUnitOfWork,
)

__all__ = [
    # Interfaces
    "Collection",
    "EntityStore",
    "Record",
    "UnitOfWork",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # SQLite implementation
    "SQLiteClient",
    "SQLiteEntityStore",
    "SQLiteUnitOfWork",
]
