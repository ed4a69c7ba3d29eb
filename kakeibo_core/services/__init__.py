"""Services package."""

from kakeibo_core.services.storage import (
    Collection,
    ConnectionError,
    DuplicateError,
    EntityStore,
    NotFoundError,
    SQLiteClient,
    SQLiteEntityStore,
    StorageError,
    UnitOfWork,
)

__all__ = [
    # Storage services
    "Collection",
    "ConnectionError",
    "DuplicateError",
    "EntityStore",
    "NotFoundError",
    "SQLiteClient",
    "SQLiteEntityStore",
    "StorageError",
    "UnitOfWork",
]
