"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Ships an in-memory backend and a SQLAlchemy (SQLite) backend; business
logic only ever sees the interfaces.
"""

from src.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    ExpenseStoreInterface,
    NotFoundError,
    PersistenceError,
    StorageError,
    StoreTransaction,
    StoreUnavailableError,
)
from src.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryExpenseStore,
)
from src.services.storage.sql import (
    SqlAuditStorage,
    SqlExpenseStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "ExpenseStoreInterface",
    "StoreTransaction",
    # Exceptions
    "DuplicateError",
    "NotFoundError",
    "PersistenceError",
    "StorageError",
    "StoreUnavailableError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryExpenseStore",
    # SQL implementation
    "SqlAuditStorage",
    "SqlExpenseStore",
]
