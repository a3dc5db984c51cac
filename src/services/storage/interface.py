"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap the in-memory store for SQLite (or anything else) without
   touching business logic
2. Use in-memory storage for testing
3. Keep business logic decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
Every mutation happens inside a transaction:

    async with store.transaction() as tx:
        user = await tx.get(User, user_id)
        ...
        await tx.update(group)

The transaction commits when the block exits normally and rolls back
when anything raises. Partial writes are never observable.
"""

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Optional, TypeVar

from pydantic import BaseModel

from src.models.audit import AuditEvent
from src.models.expense import Expense, ExpenseCategory, Group, User
from src.models.template import ExpenseTemplate


EntityT = TypeVar("EntityT", bound=BaseModel)

# Every kind the store knows about, and the field that identifies it.
ENTITY_KEYS: dict[type, str] = {
    User: "id",
    Group: "id",
    Expense: "id",
    ExpenseCategory: "title",
    ExpenseTemplate: "id",
}

# Secondary unique constraints (the key field is always unique).
UNIQUE_FIELDS: dict[type, tuple[str, ...]] = {
    User: ("external_auth_id",),
}


def entity_key(entity: BaseModel) -> Any:
    """Return the identifying value of a stored entity."""
    try:
        field = ENTITY_KEYS[type(entity)]
    except KeyError:
        raise StorageError(f"Unsupported entity type: {type(entity).__name__}")
    return getattr(entity, field)


class StoreTransaction(ABC):
    """
    A unit of work against the expense store.

    Reads inside a transaction see the transaction's own writes.
    Nothing is visible to other readers until commit().
    """

    @abstractmethod
    async def get(self, kind: type[EntityT], key: Any) -> Optional[EntityT]:
        """
        Fetch one entity by its key.

        Args:
            kind: Entity class (User, Group, Expense, ExpenseCategory)
            key: The id (or title, for categories)

        Returns:
            A copy of the entity if found, None otherwise
        """
        pass

    @abstractmethod
    async def insert(self, entity: BaseModel) -> None:
        """
        Insert a new entity.

        Raises:
            DuplicateError: If the key or a unique field already exists
        """
        pass

    @abstractmethod
    async def update(self, entity: BaseModel) -> None:
        """
        Replace a stored entity with this version.

        Raises:
            NotFoundError: If the entity doesn't exist
            DuplicateError: If the change violates a unique field
        """
        pass

    @abstractmethod
    async def delete(self, entity: BaseModel) -> None:
        """
        Delete an entity.

        Raises:
            NotFoundError: If the entity doesn't exist
        """
        pass

    @abstractmethod
    async def query(
        self,
        kind: type[EntityT],
        predicate: Optional[Callable[[EntityT], bool]] = None,
        sort_key: Optional[Callable[[EntityT], Any]] = None,
        descending: bool = False,
    ) -> list[EntityT]:
        """
        List entities of one kind.

        Args:
            kind: Entity class
            predicate: Keep only entities for which this returns True
            sort_key: Sort by this key (store order if None)
            descending: Reverse the sort

        Returns:
            Copies of the matching entities
        """
        pass

    @abstractmethod
    async def commit(self) -> None:
        """
        Make every write in this transaction durable.

        Raises:
            PersistenceError: If the store fails to commit. None of the
                              transaction's writes are applied.
        """
        pass

    @abstractmethod
    async def rollback(self) -> None:
        """Discard every write in this transaction."""
        pass


class ExpenseStoreInterface(ABC):
    """
    Abstract interface for the expense store.

    Any storage implementation (in-memory, SQLite, etc.)
    must implement these methods.
    """

    async def connect(self) -> None:
        """Prepare the backend (create schema, open pools). Optional."""
        return None

    async def close(self) -> None:
        """Release backend resources. Optional."""
        return None

    @abstractmethod
    async def begin(self) -> StoreTransaction:
        """Start a new transaction."""
        pass

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[StoreTransaction]:
        """
        Run a block inside one transaction.

        Commits on normal exit, rolls back on any exception.
        """
        tx = await self.begin()
        try:
            yield tx
        except BaseException:
            await tx.rollback()
            raise
        await tx.commit()


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Args:
            event: The audit event to log

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Args:
            entity_type: Type of entity (e.g., 'expense', 'group')
            entity_id: The entity's id (or category title)

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Args:
            limit: Maximum number of events to return

        Returns:
            List of recent events (newest first)
        """
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


class StoreUnavailableError(StorageError):
    """Could not connect to storage backend."""
    pass


class PersistenceError(StorageError):
    """The store failed to commit; nothing from the transaction is durable."""
    pass
