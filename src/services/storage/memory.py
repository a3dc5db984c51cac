"""
In-Memory Storage Implementation

Used for tests and for running without a database configured.

DESIGN DECISION: Transactions are serialized with a single asyncio.Lock
and work on a staged copy of the tables. Commit swaps the staged tables
in; rollback drops them. Stored entities are never mutated in place:
every read returns a copy and every write stores a copy, so a caller
mutating a model it got back cannot change the store behind the
transaction's back.

TRADEOFFS:
- Nothing survives a restart
- One writer at a time (fine for a single-user session)
"""

import asyncio
from typing import Any, Callable, Optional

from pydantic import BaseModel

from src.models.audit import AuditEvent
from src.services.storage.interface import (
    ENTITY_KEYS,
    UNIQUE_FIELDS,
    AuditStorageInterface,
    DuplicateError,
    EntityT,
    ExpenseStoreInterface,
    NotFoundError,
    PersistenceError,
    StorageError,
    StoreTransaction,
    entity_key,
)


Tables = dict[type, dict[Any, BaseModel]]


class InMemoryTransaction(StoreTransaction):
    """A transaction over a staged copy of the in-memory tables."""

    def __init__(self, store: "InMemoryExpenseStore", tables: Tables):
        self._store = store
        self._tables = tables
        self._closed = False

    def _table(self, kind: type) -> dict[Any, BaseModel]:
        if self._closed:
            raise StorageError("Transaction is already closed")
        try:
            return self._tables[kind]
        except KeyError:
            raise StorageError(f"Unsupported entity type: {kind.__name__}")

    def _check_unique(self, entity: BaseModel, ignore_key: Any = None) -> None:
        table = self._table(type(entity))
        for field in UNIQUE_FIELDS.get(type(entity), ()):
            value = getattr(entity, field)
            for key, other in table.items():
                if key != ignore_key and getattr(other, field) == value:
                    raise DuplicateError(
                        f"{type(entity).__name__}.{field} already exists: {value}"
                    )

    async def get(self, kind: type[EntityT], key: Any) -> Optional[EntityT]:
        entity = self._table(kind).get(key)
        return entity.model_copy(deep=True) if entity is not None else None

    async def insert(self, entity: BaseModel) -> None:
        table = self._table(type(entity))
        key = entity_key(entity)
        if key in table:
            raise DuplicateError(f"{type(entity).__name__} already exists: {key}")
        self._check_unique(entity)
        table[key] = entity.model_copy(deep=True)

    async def update(self, entity: BaseModel) -> None:
        table = self._table(type(entity))
        key = entity_key(entity)
        if key not in table:
            raise NotFoundError(f"{type(entity).__name__} not found: {key}")
        self._check_unique(entity, ignore_key=key)
        table[key] = entity.model_copy(deep=True)

    async def delete(self, entity: BaseModel) -> None:
        table = self._table(type(entity))
        key = entity_key(entity)
        if key not in table:
            raise NotFoundError(f"{type(entity).__name__} not found: {key}")
        del table[key]

    async def query(
        self,
        kind: type[EntityT],
        predicate: Optional[Callable[[EntityT], bool]] = None,
        sort_key: Optional[Callable[[EntityT], Any]] = None,
        descending: bool = False,
    ) -> list[EntityT]:
        entities = [
            entity for entity in self._table(kind).values()
            if predicate is None or predicate(entity)
        ]
        if sort_key is not None:
            entities.sort(key=sort_key, reverse=descending)
        return [entity.model_copy(deep=True) for entity in entities]

    async def commit(self) -> None:
        if self._closed:
            raise StorageError("Transaction is already closed")
        try:
            self._store._publish(self._tables)
        except Exception as e:
            raise PersistenceError(f"Failed to commit: {e}") from e
        finally:
            self._close()

    async def rollback(self) -> None:
        if not self._closed:
            self._close()

    def _close(self) -> None:
        self._closed = True
        self._store._lock.release()


class InMemoryExpenseStore(ExpenseStoreInterface):
    """
    In-memory implementation of the expense store.

    Enforces the same key and unique-field constraints as the SQL store.
    """

    def __init__(self):
        self._tables: Tables = {kind: {} for kind in ENTITY_KEYS}
        self._lock = asyncio.Lock()

    async def begin(self) -> InMemoryTransaction:
        await self._lock.acquire()
        staged = {kind: dict(table) for kind, table in self._tables.items()}
        return InMemoryTransaction(self, staged)

    def _publish(self, tables: Tables) -> None:
        """Make staged tables the live tables. Called with the lock held."""
        self._tables = tables

    def count(self, kind: type) -> int:
        """Number of committed entities of a kind."""
        return len(self._tables[kind])


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log kept in a list."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event.model_copy(deep=True))
        return True

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return list(reversed(self._events))[:limit]
