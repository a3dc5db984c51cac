"""
SQL Storage Implementation

DESIGN DECISION: SQLite (through SQLAlchemy's asyncio extension and
aiosqlite) is the persistent backend because:
1. It is embedded - no server to run on a single device
2. It gives us real transactions and unique constraints
3. Any other SQLAlchemy async URL works without code changes

TRADEOFFS:
- Queries load one table and filter in Python (fine at our volume:
  dozens to hundreds of records)
- List-valued fields (member ids, expense ids) are stored as JSON text
- Timestamps are stored as ISO strings so timezone info survives SQLite

The implementation follows the abstract interface, so business logic
never sees SQLAlchemy.
"""

import asyncio
import json
from datetime import datetime
from typing import Any, Callable, NamedTuple, Optional
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy import Boolean, Column, Integer, String, Text, select
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.models.audit import AuditEvent, AuditEventType, AuditSeverity
from src.models.expense import Expense, ExpenseCategory, Group, User
from src.models.template import ExpenseTemplate, TemplateItem
from src.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    EntityT,
    ExpenseStoreInterface,
    NotFoundError,
    PersistenceError,
    StorageError,
    StoreTransaction,
    StoreUnavailableError,
    entity_key,
)


Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True)
    external_auth_id = Column(String(255), unique=True, nullable=False, index=True)
    display_name = Column(String(200), nullable=False, default="")
    created_at = Column(String(40), nullable=False)


class GroupRow(Base):
    __tablename__ = "groups"

    id = Column(String(36), primary_key=True)
    name = Column(String(200), nullable=False)
    created_by = Column(String(36), nullable=True)
    created_at = Column(String(40), nullable=False)
    member_ids_json = Column(Text, nullable=False, default="[]")
    expense_ids_json = Column(Text, nullable=False, default="[]")


class ExpenseRow(Base):
    __tablename__ = "expenses"

    id = Column(String(36), primary_key=True)
    name = Column(String(200), nullable=False, default="")
    amount = Column(Integer, nullable=False)
    author_id = Column(String(36), nullable=True, index=True)
    group_id = Column(String(36), nullable=True, index=True)
    category_title = Column(String(100), nullable=True)
    is_completed = Column(Boolean, nullable=False, default=False)
    timestamp = Column(String(40), nullable=False)
    status = Column(String(100), nullable=False, default="")


class CategoryRow(Base):
    __tablename__ = "categories"

    title = Column(String(100), primary_key=True)
    item_ids_json = Column(Text, nullable=False, default="[]")
    created_at = Column(String(40), nullable=False)


class TemplateRow(Base):
    __tablename__ = "expense_templates"

    id = Column(String(36), primary_key=True)
    name = Column(String(200), nullable=False)
    description = Column(String(500), nullable=False, default="")
    created_by = Column(String(36), nullable=False, index=True)
    created_at = Column(String(40), nullable=False)
    items_json = Column(Text, nullable=False, default="[]")
    is_shared = Column(Boolean, nullable=False, default=False)


class AuditEventRow(Base):
    __tablename__ = "audit_events"

    event_id = Column(String(36), primary_key=True)
    timestamp = Column(String(40), nullable=False, index=True)
    event_type = Column(String(50), nullable=False)
    severity = Column(String(20), nullable=False)
    entity_type = Column(String(20), nullable=True)
    entity_id = Column(String(100), nullable=True)
    actor_id = Column(String(36), nullable=True)
    description = Column(String(500), nullable=False)
    details_json = Column(Text, nullable=False, default="{}")
    error_code = Column(String(100), nullable=True)
    error_message = Column(Text, nullable=True)


# =============================================================================
# ROW <-> MODEL CONVERSION
# =============================================================================

def _ids_to_json(ids: list[UUID]) -> str:
    return json.dumps([str(i) for i in ids])


def _ids_from_json(raw: Optional[str]) -> list[UUID]:
    return [UUID(i) for i in json.loads(raw or "[]")]


def _optional_uuid(raw: Optional[str]) -> Optional[UUID]:
    return UUID(raw) if raw else None


def _user_to_fields(user: User) -> dict:
    return {
        "id": str(user.id),
        "external_auth_id": user.external_auth_id,
        "display_name": user.display_name,
        "created_at": user.created_at.isoformat(),
    }


def _row_to_user(row: UserRow) -> User:
    return User(
        id=UUID(row.id),
        external_auth_id=row.external_auth_id,
        display_name=row.display_name or "",
        created_at=datetime.fromisoformat(row.created_at),
    )


def _group_to_fields(group: Group) -> dict:
    return {
        "id": str(group.id),
        "name": group.name,
        "created_by": str(group.created_by) if group.created_by else None,
        "created_at": group.created_at.isoformat(),
        "member_ids_json": _ids_to_json(group.member_ids),
        "expense_ids_json": _ids_to_json(group.expense_ids),
    }


def _row_to_group(row: GroupRow) -> Group:
    return Group(
        id=UUID(row.id),
        name=row.name,
        created_by=_optional_uuid(row.created_by),
        created_at=datetime.fromisoformat(row.created_at),
        member_ids=_ids_from_json(row.member_ids_json),
        expense_ids=_ids_from_json(row.expense_ids_json),
    )


def _expense_to_fields(expense: Expense) -> dict:
    return {
        "id": str(expense.id),
        "name": expense.name,
        "amount": expense.amount,
        "author_id": str(expense.author_id) if expense.author_id else None,
        "group_id": str(expense.group_id) if expense.group_id else None,
        "category_title": expense.category_title,
        "is_completed": expense.is_completed,
        "timestamp": expense.timestamp.isoformat(),
        "status": expense.status,
    }


def _row_to_expense(row: ExpenseRow) -> Expense:
    return Expense(
        id=UUID(row.id),
        name=row.name or "",
        amount=row.amount,
        author_id=_optional_uuid(row.author_id),
        group_id=_optional_uuid(row.group_id),
        category_title=row.category_title,
        is_completed=bool(row.is_completed),
        timestamp=datetime.fromisoformat(row.timestamp),
        status=row.status or "",
    )


def _category_to_fields(category: ExpenseCategory) -> dict:
    return {
        "title": category.title,
        "item_ids_json": _ids_to_json(category.item_ids),
        "created_at": category.created_at.isoformat(),
    }


def _row_to_category(row: CategoryRow) -> ExpenseCategory:
    return ExpenseCategory(
        title=row.title,
        item_ids=_ids_from_json(row.item_ids_json),
        created_at=datetime.fromisoformat(row.created_at),
    )


def _template_to_fields(template: ExpenseTemplate) -> dict:
    return {
        "id": str(template.id),
        "name": template.name,
        "description": template.description,
        "created_by": str(template.created_by),
        "created_at": template.created_at.isoformat(),
        "items_json": json.dumps([item.model_dump(mode="json") for item in template.items]),
        "is_shared": template.is_shared,
    }


def _row_to_template(row: TemplateRow) -> ExpenseTemplate:
    return ExpenseTemplate(
        id=UUID(row.id),
        name=row.name,
        description=row.description or "",
        created_by=UUID(row.created_by),
        created_at=datetime.fromisoformat(row.created_at),
        items=[TemplateItem.model_validate(item) for item in json.loads(row.items_json or "[]")],
        is_shared=bool(row.is_shared),
    )


class _RowMapping(NamedTuple):
    row: type
    to_fields: Callable[[Any], dict]
    from_row: Callable[[Any], BaseModel]


ROW_MAPPINGS: dict[type, _RowMapping] = {
    User: _RowMapping(UserRow, _user_to_fields, _row_to_user),
    Group: _RowMapping(GroupRow, _group_to_fields, _row_to_group),
    Expense: _RowMapping(ExpenseRow, _expense_to_fields, _row_to_expense),
    ExpenseCategory: _RowMapping(CategoryRow, _category_to_fields, _row_to_category),
    ExpenseTemplate: _RowMapping(TemplateRow, _template_to_fields, _row_to_template),
}


def _mapping(kind: type) -> _RowMapping:
    try:
        return ROW_MAPPINGS[kind]
    except KeyError:
        raise StorageError(f"Unsupported entity type: {kind.__name__}")


# =============================================================================
# TRANSACTIONS
# =============================================================================

class SqlTransaction(StoreTransaction):
    """A transaction backed by one AsyncSession."""

    def __init__(self, session: AsyncSession, lock: asyncio.Lock):
        self._session = session
        self._lock = lock
        self._closed = False

    async def _get_row(self, kind: type, key: Any):
        return await self._session.get(_mapping(kind).row, str(key))

    async def _flush(self, entity: BaseModel) -> None:
        try:
            await self._session.flush()
        except IntegrityError as e:
            raise DuplicateError(
                f"{type(entity).__name__} violates a unique constraint: {entity_key(entity)}"
            ) from e

    async def get(self, kind: type[EntityT], key: Any) -> Optional[EntityT]:
        row = await self._get_row(kind, key)
        return _mapping(kind).from_row(row) if row is not None else None

    async def insert(self, entity: BaseModel) -> None:
        mapping = _mapping(type(entity))
        key = entity_key(entity)
        if await self._get_row(type(entity), key) is not None:
            raise DuplicateError(f"{type(entity).__name__} already exists: {key}")
        self._session.add(mapping.row(**mapping.to_fields(entity)))
        await self._flush(entity)

    async def update(self, entity: BaseModel) -> None:
        mapping = _mapping(type(entity))
        key = entity_key(entity)
        row = await self._get_row(type(entity), key)
        if row is None:
            raise NotFoundError(f"{type(entity).__name__} not found: {key}")
        for field, value in mapping.to_fields(entity).items():
            setattr(row, field, value)
        await self._flush(entity)

    async def delete(self, entity: BaseModel) -> None:
        key = entity_key(entity)
        row = await self._get_row(type(entity), key)
        if row is None:
            raise NotFoundError(f"{type(entity).__name__} not found: {key}")
        await self._session.delete(row)
        await self._session.flush()

    async def query(
        self,
        kind: type[EntityT],
        predicate: Optional[Callable[[EntityT], bool]] = None,
        sort_key: Optional[Callable[[EntityT], Any]] = None,
        descending: bool = False,
    ) -> list[EntityT]:
        mapping = _mapping(kind)
        result = await self._session.execute(select(mapping.row))
        entities = [mapping.from_row(row) for row in result.scalars().all()]
        if predicate is not None:
            entities = [e for e in entities if predicate(e)]
        if sort_key is not None:
            entities.sort(key=sort_key, reverse=descending)
        return entities

    async def commit(self) -> None:
        if self._closed:
            raise StorageError("Transaction is already closed")
        try:
            await self._session.commit()
        except SQLAlchemyError as e:
            await self._session.rollback()
            raise PersistenceError(f"Failed to commit: {e}") from e
        finally:
            await self._close()

    async def rollback(self) -> None:
        if self._closed:
            return
        try:
            await self._session.rollback()
        finally:
            await self._close()

    async def _close(self) -> None:
        self._closed = True
        try:
            await self._session.close()
        finally:
            self._lock.release()


class SqlExpenseStore(ExpenseStoreInterface):
    """
    SQLAlchemy implementation of the expense store.

    Transactions in this process are serialized; the unique constraints
    on users.external_auth_id and categories.title guard against other
    processes sharing the same database file.
    """

    def __init__(self, database_url: str, echo: bool = False):
        self._database_url = database_url
        self._engine = create_async_engine(database_url, echo=echo, future=True)
        self._session_factory = sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        self._lock = asyncio.Lock()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(OperationalError),
        reraise=True,
    )
    async def _create_schema(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def connect(self) -> None:
        """Create tables if they don't exist yet."""
        try:
            await self._create_schema()
        except SQLAlchemyError as e:
            raise StoreUnavailableError(
                f"Failed to open expense store at {self._database_url}: {e}"
            ) from e

    async def close(self) -> None:
        await self._engine.dispose()

    async def begin(self) -> SqlTransaction:
        await self._lock.acquire()
        return SqlTransaction(self._session_factory(), self._lock)

    @property
    def session_factory(self) -> sessionmaker:
        return self._session_factory


class SqlAuditStorage(AuditStorageInterface):
    """
    Audit log stored in the audit_events table of the expense database.

    Writes go through their own session, outside business transactions,
    so a rolled-back operation still leaves its rejection on record.
    """

    def __init__(self, store: SqlExpenseStore):
        self._session_factory = store.session_factory

    def _event_to_row(self, event: AuditEvent) -> AuditEventRow:
        return AuditEventRow(
            event_id=str(event.event_id),
            timestamp=event.timestamp.isoformat(),
            event_type=event.event_type.value,
            severity=event.severity.value,
            entity_type=event.entity_type,
            entity_id=event.entity_id,
            actor_id=event.actor_id,
            description=event.description,
            details_json=json.dumps(event.details, default=str),
            error_code=event.error_code,
            error_message=event.error_message,
        )

    def _row_to_event(self, row: AuditEventRow) -> AuditEvent:
        return AuditEvent(
            event_id=UUID(row.event_id),
            timestamp=datetime.fromisoformat(row.timestamp),
            event_type=AuditEventType(row.event_type),
            severity=AuditSeverity(row.severity),
            entity_type=row.entity_type,
            entity_id=row.entity_id,
            actor_id=row.actor_id,
            description=row.description,
            details=json.loads(row.details_json or "{}"),
            error_code=row.error_code,
            error_message=row.error_message,
        )

    async def append_event(self, event: AuditEvent) -> bool:
        try:
            async with self._session_factory() as session:
                session.add(self._event_to_row(event))
                await session.commit()
            return True
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to append audit event: {e}") from e

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(AuditEventRow)
                .where(AuditEventRow.entity_type == entity_type)
                .where(AuditEventRow.entity_id == entity_id)
                .order_by(AuditEventRow.timestamp)
            )
            return [self._row_to_event(row) for row in result.scalars().all()]

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(AuditEventRow)
                .order_by(AuditEventRow.timestamp.desc())
                .limit(limit)
            )
            return [self._row_to_event(row) for row in result.scalars().all()]
