"""
Expense Records

Create, edit, complete and delete expenses, and the default "active"
view of expenses that are not completed yet.

DESIGN DECISION: Amounts are integer cents. Anything else (floats,
fractional or non-finite decimals, negatives, bools) is rejected with
InvalidAmountError before the store is touched.

CRITICAL: Deleting an expense removes its id from the owning group and
from every category in the same transaction as the delete itself, so
no collection ever points at a missing expense.
"""

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, AsyncIterator, Callable, Optional, Union
from uuid import UUID

from src.models.audit import AuditEventBuilder
from src.models.expense import (
    Expense,
    ExpenseCategory,
    Group,
    User,
    parse_entity_id,
    utcnow,
)
from src.models.identity import Session
from src.services.base import AuditedService, rejects_invalid
from src.services.errors import (
    CategoryNotFoundError,
    ExpenseNotFoundError,
    ExpenseStateError,
    GroupNotFoundError,
    InvalidAmountError,
    InvalidExpenseError,
    UserNotFoundError,
)
from src.services.storage import ExpenseStoreInterface, StoreTransaction

if TYPE_CHECKING:
    from src.audit.logger import AuditLogger


EntityId = Union[UUID, str]


def coerce_amount(value: Any, maximum: Optional[int] = None) -> int:
    """
    Validate an amount in cents.

    Accepts ints and integral, finite Decimals.

    Raises:
        InvalidAmountError: For anything else, negatives, or values
                            above the configured maximum
    """
    if isinstance(value, bool):
        raise InvalidAmountError("Amount must be a number of cents, not a boolean")

    if isinstance(value, int):
        cents = value
    elif isinstance(value, Decimal):
        if not value.is_finite():
            raise InvalidAmountError(f"Amount must be finite, got {value}")
        if value != value.to_integral_value():
            raise InvalidAmountError(f"Amount must be whole cents, got {value}")
        cents = int(value)
    else:
        raise InvalidAmountError(
            f"Amount must be whole cents (int or Decimal), got {type(value).__name__}"
        )

    if cents < 0:
        raise InvalidAmountError(f"Amount cannot be negative: {cents}")
    if maximum is not None and cents > maximum:
        raise InvalidAmountError(f"Amount {cents} exceeds the maximum of {maximum}")
    return cents


async def detach_expense(
    tx: StoreTransaction,
    expense: Expense,
    from_group: bool = True,
) -> None:
    """
    Remove an expense id from every collection that lists it.

    Args:
        from_group: Also remove it from the owning group's expense_ids.
                    Callers deleting the group itself pass False.
    """
    if from_group and expense.group_id is not None:
        group = await tx.get(Group, expense.group_id)
        if group is not None and expense.id in group.expense_ids:
            group.expense_ids = [i for i in group.expense_ids if i != expense.id]
            await tx.update(group)

    tagged = await tx.query(ExpenseCategory, lambda c: expense.id in c.item_ids)
    for category in tagged:
        category.item_ids = [i for i in category.item_ids if i != expense.id]
        await tx.update(category)


async def record_expense(
    tx: StoreTransaction,
    *,
    name: str,
    cents: int,
    timestamp: datetime,
    author_id: Optional[EntityId] = None,
    group_id: Optional[EntityId] = None,
    status: str = "",
    category_title: Optional[str] = None,
) -> Expense:
    """
    Insert an already-validated amount as a new expense and link it to
    its group and category, all inside the caller's transaction.

    Raises:
        UserNotFoundError, GroupNotFoundError, CategoryNotFoundError,
        InvalidExpenseError: If the name or status doesn't fit the model
    """
    author_uuid = None
    if author_id is not None:
        author = await tx.get(User, parse_entity_id(author_id))
        if author is None:
            raise UserNotFoundError(f"User not found: {author_id}")
        author_uuid = author.id

    group = None
    if group_id is not None:
        group = await tx.get(Group, parse_entity_id(group_id))
        if group is None:
            raise GroupNotFoundError(f"Group not found: {group_id}")

    category = None
    if category_title is not None:
        category = await tx.get(ExpenseCategory, category_title)
        if category is None:
            raise CategoryNotFoundError(f"Category not found: {category_title}")

    with rejects_invalid(InvalidExpenseError, "expense"):
        expense = Expense(
            name=name,
            amount=cents,
            author_id=author_uuid,
            group_id=group.id if group else None,
            category_title=category.title if category else None,
            timestamp=timestamp,
            status=status,
        )
    await tx.insert(expense)

    if group is not None:
        group.expense_ids.append(expense.id)
        await tx.update(group)
    if category is not None:
        category.item_ids.append(expense.id)
        await tx.update(category)
    return expense


class ActiveExpenses:
    """
    Lazy view of incomplete expenses, newest first.

    Nothing is read until iteration starts, and every new iteration
    queries the store again, so creations and deletions made in between
    are visible:

        active = service.list_active()
        names = [e.name async for e in active]
    """

    def __init__(
        self,
        store: ExpenseStoreInterface,
        session: Optional[Session] = None,
    ):
        self._store = store
        self._session = session

    def __aiter__(self) -> AsyncIterator[Expense]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Expense]:
        async with self._store.transaction() as tx:
            predicate = await self._visibility(tx)
            expenses = await tx.query(
                Expense,
                predicate=predicate,
                sort_key=lambda e: e.timestamp,
                descending=True,
            )
        for expense in expenses:
            yield expense

    async def _visibility(self, tx: StoreTransaction) -> Callable[[Expense], bool]:
        if self._session is None or not self._session.is_authenticated:
            return lambda e: not e.is_completed

        user_id = self._session.user_uuid
        if user_id is None:
            # A session naming no real user owns nothing
            return lambda e: False

        groups = await tx.query(Group, lambda g: g.has_member(user_id))
        group_ids = {g.id for g in groups}
        return lambda e: not e.is_completed and (
            e.author_id == user_id or e.group_id in group_ids
        )

    async def to_list(self) -> list[Expense]:
        return [expense async for expense in self]


class ExpenseService(AuditedService):
    """Expense creation, editing, completion and deletion."""

    def __init__(
        self,
        store: ExpenseStoreInterface,
        audit_logger: Optional["AuditLogger"] = None,
        max_amount_cents: Optional[int] = None,
        clock: Callable[[], Any] = utcnow,
    ):
        super().__init__(store, audit_logger)
        self._max_amount_cents = max_amount_cents
        self._clock = clock

    async def _require_expense(self, tx: StoreTransaction, expense_id: EntityId) -> Expense:
        expense = await tx.get(Expense, parse_entity_id(expense_id))
        if expense is None:
            raise ExpenseNotFoundError(f"Expense not found: {expense_id}")
        return expense

    async def create_expense(
        self,
        name: str,
        amount: Any,
        *,
        author_id: Optional[EntityId] = None,
        group_id: Optional[EntityId] = None,
        status: str = "",
        category_title: Optional[str] = None,
    ) -> Expense:
        """
        Record a new expense.

        Args:
            name: What the money was spent on
            amount: Cents (int or integral Decimal), >= 0
            author_id: Existing user, if any
            group_id: Existing group that will own the expense, if any
            status: Free-text status label
            category_title: Existing category to tag it with, if any

        Raises:
            InvalidAmountError, InvalidExpenseError, UserNotFoundError,
            GroupNotFoundError, CategoryNotFoundError, PersistenceError
        """
        async with self._operation("create_expense", entity_type="expense"):
            cents = coerce_amount(amount, self._max_amount_cents)

            async with self._store.transaction() as tx:
                expense = await record_expense(
                    tx,
                    name=name,
                    cents=cents,
                    timestamp=self._clock(),
                    author_id=author_id,
                    group_id=group_id,
                    status=status,
                    category_title=category_title,
                )

        await self._audit(AuditEventBuilder.expense_created(
            expense.id, expense.amount, expense.author_id, expense.group_id,
        ))
        return expense

    async def get_expense(self, expense_id: EntityId) -> Expense:
        async with self._store.transaction() as tx:
            return await self._require_expense(tx, expense_id)

    async def toggle_completion(self, expense_id: EntityId) -> Expense:
        """Flip is_completed and persist it."""
        async with self._operation("toggle_completion", "expense", str(expense_id)):
            async with self._store.transaction() as tx:
                expense = await self._require_expense(tx, expense_id)
                expense.is_completed = not expense.is_completed
                await tx.update(expense)

        await self._audit(AuditEventBuilder.expense_completion_toggled(
            expense.id, expense.is_completed,
        ))
        return expense

    async def _set_completion(self, operation: str, expense_id: EntityId, completed: bool) -> Expense:
        async with self._operation(operation, "expense", str(expense_id)):
            async with self._store.transaction() as tx:
                expense = await self._require_expense(tx, expense_id)
                if expense.is_completed == completed:
                    state = "settled" if completed else "unsettled"
                    raise ExpenseStateError(f"Expense {expense.id} is already {state}")
                expense.is_completed = completed
                await tx.update(expense)

        await self._audit(AuditEventBuilder.expense_completion_toggled(
            expense.id, expense.is_completed,
        ))
        return expense

    async def settle_expense(self, expense_id: EntityId) -> Expense:
        """
        Mark an expense completed.

        Raises:
            ExpenseStateError: If it is already settled
        """
        return await self._set_completion("settle_expense", expense_id, True)

    async def unsettle_expense(self, expense_id: EntityId) -> Expense:
        """
        Mark a completed expense as outstanding again.

        Raises:
            ExpenseStateError: If it isn't settled
        """
        return await self._set_completion("unsettle_expense", expense_id, False)

    async def update_expense(
        self,
        expense_id: EntityId,
        *,
        name: Optional[str] = None,
        amount: Any = None,
        status: Optional[str] = None,
    ) -> Expense:
        """
        Edit an expense. Fields left as None are unchanged.

        id and timestamp never change.

        Raises:
            ExpenseNotFoundError, InvalidAmountError,
            InvalidExpenseError: If the name or status doesn't fit
        """
        async with self._operation("update_expense", "expense", str(expense_id)):
            cents = coerce_amount(amount, self._max_amount_cents) if amount is not None else None

            async with self._store.transaction() as tx:
                expense = await self._require_expense(tx, expense_id)
                before = expense.model_dump(include={"name", "amount", "status"})
                with rejects_invalid(InvalidExpenseError, "expense"):
                    if name is not None:
                        expense.name = name
                    if cents is not None:
                        expense.amount = cents
                    if status is not None:
                        expense.status = status
                changed = sorted(
                    field for field, value in before.items()
                    if getattr(expense, field) != value
                )
                if changed:
                    await tx.update(expense)

        await self._audit(AuditEventBuilder.expense_updated(expense.id, changed))
        return expense

    async def set_category(
        self,
        expense_id: EntityId,
        category_title: Optional[str],
    ) -> Expense:
        """
        Tag an expense with a category, or untag it with None.

        Raises:
            ExpenseNotFoundError, CategoryNotFoundError
        """
        async with self._operation("set_category", "expense", str(expense_id)):
            async with self._store.transaction() as tx:
                expense = await self._require_expense(tx, expense_id)

                new_category = None
                if category_title is not None:
                    new_category = await tx.get(ExpenseCategory, category_title)
                    if new_category is None:
                        raise CategoryNotFoundError(f"Category not found: {category_title}")

                if expense.category_title != category_title:
                    if expense.category_title is not None:
                        old_category = await tx.get(ExpenseCategory, expense.category_title)
                        if old_category is not None:
                            old_category.item_ids = [
                                i for i in old_category.item_ids if i != expense.id
                            ]
                            await tx.update(old_category)
                    if new_category is not None and expense.id not in new_category.item_ids:
                        new_category.item_ids.append(expense.id)
                        await tx.update(new_category)

                    expense.category_title = category_title
                    await tx.update(expense)

        await self._audit(AuditEventBuilder.expense_categorized(expense.id, category_title))
        return expense

    async def delete_expense(self, expense_id: EntityId) -> None:
        """
        Delete an expense and every reference to it.

        Raises:
            ExpenseNotFoundError: If the expense doesn't exist
        """
        async with self._operation("delete_expense", "expense", str(expense_id)):
            async with self._store.transaction() as tx:
                expense = await self._require_expense(tx, expense_id)
                await detach_expense(tx, expense)
                await tx.delete(expense)

        await self._audit(AuditEventBuilder.expense_deleted(expense.id, expense.group_id))

    def list_active(self, session: Optional[Session] = None) -> ActiveExpenses:
        """
        Incomplete expenses, newest first, as a lazy restartable view.

        With a signed-in session, only expenses the user authored or
        that belong to one of the user's groups are included.
        """
        return ActiveExpenses(self._store, session)

    async def list_group_expenses(self, group_id: EntityId) -> list[Expense]:
        """A group's expenses, newest first."""
        async with self._store.transaction() as tx:
            group = await tx.get(Group, parse_entity_id(group_id))
            if group is None:
                raise GroupNotFoundError(f"Group not found: {group_id}")
            owned = set(group.expense_ids)
            return await tx.query(
                Expense,
                predicate=lambda e: e.id in owned,
                sort_key=lambda e: e.timestamp,
                descending=True,
            )

    async def list_unsettled(self, group_id: EntityId) -> list[Expense]:
        """A group's incomplete expenses, newest first."""
        return [e for e in await self.list_group_expenses(group_id) if not e.is_completed]

    async def outstanding_total(self, group_id: EntityId) -> int:
        """Sum in cents of a group's expenses not yet completed."""
        return sum(e.amount for e in await self.list_unsettled(group_id))
