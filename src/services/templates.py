"""
Expense Templates

Reusable lists of expenses ("monthly bills") that a user keeps and
applies to one of their groups in one step.

Ownership rules:
- Only the creator edits or deletes a template.
- A template is visible to its creator, and to everyone when shared.
- Applying requires membership of the target group.

CRITICAL: Applying a template creates all of its expenses in a single
transaction. Either every item becomes an expense or none does.
"""

from typing import TYPE_CHECKING, Any, Callable, Iterable, Optional, Union

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
from src.models.template import ExpenseTemplate, TemplateItem
from src.services.base import AuditedService, rejects_invalid
from src.services.errors import (
    CategoryNotFoundError,
    GroupNotFoundError,
    InvalidAmountError,
    InvalidTemplateError,
    NotAuthenticatedError,
    NotGroupMemberError,
    NotTemplateOwnerError,
    TemplateNotFoundError,
    UserNotFoundError,
)
from src.services.expenses import EntityId, coerce_amount, record_expense
from src.services.storage import ExpenseStoreInterface, StoreTransaction

if TYPE_CHECKING:
    from src.audit.logger import AuditLogger


ItemInput = Union[TemplateItem, dict]


class TemplateService(AuditedService):
    """Create, share and apply expense templates."""

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

    async def _require_user(self, tx: StoreTransaction, session: Session, action: str) -> User:
        if not session.is_authenticated:
            raise NotAuthenticatedError(f"Sign in to {action}")
        user = await tx.get(User, session.user_uuid)
        if user is None:
            raise UserNotFoundError(f"User not found: {session.user_id}")
        return user

    async def _require_template(self, tx: StoreTransaction, template_id: EntityId) -> ExpenseTemplate:
        template = await tx.get(ExpenseTemplate, parse_entity_id(template_id))
        if template is None:
            raise TemplateNotFoundError(f"Template not found: {template_id}")
        return template

    async def _require_owned(
        self,
        tx: StoreTransaction,
        session: Session,
        template_id: EntityId,
        action: str,
    ) -> ExpenseTemplate:
        user = await self._require_user(tx, session, action)
        template = await self._require_template(tx, template_id)
        if template.created_by != user.id:
            raise NotTemplateOwnerError(
                f"Only the creator can {action}: template {template.id}"
            )
        return template

    async def _build_items(self, tx: StoreTransaction, items: Iterable[ItemInput]) -> list[TemplateItem]:
        """
        Validate raw items into TemplateItems.

        Amounts go through the same checks as expense amounts and must
        also be above zero. Categories must exist.
        """
        built = []
        for raw in items:
            data = raw.model_dump() if isinstance(raw, TemplateItem) else dict(raw)
            cents = coerce_amount(data.get("amount"), self._max_amount_cents)
            if cents == 0:
                raise InvalidAmountError("Template item amounts must be above zero")
            data["amount"] = cents

            with rejects_invalid(InvalidTemplateError, "template item"):
                item = TemplateItem.model_validate(data)
            if item.category_title is not None:
                if await tx.get(ExpenseCategory, item.category_title) is None:
                    raise CategoryNotFoundError(f"Category not found: {item.category_title}")
            built.append(item)
        return built

    async def create_template(
        self,
        session: Session,
        name: str,
        items: Iterable[ItemInput],
        description: str = "",
        is_shared: bool = False,
    ) -> ExpenseTemplate:
        """
        Save a template owned by the signed-in user.

        Args:
            items: TemplateItems or dicts with name, amount (cents) and
                   an optional category_title

        Raises:
            NotAuthenticatedError, InvalidAmountError, CategoryNotFoundError,
            InvalidTemplateError: If the name is blank or there are no items
        """
        async with self._operation("create_template", entity_type="template"):
            async with self._store.transaction() as tx:
                owner = await self._require_user(tx, session, "create a template")
                built = await self._build_items(tx, items)
                with rejects_invalid(InvalidTemplateError, "template"):
                    template = ExpenseTemplate(
                        name=name,
                        description=description,
                        created_by=owner.id,
                        items=built,
                        is_shared=is_shared,
                        created_at=self._clock(),
                    )
                await tx.insert(template)

        await self._audit(AuditEventBuilder.template_created(
            template.id, template.name, owner.id, len(template.items),
        ))
        return template

    async def get_template(self, template_id: EntityId) -> ExpenseTemplate:
        async with self._store.transaction() as tx:
            return await self._require_template(tx, template_id)

    async def list_templates(self, session: Session) -> list[ExpenseTemplate]:
        """The user's own templates plus shared ones, newest first."""
        user_id = session.user_uuid
        async with self._store.transaction() as tx:
            return await tx.query(
                ExpenseTemplate,
                predicate=lambda t: t.is_shared or (user_id is not None and t.created_by == user_id),
                sort_key=lambda t: t.created_at,
                descending=True,
            )

    async def update_template(
        self,
        session: Session,
        template_id: EntityId,
        *,
        name: Optional[str] = None,
        description: Optional[str] = None,
        items: Optional[Iterable[ItemInput]] = None,
        is_shared: Optional[bool] = None,
    ) -> ExpenseTemplate:
        """
        Edit a template. Fields left as None are unchanged.

        Raises:
            NotAuthenticatedError, TemplateNotFoundError, NotTemplateOwnerError,
            InvalidAmountError, CategoryNotFoundError, InvalidTemplateError
        """
        async with self._operation("update_template", "template", str(template_id)):
            async with self._store.transaction() as tx:
                template = await self._require_owned(tx, session, template_id, "edit a template")
                before = template.model_dump(include={"name", "description", "items", "is_shared"})
                built = await self._build_items(tx, items) if items is not None else None

                with rejects_invalid(InvalidTemplateError, "template"):
                    if name is not None:
                        template.name = name
                    if description is not None:
                        template.description = description
                    if built is not None:
                        template.items = built
                    if is_shared is not None:
                        template.is_shared = is_shared

                after = template.model_dump(include=set(before))
                changed = sorted(field for field in before if after[field] != before[field])
                if changed:
                    await tx.update(template)

        await self._audit(AuditEventBuilder.template_updated(template.id, changed))
        return template

    async def delete_template(self, session: Session, template_id: EntityId) -> None:
        """
        Delete a template. Expenses it already created are kept.

        Raises:
            NotAuthenticatedError, TemplateNotFoundError, NotTemplateOwnerError
        """
        async with self._operation("delete_template", "template", str(template_id)):
            async with self._store.transaction() as tx:
                template = await self._require_owned(tx, session, template_id, "delete a template")
                await tx.delete(template)

        await self._audit(AuditEventBuilder.template_deleted(template.id))

    async def apply_template(
        self,
        session: Session,
        template_id: EntityId,
        group_id: EntityId,
    ) -> list[Expense]:
        """
        Create one expense per template item in a group.

        The expenses are authored by the signed-in user and tagged with
        each item's category.

        Returns:
            The created expenses, in item order

        Raises:
            NotAuthenticatedError, TemplateNotFoundError,
            NotTemplateOwnerError: If the template is someone else's and not shared
            GroupNotFoundError, NotGroupMemberError,
            CategoryNotFoundError: If an item's category was deleted since
        """
        async with self._operation("apply_template", "template", str(template_id)):
            async with self._store.transaction() as tx:
                user = await self._require_user(tx, session, "apply a template")
                template = await self._require_template(tx, template_id)
                if not template.is_shared and template.created_by != user.id:
                    raise NotTemplateOwnerError(
                        f"Template {template.id} is private to its creator"
                    )

                group = await tx.get(Group, parse_entity_id(group_id))
                if group is None:
                    raise GroupNotFoundError(f"Group not found: {group_id}")
                if not group.has_member(user.id):
                    raise NotGroupMemberError(
                        f"User {user.id} is not a member of group {group.id}"
                    )

                created = []
                for item in template.items:
                    created.append(await record_expense(
                        tx,
                        name=item.name,
                        cents=coerce_amount(item.amount, self._max_amount_cents),
                        timestamp=self._clock(),
                        author_id=user.id,
                        group_id=group.id,
                        category_title=item.category_title,
                    ))

        for expense in created:
            await self._audit(AuditEventBuilder.expense_created(
                expense.id, expense.amount, expense.author_id, expense.group_id,
            ))
        await self._audit(AuditEventBuilder.template_applied(
            template.id, group.id, user.id, [e.id for e in created],
        ))
        return created
