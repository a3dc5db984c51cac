"""
User Directory

Lookups over identity records, plus removal with soft-orphan semantics.

No flow in the app removes users today; remove_user exists so the rule
"deleting a user never deletes their expenses" holds wherever a user
does get removed.
"""

from typing import Optional

from src.models.audit import AuditEventBuilder
from src.models.expense import Expense, Group, User, parse_entity_id
from src.models.template import ExpenseTemplate
from src.services.base import AuditedService
from src.services.errors import UserNotFoundError
from src.services.expenses import EntityId


class UserDirectory(AuditedService):
    """Read access to users, and soft-orphaning removal."""

    async def get_user(self, user_id: EntityId) -> User:
        async with self._store.transaction() as tx:
            user = await tx.get(User, parse_entity_id(user_id))
        if user is None:
            raise UserNotFoundError(f"User not found: {user_id}")
        return user

    async def find_by_external_id(self, external_auth_id: str) -> Optional[User]:
        async with self._store.transaction() as tx:
            matches = await tx.query(User, lambda u: u.external_auth_id == external_auth_id)
        return matches[0] if matches else None

    async def list_users(self) -> list[User]:
        async with self._store.transaction() as tx:
            return await tx.query(User, sort_key=lambda u: u.created_at)

    async def remove_user(self, user_id: EntityId) -> int:
        """
        Delete a user.

        Their expenses stay, with author_id set to None, and they are
        dropped from every group's members. Templates they own are
        deleted with them.

        Returns:
            Number of expenses left without an author
        """
        async with self._operation("remove_user", "user", str(user_id)):
            async with self._store.transaction() as tx:
                user = await tx.get(User, parse_entity_id(user_id))
                if user is None:
                    raise UserNotFoundError(f"User not found: {user_id}")

                authored = await tx.query(Expense, lambda e: e.author_id == user.id)
                for expense in authored:
                    expense.author_id = None
                    await tx.update(expense)

                groups = await tx.query(Group, lambda g: g.has_member(user.id))
                for group in groups:
                    group.member_ids = [m for m in group.member_ids if m != user.id]
                    await tx.update(group)

                for template in await tx.query(ExpenseTemplate, lambda t: t.created_by == user.id):
                    await tx.delete(template)

                await tx.delete(user)

        await self._audit(AuditEventBuilder.user_removed(user.id, len(authored)))
        return len(authored)
