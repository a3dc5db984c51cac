"""
Membership Manager

Groups and who belongs to them.

Membership per (group, user) is a two-state machine:

    NotMember --add_member--> Member       (AlreadyMemberError if Member)
    NotMember --join_group--> Member       (no-op if Member)
    Member --remove_member--> NotMember    (no-op if NotMember)
    Member --leave_group--> NotMember      (NotGroupMemberError if NotMember)

A group with no members left after leave_group is deleted along with
its expenses.

CRITICAL: Adding or removing a member never touches a group's expenses.
A member who leaves keeps authorship of what they logged in the group.
"""

from typing import Optional

from src.models.audit import AuditEventBuilder
from src.models.expense import Expense, Group, User, parse_entity_id
from src.models.identity import Session
from src.services.base import AuditedService, rejects_invalid
from src.services.errors import (
    AlreadyMemberError,
    CreatorCannotLeaveError,
    GroupNotFoundError,
    InvalidGroupNameError,
    NotAuthenticatedError,
    NotGroupMemberError,
    UserNotFoundError,
)
from src.services.expenses import EntityId, detach_expense
from src.services.storage import StoreTransaction


class GroupService(AuditedService):
    """Create groups and manage their membership."""

    async def _require_group(self, tx: StoreTransaction, group_id: EntityId) -> Group:
        group = await tx.get(Group, parse_entity_id(group_id))
        if group is None:
            raise GroupNotFoundError(f"Group not found: {group_id}")
        return group

    async def _require_session_user(self, tx: StoreTransaction, session: Session, action: str) -> User:
        if not session.is_authenticated:
            raise NotAuthenticatedError(f"Sign in to {action}")
        user = await tx.get(User, session.user_uuid)
        if user is None:
            raise UserNotFoundError(f"User not found: {session.user_id}")
        return user

    async def create_group(self, session: Session, name: str) -> Group:
        """
        Create a group with the signed-in user as its first member.

        Raises:
            NotAuthenticatedError: If nobody is signed in
            UserNotFoundError: If the session's user no longer exists
            InvalidGroupNameError: If the name is blank or too long
        """
        async with self._operation("create_group", entity_type="group"):
            async with self._store.transaction() as tx:
                creator = await self._require_session_user(tx, session, "create a group")
                with rejects_invalid(InvalidGroupNameError, "group name"):
                    group = Group(
                        name=name,
                        created_by=creator.id,
                        member_ids=[creator.id],
                    )
                await tx.insert(group)

        await self._audit(AuditEventBuilder.group_created(group.id, group.name, creator.id))
        return group

    async def get_group(self, group_id: EntityId) -> Group:
        async with self._store.transaction() as tx:
            return await self._require_group(tx, group_id)

    async def rename_group(self, group_id: EntityId, name: str) -> Group:
        """
        Rename a group. Members and expenses are unchanged.

        Raises:
            GroupNotFoundError, InvalidGroupNameError
        """
        async with self._operation("rename_group", "group", str(group_id)):
            async with self._store.transaction() as tx:
                group = await self._require_group(tx, group_id)
                old_name = group.name
                with rejects_invalid(InvalidGroupNameError, "group name"):
                    group.name = name
                await tx.update(group)

        await self._audit(AuditEventBuilder.group_renamed(group.id, old_name, group.name))
        return group

    async def list_groups(self, session: Session) -> list[Group]:
        """Groups the session's user belongs to, by name."""
        user_id = session.user_uuid
        if user_id is None:
            return []
        async with self._store.transaction() as tx:
            return await tx.query(
                Group,
                predicate=lambda g: g.has_member(user_id),
                sort_key=lambda g: g.name.casefold(),
            )

    async def add_member(self, group_id: EntityId, user_id: EntityId) -> Group:
        """
        Add a user to a group.

        Raises:
            GroupNotFoundError: If the group doesn't exist
            UserNotFoundError: If no user has this id
            AlreadyMemberError: If the user already belongs to the group
        """
        async with self._operation("add_member", "group", str(group_id)):
            async with self._store.transaction() as tx:
                group = await self._require_group(tx, group_id)
                user = await tx.get(User, parse_entity_id(user_id))
                if user is None:
                    raise UserNotFoundError(f"User not found: {user_id}")
                if group.has_member(user.id):
                    raise AlreadyMemberError(
                        f"User {user.id} is already a member of group {group.id}"
                    )
                group.member_ids.append(user.id)
                await tx.update(group)

        await self._audit(AuditEventBuilder.member_added(group.id, user.id))
        return group

    async def remove_member(self, group_id: EntityId, user_id: EntityId) -> Group:
        """
        Remove a user from a group. Removing a non-member is a no-op.

        Raises:
            GroupNotFoundError: If the group doesn't exist
        """
        async with self._operation("remove_member", "group", str(group_id)):
            member_id = parse_entity_id(user_id)
            async with self._store.transaction() as tx:
                group = await self._require_group(tx, group_id)
                was_member = member_id is not None and group.has_member(member_id)
                if was_member:
                    group.member_ids = [m for m in group.member_ids if m != member_id]
                    await tx.update(group)

        if member_id is not None:
            await self._audit(AuditEventBuilder.member_removed(group.id, member_id, was_member))
        return group

    async def is_member(self, group_id: EntityId, user_id: EntityId) -> bool:
        group = await self.get_group(group_id)
        member_id = parse_entity_id(user_id)
        return member_id is not None and group.has_member(member_id)

    async def get_members(self, group_id: EntityId) -> list[User]:
        """Members in the order they joined. Missing users are skipped."""
        async with self._store.transaction() as tx:
            group = await self._require_group(tx, group_id)
            members = []
            for member_id in group.member_ids:
                user = await tx.get(User, member_id)
                if user is not None:
                    members.append(user)
            return members

    async def delete_group(self, group_id: EntityId) -> int:
        """
        Delete a group together with the expenses it owns.

        Returns:
            Number of expenses deleted with the group
        """
        async with self._operation("delete_group", "group", str(group_id)):
            async with self._store.transaction() as tx:
                group = await self._require_group(tx, group_id)
                deleted = await self._delete_with_expenses(tx, group)

        await self._audit(AuditEventBuilder.group_deleted(group.id, deleted))
        return deleted

    async def _delete_with_expenses(self, tx: StoreTransaction, group: Group) -> int:
        owned = await tx.query(
            Expense,
            lambda e: e.id in group.expense_ids or e.group_id == group.id,
        )
        for expense in owned:
            await detach_expense(tx, expense, from_group=False)
            await tx.delete(expense)
        await tx.delete(group)
        return len(owned)

    async def join_group(self, session: Session, code: str) -> Group:
        """
        Join a group using its invite code (the group id).

        Joining a group you already belong to returns it unchanged.

        Raises:
            NotAuthenticatedError, UserNotFoundError,
            GroupNotFoundError: If no group matches the code
        """
        async with self._operation("join_group", "group", str(code)):
            async with self._store.transaction() as tx:
                user = await self._require_session_user(tx, session, "join a group")
                group = await tx.get(Group, parse_entity_id(code))
                if group is None:
                    raise GroupNotFoundError(f"Invalid group code: {code}")
                if group.has_member(user.id):
                    return group
                group.member_ids.append(user.id)
                await tx.update(group)

        await self._audit(AuditEventBuilder.member_added(group.id, user.id))
        return group

    async def leave_group(self, session: Session, group_id: EntityId) -> Optional[Group]:
        """
        Leave a group as the signed-in user.

        The creator may only leave once nobody else is in the group.
        When the last member leaves, the group is deleted together with
        its expenses.

        Returns:
            The updated group, or None if it was deleted

        Raises:
            NotAuthenticatedError, UserNotFoundError, GroupNotFoundError,
            NotGroupMemberError: If the user isn't in the group
            CreatorCannotLeaveError: If the creator leaves while others remain
        """
        async with self._operation("leave_group", "group", str(group_id)):
            async with self._store.transaction() as tx:
                user = await self._require_session_user(tx, session, "leave a group")
                group = await self._require_group(tx, group_id)
                if not group.has_member(user.id):
                    raise NotGroupMemberError(
                        f"User {user.id} is not a member of group {group.id}"
                    )
                if group.created_by == user.id and len(group.member_ids) > 1:
                    raise CreatorCannotLeaveError(
                        "The group creator can't leave while other members remain"
                    )

                group.member_ids = [m for m in group.member_ids if m != user.id]
                deleted = None
                if group.member_ids:
                    await tx.update(group)
                else:
                    deleted = await self._delete_with_expenses(tx, group)

        await self._audit(AuditEventBuilder.member_removed(group.id, user.id, True))
        if deleted is not None:
            await self._audit(AuditEventBuilder.group_deleted(group.id, deleted))
            return None
        return group

