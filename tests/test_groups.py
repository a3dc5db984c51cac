"""Tests for groups and membership."""

from uuid import uuid4

import pytest

from src.models.audit import AuditEventType
from src.models.expense import Expense, Group
from src.models.identity import Session
from src.services import (
    AlreadyMemberError,
    CreatorCannotLeaveError,
    GroupNotFoundError,
    InvalidGroupNameError,
    NotAuthenticatedError,
    NotGroupMemberError,
    UserNotFoundError,
)


class TestCreateGroup:
    """Tests for group creation."""

    async def test_creator_is_first_member(self, groups, alice):
        """Test a new group has its creator as the only member."""
        group = await groups.create_group(alice, "Household")
        assert group.member_ids == [alice.user_uuid]
        assert group.created_by == alice.user_uuid
        assert group.expense_ids == []

    async def test_requires_sign_in(self, groups, store):
        """Test anonymous sessions can't create groups."""
        with pytest.raises(NotAuthenticatedError):
            await groups.create_group(Session.anonymous(), "Household")
        assert store.count(Group) == 0

    async def test_unknown_session_user(self, groups):
        """Test a session for a removed user is refused."""
        ghost = Session(user_id=str(uuid4()), display_name="Ghost")
        with pytest.raises(UserNotFoundError):
            await groups.create_group(ghost, "Household")

    async def test_rename(self, groups, household):
        """Test renaming keeps members and expenses."""
        renamed = await groups.rename_group(household.id, "  Flat  ")
        assert renamed.name == "Flat"
        assert renamed.member_ids == household.member_ids

    async def test_list_groups_by_name(self, groups, alice, bob):
        """Test a user's groups come back sorted by name."""
        await groups.create_group(alice, "Trip")
        await groups.create_group(alice, "flat")
        await groups.create_group(bob, "Bob only")
        assert [g.name for g in await groups.list_groups(alice)] == ["flat", "Trip"]
        assert await groups.list_groups(Session.anonymous()) == []


class TestMembership:
    """Tests for the member state machine."""

    async def test_add_and_remove(self, groups, household, bob):
        """Test NotMember -> Member -> NotMember."""
        await groups.add_member(household.id, bob.user_id)
        assert await groups.is_member(household.id, bob.user_id)
        assert [u.display_name for u in await groups.get_members(household.id)] == ["Alice", "Bob"]

        await groups.remove_member(household.id, bob.user_id)
        assert not await groups.is_member(household.id, bob.user_id)
        assert (await groups.get_group(household.id)).member_ids == household.member_ids

    async def test_add_nonexistent_user(self, groups, household):
        """Test an unknown user id fails and leaves members unchanged."""
        with pytest.raises(UserNotFoundError):
            await groups.add_member(household.id, "nonexistent-id")
        with pytest.raises(UserNotFoundError):
            await groups.add_member(household.id, uuid4())
        assert (await groups.get_group(household.id)).member_ids == household.member_ids

    async def test_add_twice(self, groups, household, bob):
        """Test adding an existing member is refused."""
        await groups.add_member(household.id, bob.user_id)
        with pytest.raises(AlreadyMemberError):
            await groups.add_member(household.id, bob.user_id)
        assert len((await groups.get_group(household.id)).member_ids) == 2

    async def test_add_to_missing_group(self, groups, bob):
        """Test adding to an unknown group raises."""
        with pytest.raises(GroupNotFoundError):
            await groups.add_member(uuid4(), bob.user_id)

    async def test_remove_non_member_is_noop(self, groups, household, bob):
        """Test removing someone who isn't a member changes nothing."""
        group = await groups.remove_member(household.id, bob.user_id)
        assert group.member_ids == household.member_ids
        group = await groups.remove_member(household.id, "nonexistent-id")
        assert group.member_ids == household.member_ids

    async def test_membership_changes_keep_expenses(self, groups, expenses, household, bob):
        """Test a member leaving keeps their group expenses and authorship."""
        await groups.add_member(household.id, bob.user_id)
        lunch = await expenses.create_expense(
            "Lunch", 500, author_id=bob.user_id, group_id=household.id
        )
        await groups.remove_member(household.id, bob.user_id)

        group = await groups.get_group(household.id)
        assert group.expense_ids == [lunch.id]
        assert (await expenses.get_expense(lunch.id)).author_id == bob.user_uuid

    async def test_membership_audited(self, groups, household, bob, audit_storage):
        """Test add and remove are recorded against the group."""
        await groups.add_member(household.id, bob.user_id)
        await groups.remove_member(household.id, bob.user_id)
        events = await audit_storage.get_events_by_entity("group", str(household.id))
        assert [e.event_type for e in events] == [
            AuditEventType.GROUP_CREATED,
            AuditEventType.MEMBER_ADDED,
            AuditEventType.MEMBER_REMOVED,
        ]


class TestDeleteGroup:
    """Tests for group deletion."""

    async def test_delete_cascades_to_owned_expenses(self, groups, expenses, categories, household, store):
        """Test a group's expenses go with it and leave no dangling tags."""
        await categories.seed_defaults()
        await expenses.create_expense("Rent", 120_000, group_id=household.id, category_title="👀 house")
        await expenses.create_expense("Power", 8_000, group_id=household.id)
        personal = await expenses.create_expense("Coffee", 350)

        deleted = await groups.delete_group(household.id)

        assert deleted == 2
        assert store.count(Group) == 0
        assert [e.id for e in await expenses.list_active().to_list()] == [personal.id]
        assert await categories.items("👀 house") == []
        assert (await categories.get_category("👀 house")).item_ids == []

    async def test_delete_keeps_users(self, groups, users, household, bob):
        """Test deleting a group removes membership, not users."""
        await groups.add_member(household.id, bob.user_id)
        await groups.delete_group(household.id)
        assert len(await users.list_users()) == 2

    async def test_delete_missing(self, groups):
        """Test deleting an unknown group raises."""
        with pytest.raises(GroupNotFoundError):
            await groups.delete_group(uuid4())


class TestGroupNameValidation:
    """Tests for names that don't fit a group."""

    @pytest.mark.parametrize("name", ["", "   ", "x" * 201])
    async def test_create_rejects_bad_name(self, groups, alice, store, audit_storage, name):
        """Test a blank or over-long name raises a domain error and is audited."""
        with pytest.raises(InvalidGroupNameError):
            await groups.create_group(alice, name)
        assert store.count(Group) == 0

        events = await audit_storage.get_recent_events()
        assert events[0].event_type == AuditEventType.OPERATION_REJECTED
        assert events[0].error_code == "InvalidGroupNameError"

    @pytest.mark.parametrize("name", ["", "   ", "x" * 201])
    async def test_rename_rejects_bad_name(self, groups, household, name):
        """Test a bad rename leaves the stored name unchanged."""
        with pytest.raises(InvalidGroupNameError):
            await groups.rename_group(household.id, name)
        assert (await groups.get_group(household.id)).name == "Household"


class TestJoinGroup:
    """Tests for joining a group by its code."""

    async def test_join_by_code(self, groups, household, bob):
        """Test the group id works as an invite code."""
        group = await groups.join_group(bob, str(household.id))
        assert group.member_ids == [household.created_by, bob.user_uuid]
        assert await groups.is_member(household.id, bob.user_id)

    async def test_join_twice_is_idempotent(self, groups, household, bob, audit_storage):
        """Test joining again changes nothing and logs no second add."""
        await groups.join_group(bob, str(household.id))
        again = await groups.join_group(bob, str(household.id))
        assert again.member_ids.count(bob.user_uuid) == 1

        events = await audit_storage.get_events_by_entity("group", str(household.id))
        added = [e for e in events if e.event_type == AuditEventType.MEMBER_ADDED]
        assert len(added) == 1

    async def test_creator_join_is_noop(self, groups, household, alice):
        """Test the creator joining their own group keeps one membership."""
        group = await groups.join_group(alice, str(household.id))
        assert group.member_ids == household.member_ids

    @pytest.mark.parametrize("code", ["not-a-code", "", str(uuid4())])
    async def test_unknown_code(self, groups, bob, code):
        """Test malformed and unknown codes raise GroupNotFoundError."""
        with pytest.raises(GroupNotFoundError):
            await groups.join_group(bob, code)

    async def test_join_requires_sign_in(self, groups, household):
        """Test anonymous sessions can't join."""
        with pytest.raises(NotAuthenticatedError):
            await groups.join_group(Session.anonymous(), str(household.id))


class TestLeaveGroup:
    """Tests for leaving a group."""

    async def test_member_leaves(self, groups, household, bob):
        """Test a non-creator member can leave."""
        await groups.join_group(bob, str(household.id))
        group = await groups.leave_group(bob, household.id)
        assert group.member_ids == [household.created_by]
        assert not await groups.is_member(household.id, bob.user_id)

    async def test_non_member_cannot_leave(self, groups, household, bob):
        """Test leaving a group you're not in raises NotGroupMemberError."""
        with pytest.raises(NotGroupMemberError):
            await groups.leave_group(bob, household.id)

    async def test_creator_cannot_leave_while_others_remain(self, groups, household, alice, bob):
        """Test the creator is held in the group until everyone else leaves."""
        await groups.join_group(bob, str(household.id))
        with pytest.raises(CreatorCannotLeaveError):
            await groups.leave_group(alice, household.id)
        assert (await groups.get_group(household.id)).member_ids == [alice.user_uuid, bob.user_uuid]

    async def test_last_member_leaving_deletes_group(
        self, groups, expenses, categories, household, alice, bob, store
    ):
        """Test the group and its expenses go when the last member leaves."""
        await categories.seed_defaults()
        await groups.join_group(bob, str(household.id))
        await expenses.create_expense(
            "Rent", 120_000, group_id=household.id, category_title="👀 house"
        )
        await groups.leave_group(bob, household.id)

        assert await groups.leave_group(alice, household.id) is None
        assert store.count(Group) == 0
        assert store.count(Expense) == 0
        assert await categories.items("👀 house") == []

    async def test_leave_missing_group(self, groups, bob):
        """Test leaving an unknown group raises."""
        with pytest.raises(GroupNotFoundError):
            await groups.leave_group(bob, uuid4())

    async def test_leave_requires_sign_in(self, groups, household):
        """Test anonymous sessions can't leave."""
        with pytest.raises(NotAuthenticatedError):
            await groups.leave_group(Session.anonymous(), household.id)

    async def test_leave_audited(self, groups, household, alice, audit_storage):
        """Test the last departure records removal then deletion."""
        await groups.leave_group(alice, household.id)
        events = await audit_storage.get_events_by_entity("group", str(household.id))
        assert [e.event_type for e in events] == [
            AuditEventType.GROUP_CREATED,
            AuditEventType.MEMBER_REMOVED,
            AuditEventType.GROUP_DELETED,
        ]
