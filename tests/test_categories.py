"""Tests for the category registry."""

import pytest

from src.models.audit import AuditEventType
from src.models.expense import DEFAULT_CATEGORY_TITLES, ExpenseCategory
from src.services import (
    CategoryNotFoundError,
    CategoryRegistry,
    DuplicateTitleError,
    InvalidCategoryTitleError,
    default_categories,
)


class TestDefaultCategories:
    """Tests for the seed set."""

    def test_default_titles_in_order(self):
        """Test the three seed titles, in display order."""
        titles = [c.title for c in CategoryRegistry.default_categories()]
        assert titles == ["👀 utilities", "👀 groceries", "👀 house"]

    def test_defaults_start_empty(self):
        """Test seed categories have no items."""
        assert all(c.item_ids == [] for c in default_categories())

    def test_defaults_are_fresh_instances(self):
        """Test callers can't mutate a shared seed list."""
        first = default_categories()
        first[0].item_ids.append("x")
        assert default_categories()[0].item_ids == []

    async def test_seed_on_empty_registry(self, categories):
        """Test first launch inserts the defaults."""
        seeded = await categories.seed_defaults()
        assert [c.title for c in seeded] == list(DEFAULT_CATEGORY_TITLES)
        assert [c.title for c in await categories.list_categories()] == list(DEFAULT_CATEGORY_TITLES)

    async def test_seed_only_once(self, categories, store):
        """Test a second launch doesn't duplicate the defaults."""
        await categories.seed_defaults()
        assert await categories.seed_defaults() == []
        assert store.count(ExpenseCategory) == 3

    async def test_seed_skipped_when_any_category_exists(self, categories):
        """Test seeding only happens when the registry is empty."""
        await categories.create_category("travel")
        assert await categories.seed_defaults() == []
        assert [c.title for c in await categories.list_categories()] == ["travel"]


class TestCreateCategory:
    """Tests for adding categories."""

    async def test_create_category(self, categories):
        """Test a new category is stored and listed."""
        category = await categories.create_category("travel")
        assert category.title == "travel"
        assert (await categories.get_category("travel")).title == "travel"

    async def test_duplicate_title_rejected(self, categories):
        """Test titles are unique."""
        await categories.create_category("travel")
        with pytest.raises(DuplicateTitleError):
            await categories.create_category("travel")
        assert len(await categories.list_categories()) == 1

    async def test_titles_are_case_sensitive(self, categories):
        """Test titles differing only by case are distinct."""
        await categories.create_category("travel")
        await categories.create_category("Travel")
        assert len(await categories.list_categories()) == 2

    async def test_duplicate_of_default_rejected(self, categories):
        """Test a seeded title can't be created again."""
        await categories.seed_defaults()
        with pytest.raises(DuplicateTitleError):
            await categories.create_category("👀 house")

    @pytest.mark.parametrize("title", ["", "   "])
    async def test_blank_title_rejected(self, categories, title):
        """Test blank titles are rejected."""
        with pytest.raises(InvalidCategoryTitleError):
            await categories.create_category(title)
        assert await categories.list_categories() == []

    async def test_over_long_title_rejected(self, categories, audit_storage):
        """Test a title over 100 characters is a domain error on record."""
        title = "x" * 101
        with pytest.raises(InvalidCategoryTitleError):
            await categories.create_category(title)
        assert await categories.list_categories() == []

        events = await audit_storage.get_recent_events()
        assert events[0].event_type == AuditEventType.OPERATION_REJECTED
        assert events[0].error_code == "InvalidCategoryTitleError"

    async def test_duplicate_audited(self, categories, audit_storage):
        """Test a duplicate leaves a rejection on record."""
        await categories.create_category("travel")
        with pytest.raises(DuplicateTitleError):
            await categories.create_category("travel")
        events = await audit_storage.get_events_by_entity("category", "travel")
        assert [e.event_type for e in events] == [
            AuditEventType.CATEGORY_CREATED,
            AuditEventType.OPERATION_REJECTED,
        ]

    async def test_get_missing_category(self, categories):
        """Test lookups of unknown titles return None."""
        assert await categories.get_category("nope") is None


class TestCategoryItems:
    """Tests for tagging and category deletion."""

    async def test_items_in_tagging_order(self, categories, expenses):
        """Test items lists tagged expenses."""
        await categories.create_category("travel")
        train = await expenses.create_expense("Train", 2500, category_title="travel")
        hotel = await expenses.create_expense("Hotel", 9000, category_title="travel")
        items = await categories.items("travel")
        assert [e.id for e in items] == [train.id, hotel.id]

    async def test_items_of_missing_category(self, categories):
        """Test items raises for an unknown title."""
        with pytest.raises(CategoryNotFoundError):
            await categories.items("nope")

    async def test_delete_category_untags_expenses(self, categories, expenses):
        """Test expenses outlive their category."""
        await categories.create_category("travel")
        train = await expenses.create_expense("Train", 2500, category_title="travel")
        await categories.delete_category("travel")

        assert await categories.get_category("travel") is None
        survivor = await expenses.get_expense(train.id)
        assert survivor.category_title is None
        assert survivor.amount == 2500

    async def test_delete_missing_category(self, categories):
        """Test deleting an unknown title raises."""
        with pytest.raises(CategoryNotFoundError):
            await categories.delete_category("nope")

    async def test_title_reusable_after_delete(self, categories):
        """Test a deleted title can be created again."""
        await categories.create_category("travel")
        await categories.delete_category("travel")
        await categories.create_category("travel")
        assert len(await categories.list_categories()) == 1
