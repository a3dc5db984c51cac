"""
Category Registry

Categories are labels unique by exact, case-sensitive title. A fixed
set of three is seeded on first launch, only when no category exists.
"""

from typing import Optional

from src.models.audit import AuditEventBuilder
from src.models.expense import (
    DEFAULT_CATEGORY_TITLES,
    Expense,
    ExpenseCategory,
)
from src.services.base import AuditedService, rejects_invalid
from src.services.errors import (
    CategoryNotFoundError,
    DuplicateTitleError,
    InvalidCategoryTitleError,
)
from src.services.storage import DuplicateError


def default_categories() -> list[ExpenseCategory]:
    """The seed categories, in display order. Fresh instances every call."""
    return [ExpenseCategory(title=title) for title in DEFAULT_CATEGORY_TITLES]


class CategoryRegistry(AuditedService):
    """Create, list and delete expense categories."""

    @staticmethod
    def default_categories() -> list[ExpenseCategory]:
        return default_categories()

    async def seed_defaults(self) -> list[ExpenseCategory]:
        """
        Insert the default categories if the registry is empty.

        Returns:
            The inserted categories; empty if categories already existed
        """
        async with self._operation("seed_defaults", entity_type="category"):
            async with self._store.transaction() as tx:
                if await tx.query(ExpenseCategory):
                    return []
                seeded = default_categories()
                for category in seeded:
                    await tx.insert(category)

        await self._audit(
            AuditEventBuilder.categories_seeded([c.title for c in seeded])
        )
        return seeded

    async def create_category(self, title: str) -> ExpenseCategory:
        """
        Add a category.

        Raises:
            InvalidCategoryTitleError: If the title is blank or over 100 characters
            DuplicateTitleError: If the exact title already exists
        """
        async with self._operation("create_category", "category", title):
            if not isinstance(title, str) or not title.strip():
                raise InvalidCategoryTitleError("Category title must not be blank")

            with rejects_invalid(InvalidCategoryTitleError, "category title"):
                category = ExpenseCategory(title=title)
            try:
                async with self._store.transaction() as tx:
                    if await tx.get(ExpenseCategory, title) is not None:
                        raise DuplicateTitleError(f"Category already exists: {title}")
                    await tx.insert(category)
            except DuplicateError as e:
                raise DuplicateTitleError(f"Category already exists: {title}") from e

        await self._audit(AuditEventBuilder.category_created(title))
        return category

    async def get_category(self, title: str) -> Optional[ExpenseCategory]:
        async with self._store.transaction() as tx:
            return await tx.get(ExpenseCategory, title)

    async def list_categories(self) -> list[ExpenseCategory]:
        """All categories, oldest first. Ties keep insertion order."""
        async with self._store.transaction() as tx:
            return await tx.query(
                ExpenseCategory,
                sort_key=lambda c: c.created_at,
            )

    async def items(self, title: str) -> list[Expense]:
        """
        Expenses tagged with a category, in tagging order.

        Raises:
            CategoryNotFoundError: If the category doesn't exist
        """
        async with self._store.transaction() as tx:
            category = await tx.get(ExpenseCategory, title)
            if category is None:
                raise CategoryNotFoundError(f"Category not found: {title}")
            expenses = []
            for expense_id in category.item_ids:
                expense = await tx.get(Expense, expense_id)
                if expense is not None:
                    expenses.append(expense)
            return expenses

    async def delete_category(self, title: str) -> None:
        """
        Delete a category. Its expenses survive, untagged.

        Raises:
            CategoryNotFoundError: If the category doesn't exist
        """
        async with self._operation("delete_category", "category", title):
            async with self._store.transaction() as tx:
                category = await tx.get(ExpenseCategory, title)
                if category is None:
                    raise CategoryNotFoundError(f"Category not found: {title}")

                tagged = await tx.query(Expense, lambda e: e.category_title == title)
                for expense in tagged:
                    expense.category_title = None
                    await tx.update(expense)
                await tx.delete(category)

        await self._audit(AuditEventBuilder.category_deleted(title, len(tagged)))
