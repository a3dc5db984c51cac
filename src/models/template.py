"""
Expense Template Models

A template is a reusable list of expense items ("monthly bills") that
a user can apply to one of their groups in a single step.

Amounts follow the same rule as expenses: integer cents.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from src.models.expense import utcnow


class TemplateItem(BaseModel):
    """One expense a template creates when applied."""
    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Name given to the created expense"
    )
    amount: int = Field(
        ...,
        gt=0,
        description="Amount in cents"
    )
    category_title: Optional[str] = Field(
        default=None,
        description="Category to tag the created expense with, if any"
    )


class ExpenseTemplate(BaseModel):
    """
    A named, user-owned list of template items.

    Only the creator may edit or delete it.
    """
    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Template name"
    )
    description: str = Field(default="", max_length=500)
    created_by: UUID = Field(
        ...,
        description="User who owns the template"
    )
    created_at: datetime = Field(default_factory=utcnow)
    items: list[TemplateItem] = Field(
        ...,
        min_length=1,
        description="Expenses created when the template is applied"
    )
    is_shared: bool = Field(
        default=False,
        description="Whether other users see the template in their list"
    )

    @property
    def total_amount(self) -> int:
        """Sum of all item amounts, in cents."""
        return sum(item.amount for item in self.items)

    def preview(self, limit: int = 3) -> list[TemplateItem]:
        return self.items[:limit]
