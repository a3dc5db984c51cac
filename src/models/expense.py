"""
Core Data Models for Expense Tracker

These models define the strict schemas for every record the store holds.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging
4. Keep relations as explicit ids, never object back-references

DESIGN DECISION: Money is stored as integer minor units (cents).
Binary floating point is never used for amounts; Decimal is only used
for display.

DESIGN DECISION: Stored models validate on assignment, so an edit can never
put a value into the store that a later read would refuse.

DESIGN DECISION: Ownership is explicit. A Group owns the lifecycle of the
expenses listed in `expense_ids`; `member_ids` is a non-owning membership
relation. Collections are always present, possibly empty.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Union
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def parse_entity_id(value: Union[UUID, str, None]) -> Optional[UUID]:
    """
    Coerce a caller-supplied id into a UUID.

    Returns None for anything that cannot be an id (empty or malformed
    strings), so lookups simply miss instead of raising ValueError.
    """
    if value is None:
        return None
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


# =============================================================================
# IDENTITY
# =============================================================================

class User(BaseModel):
    """
    A local identity record.

    Created exactly once per external identity, on first sign-in.
    `external_auth_id` is unique across all users.
    """
    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Stable local user id"
    )
    external_auth_id: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="Subject identifier issued by the identity provider"
    )
    display_name: str = Field(
        default="",
        max_length=200,
        description="Display name (may be empty)"
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        description="When the user first signed in"
    )


# =============================================================================
# GROUPS
# =============================================================================

class Group(BaseModel):
    """
    A named collection of members and the expenses they share.

    member_ids: who belongs to the group (shared, non-owning).
    expense_ids: expenses owned by the group, in insertion order.
    """
    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique group id"
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Group name"
    )
    created_by: Optional[UUID] = Field(
        default=None,
        description="User who created the group"
    )
    created_at: datetime = Field(
        default_factory=utcnow
    )
    member_ids: list[UUID] = Field(default_factory=list)
    expense_ids: list[UUID] = Field(default_factory=list)

    @field_validator('member_ids')
    @classmethod
    def dedupe_members(cls, v: list[UUID]) -> list[UUID]:
        """A member set holds each user at most once (first occurrence wins)."""
        seen: set[UUID] = set()
        unique = []
        for member_id in v:
            if member_id not in seen:
                seen.add(member_id)
                unique.append(member_id)
        return unique

    def has_member(self, user_id: UUID) -> bool:
        return user_id in self.member_ids


# =============================================================================
# EXPENSES
# =============================================================================

class Expense(BaseModel):
    """
    A single monetary transaction.

    amount is in minor units (cents) and never negative.
    author_id becomes None when the author is removed (soft orphan).
    """
    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique expense id"
    )
    name: str = Field(
        default="",
        max_length=200,
        description="What the money was spent on"
    )
    amount: int = Field(
        ...,
        ge=0,
        description="Amount in minor currency units (cents)"
    )
    author_id: Optional[UUID] = None
    group_id: Optional[UUID] = None
    category_title: Optional[str] = None
    is_completed: bool = False
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="Creation instant (immutable)"
    )
    status: str = Field(
        default="",
        max_length=100,
        description="Free-text status label"
    )


def format_amount(cents: int, currency_code: str = "USD") -> str:
    """Render minor units as e.g. 'USD 12.50'."""
    value = (Decimal(cents) / Decimal(100)).quantize(Decimal("0.01"))
    return f"{currency_code} {value}"


# =============================================================================
# CATEGORIES
# =============================================================================

DEFAULT_CATEGORY_TITLES = (
    "👀 utilities",
    "👀 groceries",
    "👀 house",
)


class ExpenseCategory(BaseModel):
    """
    A label for expenses.

    Titles are unique across all categories (case-sensitive exact match).
    Surrounding whitespace is kept as entered.
    """
    model_config = ConfigDict(validate_assignment=True)

    title: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Unique category title"
    )
    item_ids: list[UUID] = Field(
        default_factory=list,
        description="Expenses tagged with this category"
    )
    created_at: datetime = Field(
        default_factory=utcnow
    )
