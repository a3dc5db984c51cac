"""
Audit Models for Expense Tracker

Every mutation of the store is logged for audit purposes.
This provides:
1. Complete traceability of all operations
2. Debugging information when things go wrong
3. Ability to reconstruct history

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from src.models.expense import utcnow


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every mutating operation has its own event type.
    """
    # Identity
    USER_CREATED = "user_created"
    USER_SIGNED_IN = "user_signed_in"
    USER_SIGNED_OUT = "user_signed_out"
    PROFILE_UPDATED = "profile_updated"
    USER_REMOVED = "user_removed"

    # Categories
    CATEGORIES_SEEDED = "categories_seeded"
    CATEGORY_CREATED = "category_created"
    CATEGORY_DELETED = "category_deleted"

    # Expenses
    EXPENSE_CREATED = "expense_created"
    EXPENSE_UPDATED = "expense_updated"
    EXPENSE_COMPLETION_TOGGLED = "expense_completion_toggled"
    EXPENSE_CATEGORIZED = "expense_categorized"
    EXPENSE_DELETED = "expense_deleted"

    # Groups
    GROUP_CREATED = "group_created"
    GROUP_RENAMED = "group_renamed"
    GROUP_DELETED = "group_deleted"
    MEMBER_ADDED = "member_added"
    MEMBER_REMOVED = "member_removed"

    # Templates
    TEMPLATE_CREATED = "template_created"
    TEMPLATE_UPDATED = "template_updated"
    TEMPLATE_DELETED = "template_deleted"
    TEMPLATE_APPLIED = "template_applied"

    # Failures
    OPERATION_REJECTED = "operation_rejected"
    SAVE_FAILED = "save_failed"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every mutation creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'user', 'group', 'expense', 'category')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Id (or title, for categories) of the entity this event relates to"
    )

    # Who did it, when known
    actor_id: Optional[str] = None

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_id": self.actor_id,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.user_created(user_id, external_auth_id)
        event = AuditEventBuilder.member_added(group_id, user_id)
    """

    @staticmethod
    def user_created(user_id: UUID, external_auth_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_CREATED,
            entity_type="user",
            entity_id=str(user_id),
            actor_id=str(user_id),
            description="User created on first sign-in",
            details={"external_auth_id": external_auth_id},
        )

    @staticmethod
    def user_signed_in(user_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_SIGNED_IN,
            entity_type="user",
            entity_id=str(user_id),
            actor_id=str(user_id),
            description="User signed in",
        )

    @staticmethod
    def user_signed_out(user_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_SIGNED_OUT,
            entity_type="user",
            entity_id=user_id or None,
            actor_id=user_id or None,
            description="User signed out",
        )

    @staticmethod
    def profile_updated(user_id: UUID, display_name: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROFILE_UPDATED,
            entity_type="user",
            entity_id=str(user_id),
            actor_id=str(user_id),
            description="Display name updated",
            details={"display_name": display_name},
        )

    @staticmethod
    def user_removed(user_id: UUID, orphaned_expenses: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_REMOVED,
            severity=AuditSeverity.WARNING,
            entity_type="user",
            entity_id=str(user_id),
            description=f"User removed, {orphaned_expenses} expenses left without author",
            details={"orphaned_expenses": orphaned_expenses},
        )

    @staticmethod
    def categories_seeded(titles: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORIES_SEEDED,
            entity_type="category",
            description=f"Seeded {len(titles)} default categories",
            details={"titles": titles},
        )

    @staticmethod
    def category_created(title: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORY_CREATED,
            entity_type="category",
            entity_id=title,
            description=f"Category created: {title}",
        )

    @staticmethod
    def category_deleted(title: str, untagged: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORY_DELETED,
            entity_type="category",
            entity_id=title,
            description=f"Category deleted: {title}",
            details={"untagged_expenses": untagged},
        )

    @staticmethod
    def expense_created(
        expense_id: UUID,
        amount: int,
        author_id: Optional[UUID],
        group_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_CREATED,
            entity_type="expense",
            entity_id=str(expense_id),
            actor_id=str(author_id) if author_id else None,
            description=f"Expense created for {amount} cents",
            details={
                "amount": amount,
                "group_id": str(group_id) if group_id else None,
            },
        )

    @staticmethod
    def expense_updated(expense_id: UUID, fields: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_UPDATED,
            entity_type="expense",
            entity_id=str(expense_id),
            description=f"Expense updated: {', '.join(fields) or 'no changes'}",
            details={"fields": fields},
        )

    @staticmethod
    def expense_completion_toggled(expense_id: UUID, is_completed: bool) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_COMPLETION_TOGGLED,
            entity_type="expense",
            entity_id=str(expense_id),
            description="Expense marked complete" if is_completed else "Expense reopened",
            details={"is_completed": is_completed},
        )

    @staticmethod
    def expense_categorized(expense_id: UUID, category_title: Optional[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_CATEGORIZED,
            entity_type="expense",
            entity_id=str(expense_id),
            description=f"Expense category set to {category_title or 'none'}",
            details={"category_title": category_title},
        )

    @staticmethod
    def expense_deleted(expense_id: UUID, group_id: Optional[UUID]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_DELETED,
            entity_type="expense",
            entity_id=str(expense_id),
            description="Expense deleted",
            details={"group_id": str(group_id) if group_id else None},
        )

    @staticmethod
    def group_created(group_id: UUID, name: str, created_by: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GROUP_CREATED,
            entity_type="group",
            entity_id=str(group_id),
            actor_id=str(created_by),
            description=f"Group created: {name}",
        )

    @staticmethod
    def group_renamed(group_id: UUID, old_name: str, new_name: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GROUP_RENAMED,
            entity_type="group",
            entity_id=str(group_id),
            description=f"Group renamed: {old_name} -> {new_name}",
            details={"old_name": old_name, "new_name": new_name},
        )

    @staticmethod
    def group_deleted(group_id: UUID, deleted_expenses: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GROUP_DELETED,
            severity=AuditSeverity.WARNING,
            entity_type="group",
            entity_id=str(group_id),
            description=f"Group deleted with {deleted_expenses} expenses",
            details={"deleted_expenses": deleted_expenses},
        )

    @staticmethod
    def member_added(group_id: UUID, user_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MEMBER_ADDED,
            entity_type="group",
            entity_id=str(group_id),
            description="Member added to group",
            details={"user_id": str(user_id)},
        )

    @staticmethod
    def member_removed(group_id: UUID, user_id: UUID, was_member: bool) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MEMBER_REMOVED,
            entity_type="group",
            entity_id=str(group_id),
            description="Member removed from group" if was_member else "Remove requested for non-member",
            details={"user_id": str(user_id), "was_member": was_member},
        )

    @staticmethod
    def template_created(template_id: UUID, name: str, owner_id: UUID, items: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TEMPLATE_CREATED,
            entity_type="template",
            entity_id=str(template_id),
            actor_id=str(owner_id),
            description=f"Template created: {name}",
            details={"items": items},
        )

    @staticmethod
    def template_updated(template_id: UUID, fields: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TEMPLATE_UPDATED,
            entity_type="template",
            entity_id=str(template_id),
            description=f"Template updated: {', '.join(fields) or 'no changes'}",
            details={"fields": fields},
        )

    @staticmethod
    def template_deleted(template_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TEMPLATE_DELETED,
            entity_type="template",
            entity_id=str(template_id),
            description="Template deleted",
        )

    @staticmethod
    def template_applied(
        template_id: UUID,
        group_id: UUID,
        actor_id: UUID,
        expense_ids: list[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TEMPLATE_APPLIED,
            entity_type="template",
            entity_id=str(template_id),
            actor_id=str(actor_id),
            description=f"Template applied, {len(expense_ids)} expenses created",
            details={
                "group_id": str(group_id),
                "expense_ids": [str(i) for i in expense_ids],
            },
        )

    @staticmethod
    def operation_rejected(
        operation: str,
        error: Exception,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OPERATION_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            entity_id=entity_id,
            description=f"{operation} rejected",
            error_code=type(error).__name__,
            error_message=str(error),
            details={"operation": operation},
        )

    @staticmethod
    def save_failed(operation: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            description=f"Store failed to commit during {operation}",
            error_code="PersistenceError",
            error_message=error_message,
            details={"operation": operation},
        )
