"""
Data Models Package

This package contains all Pydantic models used in the Expense Tracker system.
All data flowing through the system must conform to these schemas.
"""

from src.models.expense import (
    DEFAULT_CATEGORY_TITLES,
    Expense,
    ExpenseCategory,
    Group,
    User,
    format_amount,
    parse_entity_id,
    utcnow,
)
from src.models.template import (
    ExpenseTemplate,
    TemplateItem,
)
from src.models.identity import (
    ExternalCredential,
    Session,
)
from src.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Entity models
    "DEFAULT_CATEGORY_TITLES",
    "Expense",
    "ExpenseCategory",
    "Group",
    "User",
    "format_amount",
    "parse_entity_id",
    "utcnow",
    # Template models
    "ExpenseTemplate",
    "TemplateItem",
    # Identity models
    "ExternalCredential",
    "Session",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
