"""Services package."""

from src.services.auth import AuthGateway, credential_from_provider
from src.services.categories import CategoryRegistry, default_categories
from src.services.errors import (
    AlreadyMemberError,
    CategoryNotFoundError,
    CreatorCannotLeaveError,
    DuplicateTitleError,
    ExpenseNotFoundError,
    ExpenseStateError,
    ExpenseTrackerError,
    GroupNotFoundError,
    InvalidAmountError,
    InvalidCategoryTitleError,
    InvalidCredentialError,
    InvalidDisplayNameError,
    InvalidExpenseError,
    InvalidGroupNameError,
    InvalidTemplateError,
    NotAuthenticatedError,
    NotGroupMemberError,
    NotTemplateOwnerError,
    TemplateNotFoundError,
    UserNotFoundError,
)
from src.services.expenses import ActiveExpenses, ExpenseService, coerce_amount, record_expense
from src.services.groups import GroupService
from src.services.session import (
    InMemorySessionStore,
    JsonFileSessionStore,
    SessionStore,
)
from src.services.storage import (
    AuditStorageInterface,
    DuplicateError,
    ExpenseStoreInterface,
    InMemoryAuditStorage,
    InMemoryExpenseStore,
    NotFoundError,
    PersistenceError,
    SqlAuditStorage,
    SqlExpenseStore,
    StorageError,
    StoreTransaction,
    StoreUnavailableError,
)
from src.services.templates import TemplateService
from src.services.users import UserDirectory

__all__ = [
    # Domain services
    "ActiveExpenses",
    "AuthGateway",
    "CategoryRegistry",
    "ExpenseService",
    "GroupService",
    "TemplateService",
    "UserDirectory",
    "coerce_amount",
    "credential_from_provider",
    "default_categories",
    "record_expense",
    # Domain errors
    "AlreadyMemberError",
    "CategoryNotFoundError",
    "CreatorCannotLeaveError",
    "DuplicateTitleError",
    "ExpenseNotFoundError",
    "ExpenseStateError",
    "ExpenseTrackerError",
    "GroupNotFoundError",
    "InvalidAmountError",
    "InvalidCategoryTitleError",
    "InvalidCredentialError",
    "InvalidDisplayNameError",
    "InvalidExpenseError",
    "InvalidGroupNameError",
    "InvalidTemplateError",
    "NotAuthenticatedError",
    "NotGroupMemberError",
    "NotTemplateOwnerError",
    "TemplateNotFoundError",
    "UserNotFoundError",
    # Session state
    "InMemorySessionStore",
    "JsonFileSessionStore",
    "SessionStore",
    # Storage services
    "AuditStorageInterface",
    "DuplicateError",
    "ExpenseStoreInterface",
    "InMemoryAuditStorage",
    "InMemoryExpenseStore",
    "NotFoundError",
    "PersistenceError",
    "SqlAuditStorage",
    "SqlExpenseStore",
    "StorageError",
    "StoreTransaction",
    "StoreUnavailableError",
]
