"""
Domain Errors

Every rule the services enforce has its own exception type so callers
can tell precisely why an operation was rejected. A rejected operation
never writes anything.

Storage failures (PersistenceError and friends) live in
src.services.storage.interface and propagate unchanged.
"""


class ExpenseTrackerError(Exception):
    """Base exception for rejected operations."""
    pass


class InvalidCredentialError(ExpenseTrackerError):
    """The external identity assertion has no usable subject identifier."""
    pass


class NotAuthenticatedError(ExpenseTrackerError):
    """The operation needs a signed-in session."""
    pass


class DuplicateTitleError(ExpenseTrackerError):
    """A category with this exact title already exists."""
    pass


class InvalidCategoryTitleError(ExpenseTrackerError):
    """Category titles must not be blank."""
    pass


class InvalidAmountError(ExpenseTrackerError):
    """Amounts must be whole, finite, non-negative numbers of cents."""
    pass


class UserNotFoundError(ExpenseTrackerError):
    """No user with this id."""
    pass


class AlreadyMemberError(ExpenseTrackerError):
    """The user already belongs to the group."""
    pass


class GroupNotFoundError(ExpenseTrackerError):
    """No group with this id."""
    pass


class ExpenseNotFoundError(ExpenseTrackerError):
    """No expense with this id."""
    pass


class CategoryNotFoundError(ExpenseTrackerError):
    """No category with this title."""
    pass


class InvalidExpenseError(ExpenseTrackerError):
    """An expense field (name, status) is outside its allowed shape."""
    pass


class InvalidGroupNameError(ExpenseTrackerError):
    """Group names must be non-blank and at most 200 characters."""
    pass


class InvalidDisplayNameError(ExpenseTrackerError):
    """Display names are at most 200 characters."""
    pass


class NotGroupMemberError(ExpenseTrackerError):
    """The signed-in user doesn't belong to the group."""
    pass


class CreatorCannotLeaveError(ExpenseTrackerError):
    """The creator can only leave a group once nobody else is in it."""
    pass


class ExpenseStateError(ExpenseTrackerError):
    """Settling a settled expense, or unsettling an unsettled one."""
    pass


class InvalidTemplateError(ExpenseTrackerError):
    """A template needs a name and at least one valid item."""
    pass


class TemplateNotFoundError(ExpenseTrackerError):
    """No template with this id."""
    pass


class NotTemplateOwnerError(ExpenseTrackerError):
    """Only the user who created a template may change or delete it."""
    pass
