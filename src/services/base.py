"""
Shared plumbing for the domain services.

Each service holds the expense store and an optional audit logger.
Rejected operations and failed commits are recorded before the error
propagates to the caller.
"""

from contextlib import asynccontextmanager, contextmanager
from typing import TYPE_CHECKING, AsyncIterator, Iterator, Optional

from pydantic import ValidationError

from src.models.audit import AuditEvent
from src.services.errors import ExpenseTrackerError
from src.services.storage import ExpenseStoreInterface, PersistenceError

if TYPE_CHECKING:
    from src.audit.logger import AuditLogger


@contextmanager
def rejects_invalid(
    error_cls: type[ExpenseTrackerError],
    subject: str,
) -> Iterator[None]:
    """
    Re-raise model validation failures inside the block as a domain error.

    Usage:
        with rejects_invalid(InvalidGroupNameError, "group name"):
            group.name = name
    """
    try:
        yield
    except ValidationError as e:
        problems = "; ".join(err["msg"] for err in e.errors())
        raise error_cls(f"Invalid {subject}: {problems}") from e


class AuditedService:
    """Base class for services that mutate the expense store."""

    def __init__(
        self,
        store: ExpenseStoreInterface,
        audit_logger: Optional["AuditLogger"] = None,
    ):
        self._store = store
        self._audit_logger = audit_logger

    async def _audit(self, event: AuditEvent) -> None:
        if self._audit_logger:
            await self._audit_logger.log(event)

    @asynccontextmanager
    async def _operation(
        self,
        name: str,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
    ) -> AsyncIterator[None]:
        """Record domain rejections and commit failures raised inside the block."""
        try:
            yield
        except ExpenseTrackerError as e:
            if self._audit_logger:
                await self._audit_logger.log_rejection(
                    operation=name,
                    error=e,
                    entity_type=entity_type,
                    entity_id=entity_id,
                )
            raise
        except PersistenceError as e:
            if self._audit_logger:
                await self._audit_logger.log_save_failed(
                    operation=name,
                    error_message=str(e),
                )
            raise
