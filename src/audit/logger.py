"""
Audit Logger

DESIGN DECISION: Every mutation in the system is logged.
This provides:
1. Complete traceability
2. Debugging capability
3. User can see the history of their data

The audit logger:
- Is async so storage backends can be awaited
- Gracefully handles failures (doesn't crash the app if logging fails)
"""

import logging
from typing import Optional

import structlog

from src.models.audit import AuditEvent, AuditEventBuilder
from src.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """Route structlog output through the stdlib root logger at this level."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, level.upper(), logging.INFO))


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence), when configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("expense_tracker.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_rejection(
        self,
        operation: str,
        error: Exception,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
    ) -> None:
        """Log an operation refused by a domain rule."""
        event = AuditEventBuilder.operation_rejected(
            operation=operation,
            error=error,
            entity_type=entity_type,
            entity_id=entity_id,
        )
        await self.log(event)

    async def log_save_failed(
        self,
        operation: str,
        error_message: str,
    ) -> None:
        """Log a store commit failure."""
        event = AuditEventBuilder.save_failed(
            operation=operation,
            error_message=error_message,
        )
        await self.log(event)
