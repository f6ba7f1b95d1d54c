"""
Audit Logger

Every change to a ledger, and every provider failure that stopped one, is
recorded twice:
1. Structured local log (JSON via structlog)
2. The audit storage backend (AuditLog sheet, or memory in tests)

The audit logger:
- Is async so it composes with the storage calls it records
- Never raises: a failed audit write must not undo a successful change
"""

import logging
from typing import Optional

import structlog

from envelope_finance.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from envelope_finance.services.storage import AuditStorageInterface


def environment_processor(environment: str):
    """Processor stamping every log line with the deployment environment."""

    def add_environment(logger, method_name, event_dict):
        event_dict.setdefault("environment", environment)
        return event_dict

    return add_environment


def configure_logging(debug: bool = False, environment: Optional[str] = None) -> None:
    """Route structlog through stdlib logging and render JSON lines."""
    logging.basicConfig(
        format="%(message)s",
        level=logging.DEBUG if debug else logging.INFO,
        force=True,
    )
    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ]
    if environment:
        processors.insert(3, environment_processor(environment))
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to the structured local log and, when configured,
    to an audit storage backend.
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
        self._logger = structlog.get_logger("envelope_finance.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity is AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_session_started(self, account_id: str, method: str) -> None:
        await self.log(AuditEventBuilder.session_started(account_id, method))

    async def log_session_ended(self, account_id: str) -> None:
        await self.log(AuditEventBuilder.session_ended(account_id))

    async def log_record_created(
        self,
        entity_type: str,
        entity_id: str,
        account_id: str,
        amount: str,
        details: Optional[dict] = None,
    ) -> None:
        """Log a new transaction, debt or saving."""
        event = AuditEventBuilder.record_created(
            entity_type=entity_type,
            entity_id=entity_id,
            account_id=account_id,
            amount=amount,
            details=details,
        )
        await self.log(event)

    async def log_record_deleted(
        self,
        entity_type: str,
        entity_id: str,
        account_id: str,
    ) -> None:
        await self.log(AuditEventBuilder.record_deleted(entity_type, entity_id, account_id))

    async def log_debt_status_updated(
        self,
        debt_id: str,
        account_id: str,
        is_paid: bool,
    ) -> None:
        await self.log(AuditEventBuilder.debt_status_updated(debt_id, account_id, is_paid))

    async def log_validation_failed(
        self,
        entity_type: str,
        account_id: Optional[str],
        error_message: str,
    ) -> None:
        """Log rejected user input."""
        event = AuditEventBuilder.validation_failed(
            entity_type=entity_type,
            account_id=account_id,
            error_message=error_message,
        )
        await self.log(event)

    async def log_permission_denied(
        self,
        account_id: Optional[str],
        action: str,
        error_message: str,
    ) -> None:
        event = AuditEventBuilder.permission_denied(account_id, action, error_message)
        await self.log(event)

    async def log_sync_failed(
        self,
        account_id: Optional[str],
        action: str,
        error_message: str,
    ) -> None:
        event = AuditEventBuilder.sync_failed(account_id, action, error_message)
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
        )
        await self.log(event)
