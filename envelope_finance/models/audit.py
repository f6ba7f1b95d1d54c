"""
Audit Models for Envelope Finance

Every change a user makes to their ledger is recorded as an audit event,
along with the provider failures that stopped a change from landing.

Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Identity
    SESSION_STARTED = "session_started"
    SESSION_ENDED = "session_ended"

    # Ledger changes
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_DELETED = "transaction_deleted"
    DEBT_CREATED = "debt_created"
    DEBT_STATUS_UPDATED = "debt_status_updated"
    DEBT_DELETED = "debt_deleted"
    SAVING_CREATED = "saving_created"
    SAVING_DELETED = "saving_deleted"

    # Failures
    VALIDATION_FAILED = "validation_failed"
    PERMISSION_DENIED = "permission_denied"
    SYNC_FAILED = "sync_failed"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """A single audit event."""

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # What the event is about
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'debt', 'saving')"
    )
    entity_id: Optional[str] = None
    account_id: Optional[str] = Field(
        default=None,
        description="Account whose ledger the event belongs to"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None
    is_user_action: bool = False

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "account_id": self.account_id,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         account_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            self.account_id or "",
            self.description,
            json.dumps(self.details) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.record_created("transaction", tx.id, account_id, "...")
        event = AuditEventBuilder.permission_denied(account_id, "create transaction", str(err))
    """

    _CREATED = {
        "transaction": AuditEventType.TRANSACTION_CREATED,
        "debt": AuditEventType.DEBT_CREATED,
        "saving": AuditEventType.SAVING_CREATED,
    }
    _DELETED = {
        "transaction": AuditEventType.TRANSACTION_DELETED,
        "debt": AuditEventType.DEBT_DELETED,
        "saving": AuditEventType.SAVING_DELETED,
    }

    @staticmethod
    def session_started(account_id: str, method: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_STARTED,
            entity_type="session",
            account_id=account_id,
            description=f"Signed in ({method})",
            details={"method": method},
            is_user_action=True,
        )

    @staticmethod
    def session_ended(account_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_ENDED,
            entity_type="session",
            account_id=account_id,
            description="Signed out",
            is_user_action=True,
        )

    @classmethod
    def record_created(
        cls,
        entity_type: str,
        entity_id: str,
        account_id: str,
        amount: str,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=cls._CREATED[entity_type],
            entity_type=entity_type,
            entity_id=entity_id,
            account_id=account_id,
            description=f"{entity_type.capitalize()} created: {amount}",
            details={"amount": amount, **(details or {})},
            is_user_action=True,
        )

    @classmethod
    def record_deleted(
        cls,
        entity_type: str,
        entity_id: str,
        account_id: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=cls._DELETED[entity_type],
            entity_type=entity_type,
            entity_id=entity_id,
            account_id=account_id,
            description=f"{entity_type.capitalize()} deleted",
            is_user_action=True,
        )

    @staticmethod
    def debt_status_updated(
        debt_id: str,
        account_id: str,
        is_paid: bool,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEBT_STATUS_UPDATED,
            entity_type="debt",
            entity_id=debt_id,
            account_id=account_id,
            description="Debt marked as paid" if is_paid else "Debt marked as unpaid",
            details={"is_paid": is_paid},
            is_user_action=True,
        )

    @staticmethod
    def validation_failed(
        entity_type: str,
        account_id: Optional[str],
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            account_id=account_id,
            description=f"Rejected {entity_type} input",
            error_message=error_message,
            is_user_action=True,
        )

    @staticmethod
    def permission_denied(
        account_id: Optional[str],
        action: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PERMISSION_DENIED,
            severity=AuditSeverity.CRITICAL,
            account_id=account_id,
            description=f"Permission denied: {action}",
            error_message=error_message,
            details={"action": action},
        )

    @staticmethod
    def sync_failed(
        account_id: Optional[str],
        action: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_FAILED,
            severity=AuditSeverity.ERROR,
            account_id=account_id,
            description=f"Sync failed: {action}",
            error_message=error_message,
            details={"action": action},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
        )
