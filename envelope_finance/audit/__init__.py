"""Audit logging package."""

from envelope_finance.audit.logger import AuditLogger, configure_logging, environment_processor

__all__ = ["AuditLogger", "configure_logging", "environment_processor"]
