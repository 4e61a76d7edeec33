"""Audit logging package."""

from household_finance.audit.logger import AuditLogger, setup_logging

__all__ = ["AuditLogger", "setup_logging"]
