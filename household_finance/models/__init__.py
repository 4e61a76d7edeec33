"""
Data Models Package

This package contains all Pydantic models used in Household Finance.
All data held in or persisted from the application state conforms to these schemas.
"""

from household_finance.models.finance import (
    ASSET_CATEGORIES,
    ENTITY_COLLECTIONS,
    LIABILITY_CATEGORIES,
    LOAN_TYPES,
    STATE_SCHEMA_VERSION,
    AppState,
    Asset,
    BudgetData,
    BudgetItem,
    BudgetList,
    Cadence,
    Currency,
    ExpenseTransaction,
    Liability,
    Loan,
    Owner,
    RemoteStateRecord,
    Snapshot,
    SnapshotRecord,
    new_id,
    parse_app_state,
    utc_now,
)
from household_finance.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Finance models
    "ASSET_CATEGORIES",
    "ENTITY_COLLECTIONS",
    "LIABILITY_CATEGORIES",
    "LOAN_TYPES",
    "STATE_SCHEMA_VERSION",
    "AppState",
    "Asset",
    "BudgetData",
    "BudgetItem",
    "BudgetList",
    "Cadence",
    "Currency",
    "ExpenseTransaction",
    "Liability",
    "Loan",
    "Owner",
    "RemoteStateRecord",
    "Snapshot",
    "SnapshotRecord",
    "new_id",
    "parse_app_state",
    "utc_now",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
