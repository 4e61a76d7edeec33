"""
Application Wiring for Household Finance

This module ties together all the components:
1. Local structured logging and the audit logger
2. The local state cache (always on)
3. The Google Sheets remote store (only when enabled and configured)
4. The StateStore that brokers between the UI and both lanes

DESIGN DECISION: The core runs without any remote configuration. A missing
or invalid remote config downgrades the app to local-only with a warning,
it never stops startup.
"""

from typing import Optional

import structlog
from pydantic import ValidationError

from household_finance.audit import AuditLogger, setup_logging
from household_finance.config import Settings, get_settings
from household_finance.models.finance import Currency
from household_finance.services.storage import (
    GoogleSheetsClient,
    GoogleSheetsRemoteStore,
    LocalStateCache,
    RemoteStoreInterface,
)
from household_finance.state import StateStore


logger = structlog.get_logger(__name__)


def create_remote_store(settings: Settings) -> Optional[RemoteStoreInterface]:
    """
    Build the remote store if remote sync is switched on.

    Returns None when sync is disabled or the Google Sheets settings are
    incomplete.
    """
    if not settings.app.remote_sync_enabled:
        return None
    try:
        sheets_settings = settings.google_sheets
    except ValidationError as e:
        logger.warning("remote_store_not_configured", error_count=e.error_count())
        return None
    return GoogleSheetsRemoteStore(GoogleSheetsClient(sheets_settings))


def create_app_components(
    settings: Optional[Settings] = None,
    remote_store: Optional[RemoteStoreInterface] = None,
) -> tuple[StateStore, AuditLogger]:
    """
    Factory function to create all application components.

    Args:
        settings: Settings to use (defaults to get_settings()).
        remote_store: Remote store override, e.g. an InMemoryRemoteStore
                      for testing. When None, one is built from settings.

    Returns:
        (state_store, audit_logger)
    """
    settings = settings or get_settings()
    app_settings = settings.app
    setup_logging(app_settings.log_level)

    audit_logger = AuditLogger()
    local_cache = LocalStateCache(
        app_settings.cache_file,
        default_currency=Currency(app_settings.default_currency),
        audit_logger=audit_logger,
    )
    if remote_store is None:
        remote_store = create_remote_store(settings)

    store = StateStore(
        local_cache,
        remote_store=remote_store,
        audit_logger=audit_logger,
        debounce_seconds=app_settings.sync_debounce_seconds,
    )
    logger.info(
        "app_components_created",
        cache_file=str(local_cache.path),
        remote_sync=remote_store is not None,
    )
    return store, audit_logger
