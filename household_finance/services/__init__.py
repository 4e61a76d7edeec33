"""Services package."""

from household_finance.services.storage import (
    ConnectionError,
    GoogleSheetsClient,
    GoogleSheetsRemoteStore,
    InMemoryRemoteStore,
    LocalStateCache,
    RemoteStoreInterface,
    StorageError,
)

__all__ = [
    "ConnectionError",
    "GoogleSheetsClient",
    "GoogleSheetsRemoteStore",
    "InMemoryRemoteStore",
    "LocalStateCache",
    "RemoteStoreInterface",
    "StorageError",
]
