"""
Storage Services Package

Provides the local state cache and the remote store: an abstract interface
with Google Sheets and in-memory implementations.
"""

from household_finance.services.storage.interface import (
    ConnectionError,
    RemoteStoreInterface,
    StorageError,
)
from household_finance.services.storage.local_cache import LocalStateCache
from household_finance.services.storage.memory import InMemoryRemoteStore
from household_finance.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsRemoteStore,
)

__all__ = [
    # Interfaces
    "RemoteStoreInterface",
    # Exceptions
    "ConnectionError",
    "StorageError",
    # Local lane
    "LocalStateCache",
    # Remote implementations
    "GoogleSheetsClient",
    "GoogleSheetsRemoteStore",
    "InMemoryRemoteStore",
]
