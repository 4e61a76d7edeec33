"""
Abstract Remote Store Interface

DESIGN DECISION: We define an abstract interface for the remote store.
This allows us to:
1. Swap the Google Sheets backend for a hosted database later
2. Use in-memory storage for testing and offline use
3. Keep the state reconciliation logic decoupled from storage

The remote store is an opaque keyed store with three logical tables.
Every operation is scoped to one user_id; access control is assumed to be
enforced by the backend.

- user_state:           one row per user, holding the full state blob
- monthly_snapshots:    one row per (user, month, currency)
- expense_transactions: one row per transaction id, scoped by user
"""

from abc import ABC, abstractmethod
from collections.abc import Collection, Sequence
from datetime import datetime
from typing import Any, Optional

from household_finance.models.finance import (
    ExpenseTransaction,
    RemoteStateRecord,
    SnapshotRecord,
)


class RemoteStoreInterface(ABC):
    """
    Abstract interface for the per-user remote store.

    Any remote implementation must implement these methods.
    Implementations raise StorageError (with a human-readable message)
    on any backend failure.
    """

    @abstractmethod
    async def load_state(self, user_id: str) -> Optional[RemoteStateRecord]:
        """
        Read the user's state blob.

        Returns:
            The stored record, or None if the user has never synced
        """
        pass

    @abstractmethod
    async def save_state(
        self,
        user_id: str,
        state: dict[str, Any],
        updated_at: Optional[datetime],
    ) -> None:
        """
        Upsert the user's state blob (keyed by user_id).

        Args:
            user_id: Authenticated identity
            state: Full state payload (JSON-ready)
            updated_at: When the state was last changed locally
        """
        pass

    @abstractmethod
    async def list_snapshots(self, user_id: str) -> list[SnapshotRecord]:
        """
        List the user's snapshot rows.

        Returns:
            Rows ordered by month, newest first
        """
        pass

    @abstractmethod
    async def upsert_snapshot(self, user_id: str, record: SnapshotRecord) -> None:
        """Upsert one snapshot row keyed by (user_id, month, currency)."""
        pass

    @abstractmethod
    async def list_transactions(self, user_id: str) -> list[ExpenseTransaction]:
        """
        List the user's expense transactions.

        Returns:
            Transactions ordered by date, newest first
        """
        pass

    @abstractmethod
    async def upsert_transactions(
        self,
        user_id: str,
        transactions: Sequence[ExpenseTransaction],
    ) -> None:
        """Upsert transactions keyed by transaction id."""
        pass

    @abstractmethod
    async def delete_transactions_except(
        self,
        user_id: str,
        keep_ids: Collection[str],
    ) -> int:
        """
        Delete the user's transaction rows whose id is not in keep_ids.

        Returns:
            Number of rows deleted
        """
        pass

    async def delete_all_transactions(self, user_id: str) -> int:
        """Delete every transaction row of the user."""
        return await self.delete_transactions_except(user_id, ())


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
