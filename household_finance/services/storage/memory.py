"""
In-Memory Remote Store

Keeps the three remote tables in dictionaries. Used for tests and for
running the client without a configured backend.
"""

from collections.abc import Collection, Sequence
from datetime import datetime
from typing import Any, Optional

from household_finance.models.finance import (
    Currency,
    ExpenseTransaction,
    RemoteStateRecord,
    SnapshotRecord,
)
from household_finance.services.storage.interface import RemoteStoreInterface


class InMemoryRemoteStore(RemoteStoreInterface):
    """
    Dictionary-backed implementation of the remote store.

    Every call is recorded in `operations` as (operation, user_id) so the
    order of remote writes can be inspected.
    """

    def __init__(self):
        self._states: dict[str, RemoteStateRecord] = {}
        self._snapshots: dict[tuple[str, str, Currency], SnapshotRecord] = {}
        # transaction id -> (user_id, transaction)
        self._transactions: dict[str, tuple[str, ExpenseTransaction]] = {}
        self.operations: list[tuple[str, str]] = []

    async def load_state(self, user_id: str) -> Optional[RemoteStateRecord]:
        self.operations.append(("load_state", user_id))
        return self._states.get(user_id)

    async def save_state(
        self,
        user_id: str,
        state: dict[str, Any],
        updated_at: Optional[datetime],
    ) -> None:
        self.operations.append(("save_state", user_id))
        self._states[user_id] = RemoteStateRecord(
            user_id=user_id,
            state=state,
            updated_at=updated_at,
        )

    async def list_snapshots(self, user_id: str) -> list[SnapshotRecord]:
        self.operations.append(("list_snapshots", user_id))
        rows = [row for (owner, _, _), row in self._snapshots.items() if owner == user_id]
        rows.sort(key=lambda row: row.month, reverse=True)
        return rows

    async def upsert_snapshot(self, user_id: str, record: SnapshotRecord) -> None:
        self.operations.append(("upsert_snapshot", user_id))
        self._snapshots[(user_id, record.month, record.currency)] = record

    async def list_transactions(self, user_id: str) -> list[ExpenseTransaction]:
        self.operations.append(("list_transactions", user_id))
        rows = [txn for owner, txn in self._transactions.values() if owner == user_id]
        rows.sort(key=lambda txn: txn.txn_date, reverse=True)
        return rows

    async def upsert_transactions(
        self,
        user_id: str,
        transactions: Sequence[ExpenseTransaction],
    ) -> None:
        self.operations.append(("upsert_transactions", user_id))
        for txn in transactions:
            self._transactions[txn.id] = (user_id, txn)

    async def delete_transactions_except(
        self,
        user_id: str,
        keep_ids: Collection[str],
    ) -> int:
        self.operations.append(("delete_transactions_except", user_id))
        keep = set(keep_ids)
        doomed = [
            txn_id
            for txn_id, (owner, _) in self._transactions.items()
            if owner == user_id and txn_id not in keep
        ]
        for txn_id in doomed:
            del self._transactions[txn_id]
        return len(doomed)

    async def delete_all_transactions(self, user_id: str) -> int:
        self.operations.append(("delete_all_transactions", user_id))
        doomed = [txn_id for txn_id, (owner, _) in self._transactions.items() if owner == user_id]
        for txn_id in doomed:
            del self._transactions[txn_id]
        return len(doomed)
