"""
State Store

The application context: owns the single AppState value and its two
persistence lanes.

- Local lane: synchronous, always on. Every change is written to the local
  cache before the mutating call returns.
- Remote lane: asynchronous, only while a user is signed in. State and
  transaction writes are debounced, snapshot writes are immediate, and a
  session change triggers a full reconciliation read.

RECONCILIATION POLICY (session acquisition):
1. The state blob, snapshot rows and transaction rows are read in parallel.
2. Timestamp last-write-wins on the state blob. The local state wins when
   it belongs to this user (or to nobody) and was changed after the remote
   blob was written; it is then pushed. Ownership (AppState.owner_id) is
   saved with the cached state, so it holds across restarts. Otherwise the remote blob replaces
   the local state and the snapshot/transaction rows replace those slices.
3. A load that completes after the session changed again is discarded.
4. Remote writes are bound to the user they were scheduled for. Pending
   writes are flushed to that user when the session changes, never
   redirected to the next one.

Remote failures land in `last_error` and the audit log. Nothing is rolled
back and nothing is retried.
"""

import asyncio
from collections.abc import Callable, Coroutine
from datetime import datetime
from typing import Any, Optional, Union

import structlog

from household_finance.audit.logger import AuditLogger
from household_finance.calculations.aggregates import (
    BudgetSummary,
    NetWorthSummary,
    summarize_budget,
    summarize_net_worth,
)
from household_finance.calculations.snapshots import capture_snapshot, snapshot_record
from household_finance.models.audit import AuditEventBuilder
from household_finance.models.finance import (
    ENTITY_COLLECTIONS,
    AppState,
    BudgetItem,
    BudgetList,
    Currency,
    ExpenseTransaction,
    RemoteStateRecord,
    Snapshot,
    SnapshotRecord,
    parse_app_state,
    utc_now,
)
from household_finance.services.storage.interface import RemoteStoreInterface, StorageError
from household_finance.services.storage.local_cache import LocalStateCache
from household_finance.state.debounce import Debouncer


logger = structlog.get_logger(__name__)

StateUpdate = Union[AppState, Callable[[AppState], AppState]]
Listener = Callable[[AppState], None]

DEFAULT_DEBOUNCE_SECONDS = 0.8


class StateStore:
    """
    Single authoritative in-memory AppState plus its persistence.

    Mutations are synchronous and replace the state wholesale. Remote work
    requires a running event loop.
    """

    def __init__(
        self,
        local_cache: LocalStateCache,
        remote_store: Optional[RemoteStoreInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._local = local_cache
        self._remote = remote_store
        self._audit = audit_logger or AuditLogger()
        self._clock = clock

        self._state = local_cache.load()
        self._user_id: Optional[str] = None
        self._generation = 0
        self._last_error: Optional[str] = None

        self._state_sync = Debouncer(debounce_seconds, "state_sync")
        self._transaction_sync = Debouncer(debounce_seconds, "transaction_sync")
        self._tasks: set[asyncio.Task] = set()
        self._listeners: list[Listener] = []

    # -------------------------------------------------------------------------
    # Read access
    # -------------------------------------------------------------------------

    @property
    def state(self) -> AppState:
        return self._state

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def session_active(self) -> bool:
        return self._user_id is not None and self._remote is not None

    @property
    def last_error(self) -> Optional[str]:
        """Message of the most recent remote failure in this session."""
        return self._last_error

    def clear_error(self) -> None:
        self._last_error = None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Call listener with every new state.

        Returns a function that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def net_worth_summary(self) -> NetWorthSummary:
        return summarize_net_worth(self._state, self._state.currency)

    def budget_summary(self) -> BudgetSummary:
        return summarize_budget(self._state, self._state.currency)

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def update(self, next_state: StateUpdate) -> AppState:
        """
        Replace the state.

        Accepts a new AppState or a function of the current one. The result
        is stamped with the change time, saved locally, and queued for the
        remote store when a session is active.
        """
        resolved = next_state(self._state) if callable(next_state) else next_state
        stamp = {"updated_at": self._clock()}
        if self._user_id is not None:
            stamp["owner_id"] = self._user_id
        resolved = resolved.model_copy(update=stamp)
        self._commit(resolved, from_remote=False)
        return resolved

    def set_currency(self, currency: Currency) -> AppState:
        return self.update(lambda s: s.model_copy(update={"currency": Currency(currency)}))

    def add_item(self, collection: str, item: Any) -> AppState:
        """Prepend an entity to loans, assets, liabilities or expense_transactions."""
        self._check_item(collection, item)
        return self.update(
            lambda s: s.model_copy(update={collection: (item,) + getattr(s, collection)})
        )

    def replace_item(self, collection: str, item: Any) -> AppState:
        """Swap in a new version of an entity, matched by id."""
        self._check_item(collection, item)
        current = getattr(self._state, collection)
        if not any(existing.id == item.id for existing in current):
            raise KeyError(f"No {collection} entry with id {item.id}")
        replaced = tuple(item if existing.id == item.id else existing for existing in current)
        return self.update(lambda s: s.model_copy(update={collection: replaced}))

    def remove_item(self, collection: str, item_id: str) -> AppState:
        if collection not in ENTITY_COLLECTIONS:
            raise ValueError(f"Unknown collection: {collection}")
        kept = tuple(e for e in getattr(self._state, collection) if e.id != item_id)
        return self.update(lambda s: s.model_copy(update={collection: kept}))

    def add_budget_item(self, which: BudgetList, item: BudgetItem) -> AppState:
        which = BudgetList(which)
        items = (item,) + self._state.budget.items(which)
        return self._update_budget(which, items)

    def replace_budget_item(self, which: BudgetList, item: BudgetItem) -> AppState:
        which = BudgetList(which)
        current = self._state.budget.items(which)
        if not any(existing.id == item.id for existing in current):
            raise KeyError(f"No {which.value} budget item with id {item.id}")
        return self._update_budget(
            which, tuple(item if existing.id == item.id else existing for existing in current)
        )

    def remove_budget_item(self, which: BudgetList, item_id: str) -> AppState:
        which = BudgetList(which)
        kept = tuple(i for i in self._state.budget.items(which) if i.id != item_id)
        return self._update_budget(which, kept)

    def capture_snapshot(self, now: Optional[datetime] = None) -> Snapshot:
        """
        Record this month's net worth and push it to the remote store.

        The remote write is immediate, not debounced.
        """
        snapshot, snapshots = capture_snapshot(self._state, now or self._clock())
        record = snapshot_record(self._state, snapshot)
        self.update(lambda s: s.model_copy(update={"snapshots": snapshots}))
        if self.session_active:
            self._spawn(self._push_snapshot(self._user_id, self._generation, record))
        return snapshot

    def _update_budget(self, which: BudgetList, items: tuple[BudgetItem, ...]) -> AppState:
        return self.update(
            lambda s: s.model_copy(
                update={"budget": s.budget.model_copy(update={which.value: items})}
            )
        )

    @staticmethod
    def _check_item(collection: str, item: Any) -> None:
        model = ENTITY_COLLECTIONS.get(collection)
        if model is None:
            raise ValueError(f"Unknown collection: {collection}")
        if not isinstance(item, model):
            raise TypeError(f"{collection} holds {model.__name__}, got {type(item).__name__}")

    def _commit(self, new_state: AppState, from_remote: bool) -> None:
        previous = self._state
        self._state = new_state
        self._local.save(new_state)
        for listener in list(self._listeners):
            listener(new_state)

        if from_remote or not self.session_active:
            return
        self._schedule_state_push()
        if new_state.expense_transactions != previous.expense_transactions:
            self._schedule_transaction_sync()

    # -------------------------------------------------------------------------
    # Session
    # -------------------------------------------------------------------------

    def set_session(self, user_id: Optional[str]) -> Optional[asyncio.Task]:
        """
        Switch the authenticated identity (login, logout, restored session).

        Pending writes of the previous session are flushed to the previous
        user. For a new user, the reconciliation read starts in the
        background; the returned task can be awaited.
        """
        if user_id == self._user_id:
            return None

        self._state_sync.fire_now()
        self._transaction_sync.fire_now()

        self._generation += 1
        self._user_id = user_id
        self._last_error = None
        self._audit.log(AuditEventBuilder.session_changed(user_id, self._generation))

        if not self.session_active:
            return None
        return self._spawn(self._load_remote(user_id, self._generation))

    async def _load_remote(self, user_id: str, generation: int) -> None:
        try:
            record, snapshot_rows, transactions = await asyncio.gather(
                self._remote.load_state(user_id),
                self._remote.list_snapshots(user_id),
                self._remote.list_transactions(user_id),
            )
        except StorageError as e:
            self._report_failure(user_id, generation, "load", e)
            return

        if generation != self._generation:
            self._audit.log(AuditEventBuilder.remote_load_discarded(user_id, generation))
            return

        if self._local_wins(user_id, record):
            # Claiming the state schedules the state push
            self._commit(self._state.model_copy(update={"owner_id": user_id}), from_remote=False)
            self._schedule_transaction_sync()
            winner = "local"
        else:
            self._apply_remote(user_id, record, snapshot_rows, transactions)
            winner = "remote"

        self._audit.log(
            AuditEventBuilder.state_loaded_remote(
                user_id, winner, len(snapshot_rows), len(transactions)
            )
        )

    def _local_wins(self, user_id: str, record: Optional[RemoteStateRecord]) -> bool:
        """
        Decide whether the cached state survives a session for user_id.

        State owned by another user never wins. Unowned state was never
        synced and may seed an account.
        """
        if self._state.owner_id not in (None, user_id):
            return False
        if record is None:
            return True
        local_time = self._state.updated_at
        if local_time is None:
            return False
        return record.updated_at is None or local_time > record.updated_at

    def _apply_remote(
        self,
        user_id: str,
        record: Optional[RemoteStateRecord],
        snapshot_rows: list[SnapshotRecord],
        transactions: list[ExpenseTransaction],
    ) -> None:
        if record is not None:
            base, issues = parse_app_state(record.state, self._local.empty_state().currency)
            if issues:
                logger.warning("remote_state_issues", user_id=user_id, issues=issues)
            base = base.model_copy(update={"updated_at": record.updated_at})
        else:
            base = self._local.empty_state()

        self._commit(
            base.model_copy(update={
                "owner_id": user_id,
                "snapshots": tuple(row.to_snapshot() for row in snapshot_rows),
                "expense_transactions": tuple(transactions),
            }),
            from_remote=True,
        )

    # -------------------------------------------------------------------------
    # Remote writes
    # -------------------------------------------------------------------------

    def _schedule_state_push(self) -> None:
        user_id, generation = self._user_id, self._generation
        # The state is sampled when the timer fires, not when it is armed
        self._state_sync.schedule(
            lambda: self._push_state(user_id, generation, self._state)
        )

    def _schedule_transaction_sync(self) -> None:
        user_id, generation = self._user_id, self._generation
        self._transaction_sync.schedule(
            lambda: self._sync_transactions(user_id, generation, self._state.expense_transactions)
        )

    async def _push_state(self, user_id: str, generation: int, state: AppState) -> None:
        try:
            await self._remote.save_state(user_id, state.to_payload(), state.updated_at)
        except StorageError as e:
            self._report_failure(user_id, generation, "state save", e)
            return
        self._audit.log(AuditEventBuilder.state_pushed(user_id))

    async def _sync_transactions(
        self,
        user_id: str,
        generation: int,
        transactions: tuple[ExpenseTransaction, ...],
    ) -> None:
        """Make the remote rows mirror the local set: upsert, then prune."""
        try:
            if not transactions:
                await self._remote.delete_all_transactions(user_id)
            else:
                await self._remote.upsert_transactions(user_id, transactions)
                await self._remote.delete_transactions_except(
                    user_id, [txn.id for txn in transactions]
                )
        except StorageError as e:
            self._report_failure(user_id, generation, "transaction sync", e)
            return
        self._audit.log(AuditEventBuilder.transactions_synced(user_id, len(transactions)))

    async def _push_snapshot(self, user_id: str, generation: int, record: SnapshotRecord) -> None:
        try:
            await self._remote.upsert_snapshot(user_id, record)
        except StorageError as e:
            self._report_failure(user_id, generation, "snapshot save", e)
            return
        self._audit.log(
            AuditEventBuilder.snapshot_pushed(user_id, record.month, record.currency.value)
        )

    def _report_failure(self, user_id: str, generation: int, operation: str, error: Exception) -> None:
        message = str(error) or f"Remote {operation} failed"
        self._audit.log(AuditEventBuilder.remote_sync_failed(user_id, operation, message))
        # Failures of an earlier session are not shown in the current one
        if generation == self._generation:
            self._last_error = message

    # -------------------------------------------------------------------------
    # Background tasks
    # -------------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("remote_task_failed", error=repr(task.exception()))

    async def drain(self, flush: bool = False) -> None:
        """
        Wait for in-flight remote work.

        With flush, pending debounced writes are sent now instead of after
        the quiet period (use before shutdown).
        """
        if flush:
            self._state_sync.fire_now()
            self._transaction_sync.fire_now()
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self._state_sync.wait()
        await self._transaction_sync.wait()
