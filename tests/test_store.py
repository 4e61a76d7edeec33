"""
Tests for the StateStore

Test strategy:
1. Mutations are synchronous and always reach the local cache
2. Remote behaviour runs against InMemoryRemoteStore with a tiny debounce
3. Failures and races are driven by small subclasses of the in-memory store
"""

import asyncio
from datetime import date, datetime, timedelta, timezone

import pytest

from household_finance.models.audit import AuditEventType
from household_finance.models.finance import (
    AppState,
    Asset,
    BudgetItem,
    BudgetList,
    Currency,
    ExpenseTransaction,
    Liability,
    Loan,
    SnapshotRecord,
)
from household_finance.services.storage import (
    InMemoryRemoteStore,
    LocalStateCache,
    StorageError,
)
from household_finance.state import StateStore


DEBOUNCE = 0.01


class Clock:
    """Strictly increasing fake clock."""

    def __init__(self, start=datetime(2024, 3, 1, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self):
        self.now += timedelta(seconds=1)
        return self.now


class FailingSaveStore(InMemoryRemoteStore):
    """Remote store whose state writes always fail."""

    async def save_state(self, user_id, state, updated_at):
        self.operations.append(("save_state", user_id))
        raise StorageError("Failed to save state: quota exceeded")


class FailingLoadStore(InMemoryRemoteStore):
    """Remote store that cannot be read."""

    async def list_snapshots(self, user_id):
        raise StorageError("Failed to load snapshots: timeout")


class GatedLoadStore(InMemoryRemoteStore):
    """Remote store whose reads for one user block until released."""

    def __init__(self, slow_user):
        super().__init__()
        self.slow_user = slow_user
        self.gate = asyncio.Event()

    async def load_state(self, user_id):
        if user_id == self.slow_user:
            await self.gate.wait()
        return await super().load_state(user_id)


def ops(remote, name):
    return [op for op in remote.operations if op[0] == name]


def event_types(audit_logger):
    return [event.event_type for event in audit_logger.recent_events]


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def make_store(local_cache, audit_logger, clock):
    def make(remote=None):
        return StateStore(
            local_cache,
            remote_store=remote,
            audit_logger=audit_logger,
            debounce_seconds=DEBOUNCE,
            clock=clock,
        )
    return make


@pytest.fixture
def store(make_store, remote_store):
    return make_store(remote_store)


class TestLocalLane:
    """Tests for mutations without a session."""

    def test_starts_from_cache(self, local_cache, make_store, populated_state):
        """Test the store loads whatever the cache holds."""
        local_cache.save(populated_state)
        assert make_store().state == populated_state

    def test_update_saves_locally(self, store, cache_path, clock):
        """Test every mutation is written to the cache before returning."""
        store.add_item("assets", Asset(id="a1", value=100))

        reloaded = LocalStateCache(cache_path).load()
        assert reloaded.assets[0].id == "a1"
        assert reloaded.updated_at == clock.now

    def test_update_with_function(self, store):
        """Test update accepts a function of the current state."""
        store.update(lambda s: s.model_copy(update={"currency": Currency.USD}))
        assert store.state.currency == Currency.USD

    def test_update_replaces_value(self, store):
        """Test the previous state value is never modified."""
        before = store.state
        store.set_currency(Currency.EUR)
        assert before.currency == Currency.GBP
        assert store.state is not before

    async def test_no_remote_writes_without_session(self, store, remote_store):
        """Test signed-out edits stay local."""
        store.add_item("assets", Asset(value=1))
        await store.drain(flush=True)
        assert remote_store.operations == []

    def test_listeners(self, store):
        """Test subscribers see every new state until they unsubscribe."""
        seen = []
        unsubscribe = store.subscribe(seen.append)
        store.set_currency(Currency.INR)
        unsubscribe()
        store.set_currency(Currency.USD)
        assert [s.currency for s in seen] == [Currency.INR]


class TestCollections:
    """Tests for the collection helpers."""

    def test_add_prepends(self, store):
        """Test new entities go first."""
        store.add_item("liabilities", Liability(id="l1"))
        store.add_item("liabilities", Liability(id="l2"))
        assert [item.id for item in store.state.liabilities] == ["l2", "l1"]

    def test_replace_item(self, store):
        """Test replacing by id keeps position."""
        store.add_item("loans", Loan(id="x", name="Old"))
        store.add_item("loans", Loan(id="y"))
        store.replace_item("loans", Loan(id="x", name="New"))
        assert [(loan.id, loan.name) for loan in store.state.loans] == [("y", ""), ("x", "New")]

    def test_replace_unknown_id(self, store):
        """Test replacing a missing entity raises KeyError."""
        with pytest.raises(KeyError):
            store.replace_item("loans", Loan(id="nope"))

    def test_remove_item(self, store):
        """Test removing by id."""
        store.add_item("assets", Asset(id="a1"))
        store.add_item("assets", Asset(id="a2"))
        store.remove_item("assets", "a1")
        assert [a.id for a in store.state.assets] == ["a2"]

    def test_wrong_type_rejected(self, store):
        """Test an entity of the wrong kind is refused."""
        with pytest.raises(TypeError):
            store.add_item("assets", Loan())

    def test_unknown_collection(self, store):
        """Test snapshots and budget are not generic collections."""
        with pytest.raises(ValueError):
            store.remove_item("snapshots", "x")

    def test_budget_items(self, store):
        """Test budget add, replace and remove."""
        store.add_budget_item(BudgetList.INCOME, BudgetItem(id="i1", amount=100))
        store.add_budget_item(BudgetList.INCOME, BudgetItem(id="i2", amount=200))
        store.replace_budget_item(BudgetList.INCOME, BudgetItem(id="i1", amount=150))
        store.add_budget_item(BudgetList.EXPENSES, BudgetItem(id="e1", amount=50))
        store.remove_budget_item(BudgetList.INCOME, "i2")

        assert [(i.id, i.amount) for i in store.state.budget.income] == [("i1", 150)]
        assert [e.id for e in store.state.budget.expenses] == ["e1"]
        assert store.budget_summary().left_over == 100

    def test_net_worth_summary(self, store):
        """Test derived values follow the display currency."""
        store.add_item("assets", Asset(value=100, currency=Currency.GBP))
        store.add_item("assets", Asset(value=900, currency=Currency.EUR))
        assert store.net_worth_summary().net_worth == 100
        store.set_currency(Currency.EUR)
        assert store.net_worth_summary().net_worth == 900


class TestSessionLoad:
    """Tests for reconciliation on session acquisition."""

    async def test_no_remote_record_pushes_local(self, store, remote_store):
        """Test a new user's remote is seeded from the local state."""
        store.add_item("assets", Asset(id="a1", value=10))
        await store.set_session("u1")
        await store.drain(flush=True)

        record = await remote_store.load_state("u1")
        assert record.state["assets"][0]["id"] == "a1"
        assert store.state.assets[0].id == "a1"

    async def test_newer_remote_replaces_local(self, store, remote_store, audit_logger):
        """Test remote state, snapshot rows and transaction rows win when newer."""
        remote_state = AppState(currency=Currency.EUR, assets=(Asset(id="r1", value=7),))
        await remote_store.save_state(
            "u1", remote_state.to_payload(), datetime(2030, 1, 1, tzinfo=timezone.utc)
        )
        await remote_store.upsert_snapshot(
            "u1", SnapshotRecord(month="2029-12", currency=Currency.EUR, id="s1", net_worth=7)
        )
        await remote_store.upsert_transactions(
            "u1", [ExpenseTransaction(id="rt1", txn_date=date(2029, 12, 5), amount=3)]
        )
        store.add_item("assets", Asset(id="local", value=1))

        await store.set_session("u1")

        assert store.state.currency == Currency.EUR
        assert [a.id for a in store.state.assets] == ["r1"]
        assert [s.id for s in store.state.snapshots] == ["s1"]
        assert [t.id for t in store.state.expense_transactions] == ["rt1"]
        assert store.state.updated_at == datetime(2030, 1, 1, tzinfo=timezone.utc)
        assert AuditEventType.STATE_LOADED_REMOTE in event_types(audit_logger)

    async def test_remote_result_not_echoed(self, store, remote_store):
        """Test applying the remote state does not write it back."""
        await remote_store.save_state(
            "u1", AppState().to_payload(), datetime(2030, 1, 1, tzinfo=timezone.utc)
        )
        await store.set_session("u1")
        await store.drain(flush=True)

        assert len(ops(remote_store, "save_state")) == 1
        assert ops(remote_store, "delete_all_transactions") == []

    async def test_newer_local_wins(self, store, remote_store):
        """Test unsynced local edits survive an older remote blob."""
        await remote_store.save_state(
            "u1",
            AppState(assets=(Asset(id="old", value=1),)).to_payload(),
            datetime(2020, 1, 1, tzinfo=timezone.utc),
        )
        store.add_item("assets", Asset(id="fresh", value=2))

        await store.set_session("u1")
        await store.drain(flush=True)

        assert [a.id for a in store.state.assets] == ["fresh"]
        record = await remote_store.load_state("u1")
        assert record.state["assets"][0]["id"] == "fresh"

    async def test_parallel_reads(self, store, remote_store):
        """Test all three tables are read on session acquisition."""
        await store.set_session("u1")
        names = {name for name, _ in remote_store.operations[:3]}
        assert names == {"load_state", "list_snapshots", "list_transactions"}

    async def test_same_user_is_noop(self, store):
        """Test re-announcing the current user does not reload."""
        await store.set_session("u1")
        assert store.set_session("u1") is None

    async def test_local_only_store(self, make_store):
        """Test a store without a remote accepts sessions and stays local."""
        store = make_store(None)
        assert store.set_session("u1") is None
        assert store.session_active is False

    async def test_load_failure_keeps_local(self, make_store, audit_logger):
        """Test a failed read reports the error and changes nothing."""
        store = make_store(FailingLoadStore())
        store.add_item("assets", Asset(id="a1"))

        await store.set_session("u1")

        assert [a.id for a in store.state.assets] == ["a1"]
        assert store.last_error == "Failed to load snapshots: timeout"
        assert AuditEventType.REMOTE_SYNC_FAILED in event_types(audit_logger)

    async def test_stale_load_discarded(self, make_store, audit_logger):
        """Test a load finishing after a newer session started is ignored."""
        remote = GatedLoadStore("slow")
        now = datetime(2030, 1, 1, tzinfo=timezone.utc)
        await remote.save_state("slow", AppState(currency=Currency.INR).to_payload(), now)
        await remote.save_state("fast", AppState(currency=Currency.EUR).to_payload(), now)
        store = make_store(remote)

        slow = store.set_session("slow")
        fast = store.set_session("fast")
        await fast
        remote.gate.set()
        await slow

        assert store.user_id == "fast"
        assert store.state.currency == Currency.EUR
        assert AuditEventType.REMOTE_LOAD_DISCARDED in event_types(audit_logger)

    async def test_switching_user_flushes_to_previous(self, store, remote_store):
        """Test pending writes go to the user that made them."""
        await store.set_session("u1")
        store.add_item("assets", Asset(id="mine", value=5))
        await store.set_session("u2")
        await store.drain(flush=True)

        first = await remote_store.load_state("u1")
        assert first.state["assets"][0]["id"] == "mine"
        # Another user's local data is not claimed by the new session
        assert store.state.assets == ()
        assert await remote_store.load_state("u2") is None

    async def test_owner_survives_restart(self, make_store, cache_path, remote_store):
        """Test a restarted client never pushes one user's cache into another account."""
        await remote_store.save_state(
            "bob",
            AppState(assets=(Asset(id="bob-house", value=300000),)).to_payload(),
            datetime(2024, 2, 1, tzinfo=timezone.utc),
        )
        first = make_store(remote_store)
        await first.set_session("alice")
        first.add_item("assets", Asset(id="alice-secret", value=10))
        first.set_session(None)
        await first.drain(flush=True)
        assert LocalStateCache(cache_path).load().owner_id == "alice"

        second = StateStore(
            LocalStateCache(cache_path), remote_store=remote_store, debounce_seconds=DEBOUNCE
        )
        await second.set_session("bob")
        await second.drain(flush=True)

        assert [a.id for a in second.state.assets] == ["bob-house"]
        assert second.state.owner_id == "bob"
        record = await remote_store.load_state("bob")
        assert [a["id"] for a in record.state["assets"]] == ["bob-house"]

    async def test_owner_wins_after_restart(self, make_store, cache_path, remote_store):
        """Test the same user's newer cached edits still win after a restart."""
        await remote_store.save_state(
            "alice",
            AppState(assets=(Asset(id="stale", value=1),)).to_payload(),
            datetime(2024, 2, 1, tzinfo=timezone.utc),
        )
        first = make_store(remote_store)
        await first.set_session("alice")
        first.set_session(None)
        first.add_item("assets", Asset(id="offline-edit", value=2))
        # Edits made while signed out keep the previous owner
        assert first.state.owner_id == "alice"

        second = StateStore(
            LocalStateCache(cache_path), remote_store=remote_store, debounce_seconds=DEBOUNCE
        )
        await second.set_session("alice")
        await second.drain(flush=True)

        assert [a.id for a in second.state.assets] == ["offline-edit", "stale"]
        record = await remote_store.load_state("alice")
        assert [a["id"] for a in record.state["assets"]] == ["offline-edit", "stale"]


class TestRemoteWrites:
    """Tests for debounced and immediate remote writes."""

    async def test_state_push_debounced(self, store, remote_store):
        """Test a burst of edits results in one write of the final state."""
        await store.set_session("u1")
        await store.drain(flush=True)
        remote_store.operations.clear()

        for value in (1, 2, 3):
            store.add_item("assets", Asset(value=value))
        await asyncio.sleep(DEBOUNCE * 10)
        await store.drain()

        assert len(ops(remote_store, "save_state")) == 1
        record = await remote_store.load_state("u1")
        assert [a["value"] for a in record.state["assets"]] == [3, 2, 1]
        assert record.updated_at == store.state.updated_at

    async def test_transactions_mirrored(self, store, remote_store):
        """Test the remote ledger is upserted then pruned to the local set."""
        await store.set_session("u1")
        store.add_item("expense_transactions", ExpenseTransaction(id="t1", amount=5))
        store.add_item("expense_transactions", ExpenseTransaction(id="t2", amount=6))
        await store.drain(flush=True)
        store.remove_item("expense_transactions", "t1")
        await store.drain(flush=True)

        remaining = await remote_store.list_transactions("u1")
        assert [t.id for t in remaining] == ["t2"]
        assert ops(remote_store, "delete_transactions_except")

    async def test_empty_ledger_deletes_all(self, store, remote_store):
        """Test removing the last transaction clears the remote rows."""
        await store.set_session("u1")
        store.add_item("expense_transactions", ExpenseTransaction(id="t1"))
        await store.drain(flush=True)
        remote_store.operations.clear()

        store.remove_item("expense_transactions", "t1")
        await store.drain(flush=True)

        assert ops(remote_store, "delete_all_transactions") == [("delete_all_transactions", "u1")]
        assert await remote_store.list_transactions("u1") == []

    async def test_other_edits_skip_transaction_sync(self, store, remote_store):
        """Test only ledger changes trigger the transaction sync."""
        await store.set_session("u1")
        await store.drain(flush=True)
        remote_store.operations.clear()

        store.add_item("assets", Asset(value=1))
        await store.drain(flush=True)

        assert ops(remote_store, "save_state")
        assert ops(remote_store, "upsert_transactions") == []
        assert ops(remote_store, "delete_all_transactions") == []

    async def test_snapshot_pushed_immediately(self, store, remote_store, march_2024):
        """Test a captured snapshot is written without waiting for the debounce."""
        await store.set_session("u1")
        store.add_item("assets", Asset(value=1000))
        store.add_budget_item(BudgetList.INCOME, BudgetItem(amount=300))

        snapshot = store.capture_snapshot(march_2024)
        await store.drain()

        rows = await remote_store.list_snapshots("u1")
        assert [row.id for row in rows] == [snapshot.id]
        assert rows[0].net_worth == 1000
        assert rows[0].budget_income == 300
        assert store.state.snapshots == (snapshot,)

    async def test_failure_sets_last_error(self, make_store, audit_logger):
        """Test a failed write is surfaced and audited, not raised."""
        store = make_store(FailingSaveStore())
        await store.set_session("u1")
        store.add_item("assets", Asset(value=1))
        await store.drain(flush=True)

        assert store.last_error == "Failed to save state: quota exceeded"
        failures = [
            e for e in audit_logger.recent_events
            if e.event_type == AuditEventType.REMOTE_SYNC_FAILED
        ]
        assert failures[-1].user_id == "u1"
        # Local state is not rolled back
        assert len(store.state.assets) == 1

    async def test_session_change_clears_error(self, make_store):
        """Test the error slot is reset for the next session."""
        store = make_store(FailingSaveStore())
        await store.set_session("u1")
        await store.drain(flush=True)
        assert store.last_error is not None

        store.set_session(None)
        await store.drain()
        assert store.last_error is None

    async def test_clear_error(self, make_store):
        """Test the error can be dismissed."""
        store = make_store(FailingSaveStore())
        await store.set_session("u1")
        await store.drain(flush=True)
        store.clear_error()
        assert store.last_error is None
