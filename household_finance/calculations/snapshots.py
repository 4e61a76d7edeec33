"""
Monthly net-worth snapshots.

A snapshot slot is keyed by (month, currency). Capturing again in the same
month replaces the slot: the old entry is removed and the new one, with a
fresh id, is prepended. The list is ordered by insertion, most recent first,
and is never re-sorted by month.
"""

from datetime import datetime
from typing import Optional

from household_finance.calculations.aggregates import (
    assets_total,
    liabilities_total,
    summarize_budget,
    sum_amounts,
)
from household_finance.models.finance import (
    AppState,
    Snapshot,
    SnapshotRecord,
    new_id,
    utc_now,
)


def month_key(moment: datetime) -> str:
    """YYYY-MM key of the calendar month containing moment."""
    return f"{moment.year}-{moment.month:02d}"


def upsert_snapshot(snapshots: tuple[Snapshot, ...], snapshot: Snapshot) -> tuple[Snapshot, ...]:
    """Drop any snapshot in the same slot, then prepend the new one."""
    kept = tuple(s for s in snapshots if s.key != snapshot.key)
    return (snapshot,) + kept


def capture_snapshot(
    state: AppState,
    now: Optional[datetime] = None,
) -> tuple[Snapshot, tuple[Snapshot, ...]]:
    """
    Materialize this month's net worth for the display currency.

    Returns:
        (new snapshot, updated snapshot list)
    """
    now = now or utc_now()
    assets = assets_total(state, state.currency)
    liabilities = liabilities_total(state, state.currency)
    snapshot = Snapshot(
        id=new_id(),
        month=month_key(now),
        currency=state.currency,
        assets_total=assets,
        liabilities_total=liabilities,
        net_worth=sum_amounts([assets, -liabilities]),
        created_at=now,
    )
    return snapshot, upsert_snapshot(state.snapshots, snapshot)


def snapshot_record(state: AppState, snapshot: Snapshot) -> SnapshotRecord:
    """Remote row for a snapshot, with the budget totals of the given state."""
    budget = summarize_budget(state, state.currency)
    return SnapshotRecord(
        month=snapshot.month,
        currency=snapshot.currency,
        id=snapshot.id,
        assets_total=snapshot.assets_total,
        liabilities_total=snapshot.liabilities_total,
        net_worth=snapshot.net_worth,
        budget_income=budget.income_total,
        budget_expense=budget.expense_with_emi,
        loans_emi=budget.emi_total,
        created_at=snapshot.created_at,
    )
