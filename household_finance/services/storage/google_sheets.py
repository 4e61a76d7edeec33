"""
Google Sheets Remote Store

DESIGN DECISION: Google Sheets is used as the remote store because:
1. Users can view their own data directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- No transactions: an upsert followed by a prune is two separate writes
- A cell holds at most 50k characters, which bounds the state blob
- Limited query capabilities (we filter in Python)

gspread is synchronous. Every call runs in a worker thread so the event
loop (and with it, local state edits) never waits on the network.

Each write reads the sheet to find row indices, then writes by index. Calls
on the same worksheet hold that worksheet's lock for the whole sequence, so
overlapping syncs cannot write through indices another call has shifted.
"""

import asyncio
import json
import threading
from collections.abc import Collection, Sequence
from datetime import date, datetime, timezone
from typing import Any, Callable, Optional, TypeVar

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from household_finance.config import GoogleSheetsSettings, get_settings
from household_finance.models.finance import (
    Currency,
    ExpenseTransaction,
    RemoteStateRecord,
    SnapshotRecord,
)
from household_finance.services.storage.interface import (
    ConnectionError,
    RemoteStoreInterface,
    StorageError,
)


logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Lock keys, one per worksheet
USER_STATE = "user_state"
SNAPSHOTS = "monthly_snapshots"
TRANSACTIONS = "expense_transactions"

# Column mappings, one worksheet per remote table
USER_STATE_COLUMNS = [
    "user_id",
    "state_json",
    "updated_at",
]

SNAPSHOT_COLUMNS = [
    "user_id",
    "month",
    "currency",
    "id",
    "assets_total",
    "liabilities_total",
    "net_worth",
    "budget_income",
    "budget_expense",
    "loans_emi",
    "created_at",
]

TRANSACTION_COLUMNS = [
    "id",
    "user_id",
    "date",
    "category",
    "description",
    "amount",
]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for connecting.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @property
    def settings(self) -> GoogleSheetsSettings:
        return self._settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get or create a worksheet with the given header row."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_user_state_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.user_state_sheet_name, USER_STATE_COLUMNS)

    def get_snapshots_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.snapshots_sheet_name, SNAPSHOT_COLUMNS)

    def get_transactions_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(
            self._settings.transactions_sheet_name,
            TRANSACTION_COLUMNS,
            rows=5000,
        )


def _safe_get(row: list, index: int, default: str = "") -> str:
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


def _parse_timestamp(value: str) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    # Rows written by hand may lack an offset
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class GoogleSheetsRemoteStore(RemoteStoreInterface):
    """
    Google Sheets implementation of the remote store.

    Rows of every user share one worksheet per table; the user_id column
    scopes them. The state blob is stored JSON-serialized in one cell.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._locks = {
            table: threading.Lock() for table in (USER_STATE, SNAPSHOTS, TRANSACTIONS)
        }

    def _locked(self, table: str, func: Callable[..., T], *args: Any) -> T:
        with self._locks[table]:
            return func(*args)

    async def _run(self, table: str, operation: str, func: Callable[..., T], *args: Any) -> T:
        """Run a blocking sheets call in a worker thread, wrapping failures."""
        try:
            return await asyncio.to_thread(self._locked, table, func, *args)
        except StorageError:
            raise
        except Exception as e:
            logger.error("sheets_operation_failed", operation=operation, error=str(e))
            raise StorageError(f"Failed to {operation}: {e}") from e

    # -------------------------------------------------------------------------
    # Row conversion
    # -------------------------------------------------------------------------

    def _snapshot_to_row(self, user_id: str, record: SnapshotRecord) -> list:
        return [
            user_id,
            record.month,
            record.currency.value,
            record.id,
            str(record.assets_total),
            str(record.liabilities_total),
            str(record.net_worth),
            str(record.budget_income),
            str(record.budget_expense),
            str(record.loans_emi),
            record.created_at.isoformat(),
        ]

    def _row_to_snapshot(self, row: list) -> SnapshotRecord:
        created_at = _parse_timestamp(_safe_get(row, 10))
        fields = dict(
            month=_safe_get(row, 1),
            currency=Currency(_safe_get(row, 2, Currency.GBP.value)),
            assets_total=_safe_get(row, 4) or None,
            liabilities_total=_safe_get(row, 5) or None,
            net_worth=_safe_get(row, 6) or None,
            budget_income=_safe_get(row, 7) or None,
            budget_expense=_safe_get(row, 8) or None,
            loans_emi=_safe_get(row, 9) or None,
        )
        if _safe_get(row, 3):
            fields["id"] = _safe_get(row, 3)
        if created_at:
            fields["created_at"] = created_at
        return SnapshotRecord(**fields)

    def _transaction_to_row(self, user_id: str, txn: ExpenseTransaction) -> list:
        return [
            txn.id,
            user_id,
            txn.txn_date.isoformat(),
            txn.category,
            txn.description,
            str(txn.amount),
        ]

    def _row_to_transaction(self, row: list) -> ExpenseTransaction:
        return ExpenseTransaction(
            id=_safe_get(row, 0),
            txn_date=date.fromisoformat(_safe_get(row, 2)),
            category=_safe_get(row, 3),
            description=_safe_get(row, 4),
            amount=_safe_get(row, 5) or None,
        )

    # -------------------------------------------------------------------------
    # user_state
    # -------------------------------------------------------------------------

    def _load_state(self, user_id: str) -> Optional[RemoteStateRecord]:
        sheet = self._client.get_user_state_sheet()
        for row in sheet.get_all_values()[1:]:
            if row and row[0] == user_id:
                state_json = _safe_get(row, 1)
                if not state_json:
                    return None
                return RemoteStateRecord(
                    user_id=user_id,
                    state=json.loads(state_json),
                    updated_at=_parse_timestamp(_safe_get(row, 2)),
                )
        return None

    def _save_state(self, user_id: str, state: dict[str, Any], updated_at: Optional[datetime]) -> None:
        sheet = self._client.get_user_state_sheet()
        new_row = [
            user_id,
            json.dumps(state),
            updated_at.isoformat() if updated_at else "",
        ]
        for idx, row in enumerate(sheet.get_all_values()[1:], start=2):  # Row 1 is header
            if row and row[0] == user_id:
                sheet.update(range_name=f"A{idx}", values=[new_row], value_input_option="RAW")
                return
        sheet.append_row(new_row, value_input_option="RAW")

    async def load_state(self, user_id: str) -> Optional[RemoteStateRecord]:
        """Read the user's state blob."""
        return await self._run(USER_STATE, "load state", self._load_state, user_id)

    async def save_state(
        self,
        user_id: str,
        state: dict[str, Any],
        updated_at: Optional[datetime],
    ) -> None:
        """Upsert the user's state blob."""
        await self._run(USER_STATE, "save state", self._save_state, user_id, state, updated_at)

    # -------------------------------------------------------------------------
    # monthly_snapshots
    # -------------------------------------------------------------------------

    def _list_snapshots(self, user_id: str) -> list[SnapshotRecord]:
        sheet = self._client.get_snapshots_sheet()
        records = []
        for row in sheet.get_all_values()[1:]:
            if not row or row[0] != user_id:
                continue
            try:
                records.append(self._row_to_snapshot(row))
            except ValueError:
                logger.warning("malformed_snapshot_row", user_id=user_id)
                continue
        records.sort(key=lambda r: r.month, reverse=True)
        return records

    def _upsert_snapshot(self, user_id: str, record: SnapshotRecord) -> None:
        sheet = self._client.get_snapshots_sheet()
        new_row = self._snapshot_to_row(user_id, record)
        for idx, row in enumerate(sheet.get_all_values()[1:], start=2):
            if (
                row
                and row[0] == user_id
                and _safe_get(row, 1) == record.month
                and _safe_get(row, 2, Currency.GBP.value) == record.currency.value
            ):
                sheet.update(range_name=f"A{idx}", values=[new_row], value_input_option="RAW")
                return
        sheet.append_row(new_row, value_input_option="RAW")

    async def list_snapshots(self, user_id: str) -> list[SnapshotRecord]:
        """List the user's snapshot rows, newest month first."""
        return await self._run(SNAPSHOTS, "load snapshots", self._list_snapshots, user_id)

    async def upsert_snapshot(self, user_id: str, record: SnapshotRecord) -> None:
        """Upsert one snapshot row."""
        await self._run(SNAPSHOTS, "save snapshot", self._upsert_snapshot, user_id, record)

    # -------------------------------------------------------------------------
    # expense_transactions
    # -------------------------------------------------------------------------

    def _list_transactions(self, user_id: str) -> list[ExpenseTransaction]:
        sheet = self._client.get_transactions_sheet()
        transactions = []
        for row in sheet.get_all_values()[1:]:
            if not row or _safe_get(row, 1) != user_id:
                continue
            try:
                transactions.append(self._row_to_transaction(row))
            except ValueError:
                logger.warning("malformed_transaction_row", user_id=user_id)
                continue
        transactions.sort(key=lambda t: t.txn_date, reverse=True)
        return transactions

    def _upsert_transactions(self, user_id: str, transactions: Sequence[ExpenseTransaction]) -> None:
        sheet = self._client.get_transactions_sheet()
        row_index = {
            row[0]: idx
            for idx, row in enumerate(sheet.get_all_values()[1:], start=2)
            if row and row[0]
        }
        new_rows = []
        for txn in transactions:
            row = self._transaction_to_row(user_id, txn)
            idx = row_index.get(txn.id)
            if idx is None:
                new_rows.append(row)
            else:
                sheet.update(range_name=f"A{idx}", values=[row], value_input_option="RAW")
        if new_rows:
            sheet.append_rows(new_rows, value_input_option="RAW")

    def _delete_transactions_except(self, user_id: str, keep_ids: Collection[str]) -> int:
        sheet = self._client.get_transactions_sheet()
        keep = set(keep_ids)
        doomed = [
            idx
            for idx, row in enumerate(sheet.get_all_values()[1:], start=2)
            if row and _safe_get(row, 1) == user_id and row[0] not in keep
        ]
        # Bottom-up so earlier indices stay valid
        for idx in reversed(doomed):
            sheet.delete_rows(idx)
        return len(doomed)

    async def list_transactions(self, user_id: str) -> list[ExpenseTransaction]:
        """List the user's transactions, newest first."""
        return await self._run(TRANSACTIONS, "load transactions", self._list_transactions, user_id)

    async def upsert_transactions(
        self,
        user_id: str,
        transactions: Sequence[ExpenseTransaction],
    ) -> None:
        """Upsert transactions keyed by id."""
        await self._run(
            TRANSACTIONS, "save transactions", self._upsert_transactions, user_id, transactions
        )

    async def delete_transactions_except(
        self,
        user_id: str,
        keep_ids: Collection[str],
    ) -> int:
        """Delete the user's rows not in keep_ids."""
        return await self._run(
            TRANSACTIONS, "prune transactions", self._delete_transactions_except, user_id, keep_ids
        )
