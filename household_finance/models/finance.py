"""
Core Data Models for Household Finance

These models define the schemas for all data held in the application state.
They are designed to:
1. Be immutable - every change produces a new value
2. Load partial or legacy payloads by filling defaults field by field
3. Serialize to the same camelCase JSON shape the local cache and the
   remote state blob have always used

DESIGN DECISION: There is one canonical cadence enumeration and one entity
shape. Older payloads (the "annual" cadence tag, the "autoCalculate" loan
flag, snapshots without a currency) are migrated on load.

DESIGN DECISION: We do NOT validate business correctness. A negative asset
value is accepted. Numeric fields only get coerced (None/"" -> default).
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


STATE_SCHEMA_VERSION = 1


def new_id() -> str:
    """Fresh entity identity."""
    return str(uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class Currency(str, Enum):
    """
    Currency labels.

    Amounts are bucketed per currency, never converted.
    """
    GBP = "GBP"
    EUR = "EUR"
    USD = "USD"
    INR = "INR"


class Cadence(str, Enum):
    """
    Recurrence period of a monetary item.

    "annual" is accepted on input as a legacy spelling of YEARLY.
    """
    MONTHLY = "monthly"
    WEEKLY = "weekly"
    FORTNIGHTLY = "fortnightly"
    YEARLY = "yearly"

    @classmethod
    def _missing_(cls, value: object) -> Optional["Cadence"]:
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered == "annual":
                return cls.YEARLY
            for member in cls:
                if member.value == lowered:
                    return member
        return None


class Owner(str, Enum):
    """Who holds an asset."""
    SELF = "Self"
    SPOUSE = "Spouse"
    JOINT = "Joint"


class BudgetList(str, Enum):
    """The two named budget lists."""
    INCOME = "income"
    EXPENSES = "expenses"


# Suggested category tags. Stored values are free text.
LOAN_TYPES = (
    "Mortgage",
    "Personal loan",
    "Car loan",
    "Education loan",
    "Credit card",
    "BNPL",
    "Other",
)

ASSET_CATEGORIES = (
    "Cash & bank",
    "Investments",
    "Property",
    "Vehicles",
    "Other",
)

LIABILITY_CATEGORIES = (
    "Loans",
    "Credit card",
    "Overdraft",
    "Other debt",
)


# =============================================================================
# BASE MODEL
# =============================================================================

class FinanceModel(BaseModel):
    """
    Base for every persisted entity.

    Frozen, camelCase on the wire, snake_case in Python.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        str_strip_whitespace=True,
        extra="ignore",
    )

    def to_payload(self) -> dict[str, Any]:
        """JSON-ready dict using the wire (camelCase) field names."""
        return self.model_dump(mode="json", by_alias=True)


def _blank_to_zero(v: Any) -> Any:
    if v is None or (isinstance(v, str) and not v.strip()):
        return 0.0
    return v


def _blank_to_none(v: Any) -> Any:
    if isinstance(v, str) and not v.strip():
        return None
    return v


def _parse_cadence(v: Any) -> Any:
    """Missing cadence means monthly; unknown tags are rejected."""
    if v is None or (isinstance(v, str) and not v.strip()):
        return Cadence.MONTHLY
    if isinstance(v, Cadence):
        return v
    return Cadence(v)


# =============================================================================
# ENTITIES
# =============================================================================

class Loan(FinanceModel):
    """
    A loan with either a manually entered EMI or an auto-calculated one.

    When auto_calc_emi is on, principal/annual_rate/term_months must all be
    present for the EMI to resolve to a non-zero value. The outstanding
    balance is tracked independently of the EMI basis.
    """
    id: str = Field(default_factory=new_id)
    name: str = ""
    loan_type: str = LOAN_TYPES[-1]
    lender: Optional[str] = None
    currency: Currency = Currency.GBP

    # Auto-calculation inputs
    principal: Optional[float] = None
    annual_rate: Optional[float] = Field(
        default=None,
        description="Annual interest rate in percent"
    )
    term_months: Optional[int] = None

    # Manual EMI
    emi: Optional[float] = None
    payment_frequency: Cadence = Cadence.MONTHLY

    outstanding_balance: float = 0.0
    start_date: Optional[date] = None
    next_due_date: Optional[date] = None
    notes: Optional[str] = None

    auto_calc_emi: bool = False

    @model_validator(mode='before')
    @classmethod
    def migrate_legacy_keys(cls, data: Any) -> Any:
        """Accept the older loan shape ("autoCalculate", "type")."""
        if isinstance(data, dict):
            data = dict(data)
            if "autoCalculate" in data and "autoCalcEmi" not in data:
                data["autoCalcEmi"] = data.pop("autoCalculate")
            if "type" in data and "loanType" not in data:
                data["loanType"] = data.pop("type")
        return data

    @field_validator('outstanding_balance', mode='before')
    @classmethod
    def coerce_required_amount(cls, v: Any) -> Any:
        return _blank_to_zero(v)

    @field_validator('loan_type', mode='before')
    @classmethod
    def default_loan_type(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return LOAN_TYPES[-1]
        return v

    @field_validator('payment_frequency', mode='before')
    @classmethod
    def parse_frequency(cls, v: Any) -> Any:
        return _parse_cadence(v)

    @field_validator('principal', 'annual_rate', 'emi', 'term_months', 'start_date', 'next_due_date', mode='before')
    @classmethod
    def coerce_optional(cls, v: Any) -> Any:
        return _blank_to_none(v)


class Asset(FinanceModel):
    """An owned asset at its latest valuation."""
    id: str = Field(default_factory=new_id)
    name: str = ""
    category: str = ASSET_CATEGORIES[0]
    currency: Currency = Currency.GBP
    value: float = 0.0
    owner: Owner = Owner.SELF
    valuation_date: date = Field(default_factory=date.today)
    notes: Optional[str] = None

    @field_validator('value', mode='before')
    @classmethod
    def coerce_value(cls, v: Any) -> Any:
        return _blank_to_zero(v)


class Liability(FinanceModel):
    """Non-loan debt (credit cards, overdrafts, ...)."""
    id: str = Field(default_factory=new_id)
    name: str = ""
    category: str = LIABILITY_CATEGORIES[1]
    currency: Currency = Currency.GBP
    outstanding: float = 0.0
    annual_rate: Optional[float] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None

    @field_validator('outstanding', mode='before')
    @classmethod
    def coerce_outstanding(cls, v: Any) -> Any:
        return _blank_to_zero(v)

    @field_validator('annual_rate', 'due_date', mode='before')
    @classmethod
    def coerce_optional(cls, v: Any) -> Any:
        return _blank_to_none(v)


class BudgetItem(FinanceModel):
    """A recurring income or expense line in the budget plan."""
    id: str = Field(default_factory=new_id)
    category: str = ""
    name: str = ""
    amount: float = 0.0
    frequency: Cadence = Cadence.MONTHLY

    @field_validator('amount', mode='before')
    @classmethod
    def coerce_amount(cls, v: Any) -> Any:
        return _blank_to_zero(v)

    @field_validator('frequency', mode='before')
    @classmethod
    def parse_frequency(cls, v: Any) -> Any:
        return _parse_cadence(v)


class BudgetData(FinanceModel):
    """The income and expenses lists of the budget plan."""
    income: tuple[BudgetItem, ...] = ()
    expenses: tuple[BudgetItem, ...] = ()

    def items(self, which: BudgetList) -> tuple[BudgetItem, ...]:
        return self.income if which == BudgetList.INCOME else self.expenses


class ExpenseTransaction(FinanceModel):
    """A single entry of the flat expense ledger."""
    id: str = Field(default_factory=new_id)
    txn_date: date = Field(default_factory=date.today, alias="date")
    category: str = ""
    description: str = ""
    amount: float = 0.0

    @field_validator('amount', mode='before')
    @classmethod
    def coerce_amount(cls, v: Any) -> Any:
        return _blank_to_zero(v)

    @property
    def month(self) -> str:
        """Calendar month key (YYYY-MM) of the transaction."""
        return self.txn_date.strftime("%Y-%m")


class Snapshot(FinanceModel):
    """
    Point-in-time net-worth record.

    At most one snapshot exists per (month, currency). Recapturing replaces
    the slot with a new identity.
    """
    id: str = Field(default_factory=new_id)
    month: str = Field(
        ...,
        pattern=r"^\d{4}-\d{2}$",
        description="Calendar month key (YYYY-MM)"
    )
    currency: Currency = Currency.GBP
    assets_total: float = 0.0
    liabilities_total: float = 0.0
    net_worth: float = 0.0
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def key(self) -> tuple[str, Currency]:
        return self.month, self.currency


# =============================================================================
# AGGREGATE ROOT
# =============================================================================

# Collections of AppState that hold identified entities
ENTITY_COLLECTIONS = {
    "loans": Loan,
    "assets": Asset,
    "liabilities": Liability,
    "expense_transactions": ExpenseTransaction,
}


class AppState(FinanceModel):
    """
    The single application state value.

    Replaced wholesale on every mutation - never edited in place.
    """
    version: int = STATE_SCHEMA_VERSION
    currency: Currency = Currency.GBP
    loans: tuple[Loan, ...] = ()
    assets: tuple[Asset, ...] = ()
    liabilities: tuple[Liability, ...] = ()
    budget: BudgetData = Field(default_factory=BudgetData)
    expense_transactions: tuple[ExpenseTransaction, ...] = ()
    snapshots: tuple[Snapshot, ...] = ()
    updated_at: Optional[datetime] = Field(
        default=None,
        description="When the state was last changed locally (None = never)"
    )
    owner_id: Optional[str] = Field(
        default=None,
        description="User whose session last edited or loaded this state (None = never synced)"
    )


# =============================================================================
# REMOTE RECORDS
# =============================================================================

class RemoteStateRecord(BaseModel):
    """The per-user state blob as held by the remote store."""
    model_config = ConfigDict(frozen=True)

    user_id: str
    state: dict[str, Any]
    updated_at: Optional[datetime] = None


class SnapshotRecord(BaseModel):
    """
    A monthly_snapshots row.

    Carries the budget totals at capture time in addition to the snapshot.
    """
    model_config = ConfigDict(frozen=True)

    month: str
    currency: Currency = Currency.GBP
    id: str = Field(default_factory=new_id)
    assets_total: float = 0.0
    liabilities_total: float = 0.0
    net_worth: float = 0.0
    budget_income: float = 0.0
    budget_expense: float = 0.0
    loans_emi: float = 0.0
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator(
        'assets_total', 'liabilities_total', 'net_worth',
        'budget_income', 'budget_expense', 'loans_emi',
        mode='before',
    )
    @classmethod
    def coerce_amounts(cls, v: Any) -> Any:
        return _blank_to_zero(v)

    def to_snapshot(self) -> Snapshot:
        return Snapshot(
            id=self.id,
            month=self.month,
            currency=self.currency,
            assets_total=self.assets_total,
            liabilities_total=self.liabilities_total,
            net_worth=self.net_worth,
            created_at=self.created_at,
        )


# =============================================================================
# DESERIALIZATION
# =============================================================================

def _parse_entries(model: type[BaseModel], raw: Any, field: str, issues: list[str]) -> tuple:
    """Validate each entry on its own; invalid entries are dropped."""
    if raw is None:
        return ()
    if not isinstance(raw, (list, tuple)):
        issues.append(f"{field}: expected a list, got {type(raw).__name__}")
        return ()
    parsed = []
    for index, entry in enumerate(raw):
        try:
            parsed.append(model.model_validate(entry))
        except ValidationError as e:
            issues.append(f"{field}[{index}]: {e.error_count()} invalid field(s)")
    return tuple(parsed)


def _parse_updated_at(raw: Any, issues: list[str]) -> Optional[datetime]:
    if raw in (None, ""):
        return None
    if isinstance(raw, datetime):
        return raw
    try:
        parsed = datetime.fromisoformat(str(raw))
    except ValueError:
        issues.append("updatedAt: not an ISO timestamp")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_owner_id(raw: Any, issues: list[str]) -> Optional[str]:
    if raw in (None, ""):
        return None
    if not isinstance(raw, str):
        issues.append("ownerId: expected a string")
        return None
    return raw


def _migrate_v0(data: dict[str, Any], currency: Currency) -> dict[str, Any]:
    """
    Upgrade a pre-versioned payload.

    Snapshots written before currency scoping belong to the state currency.
    """
    data = dict(data)
    snapshots = data.get("snapshots")
    if isinstance(snapshots, list):
        data["snapshots"] = [
            {"currency": currency.value, **entry} if isinstance(entry, dict) else entry
            for entry in snapshots
        ]
    return data


def parse_app_state(
    payload: Any,
    default_currency: Currency = Currency.GBP,
) -> tuple[AppState, list[str]]:
    """
    Build an AppState from a decoded JSON payload.

    Every field is validated on its own and falls back to its default, so a
    payload written by an older client (or a partially corrupt one) still
    loads. Returns the state plus a list of human-readable issues found.
    """
    issues: list[str] = []
    if payload is None:
        return AppState(currency=default_currency), issues
    if not isinstance(payload, dict):
        issues.append(f"state: expected an object, got {type(payload).__name__}")
        return AppState(currency=default_currency), issues

    try:
        currency = Currency(payload.get("currency", default_currency))
    except ValueError:
        issues.append(f"currency: unknown value {payload.get('currency')!r}")
        currency = default_currency

    version = payload.get("version", 0)
    if not isinstance(version, int) or version < 1:
        payload = _migrate_v0(payload, currency)

    budget_raw = payload.get("budget") or {}
    if not isinstance(budget_raw, dict):
        issues.append("budget: expected an object")
        budget_raw = {}
    budget = BudgetData(
        income=_parse_entries(BudgetItem, budget_raw.get("income"), "budget.income", issues),
        expenses=_parse_entries(BudgetItem, budget_raw.get("expenses"), "budget.expenses", issues),
    )

    state = AppState(
        version=STATE_SCHEMA_VERSION,
        currency=currency,
        loans=_parse_entries(Loan, payload.get("loans"), "loans", issues),
        assets=_parse_entries(Asset, payload.get("assets"), "assets", issues),
        liabilities=_parse_entries(Liability, payload.get("liabilities"), "liabilities", issues),
        budget=budget,
        expense_transactions=_parse_entries(
            ExpenseTransaction, payload.get("expenseTransactions"), "expenseTransactions", issues
        ),
        snapshots=_parse_entries(Snapshot, payload.get("snapshots"), "snapshots", issues),
        updated_at=_parse_updated_at(payload.get("updatedAt"), issues),
        owner_id=_parse_owner_id(payload.get("ownerId"), issues),
    )
    return state, issues
