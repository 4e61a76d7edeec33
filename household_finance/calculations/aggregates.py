"""
Aggregate Computation

DESIGN DECISION: Every total is a pure function of the current AppState,
recomputed on each read. Nothing is cached, so there is nothing to
invalidate when the state is replaced.

Rounding happens once, at the boundary of each sum (sum_amounts), never per
term. Expected totals depend on that.

The currency argument filters entities to one currency label. None means
"all currencies" (amounts are never converted).
"""

import math
from datetime import date
from typing import Iterable, Optional, Sequence

from pydantic import BaseModel, ConfigDict

from household_finance.calculations.cadence import monthly_equivalent
from household_finance.calculations.emi import loan_monthly_emi, round2
from household_finance.models.finance import (
    AppState,
    BudgetItem,
    Currency,
    ExpenseTransaction,
)


def sum_amounts(values: Iterable[Optional[float]]) -> float:
    """Sum treating missing/non-finite addends as 0, rounded to 2 decimals."""
    total = 0.0
    for value in values:
        if value is not None and math.isfinite(value):
            total += value
    return round2(total)


def _matches(item_currency: Currency, currency: Optional[Currency]) -> bool:
    return currency is None or item_currency == currency


# =============================================================================
# NET WORTH
# =============================================================================

def assets_total(state: AppState, currency: Optional[Currency] = None) -> float:
    return sum_amounts(a.value for a in state.assets if _matches(a.currency, currency))


def liabilities_total(state: AppState, currency: Optional[Currency] = None) -> float:
    """Non-loan liabilities plus outstanding loan balances."""
    debts = sum_amounts(
        item.outstanding for item in state.liabilities if _matches(item.currency, currency)
    )
    loans = sum_amounts(
        loan.outstanding_balance for loan in state.loans if _matches(loan.currency, currency)
    )
    return sum_amounts([debts, loans])


def net_worth(state: AppState, currency: Optional[Currency] = None) -> float:
    return sum_amounts([assets_total(state, currency), -liabilities_total(state, currency)])


def monthly_emi_total(state: AppState, currency: Optional[Currency] = None) -> float:
    return sum_amounts(
        loan_monthly_emi(loan) for loan in state.loans if _matches(loan.currency, currency)
    )


def debt_to_asset_ratio(state: AppState, currency: Optional[Currency] = None) -> float:
    """Liabilities over assets; 0 when there are no positive assets. Not rounded."""
    assets = assets_total(state, currency)
    if assets <= 0:
        return 0.0
    return liabilities_total(state, currency) / assets


# =============================================================================
# BUDGET
# =============================================================================

def _monthly_budget_total(items: Sequence[BudgetItem]) -> float:
    return sum_amounts(monthly_equivalent(item.amount, item.frequency) for item in items)


def budget_monthly_income(state: AppState) -> float:
    return _monthly_budget_total(state.budget.income)


def budget_monthly_expense(
    state: AppState,
    include_emi: bool = True,
    currency: Optional[Currency] = None,
) -> float:
    """
    Monthly budgeted expenses.

    With include_emi (the household view), loan EMIs are part of expenses.
    """
    expenses = _monthly_budget_total(state.budget.expenses)
    if not include_emi:
        return expenses
    return sum_amounts([expenses, monthly_emi_total(state, currency)])


def budget_left_over(state: AppState, currency: Optional[Currency] = None) -> float:
    """Income minus expenses, where expenses always include loan EMIs."""
    return sum_amounts([
        budget_monthly_income(state),
        -budget_monthly_expense(state, include_emi=True, currency=currency),
    ])


class NetWorthSummary(BaseModel):
    """Net-worth totals for one currency."""
    model_config = ConfigDict(frozen=True)

    currency: Optional[Currency]
    assets_total: float
    liabilities_total: float
    net_worth: float
    monthly_emi_total: float
    debt_to_asset_ratio: float


class BudgetSummary(BaseModel):
    """Monthly budget totals. expense_total excludes EMIs, left_over includes them."""
    model_config = ConfigDict(frozen=True)

    income_total: float
    expense_total: float
    emi_total: float
    expense_with_emi: float
    left_over: float


def summarize_net_worth(state: AppState, currency: Optional[Currency] = None) -> NetWorthSummary:
    assets = assets_total(state, currency)
    liabilities = liabilities_total(state, currency)
    return NetWorthSummary(
        currency=currency,
        assets_total=assets,
        liabilities_total=liabilities,
        net_worth=sum_amounts([assets, -liabilities]),
        monthly_emi_total=monthly_emi_total(state, currency),
        debt_to_asset_ratio=liabilities / assets if assets > 0 else 0.0,
    )


def summarize_budget(state: AppState, currency: Optional[Currency] = None) -> BudgetSummary:
    income = budget_monthly_income(state)
    expenses = budget_monthly_expense(state, include_emi=False)
    emi = monthly_emi_total(state, currency)
    expense_with_emi = sum_amounts([expenses, emi])
    return BudgetSummary(
        income_total=income,
        expense_total=expenses,
        emi_total=emi,
        expense_with_emi=expense_with_emi,
        left_over=sum_amounts([income, -expense_with_emi]),
    )


# =============================================================================
# EXPENSE HISTORY
# =============================================================================

def transaction_month_keys(
    transactions: Iterable[ExpenseTransaction],
    current_month: Optional[str] = None,
) -> list[str]:
    """Distinct YYYY-MM keys, newest first. The current month is always listed."""
    current_month = current_month or date.today().strftime("%Y-%m")
    keys = {current_month}
    keys.update(txn.month for txn in transactions)
    return sorted(keys, reverse=True)


def transactions_for_month(
    transactions: Iterable[ExpenseTransaction],
    month: str,
) -> list[ExpenseTransaction]:
    """Transactions dated in the given month, newest date first."""
    selected = [txn for txn in transactions if txn.month == month]
    selected.sort(key=lambda txn: txn.txn_date, reverse=True)
    return selected


def monthly_transaction_total(transactions: Iterable[ExpenseTransaction], month: str) -> float:
    return sum_amounts(txn.amount for txn in transactions if txn.month == month)
