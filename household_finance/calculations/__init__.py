"""Financial calculations package."""

from household_finance.calculations.aggregates import (
    BudgetSummary,
    NetWorthSummary,
    assets_total,
    budget_left_over,
    budget_monthly_expense,
    budget_monthly_income,
    debt_to_asset_ratio,
    liabilities_total,
    monthly_emi_total,
    monthly_transaction_total,
    net_worth,
    sum_amounts,
    summarize_budget,
    summarize_net_worth,
    transaction_month_keys,
    transactions_for_month,
)
from household_finance.calculations.cadence import monthly_equivalent
from household_finance.calculations.emi import calculate_emi, loan_monthly_emi, round2
from household_finance.calculations.snapshots import (
    capture_snapshot,
    month_key,
    snapshot_record,
    upsert_snapshot,
)

__all__ = [
    # Cadence
    "monthly_equivalent",
    # EMI
    "calculate_emi",
    "loan_monthly_emi",
    "round2",
    # Aggregates
    "BudgetSummary",
    "NetWorthSummary",
    "assets_total",
    "budget_left_over",
    "budget_monthly_expense",
    "budget_monthly_income",
    "debt_to_asset_ratio",
    "liabilities_total",
    "monthly_emi_total",
    "monthly_transaction_total",
    "net_worth",
    "sum_amounts",
    "summarize_budget",
    "summarize_net_worth",
    "transaction_month_keys",
    "transactions_for_month",
    # Snapshots
    "capture_snapshot",
    "month_key",
    "snapshot_record",
    "upsert_snapshot",
]
