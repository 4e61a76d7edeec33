"""Shared fixtures for the household finance tests."""

from datetime import date, datetime, timezone

import pytest

from household_finance.audit import AuditLogger
from household_finance.models.finance import (
    AppState,
    Asset,
    BudgetData,
    BudgetItem,
    Cadence,
    Currency,
    ExpenseTransaction,
    Liability,
    Loan,
)
from household_finance.services.storage import InMemoryRemoteStore, LocalStateCache


@pytest.fixture
def audit_logger():
    return AuditLogger()


@pytest.fixture
def cache_path(tmp_path):
    return tmp_path / "cache" / "household_finance_v1.json"


@pytest.fixture
def local_cache(cache_path, audit_logger):
    return LocalStateCache(cache_path, default_currency=Currency.GBP, audit_logger=audit_logger)


@pytest.fixture
def remote_store():
    return InMemoryRemoteStore()


@pytest.fixture
def populated_state():
    """A GBP household with one of everything plus a stray EUR asset."""
    return AppState(
        currency=Currency.GBP,
        loans=(
            Loan(
                id="loan-1",
                name="Car",
                currency=Currency.GBP,
                principal=12000,
                annual_rate=12,
                term_months=12,
                auto_calc_emi=True,
                outstanding_balance=9000,
            ),
        ),
        assets=(
            Asset(id="asset-1", name="Savings", currency=Currency.GBP, value=20000),
            Asset(id="asset-2", name="House", currency=Currency.GBP, value=250000),
            Asset(id="asset-3", name="Euro account", currency=Currency.EUR, value=5000),
        ),
        liabilities=(
            Liability(id="liab-1", name="Visa", currency=Currency.GBP, outstanding=1500),
        ),
        budget=BudgetData(
            income=(BudgetItem(id="inc-1", category="Salary", amount=4000),),
            expenses=(
                BudgetItem(id="exp-1", category="Rent", amount=1200),
                BudgetItem(id="exp-2", category="Food", amount=100, frequency=Cadence.WEEKLY),
            ),
        ),
        expense_transactions=(
            ExpenseTransaction(id="txn-1", txn_date=date(2024, 3, 2), category="Food", amount=45.5),
            ExpenseTransaction(id="txn-2", txn_date=date(2024, 3, 15), category="Fuel", amount=60),
            ExpenseTransaction(id="txn-3", txn_date=date(2024, 1, 20), category="Food", amount=30),
        ),
    )


@pytest.fixture
def march_2024():
    return datetime(2024, 3, 31, 12, 0, tzinfo=timezone.utc)
