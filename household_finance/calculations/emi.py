"""
EMI (Equated Monthly Installment) calculation.

DESIGN DECISION: The calculator never raises. Incomplete or invalid inputs
mean "cannot compute" (None) and the caller falls back to a manual EMI or 0.
loan_monthly_emi() is the only definition of a loan's monthly outflow;
every total and display goes through it.
"""

import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from household_finance.calculations.cadence import monthly_equivalent
from household_finance.models.finance import Loan


CENT = Decimal("0.01")

# Above this magnitude a float has no cent resolution left
_ROUNDING_LIMIT = 1e15


def round2(value: Optional[float]) -> float:
    """
    Round to 2 decimal places, halves away from zero.

    The value goes through its shortest decimal repr first, so 1.005 rounds
    to 1.01 instead of falling to the binary 1.00499999... Non-finite input
    rounds to 0.
    """
    if value is None or not math.isfinite(value):
        return 0.0
    if abs(value) >= _ROUNDING_LIMIT:
        return float(value)
    return float(Decimal(repr(float(value))).quantize(CENT, rounding=ROUND_HALF_UP))


def calculate_emi(
    principal: Optional[float],
    annual_rate: Optional[float],
    term_months: Optional[float],
) -> Optional[float]:
    """
    Fixed monthly installment for an amortizing loan.

    installment = P * r * (1+r)^n / ((1+r)^n - 1), with r = annual_rate / 100 / 12.
    A zero rate is straight-line (P / n).

    Returns:
        The installment rounded to 2 decimals, or None when principal, rate
        or term is missing, principal <= 0 or term <= 0.
    """
    if principal is None or annual_rate is None or term_months is None:
        return None
    if not (math.isfinite(principal) and math.isfinite(annual_rate) and math.isfinite(term_months)):
        return None
    if principal <= 0 or term_months <= 0:
        return None

    monthly_rate = annual_rate / 100 / 12
    if monthly_rate == 0:
        return round2(principal / term_months)

    try:
        growth = (1 + monthly_rate) ** term_months
        if isinstance(growth, complex) or growth == 1:
            return None
        installment = principal * monthly_rate * growth / (growth - 1)
    except (OverflowError, ZeroDivisionError):
        return None
    return round2(installment)


def loan_monthly_emi(loan: Loan) -> float:
    """
    A loan's effective contribution to monthly outflow.

    Auto mode uses the calculator (0 when inputs are incomplete), manual mode
    uses the entered EMI. Either way the base is normalized from the loan's
    payment frequency to monthly and rounded.
    """
    if loan.auto_calc_emi:
        base = calculate_emi(loan.principal, loan.annual_rate, loan.term_months) or 0.0
    else:
        base = loan.emi or 0.0
    return round2(monthly_equivalent(base, loan.payment_frequency))
