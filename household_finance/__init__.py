"""
Household Finance - Core Package

The computation and persistence core of a household finance tracker:
loans, assets, liabilities, a recurring budget, an expense ledger and
monthly net-worth snapshots.

DESIGN PRINCIPLES:
1. One immutable state value, replaced on every change
2. Local cache first, remote store second
3. Amounts are bucketed per currency, never converted
4. Remote failures are visible, never fatal
"""

__version__ = "1.0.0"
__author__ = "Household Finance Team"
