"""
Family Budget - Ledger Core Package

Household budgeting backend: families share accounts, record income and
expense transactions, plan recurring operations and view reports.

DESIGN PRINCIPLES:
1. Balance and transaction log never diverge
2. Every cross-reference stays inside one family
3. Money is integer minor units, never floats
4. Fail early, fail visibly
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Family Budget Team"
