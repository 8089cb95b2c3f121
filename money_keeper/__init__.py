"""
Money Keeper - Personal Finance Ledger

Tracks income and expenses across named accounts, in several
currencies, with balances reported in one base currency.

DESIGN PRINCIPLES:
1. A balance always equals the sum of its transactions
2. Fail early, fail visibly
3. No silent corrections
4. Every change to the ledger is auditable
5. Storage and rate sources are swappable
"""

__version__ = "1.0.0"
__author__ = "Money Keeper Team"
