"""
Inventory module.

Stock ledger (central + outlet balances), append-only movement log,
opname reconciliation, multi-destination transfers and the low-stock
dashboard ranking.
"""

from . import models  # noqa: F401
