"""
Seedbank Kernel

Append-only inventory ledger for a seed bank:
- Withdrawals validated against each lot's running volume
- One immutable audit row per accepted mutation
- Header-keyed record stores (in-memory and .xlsx workbook)
- Store-wide mutation lock with bounded wait
"""

__version__ = "0.1.0"
