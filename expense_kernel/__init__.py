"""
Expense Kernel - expense report workflow engine

A transactional approval pipeline for expense reports with:
- Per-category monthly budget checks
- Manager / CEO / Finance decision stages
- Append-only approval trail
- Exactly-once budget spend posting
- Idempotent reconciliation of external payment confirmations
"""

__version__ = "0.1.0"
