"""
ZeroBudget

A pay-period zero-based budgeting engine with a consistent transaction
ledger, bank reconciliation and carryover propagation across the year.
"""

__version__ = "1.0.0"
