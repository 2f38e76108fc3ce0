"""Selectors for the loyalty kernel (read side)."""

from loyalty_kernel.selectors.ledger_selector import LedgerSelector

__all__ = [
    "LedgerSelector",
]
