"""
Loyalty Kernel - campus points ledger

An append-only points ledger with:
- Atomic balance mutation paired with immutable transaction rows
- Five transaction kinds (purchase, redemption, transfer, adjustment, event)
- Time-boxed promotions and per-event point pools
- Role-gated operations and suspicious-activity clawback
"""

__version__ = "0.1.0"
