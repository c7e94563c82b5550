# Deposit reconciliation: remote listing -> classification -> exactly-once commit.

from backend_chainvest.reconciliation.engine import (
    LedgerClient,
    PassResult,
    ReconciliationEngine,
)

__all__ = [
    "LedgerClient",
    "PassResult",
    "ReconciliationEngine",
]
