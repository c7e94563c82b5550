"""
Ledger persistence layer — credited deposits and running balance.

SQLite by default via SQLiteLedgerBackend; JsonFileLedgerBackend keeps the
db.json layout. LedgerStore is the only writer.
"""

from backend_chainvest.database.database import (
    JsonFileLedgerBackend,
    LedgerBackend,
    LedgerStore,
    SQLiteLedgerBackend,
    create_backend,
    get_ledger_store,
)
from backend_chainvest.database.models import (
    EMPTY_STATE,
    Deposit,
    LedgerState,
    sats_to_btc_str,
)

__all__ = [
    "EMPTY_STATE",
    "Deposit",
    "JsonFileLedgerBackend",
    "LedgerBackend",
    "LedgerState",
    "LedgerStore",
    "SQLiteLedgerBackend",
    "create_backend",
    "get_ledger_store",
    "sats_to_btc_str",
]
