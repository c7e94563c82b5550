"""
Ledger query client package.

Read-only access to a Blockstream/Esplora transaction index: list the
transactions touching an address and look up one transaction's confirmation
status. Stateless; every call hits the remote service.
"""

from backend_chainvest.ledger_client.client import EsploraClient
from backend_chainvest.ledger_client.models import (
    ConfirmationStatus,
    RemoteTransaction,
    TxOutput,
)

__all__ = [
    "ConfirmationStatus",
    "EsploraClient",
    "RemoteTransaction",
    "TxOutput",
]
