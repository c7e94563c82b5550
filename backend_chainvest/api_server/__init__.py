"""
API server package — HTTP read endpoint and WebSocket deposit stream.

Serves the ledger snapshot and fans out deposit events; all writes happen in
the reconciliation engine.
"""
