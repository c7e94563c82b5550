"""
Backend ChainVest — Bitcoin deposit tracker for a single watched address.

Polls a Blockstream/Esplora endpoint for the address's transactions, credits
each confirmed incoming payment exactly once into a persisted ledger, and
exposes the balance over HTTP and new deposits over a WebSocket stream.
"""

__version__ = "0.1.0"
