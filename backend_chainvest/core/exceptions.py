"""
Application-level exceptions.

ConfigError is fatal at startup. LedgerQueryError and PersistenceError are
raised at the I/O edges and contained by the client and the ledger store;
nothing here is allowed to crash the polling loop.
"""

from __future__ import annotations


class ChainVestError(Exception):
    """Base class for all ChainVest errors."""


class ConfigError(ChainVestError):
    """Missing or invalid configuration; the process must not start."""


class LedgerQueryError(ChainVestError):
    """Remote ledger service request failed (transport, HTTP status, or payload)."""

    def __init__(self, message: str, *, url: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class PersistenceError(ChainVestError):
    """Durable write of the ledger state failed."""
