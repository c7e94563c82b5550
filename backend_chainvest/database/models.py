"""
Domain models for the persisted ledger.

Deposits and the aggregate ledger state. Used by the store and its backends;
no ORM coupling so backends stay swappable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

SATS_PER_BTC = 100_000_000


def sats_to_btc_str(sats: int) -> str:
    """Format satoshis as a BTC decimal string with 8 fraction digits, without float rounding."""
    return format(Decimal(sats) / SATS_PER_BTC, ".8f")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class Deposit:
    """A credited incoming payment; created exactly once per txid."""

    txid: str
    amount_sats: int
    """Sum of all outputs of the transaction paying the watched address; > 0."""
    credited_at: str
    """UTC ISO-8601 timestamp of the commit."""

    def __post_init__(self) -> None:
        if not self.txid:
            raise ValueError("txid must be non-empty")
        if self.amount_sats <= 0:
            raise ValueError("amount_sats must be > 0")

    @property
    def amount_btc(self) -> float:
        """Display value only; accounting uses amount_sats."""
        return self.amount_sats / SATS_PER_BTC

    def to_wire(self) -> dict[str, Any]:
        """Shape used by the read endpoint, the event stream and the JSON store."""
        return {
            "txid": self.txid,
            "amountSats": self.amount_sats,
            "amountBTC": self.amount_btc,
            "creditedAt": self.credited_at,
        }

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> "Deposit":
        return cls(
            txid=str(data["txid"]),
            amount_sats=int(data["amountSats"]),
            credited_at=str(data.get("creditedAt") or ""),
        )


@dataclass(frozen=True)
class LedgerState:
    """
    Persisted aggregate: deposits in credit order plus the running balance.

    Instances are immutable; a commit produces a new state.
    """

    deposits: tuple[Deposit, ...] = ()
    balance_sats: int = 0
    _txids: frozenset[str] = field(default=frozenset(), repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_txids", frozenset(d.txid for d in self.deposits))

    def has_txid(self, txid: str) -> bool:
        return txid in self._txids

    def with_deposit(self, deposit: Deposit) -> "LedgerState":
        if self.has_txid(deposit.txid):
            raise ValueError(f"duplicate txid {deposit.txid}")
        return LedgerState(
            deposits=self.deposits + (deposit,),
            balance_sats=self.balance_sats + deposit.amount_sats,
        )

    def deposits_total(self) -> int:
        return sum(d.amount_sats for d in self.deposits)

    @property
    def balance_btc(self) -> str:
        return sats_to_btc_str(self.balance_sats)

    def to_account_view(self) -> dict[str, Any]:
        """Read-endpoint payload: {balanceBTC, deposits}."""
        return {
            "balanceBTC": self.balance_btc,
            "deposits": [d.to_wire() for d in self.deposits],
        }


EMPTY_STATE = LedgerState()
