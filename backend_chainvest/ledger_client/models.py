"""
Data models for ledger client output.

Normalized views of Esplora's /address/:addr/txs items and /tx/:txid/status
responses; only the fields the reconciliation engine needs are kept.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class TxOutput:
    """One transaction output. address is None for scripts without an address (e.g. OP_RETURN)."""

    address: str | None
    value_sats: int

    @classmethod
    def from_vout_item(cls, item: dict[str, Any]) -> "TxOutput":
        value = item["value"]
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValueError(f"invalid output value: {value!r}")
        return cls(address=item.get("scriptpubkey_address"), value_sats=value)


@dataclass(frozen=True)
class RemoteTransaction:
    """
    A transaction as reported by the ledger service.

    outputs keep the service's order; txid is unique per network.
    """

    txid: str
    outputs: tuple[TxOutput, ...]

    @classmethod
    def from_esplora_item(cls, item: dict[str, Any]) -> "RemoteTransaction":
        """Build from a single /address/:addr/txs result item."""
        txid = item["txid"]
        if not isinstance(txid, str) or not txid:
            raise ValueError(f"invalid txid: {txid!r}")
        vout = item.get("vout") or []
        return cls(
            txid=txid,
            outputs=tuple(TxOutput.from_vout_item(o) for o in vout),
        )

    def value_to(self, address: str) -> int:
        """Sum of all outputs paying address, in satoshis."""
        return sum(o.value_sats for o in self.outputs if o.address == address)


@dataclass(frozen=True)
class ConfirmationStatus:
    """
    Confirmation state of one transaction.

    confirmations is only meaningful when the caller resolved depth against
    the chain tip; otherwise it is 1 for a confirmed transaction and 0 for an
    unconfirmed one.
    """

    confirmed: bool
    block_height: int | None = None
    confirmations: int = 0

    @classmethod
    def from_esplora_status(cls, data: dict[str, Any]) -> "ConfirmationStatus":
        confirmed = data.get("confirmed") is True
        height = data.get("block_height")
        if not isinstance(height, int) or isinstance(height, bool):
            height = None
        return cls(
            confirmed=confirmed,
            block_height=height if confirmed else None,
            confirmations=1 if confirmed else 0,
        )

    def with_tip(self, tip_height: int) -> "ConfirmationStatus":
        """Return a copy whose confirmations is the depth below tip_height."""
        if not self.confirmed or self.block_height is None:
            return self
        depth = max(0, tip_height - self.block_height + 1)
        return ConfirmationStatus(
            confirmed=True,
            block_height=self.block_height,
            confirmations=depth,
        )


UNCONFIRMED = ConfirmationStatus(confirmed=False)
