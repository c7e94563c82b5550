"""
Reconciliation engine: one pass = fetch, classify, commit, notify.

For every transaction the remote service lists for the watched address:
irrelevant (pays nothing to the address) -> skip; already credited -> skip;
not yet at the confirmation threshold -> pending, nothing stored; otherwise
commit a Deposit for the sum of the address's outputs and, only if the commit
succeeded, publish it. Pending transactions are rediscovered from the remote
listing on every pass, so there is no persisted pending state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Protocol

from backend_chainvest.chainvest_logging import bind_address
from backend_chainvest.config.settings import WatchedAddress
from backend_chainvest.database.database import LedgerStore
from backend_chainvest.database.models import Deposit, utc_now_iso
from backend_chainvest.ledger_client.models import ConfirmationStatus, RemoteTransaction
from backend_chainvest.notifications.broadcaster import DepositSink


class LedgerClient(Protocol):
    async def list_transactions(self, address: str) -> list[RemoteTransaction]: ...

    async def get_confirmation_status(self, txid: str) -> ConfirmationStatus: ...

    async def get_tip_height(self) -> int | None: ...


@dataclass
class PassResult:
    """Counters for one pass; for logging and tests, not part of the ledger."""

    fetched: int = 0
    relevant: int = 0
    skipped_known: int = 0
    pending: int = 0
    credited: int = 0
    commit_failures: int = 0


class ReconciliationEngine:
    """
    Runs reconciliation passes for one watched address.

    Safe to call run_pass() repeatedly, concurrently, and after restarts: the
    store re-checks the txid under its lock on every commit.
    """

    def __init__(
        self,
        watched: WatchedAddress,
        client: LedgerClient,
        store: LedgerStore,
        sink: DepositSink,
        *,
        clock: Callable[[], str] = utc_now_iso,
    ) -> None:
        self._watched = watched
        self._client = client
        self._store = store
        self._sink = sink
        self._clock = clock
        self._log = bind_address(watched.address, __name__)

    @property
    def watched(self) -> WatchedAddress:
        return self._watched

    async def run_pass(self) -> PassResult:
        result = PassResult()
        address = self._watched.address
        txs = await self._client.list_transactions(address)
        result.fetched = len(txs)
        if not txs:
            self._log.debug("reconcile_no_transactions")
            return result

        # Resolved lazily, at most once per pass
        tip_height: int | None = None
        tip_fetched = False

        for tx in txs:
            value_sats = tx.value_to(address)
            if value_sats == 0:
                continue
            result.relevant += 1

            if self._store.has_txid(tx.txid):
                result.skipped_known += 1
                continue

            required = self._watched.required_confirmations
            if required == 0:
                confirmed = True
            else:
                status = await self._client.get_confirmation_status(tx.txid)
                if required > 1 and status.confirmed:
                    if not tip_fetched:
                        tip_height = await self._client.get_tip_height()
                        tip_fetched = True
                    if tip_height is not None:
                        status = status.with_tip(tip_height)
                        confirmed = status.confirmations >= required
                    else:
                        confirmed = False
                else:
                    confirmed = status.confirmed

            if not confirmed:
                result.pending += 1
                self._log.info("reconcile_tx_pending", txid=tx.txid, amount_sats=value_sats)
                continue

            deposit = Deposit(txid=tx.txid, amount_sats=value_sats, credited_at=self._clock())
            if not self._store.commit(deposit):
                if self._store.has_txid(tx.txid):
                    # Another pass credited it first
                    result.skipped_known += 1
                else:
                    result.commit_failures += 1
                continue

            result.credited += 1
            self._log.info(
                "deposit_credited",
                txid=deposit.txid,
                amount_sats=deposit.amount_sats,
                amount_btc=deposit.amount_btc,
            )
            self._notify(deposit)

        self._log.info(
            "reconcile_pass_done",
            fetched=result.fetched,
            relevant=result.relevant,
            credited=result.credited,
            pending=result.pending,
            skipped_known=result.skipped_known,
            commit_failures=result.commit_failures,
        )
        return result

    def _notify(self, deposit: Deposit) -> None:
        """Fire-and-forget; a sink failure never fails the pass."""
        try:
            self._sink.publish(deposit)
        except Exception as e:
            self._log.exception("deposit_publish_failed", txid=deposit.txid, error=str(e))
