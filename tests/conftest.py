"""
Pytest fixtures for ChainVest tests. Uses temporary ledger files and an
in-memory ledger client instead of the Esplora API.
"""

from __future__ import annotations

import pytest

from backend_chainvest.config.settings import Settings, WatchedAddress
from backend_chainvest.database import Deposit, get_ledger_store
from backend_chainvest.ledger_client.models import (
    UNCONFIRMED,
    ConfirmationStatus,
    RemoteTransaction,
    TxOutput,
)

WATCHED = "tb1qwatchedaddr0000000000000000000000000"
OTHER = "tb1qsomeoneelse000000000000000000000000"

CONFIRMED = ConfirmationStatus(confirmed=True, block_height=100, confirmations=1)


def make_tx(txid: str, *outputs: tuple[str | None, int]) -> RemoteTransaction:
    return RemoteTransaction(
        txid=txid,
        outputs=tuple(TxOutput(address=a, value_sats=v) for a, v in outputs),
    )


def make_deposit(txid: str, amount_sats: int) -> Deposit:
    return Deposit(txid=txid, amount_sats=amount_sats, credited_at="2026-01-01T00:00:00Z")


class FakeLedgerClient:
    """In-memory stand-in for EsploraClient; records status lookups."""

    def __init__(self) -> None:
        self.transactions: list[RemoteTransaction] = []
        self.statuses: dict[str, ConfirmationStatus] = {}
        self.tip_height: int | None = None
        self.status_calls: list[str] = []
        self.tip_calls = 0

    async def list_transactions(self, address: str) -> list[RemoteTransaction]:
        return list(self.transactions)

    async def get_confirmation_status(self, txid: str) -> ConfirmationStatus:
        self.status_calls.append(txid)
        return self.statuses.get(txid, UNCONFIRMED)

    async def get_tip_height(self) -> int | None:
        self.tip_calls += 1
        return self.tip_height


class RecordingSink:
    def __init__(self) -> None:
        self.published: list[Deposit] = []

    def publish(self, deposit: Deposit) -> None:
        self.published.append(deposit)


@pytest.fixture
def watched() -> WatchedAddress:
    return WatchedAddress(address=WATCHED, network="testnet", required_confirmations=1)


@pytest.fixture
def ledger_client() -> FakeLedgerClient:
    return FakeLedgerClient()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def ledger_path(tmp_path):
    return tmp_path / "ledger.db"


@pytest.fixture
def ledger_store(ledger_path):
    """Loaded SQLite-backed store in a temp directory."""
    return get_ledger_store("sqlite", ledger_path)


@pytest.fixture
def json_ledger_store(tmp_path):
    return get_ledger_store("json", tmp_path / "db.json")


@pytest.fixture
def settings(ledger_path) -> Settings:
    return Settings(
        btc_address=WATCHED,
        network="testnet",
        esplora_base_url="http://esplora.test/api",
        poll_interval_sec=60.0,
        pass_timeout_sec=5.0,
        ledger_path=ledger_path,
    )
