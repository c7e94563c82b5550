"""
Pytest tests for the ledger store and its SQLite / JSON backends.
"""

from __future__ import annotations

import json
import os
import threading

import pytest

from backend_chainvest.database import (
    EMPTY_STATE,
    Deposit,
    JsonFileLedgerBackend,
    LedgerState,
    LedgerStore,
    get_ledger_store,
    sats_to_btc_str,
)

from conftest import make_deposit


def test_fresh_sqlite_store_is_zero_state(ledger_store):
    state = ledger_store.snapshot()
    assert state.deposits == ()
    assert state.balance_sats == 0


def test_missing_and_empty_json_file_load_as_zero_state(tmp_path):
    missing = get_ledger_store("json", tmp_path / "nope" / "db.json")
    assert missing.snapshot() == EMPTY_STATE

    empty_path = tmp_path / "empty.json"
    empty_path.write_text("", encoding="utf-8")
    empty = get_ledger_store("json", empty_path)
    assert empty.snapshot().balance_sats == 0


@pytest.mark.parametrize("kind,name", [("sqlite", "ledger.db"), ("json", "db.json")])
def test_commit_persists_in_credit_order(tmp_path, kind, name):
    path = tmp_path / name
    store = get_ledger_store(kind, path)
    assert store.commit(make_deposit("b", 200)) is True
    assert store.commit(make_deposit("a", 100)) is True

    reloaded = get_ledger_store(kind, path)
    state = reloaded.snapshot()
    assert [d.txid for d in state.deposits] == ["b", "a"]
    assert state.balance_sats == 300


def test_duplicate_commit_is_noop(ledger_store):
    assert ledger_store.commit(make_deposit("t", 500)) is True
    assert ledger_store.commit(make_deposit("t", 500)) is False
    state = ledger_store.snapshot()
    assert len(state.deposits) == 1
    assert state.balance_sats == 500


def test_json_file_layout(json_ledger_store):
    json_ledger_store.commit(make_deposit("tx1", 150_000_000))
    doc = json.loads(json_ledger_store.backend.path.read_text(encoding="utf-8"))
    assert doc == {
        "deposits": [
            {
                "txid": "tx1",
                "amountSats": 150_000_000,
                "amountBTC": 1.5,
                "creditedAt": "2026-01-01T00:00:00Z",
            }
        ],
        "balanceSats": 150_000_000,
    }


def test_legacy_balance_mismatch_is_repaired(tmp_path):
    path = tmp_path / "db.json"
    path.write_text(
        json.dumps(
            {
                "deposits": [
                    {"txid": "x", "amountSats": 700, "amountBTC": 0.000007, "creditedAt": "2025-01-01T00:00:00.000Z"}
                ],
                "balanceSats": 900,
            }
        ),
        encoding="utf-8",
    )
    store = get_ledger_store("json", path)
    assert store.snapshot().balance_sats == 700


def test_legacy_duplicate_txid_keeps_first_entry(tmp_path):
    """A db.json written by overlapping legacy passes may list the same txid twice."""
    path = tmp_path / "db.json"
    first = {"txid": "abc", "amountSats": 500, "amountBTC": 0.000005, "creditedAt": "2025-01-01T00:00:00.000Z"}
    again = dict(first, creditedAt="2025-01-01T00:00:30.000Z")
    other = {"txid": "def", "amountSats": 200, "amountBTC": 0.000002, "creditedAt": "2025-01-02T00:00:00.000Z"}
    path.write_text(
        json.dumps({"deposits": [first, again, other], "balanceSats": 1200}),
        encoding="utf-8",
    )

    store = get_ledger_store("json", path)
    state = store.snapshot()
    assert [(d.txid, d.credited_at) for d in state.deposits] == [
        ("abc", "2025-01-01T00:00:00.000Z"),
        ("def", "2025-01-02T00:00:00.000Z"),
    ]
    assert len({d.txid for d in state.deposits}) == len(state.deposits)
    assert state.balance_sats == 700

    # The next commit rewrites the file without the repeated entry
    assert store.commit(make_deposit("ghi", 100)) is True
    doc = json.loads(path.read_text(encoding="utf-8"))
    assert [d["txid"] for d in doc["deposits"]] == ["abc", "def", "ghi"]
    assert doc["balanceSats"] == 800


def test_failed_write_rolls_back(json_ledger_store, monkeypatch):
    json_ledger_store.commit(make_deposit("kept", 10))
    path = json_ledger_store.backend.path
    before_file = path.read_text(encoding="utf-8")
    before_state = json_ledger_store.snapshot()

    def broken_replace(src, dst):
        raise OSError("read-only filesystem")

    monkeypatch.setattr(os, "replace", broken_replace)
    assert json_ledger_store.commit(make_deposit("lost", 20)) is False

    assert json_ledger_store.snapshot() is before_state
    assert path.read_text(encoding="utf-8") == before_file
    assert [p.name for p in path.parent.iterdir() if p.name.endswith(".tmp")] == []


def test_commit_requires_load(tmp_path):
    store = LedgerStore(JsonFileLedgerBackend(tmp_path / "db.json"))
    with pytest.raises(RuntimeError, match="load"):
        store.commit(make_deposit("t", 1))


def test_threaded_commits_of_same_txid_credit_once(ledger_store):
    results: list[bool] = []
    barrier = threading.Barrier(8)

    def worker():
        barrier.wait()
        results.append(ledger_store.commit(make_deposit("same", 42)))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(True) == 1
    assert ledger_store.snapshot().balance_sats == 42


def test_snapshot_is_not_mutated_by_later_commits(ledger_store):
    ledger_store.commit(make_deposit("one", 1))
    snap = ledger_store.snapshot()
    ledger_store.commit(make_deposit("two", 2))
    assert [d.txid for d in snap.deposits] == ["one"]
    assert snap.balance_sats == 1


def test_ledger_state_rejects_duplicate_txid():
    state = LedgerState().with_deposit(make_deposit("d", 5))
    with pytest.raises(ValueError, match="duplicate"):
        state.with_deposit(make_deposit("d", 5))


def test_deposit_requires_positive_amount():
    with pytest.raises(ValueError):
        Deposit(txid="z", amount_sats=0, credited_at="2026-01-01T00:00:00Z")


def test_btc_formatting_is_exact():
    assert sats_to_btc_str(0) == "0.00000000"
    assert sats_to_btc_str(3500) == "0.00003500"
    assert sats_to_btc_str(123_456_789) == "1.23456789"
    assert sats_to_btc_str(2_100_000_000_000_000) == "21000000.00000000"
