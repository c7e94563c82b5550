"""
Ledger persistence: credited deposits and the running balance.

The default backend is SQLite; a JSON-file backend keeps the `db.json`
layout ({deposits: [...], balanceSats: n}). All access goes through
LedgerStore, which owns the in-memory LedgerState and serializes commits
behind a lock so that check-append-persist runs as one step.
"""

from __future__ import annotations

import json
import os
import sqlite3
import tempfile
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from backend_chainvest.chainvest_logging import get_logger
from backend_chainvest.core.exceptions import PersistenceError
from backend_chainvest.database.models import EMPTY_STATE, Deposit, LedgerState

logger = get_logger(__name__)

# -----------------------------------------------------------------------------
# Schema (SQLite)
# -----------------------------------------------------------------------------

SCHEMA_DEPOSITS = """
CREATE TABLE IF NOT EXISTS deposits (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    txid TEXT NOT NULL UNIQUE,
    amount_sats INTEGER NOT NULL CHECK (amount_sats > 0),
    credited_at TEXT NOT NULL
);
"""

SCHEMA_LEDGER_META = """
CREATE TABLE IF NOT EXISTS ledger_meta (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    balance_sats INTEGER NOT NULL CHECK (balance_sats >= 0)
);
INSERT OR IGNORE INTO ledger_meta (id, balance_sats) VALUES (1, 0);
"""


# -----------------------------------------------------------------------------
# Abstract backend
# -----------------------------------------------------------------------------


class LedgerBackend(ABC):
    """Durable storage for LedgerState; implement for SQLite, a JSON file, etc."""

    @abstractmethod
    def ensure_schema(self) -> None:
        """Prepare storage. Must succeed on a fresh or missing file."""
        ...

    @abstractmethod
    def read_state(self) -> LedgerState:
        """Return the persisted state, or the zero state when nothing is stored."""
        ...

    @abstractmethod
    def persist(self, deposit: Deposit, new_state: LedgerState) -> None:
        """
        Durably record deposit so that the stored state equals new_state.
        Raise PersistenceError on failure; storage must then be unchanged.
        """
        ...


# -----------------------------------------------------------------------------
# SQLite backend
# -----------------------------------------------------------------------------


class SQLiteLedgerBackend(LedgerBackend):
    """SQLite implementation; single file, one connection per operation."""

    def __init__(self, path: str | Path, *, timeout_sec: float = 5.0) -> None:
        self._path = Path(path)
        self._timeout_sec = timeout_sec

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self._path), timeout=self._timeout_sec)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA synchronous = FULL")
        return conn

    @contextmanager
    def _cursor(self) -> Iterator[sqlite3.Cursor]:
        conn = self._connect()
        try:
            cur = conn.cursor()
            yield cur
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def ensure_schema(self) -> None:
        with self._cursor() as cur:
            for stmt in (SCHEMA_DEPOSITS, SCHEMA_LEDGER_META):
                cur.executescript(stmt)

    def read_state(self) -> LedgerState:
        with self._cursor() as cur:
            cur.execute("SELECT txid, amount_sats, credited_at FROM deposits ORDER BY seq ASC")
            rows = cur.fetchall()
            cur.execute("SELECT balance_sats FROM ledger_meta WHERE id = 1")
            meta = cur.fetchone()
        deposits = tuple(
            Deposit(
                txid=row["txid"],
                amount_sats=row["amount_sats"],
                credited_at=row["credited_at"],
            )
            for row in rows
        )
        balance = meta["balance_sats"] if meta is not None else 0
        return LedgerState(deposits=deposits, balance_sats=balance)

    def persist(self, deposit: Deposit, new_state: LedgerState) -> None:
        try:
            with self._cursor() as cur:
                cur.execute(
                    "INSERT INTO deposits (txid, amount_sats, credited_at) VALUES (?, ?, ?)",
                    (deposit.txid, deposit.amount_sats, deposit.credited_at),
                )
                cur.execute(
                    "UPDATE ledger_meta SET balance_sats = ? WHERE id = 1",
                    (new_state.balance_sats,),
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"SQLite commit failed for {deposit.txid}: {e}") from e


# -----------------------------------------------------------------------------
# JSON file backend
# -----------------------------------------------------------------------------


class JsonFileLedgerBackend(LedgerBackend):
    """
    Single JSON document: {"deposits": [...], "balanceSats": n}.

    Writes go to a temp file in the same directory, are fsynced, then
    os.replace()d over the target so a crash never leaves a half-written file.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def ensure_schema(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def read_state(self) -> LedgerState:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return EMPTY_STATE
        if not raw.strip():
            return EMPTY_STATE
        try:
            data: Any = json.loads(raw)
        except json.JSONDecodeError as e:
            raise PersistenceError(f"{self._path}: invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise PersistenceError(f"{self._path}: expected a JSON object")
        deposits = tuple(Deposit.from_wire(d) for d in data.get("deposits") or [])
        balance = int(data.get("balanceSats") or 0)
        return LedgerState(deposits=deposits, balance_sats=balance)

    def persist(self, deposit: Deposit, new_state: LedgerState) -> None:
        doc = {
            "deposits": [d.to_wire() for d in new_state.deposits],
            "balanceSats": new_state.balance_sats,
        }
        tmp_path: str | None = None
        try:
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{self._path.name}.", suffix=".tmp", dir=str(self._path.parent)
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(doc, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self._path)
            tmp_path = None
        except OSError as e:
            raise PersistenceError(f"Writing {self._path} failed for {deposit.txid}: {e}") from e
        finally:
            if tmp_path is not None:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    logger.warning("ledger_tmp_cleanup_failed", path=tmp_path)


# -----------------------------------------------------------------------------
# Store: owns the in-memory state and the commit lock
# -----------------------------------------------------------------------------


def _drop_duplicate_txids(state: LedgerState) -> LedgerState:
    seen: set[str] = set()
    kept: list[Deposit] = []
    for deposit in state.deposits:
        if deposit.txid in seen:
            logger.warning(
                "ledger_duplicate_txid_dropped",
                txid=deposit.txid,
                amount_sats=deposit.amount_sats,
                credited_at=deposit.credited_at,
            )
            continue
        seen.add(deposit.txid)
        kept.append(deposit)
    if len(kept) == len(state.deposits):
        return state
    return LedgerState(deposits=tuple(kept), balance_sats=state.balance_sats)


class LedgerStore:
    """
    Sole mutation point of the ledger.

    commit() holds a threading.Lock across duplicate check, persist and the
    in-memory swap, so overlapping passes (or threads) can never credit the
    same txid twice or lose a balance update. snapshot() returns the current
    immutable LedgerState reference and never blocks on a commit.
    """

    def __init__(self, backend: LedgerBackend) -> None:
        self._backend = backend
        self._lock = threading.Lock()
        self._state: LedgerState = EMPTY_STATE
        self._loaded = False

    @property
    def backend(self) -> LedgerBackend:
        return self._backend

    def load(self) -> LedgerState:
        """
        Read durable state into memory; zero state when nothing was stored yet.

        Legacy files may break the ledger invariants: a repeated txid keeps
        only its first entry, and a stored balance that disagrees with the
        deposit history is replaced by the sum of deposits.
        """
        with self._lock:
            self._backend.ensure_schema()
            state = _drop_duplicate_txids(self._backend.read_state())
            total = state.deposits_total()
            if state.balance_sats != total:
                logger.warning(
                    "ledger_balance_mismatch_repaired",
                    stored_balance_sats=state.balance_sats,
                    deposits_total_sats=total,
                )
                state = LedgerState(deposits=state.deposits, balance_sats=total)
            self._state = state
            self._loaded = True
        logger.info(
            "ledger_loaded",
            deposits=len(state.deposits),
            balance_sats=state.balance_sats,
        )
        return state

    def snapshot(self) -> LedgerState:
        return self._state

    def has_txid(self, txid: str) -> bool:
        return self._state.has_txid(txid)

    def commit(self, deposit: Deposit) -> bool:
        """
        Append deposit and raise the balance, durably, as one step.

        Returns True when the deposit was newly credited. A txid that is
        already credited is a no-op returning False; a persistence failure
        leaves the previous state in place and returns False.
        """
        with self._lock:
            if not self._loaded:
                raise RuntimeError("LedgerStore.load() must be called before commit()")
            current = self._state
            if current.has_txid(deposit.txid):
                logger.debug("ledger_commit_duplicate", txid=deposit.txid)
                return False
            new_state = current.with_deposit(deposit)
            try:
                self._backend.persist(deposit, new_state)
            except PersistenceError as e:
                logger.error(
                    "ledger_commit_failed",
                    txid=deposit.txid,
                    amount_sats=deposit.amount_sats,
                    error=str(e),
                )
                return False
            self._state = new_state
        logger.info(
            "ledger_committed",
            txid=deposit.txid,
            amount_sats=deposit.amount_sats,
            balance_sats=new_state.balance_sats,
        )
        return True


def create_backend(kind: str, path: str | Path) -> LedgerBackend:
    if kind == "sqlite":
        return SQLiteLedgerBackend(path)
    if kind == "json":
        return JsonFileLedgerBackend(path)
    raise ValueError(f"unknown ledger backend: {kind!r}")


def get_ledger_store(kind: str, path: str | Path) -> LedgerStore:
    """Build a LedgerStore over the configured backend and load its state."""
    store = LedgerStore(create_backend(kind, path))
    store.load()
    return store
