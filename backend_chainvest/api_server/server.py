"""
FastAPI server — read-only account view plus a live deposit stream.

GET /api/account returns the balance and deposit history from the ledger
store; WebSocket /ws pushes one "deposit" event per newly credited deposit.
The lifespan builds the ledger store, ledger client, broadcaster and
reconciliation engine, and runs the polling runner as a background task.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, Request, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field

from backend_chainvest import __version__
from backend_chainvest.agent_worker.runner import PollingRunner, RunnerConfig
from backend_chainvest.chainvest_logging import get_logger
from backend_chainvest.config.settings import Settings, get_settings
from backend_chainvest.database.database import LedgerStore, get_ledger_store
from backend_chainvest.ledger_client.client import EsploraClient
from backend_chainvest.notifications.broadcaster import DepositBroadcaster
from backend_chainvest.reconciliation.engine import LedgerClient, ReconciliationEngine

logger = get_logger(__name__)

SHUTDOWN_JOIN_TIMEOUT_SEC = 15.0


# -----------------------------------------------------------------------------
# Response models
# -----------------------------------------------------------------------------


class DepositResponse(BaseModel):
    """One credited deposit as exposed to clients."""

    txid: str = Field(..., description="Transaction id")
    amountSats: int = Field(..., gt=0, description="Credited amount in satoshis")
    amountBTC: float = Field(..., description="Credited amount in BTC (display only)")
    creditedAt: str = Field(..., description="UTC ISO-8601 time the deposit was credited")


class AccountResponse(BaseModel):
    """GET /api/account response: balance and full deposit history."""

    balanceBTC: str = Field(..., description="Balance in BTC, 8 fraction digits")
    deposits: list[DepositResponse] = Field(default_factory=list, description="Deposits in credit order")


class HealthResponse(BaseModel):
    status: str
    address: str | None = None
    network: str | None = None


# -----------------------------------------------------------------------------
# Dependencies
# -----------------------------------------------------------------------------


def get_store(request: Request) -> LedgerStore:
    return request.app.state.store


def _log_pump_exit(task: asyncio.Task[None]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None and not isinstance(exc, WebSocketDisconnect):
        logger.warning("ws_client_error", error=str(exc))


# -----------------------------------------------------------------------------
# Lifespan: wire components and run the polling runner (never blocks the API)
# -----------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build collaborators from settings unless injected; start and stop the runner."""
    state = app.state
    settings: Settings = state.settings or get_settings()
    state.settings = settings
    if state.store is None:
        state.store = get_ledger_store(settings.ledger_backend, settings.ledger_path)

    owned_client: EsploraClient | None = None
    if state.ledger_client is None:
        owned_client = EsploraClient(
            settings.esplora_base_url,
            request_timeout_sec=settings.request_timeout_sec,
            max_retries=settings.max_retries,
            max_pages=settings.max_pages,
        )
        state.ledger_client = owned_client

    engine = ReconciliationEngine(
        settings.watched,
        state.ledger_client,
        state.store,
        state.broadcaster,
    )
    runner = PollingRunner(
        engine,
        RunnerConfig(
            interval_sec=settings.poll_interval_sec,
            pass_timeout_sec=settings.pass_timeout_sec,
        ),
    )
    state.engine = engine
    state.runner = runner

    stop_event = asyncio.Event()
    task: asyncio.Task[None] | None = None
    if state.run_poller:
        task = asyncio.create_task(runner.run_forever(stop_event))
        logger.info(
            "api_runner_started",
            address=settings.btc_address,
            network=settings.network,
            interval_sec=settings.poll_interval_sec,
        )

    try:
        yield
    finally:
        stop_event.set()
        if task is not None:
            try:
                await asyncio.wait_for(task, timeout=SHUTDOWN_JOIN_TIMEOUT_SEC)
                logger.info("api_runner_stopped")
            except asyncio.TimeoutError:
                logger.warning("api_runner_shutdown_timeout", timeout_sec=SHUTDOWN_JOIN_TIMEOUT_SEC)
        if owned_client is not None:
            await owned_client.aclose()
            state.ledger_client = None


# -----------------------------------------------------------------------------
# App and routes
# -----------------------------------------------------------------------------


def create_app(
    settings: Settings | None = None,
    *,
    store: LedgerStore | None = None,
    ledger_client: LedgerClient | None = None,
    broadcaster: DepositBroadcaster | None = None,
    run_poller: bool = True,
) -> FastAPI:
    """
    Build the ASGI app. Anything not injected is built from settings in the
    lifespan; settings themselves default to get_settings() at startup.
    """
    app = FastAPI(
        title="Backend ChainVest API",
        description="Read-only balance and deposit history for one watched Bitcoin address.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = store
    app.state.ledger_client = ledger_client
    app.state.broadcaster = broadcaster or DepositBroadcaster()
    app.state.run_poller = run_poller
    app.state.engine = None
    app.state.runner = None

    @app.get("/api/account", response_model=AccountResponse)
    def get_account(store: LedgerStore = Depends(get_store)) -> dict[str, Any]:
        """Current balance and deposit history; one consistent snapshot."""
        return store.snapshot().to_account_view()

    @app.get("/health", response_model=HealthResponse)
    def health(request: Request) -> HealthResponse:
        """Liveness probe: API is up."""
        cfg: Settings | None = request.app.state.settings
        return HealthResponse(
            status="ok",
            address=cfg.btc_address if cfg else None,
            network=cfg.network if cfg else None,
        )

    @app.websocket("/ws")
    async def deposit_stream(websocket: WebSocket) -> None:
        """
        Push {"event": "deposit", "data": {...}} for each new deposit.
        No history replay; clients use GET /api/account for that.
        """
        hub: DepositBroadcaster = websocket.app.state.broadcaster
        queue = hub.subscribe()
        pump_task: asyncio.Task[None] | None = None
        try:
            await websocket.accept()
            logger.info("ws_client_connected", subscribers=hub.subscriber_count)

            async def pump() -> None:
                while True:
                    event = await queue.get()
                    await websocket.send_json(event)

            pump_task = asyncio.create_task(pump())
            pump_task.add_done_callback(_log_pump_exit)
            # Read until the client disconnects; inbound messages are ignored
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
        finally:
            # Not awaited: this path also runs when the handler itself is cancelled
            if pump_task is not None:
                pump_task.cancel()
            hub.unsubscribe(queue)
            logger.info("ws_client_disconnected", subscribers=hub.subscriber_count)

    return app
