"""
Pytest tests for EsploraClient against httpx.MockTransport (no network).
"""

from __future__ import annotations

import asyncio

import httpx

from backend_chainvest.ledger_client import EsploraClient

BASE = "http://esplora.test/api"
ADDR = "tb1qwatched"


def _run(handler, coro_fn, **kwargs):
    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            client = EsploraClient(BASE, http_client=http, min_retry_delay_sec=0, **kwargs)
            return await coro_fn(client)

    return asyncio.run(go())


def _tx(txid, vout, confirmed=True):
    return {"txid": txid, "vout": vout, "status": {"confirmed": confirmed}}


def test_list_transactions_parses_outputs():
    payload = [
        _tx(
            "aa",
            [
                {"scriptpubkey_address": ADDR, "value": 1000},
                {"scriptpubkey_type": "op_return", "value": 0},
                {"scriptpubkey_address": ADDR, "value": 2500},
            ],
        ),
        {"vout": []},  # no txid
        _tx("bad", [{"scriptpubkey_address": ADDR, "value": -5}]),
    ]
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        return httpx.Response(200, json=payload)

    txs = _run(handler, lambda c: c.list_transactions(ADDR))

    assert seen == [f"/api/address/{ADDR}/txs"]
    assert [t.txid for t in txs] == ["aa"]
    assert txs[0].outputs[1].address is None
    assert txs[0].value_to(ADDR) == 3500


def test_list_transactions_returns_empty_after_retries():
    calls = []

    def handler(request):
        calls.append(1)
        return httpx.Response(503)

    txs = _run(handler, lambda c: c.list_transactions(ADDR), max_retries=3)

    assert txs == []
    assert len(calls) == 3


def test_client_error_is_not_retried():
    calls = []

    def handler(request):
        calls.append(1)
        return httpx.Response(400, text="Invalid Bitcoin address")

    assert _run(handler, lambda c: c.list_transactions(ADDR), max_retries=3) == []
    assert len(calls) == 1


def test_transport_error_returns_empty():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    assert _run(handler, lambda c: c.list_transactions(ADDR), max_retries=2) == []


def test_invalid_json_returns_empty():
    def handler(request):
        return httpx.Response(200, text="<html>oops</html>")

    assert _run(handler, lambda c: c.list_transactions(ADDR), max_retries=1) == []


def test_list_transactions_walks_chain_pages():
    first = [_tx(f"c{i}", [{"scriptpubkey_address": ADDR, "value": 1}]) for i in range(25)]
    second = [_tx("older", [{"scriptpubkey_address": ADDR, "value": 7}])]
    paths = []

    def handler(request):
        paths.append(request.url.path)
        if request.url.path.endswith("/txs"):
            return httpx.Response(200, json=first)
        return httpx.Response(200, json=second)

    txs = _run(handler, lambda c: c.list_transactions(ADDR), max_pages=3)

    assert paths == [f"/api/address/{ADDR}/txs", f"/api/address/{ADDR}/txs/chain/c24"]
    assert len(txs) == 26
    assert txs[-1].txid == "older"


def test_single_page_by_default():
    first = [_tx(f"c{i}", [{"scriptpubkey_address": ADDR, "value": 1}]) for i in range(25)]
    paths = []

    def handler(request):
        paths.append(request.url.path)
        return httpx.Response(200, json=first)

    txs = _run(handler, lambda c: c.list_transactions(ADDR))

    assert len(paths) == 1
    assert len(txs) == 25


def test_confirmation_status_confirmed():
    def handler(request):
        assert request.url.path == "/api/tx/abc/status"
        return httpx.Response(
            200, json={"confirmed": True, "block_height": 2500000, "block_hash": "00ff", "block_time": 1}
        )

    status = _run(handler, lambda c: c.get_confirmation_status("abc"))

    assert status.confirmed is True
    assert status.block_height == 2500000
    assert status.with_tip(2500004).confirmations == 5


def test_confirmation_status_unconfirmed_and_failure():
    def unconfirmed(request):
        return httpx.Response(200, json={"confirmed": False})

    def failing(request):
        return httpx.Response(500)

    assert _run(unconfirmed, lambda c: c.get_confirmation_status("abc")).confirmed is False
    assert _run(failing, lambda c: c.get_confirmation_status("abc"), max_retries=1).confirmed is False


def test_tip_height():
    def handler(request):
        assert request.url.path == "/api/blocks/tip/height"
        return httpx.Response(200, text="2500123")

    def garbage(request):
        return httpx.Response(200, text="not-a-number")

    assert _run(handler, lambda c: c.get_tip_height()) == 2500123
    assert _run(garbage, lambda c: c.get_tip_height()) is None


def test_owned_client_closes():
    async def go():
        client = EsploraClient(BASE)
        await client.aclose()
        return client._client.is_closed

    assert asyncio.run(go()) is True
