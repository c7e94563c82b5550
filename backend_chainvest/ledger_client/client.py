"""
Esplora ledger query client — transaction listing and confirmation status.

Responsibilities:
- Query a Blockstream/Esplora HTTP API for an address's transactions and for
  a transaction's confirmation status.
- Normalize payloads into RemoteTransaction / ConfirmationStatus.
- Bound every attempt with a timeout and retry transient failures with
  exponential backoff.
- Never raise to the caller: a failed listing is an empty list, a failed
  status lookup is "not confirmed".
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx

from backend_chainvest.chainvest_logging import get_logger
from backend_chainvest.core.exceptions import LedgerQueryError
from backend_chainvest.ledger_client.models import (
    UNCONFIRMED,
    ConfirmationStatus,
    RemoteTransaction,
)

logger = get_logger(__name__)

# Esplora returns up to 25 confirmed transactions per chain page
CHAIN_PAGE_SIZE = 25


def _last_confirmed_txid(items: list[Any]) -> str | None:
    for item in reversed(items):
        if not isinstance(item, dict):
            continue
        status = item.get("status") or {}
        if status.get("confirmed") is True and isinstance(item.get("txid"), str):
            return item["txid"]
    return None


def _count_confirmed(items: list[Any]) -> int:
    return sum(
        1
        for item in items
        if isinstance(item, dict) and (item.get("status") or {}).get("confirmed") is True
    )


class EsploraClient:
    """
    Async read-only client for one Esplora endpoint.

    Holds no ledger state. An httpx.AsyncClient may be injected (tests pass
    one built on httpx.MockTransport); otherwise one is created and owned.
    """

    def __init__(
        self,
        base_url: str,
        *,
        request_timeout_sec: float = 10.0,
        max_retries: int = 3,
        min_retry_delay_sec: float = 0.5,
        max_retry_delay_sec: float = 5.0,
        max_pages: int = 1,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Args:
            base_url: API root, e.g. https://blockstream.info/testnet/api.
            request_timeout_sec: HTTP timeout for each attempt.
            max_retries: Attempts per query before giving up (>= 1).
            min_retry_delay_sec: Initial backoff delay.
            max_retry_delay_sec: Cap for backoff delay.
            max_pages: Listing pages to walk (first page + chain pages).
            http_client: Optional pre-built client; not closed by aclose().
        """
        if not base_url.strip():
            raise ValueError("base_url must be non-empty")
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        if max_pages < 1:
            raise ValueError("max_pages must be >= 1")

        self._base_url = base_url.rstrip("/")
        self._max_retries = max_retries
        self._min_retry_delay = min_retry_delay_sec
        self._max_retry_delay = max_retry_delay_sec
        self._max_pages = max_pages
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(request_timeout_sec)
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def list_transactions(self, address: str) -> list[RemoteTransaction]:
        """
        Return the transactions touching address (order as served, not guaranteed).

        On failure of the first page, logs and returns []. A failure on a later
        chain page keeps the transactions already collected.
        """
        path = f"/address/{address}/txs"
        try:
            raw = await self._get_json(path)
        except LedgerQueryError as e:
            logger.error(
                "ledger_list_transactions_failed",
                address=address,
                url=e.url,
                status_code=e.status_code,
                error=str(e),
            )
            return []

        items = raw if isinstance(raw, list) else []
        pages = 1
        page_items = items
        while pages < self._max_pages and _count_confirmed(page_items) >= CHAIN_PAGE_SIZE:
            last_seen = _last_confirmed_txid(page_items)
            if last_seen is None:
                break
            try:
                page = await self._get_json(f"{path}/chain/{last_seen}")
            except LedgerQueryError as e:
                logger.warning(
                    "ledger_list_page_failed",
                    address=address,
                    page=pages + 1,
                    error=str(e),
                )
                break
            page_items = page if isinstance(page, list) else []
            if not page_items:
                break
            items.extend(page_items)
            pages += 1

        txs: list[RemoteTransaction] = []
        for item in items:
            if not isinstance(item, dict):
                continue
            try:
                txs.append(RemoteTransaction.from_esplora_item(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.debug("ledger_skip_malformed_tx", txid=item.get("txid"), error=str(e))
        logger.debug("ledger_transactions_listed", address=address, count=len(txs), pages=pages)
        return txs

    async def get_confirmation_status(self, txid: str) -> ConfirmationStatus:
        """Return the confirmation status of txid; not confirmed on any failure."""
        try:
            data = await self._get_json(f"/tx/{txid}/status")
        except LedgerQueryError as e:
            logger.error(
                "ledger_tx_status_failed",
                txid=txid,
                url=e.url,
                status_code=e.status_code,
                error=str(e),
            )
            return UNCONFIRMED
        if not isinstance(data, dict):
            logger.error("ledger_tx_status_malformed", txid=txid)
            return UNCONFIRMED
        return ConfirmationStatus.from_esplora_status(data)

    async def get_tip_height(self) -> int | None:
        """Return the current chain tip height, or None on failure."""
        try:
            text = await self._get_text("/blocks/tip/height")
            return int(text.strip())
        except (LedgerQueryError, ValueError) as e:
            logger.error("ledger_tip_height_failed", error=str(e))
            return None

    async def _get_json(self, path: str) -> Any:
        resp = await self._get(path)
        try:
            return resp.json()
        except ValueError as e:
            raise LedgerQueryError(
                f"Invalid JSON from ledger service: {e}", url=str(resp.url)
            ) from e

    async def _get_text(self, path: str) -> str:
        resp = await self._get(path)
        return resp.text

    async def _get(self, path: str) -> httpx.Response:
        """GET with retry and exponential backoff; raise LedgerQueryError after the last attempt."""
        url = f"{self._base_url}{path}"
        delay = self._min_retry_delay
        last_error: LedgerQueryError | None = None

        for attempt in range(self._max_retries):
            try:
                resp = await self._client.get(url)
                resp.raise_for_status()
                return resp
            except httpx.HTTPStatusError as e:
                last_error = LedgerQueryError(
                    f"Ledger service returned HTTP {e.response.status_code}",
                    url=url,
                    status_code=e.response.status_code,
                )
                # 4xx other than rate limiting will not change on retry
                if 400 <= e.response.status_code < 500 and e.response.status_code != 429:
                    break
            except httpx.HTTPError as e:
                last_error = LedgerQueryError(
                    f"Ledger service request failed: {e.__class__.__name__}: {e}",
                    url=url,
                )
            logger.warning(
                "ledger_request_retry",
                url=url,
                attempt=attempt + 1,
                max_retries=self._max_retries,
                error=str(last_error),
            )
            if attempt + 1 < self._max_retries:
                await asyncio.sleep(delay)
                delay = min(delay * 2, self._max_retry_delay)

        raise last_error
