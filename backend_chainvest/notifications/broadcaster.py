"""
Deposit broadcaster: publish/subscribe registry of subscriber queues.

Each subscriber (one per WebSocket connection) owns a bounded asyncio.Queue.
publish() copies the event into every queue without awaiting; a full queue
drops the event for that subscriber only. There is no replay for late joiners.
"""

from __future__ import annotations

import asyncio
from typing import Any, Protocol

from backend_chainvest.chainvest_logging import get_logger
from backend_chainvest.database.models import Deposit

logger = get_logger(__name__)

DEPOSIT_EVENT = "deposit"
DEFAULT_SUBSCRIBER_QUEUE_SIZE = 100


class DepositSink(Protocol):
    """What the reconciliation engine needs from a notification sink."""

    def publish(self, deposit: Deposit) -> None: ...


def deposit_event(deposit: Deposit) -> dict[str, Any]:
    return {"event": DEPOSIT_EVENT, "data": deposit.to_wire()}


class DepositBroadcaster:
    """Fan out deposit events to all currently registered subscriber queues."""

    def __init__(self, *, queue_size: int = DEFAULT_SUBSCRIBER_QUEUE_SIZE) -> None:
        if queue_size < 1:
            raise ValueError("queue_size must be >= 1")
        self._queue_size = queue_size
        self._subscribers: set[asyncio.Queue[dict[str, Any]]] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue[dict[str, Any]]:
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers.add(queue)
        logger.debug("subscriber_added", subscribers=len(self._subscribers))
        return queue

    def unsubscribe(self, queue: asyncio.Queue[dict[str, Any]]) -> None:
        self._subscribers.discard(queue)
        logger.debug("subscriber_removed", subscribers=len(self._subscribers))

    def publish(self, deposit: Deposit) -> None:
        """Deliver to every subscriber; never blocks and never raises."""
        event = deposit_event(deposit)
        delivered = 0
        dropped = 0
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                dropped += 1
        if dropped:
            logger.warning("deposit_event_dropped", txid=deposit.txid, dropped=dropped)
        logger.info("deposit_event_published", txid=deposit.txid, subscribers=delivered)
