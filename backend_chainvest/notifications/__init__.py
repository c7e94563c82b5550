# Deposit event fan-out to connected subscribers (WebSocket clients).

from backend_chainvest.notifications.broadcaster import (
    DEPOSIT_EVENT,
    DepositBroadcaster,
    DepositSink,
)

__all__ = [
    "DEPOSIT_EVENT",
    "DepositBroadcaster",
    "DepositSink",
]
