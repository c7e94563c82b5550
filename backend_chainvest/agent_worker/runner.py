"""
Polling runner — drives reconciliation passes on a fixed interval.

- One pass immediately at start, then one per interval_sec until stopped.
- Single-flight: a tick that fires while a pass is still running is skipped.
- Each pass is bounded by pass_timeout_sec; a timeout or crash is logged and
  the loop continues with the next tick.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass

from backend_chainvest.chainvest_logging import get_logger
from backend_chainvest.reconciliation.engine import PassResult, ReconciliationEngine

logger = get_logger(__name__)

DEFAULT_INTERVAL_SEC = 30.0
DEFAULT_PASS_TIMEOUT_SEC = 120.0
MIN_INTERVAL_SEC = 0.01


@dataclass
class RunnerConfig:
    """Config for the periodic runner."""

    interval_sec: float = DEFAULT_INTERVAL_SEC
    pass_timeout_sec: float = DEFAULT_PASS_TIMEOUT_SEC

    def __post_init__(self) -> None:
        self.interval_sec = max(MIN_INTERVAL_SEC, float(self.interval_sec))
        self.pass_timeout_sec = max(MIN_INTERVAL_SEC, float(self.pass_timeout_sec))


class PollingRunner:
    """Scheduled task around ReconciliationEngine.run_pass()."""

    def __init__(self, engine: ReconciliationEngine, config: RunnerConfig | None = None) -> None:
        self._engine = engine
        self._config = config or RunnerConfig()
        self._in_flight = False
        self._tick_count = 0
        self._skipped_ticks = 0

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def skipped_ticks(self) -> int:
        return self._skipped_ticks

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def tick(self) -> PassResult | None:
        """
        Run one bounded pass. Returns None when the tick was skipped because a
        pass was already running, or when the pass failed or timed out.
        """
        self._tick_count += 1
        if self._in_flight:
            self._skipped_ticks += 1
            logger.warning("runner_tick_skipped_in_flight", tick=self._tick_count)
            return None
        self._in_flight = True
        started = time.monotonic()
        try:
            result = await asyncio.wait_for(
                self._engine.run_pass(), timeout=self._config.pass_timeout_sec
            )
            logger.debug(
                "runner_tick_done",
                tick=self._tick_count,
                duration_sec=round(time.monotonic() - started, 3),
            )
            return result
        except asyncio.TimeoutError:
            logger.error(
                "runner_pass_timeout",
                tick=self._tick_count,
                timeout_sec=self._config.pass_timeout_sec,
            )
            return None
        except Exception as e:
            logger.exception("runner_pass_failed", tick=self._tick_count, error=str(e))
            return None
        finally:
            self._in_flight = False

    async def run_forever(self, stop_event: asyncio.Event) -> None:
        """
        Tick now and then every interval_sec until stop_event is set.

        Ticks are spawned as tasks so a slow pass does not delay the schedule;
        the single-flight guard in tick() keeps them from overlapping.
        """
        interval = self._config.interval_sec
        logger.info(
            "runner_started",
            address=self._engine.watched.address,
            interval_sec=interval,
            pass_timeout_sec=self._config.pass_timeout_sec,
        )
        pending: set[asyncio.Task[PassResult | None]] = set()
        while not stop_event.is_set():
            task = asyncio.create_task(self.tick())
            pending.add(task)
            task.add_done_callback(pending.discard)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
        for task in list(pending):
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        logger.info(
            "runner_stopped",
            tick_count=self._tick_count,
            skipped_ticks=self._skipped_ticks,
        )
