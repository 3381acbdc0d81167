"""buyback/integration/service.py

Long-running control loop around a BuybackEngine.

- BuybackService: the single writer thread, one execute_buyback per interval
- ConditionMonitor: read-only poller delivering engine snapshots to a callback

Design goals:
- Stop is cooperative: a set stop event cancels before the next attempt, never
  in the middle of one
- Deterministic in smoke tests (max_iterations + injected clock)
- An attempt or callback error is logged and the loop keeps running
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from typing import Any, Callable, Dict, Optional

from buyback.engine import BuybackEngine
from buyback.execution.models import AttemptResult

logger = logging.getLogger(__name__)


class BuybackService:
    """Runs engine.execute_buyback every interval_sec on one writer thread.

    Attributes:
        engine: The engine instance this service owns writes for.
        interval_sec: Seconds between attempts.
        clock: Optional time source passed through as `now` (for tests).
        executor: Identity recorded on each audit record.
    """

    def __init__(
        self,
        engine: BuybackEngine,
        *,
        interval_sec: float = 60.0,
        clock: Optional[Callable[[], int]] = None,
        executor: str = "keeper",
    ):
        self.engine = engine
        self.interval_sec = interval_sec
        self.clock = clock
        self.executor = executor
        self.iterations = 0
        self.outcomes: Counter = Counter()
        self.last_now: Optional[int] = None

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def run_once(self) -> Optional[AttemptResult]:
        now = self.clock() if self.clock is not None else None
        self.last_now = now
        try:
            result = self.engine.execute_buyback(now=now, executor=self.executor)
        except Exception:
            logger.exception("[service] Attempt raised")
            self.outcomes["error"] += 1
            return None

        self.iterations += 1
        self.outcomes[result.reason or "SUCCESS"] += 1
        return result

    def run_loop(self, max_iterations: Optional[int] = None) -> None:
        """Run attempts until stopped.

        Args:
            max_iterations: Optional limit on iterations (for smoke tests).
        """
        iteration = 0
        logger.info(f"[service] Starting loop (interval={self.interval_sec}s)")

        while not self._stop_event.is_set():
            iteration += 1
            if max_iterations is not None and iteration > max_iterations:
                logger.info(f"[service] Reached max iterations ({max_iterations})")
                break

            self.run_once()

            if max_iterations is not None and iteration >= max_iterations:
                continue
            # wait() returns early once stop() is called
            self._stop_event.wait(self.interval_sec)

        logger.info(f"[service] Loop finished after {self.iterations} attempts")

    def start(self, max_iterations: Optional[int] = None) -> None:
        if self._thread is not None:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self.run_loop,
            args=(max_iterations,),
            name="BuybackService",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Signal the loop to stop and wait for the in-flight attempt to finish."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.info("[service] Stopped.")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()


class ConditionMonitor:
    """Polls read-only engine state and hands snapshots to a callback.

    Never calls execute_buyback, so it never contends for the write lock.
    """

    def __init__(
        self,
        engine: BuybackEngine,
        callback: Callable[[Dict[str, Any]], None],
        *,
        poll_interval: float = 5.0,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.engine = engine
        self.callback = callback
        self.poll_interval = poll_interval
        self.clock = clock
        self.polls = 0

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def poll(self) -> Dict[str, Any]:
        now = self.clock() if self.clock is not None else None
        snapshot = self.engine.snapshot(now)
        snapshot["can_execute"] = self.engine.check_execution_conditions(now)
        self.polls += 1
        return snapshot

    def _poll_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.callback(self.poll())
            except Exception as e:
                logger.error(f"[monitor] Error in poll loop: {e}")
            self._stop_event.wait(self.poll_interval)

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._poll_loop, name="ConditionMonitor", daemon=True)
        self._thread.start()
        logger.info(f"[monitor] Started polling every {self.poll_interval}s")

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=2.0)
            self._thread = None
        logger.info("[monitor] Stopped.")
