"""
scheduler.py - Periodic accrual trigger

AccrualScheduler calls LendingService.tick() on a fixed interval from one
daemon thread. Ticks never overlap: there is only one scheduler thread, and
tick() holds the store lock for its whole pass.
"""

from __future__ import annotations
from typing import Callable, Optional
import logging
import threading

from .accrual import TickResult

logger = logging.getLogger(__name__)

DEFAULT_TICK_INTERVAL_SECONDS = 5.0


class AccrualScheduler:
    """
    Background accrual loop.

    A tick that raises is logged and the loop carries on with the next one.

    Example:
        scheduler = AccrualScheduler(service.tick, interval_seconds=5)
        scheduler.start()
        ...
        scheduler.stop()
    """

    def __init__(
        self,
        tick: Callable[[], TickResult],
        interval_seconds: float = DEFAULT_TICK_INTERVAL_SECONDS,
    ):
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self._tick = tick
        self.interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.ticks_run = 0
        self.ticks_failed = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="accrual-scheduler", daemon=True)
        self._thread.start()
        logger.info("Accrual scheduler started (every %s s)", self.interval_seconds)

    def stop(self, timeout: Optional[float] = None) -> None:
        """
        Signal the loop to exit and wait for the current tick to finish.

        If the thread outlives `timeout` it stays attached, so start() will
        not launch a second loop beside it.
        """
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("Accrual scheduler still finishing a tick after %s s", timeout)
                return
            self._thread = None
        logger.info("Accrual scheduler stopped after %d ticks", self.ticks_run)

    def run_once(self) -> Optional[TickResult]:
        """Run a single tick, logging rather than raising any failure."""
        try:
            result = self._tick()
        except Exception:
            self.ticks_failed += 1
            logger.exception("Error in accrual tick")
            return None
        self.ticks_run += 1
        if result.liquidated:
            logger.info("Tick liquidated %d loan(s): %s",
                        len(result.liquidated), ", ".join(result.liquidated))
        return result

    def _run(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            self.run_once()

    def __enter__(self) -> AccrualScheduler:
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()
