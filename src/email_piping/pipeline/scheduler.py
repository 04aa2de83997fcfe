"""Cycle trigger with a reentrancy guard, and a simple interval scheduler."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from email_piping.core.models import CycleSummary
from email_piping.pipeline.cycle import IngestionCycle

logger = logging.getLogger(__name__)


class CycleRunner:
    """Exposes ``run_ingestion_cycle()`` to whatever triggers it.

    At most one cycle runs at a time: a call made while another is in
    progress is logged and dropped.
    """

    def __init__(self, cycle: IngestionCycle) -> None:
        self._cycle = cycle
        self._lock = threading.Lock()
        self.last_summary: CycleSummary | None = None

    @property
    def in_progress(self) -> bool:
        return self._lock.locked()

    def run_ingestion_cycle(self) -> None:
        if not self._lock.acquire(blocking=False):
            logger.warning("Ingestion cycle already in progress; skipping this trigger")
            return
        try:
            self.last_summary = self._cycle.run()
        except Exception:
            logger.exception("Ingestion cycle failed")
        finally:
            self._lock.release()


class IntervalScheduler:
    """Calls a trigger, then waits the configured interval, until stopped."""

    def __init__(
        self,
        trigger: Callable[[], None],
        interval_seconds: Callable[[], float],
    ) -> None:
        self._trigger = trigger
        self._interval_seconds = interval_seconds
        self._stop_event = threading.Event()

    def stop(self) -> None:
        self._stop_event.set()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def run_forever(self, max_cycles: int | None = None) -> int:
        """Run until ``stop()`` or ``max_cycles`` triggers. Returns the trigger count.

        The interval is re-read before every wait so a changed setting takes
        effect without a restart.
        """
        cycles = 0
        while not self._stop_event.is_set():
            self._trigger()
            cycles += 1
            if max_cycles is not None and cycles >= max_cycles:
                break

            interval = self._interval_seconds()
            logger.debug("Next cycle in %.0f seconds", interval)
            if self._stop_event.wait(interval):
                break

        return cycles
