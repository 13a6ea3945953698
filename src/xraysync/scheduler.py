"""Fixed-interval driver for reconciliation cycles."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from xraysync.models.report import CycleReport

_logger = logging.getLogger(__name__)


class Scheduler:
    """Runs *cycle* immediately, then once per *interval*.

    Cycles are strictly serialized: the next one starts ``interval`` seconds
    after the previous one started, or right away if it overran. Ticks missed
    during an overrun are dropped, never queued.

    Parameters
    ----------
    cycle
        Coroutine function running one reconciliation pass.
    interval
        Seconds between cycle starts.
    on_report
        Called with each :class:`CycleReport`.
    max_cycles
        Stop after this many cycles. ``None`` runs until :meth:`stop`.
    sleep, clock
        Injection points for tests (defaults: ``asyncio.sleep`` and
        ``time.monotonic``).
    """

    def __init__(
        self,
        cycle: Callable[[], Awaitable[CycleReport]],
        *,
        interval: float = 30.0,
        on_report: Callable[[CycleReport], None] | None = None,
        max_cycles: int | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._cycle = cycle
        self._interval = interval
        self._on_report = on_report
        self._max_cycles = max_cycles
        self._sleep = sleep
        self._clock = clock
        self._stopping = asyncio.Event()
        self._running = False
        self._cycles_run = 0
        self._skipped_ticks = 0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def cycles_run(self) -> int:
        return self._cycles_run

    @property
    def skipped_ticks(self) -> int:
        return self._skipped_ticks

    def stop(self) -> None:
        """Ask the loop to exit once the current cycle (if any) finishes."""
        self._stopping.set()

    async def _run_one(self) -> None:
        try:
            report = await self._cycle()
        except Exception:
            _logger.exception("Reconciliation cycle crashed; continuing with next tick")
            return
        if self._on_report is not None:
            try:
                self._on_report(report)
            except Exception:
                _logger.debug("on_report callback failed", exc_info=True)

    async def run(self) -> None:
        """Run cycles until stopped or ``max_cycles`` is reached."""
        if self._running:
            raise RuntimeError("Scheduler is already running")
        self._running = True
        try:
            while not self._stopping.is_set():
                started = self._clock()
                await self._run_one()
                self._cycles_run += 1
                if self._max_cycles is not None and self._cycles_run >= self._max_cycles:
                    return
                if self._stopping.is_set():
                    return

                elapsed = self._clock() - started
                if elapsed > self._interval:
                    missed = int(elapsed // self._interval)
                    self._skipped_ticks += missed
                    _logger.warning(
                        "Cycle took %.1fs (interval %.1fs); skipped %d tick(s)",
                        elapsed,
                        self._interval,
                        missed,
                    )
                    continue
                await self._wait(self._interval - elapsed)
        finally:
            self._running = False

    async def _wait(self, delay: float) -> None:
        """Sleep *delay* seconds, waking early if :meth:`stop` is called."""
        sleeper = asyncio.ensure_future(self._sleep(delay))
        stopper = asyncio.ensure_future(self._stopping.wait())
        try:
            await asyncio.wait({sleeper, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for fut in (sleeper, stopper):
                if not fut.done():
                    fut.cancel()
