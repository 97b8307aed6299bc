"""Monitor scheduler: probe loop + recovery loop + housekeeping.

Two asyncio tasks run side by side: a short-interval probe loop that feeds the
StateTracker, and a long-interval recovery loop that sends wake requests while
the primary is down. An optional third task runs storage housekeeping
(retention cleanup) once on start and then on a daily timer. Blocking network calls run in a thread pool so neither
loop ever holds up the other (or the API's event loop).
"""

from __future__ import annotations

import asyncio
import functools
import logging
import threading
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any

from .models import Transition, TransitionResult
from .probe import HealthProbe
from .recovery import DEFAULT_ENDPOINTS, RecoveryAttempter
from .tracker import StateTracker

logger = logging.getLogger(__name__)


class MonitorScheduler:
    """Drives HealthProbe and RecoveryAttempter on independent timers.

    Each loop awaits its own work before sleeping, so a timer never overlaps
    itself. The probe loop fires once immediately on start; the recovery loop
    waits a full interval first.
    """

    def __init__(
        self,
        probe: HealthProbe,
        tracker: StateTracker,
        attempter: RecoveryAttempter,
        target_url: str,
        probe_interval: float = 30.0,
        recovery_interval: float = 120.0,
        probe_timeout_ms: int = 10_000,
        recovery_endpoints: Sequence[str] = DEFAULT_ENDPOINTS,
        recovery_timeout_ms: int = 3_000,
        recovery_delay_ms: int = 1_000,
        shutdown_grace: float = 15.0,
        housekeeping: Callable[[], Any] | None = None,
        housekeeping_interval: float = 86_400.0,
    ) -> None:
        self.probe = probe
        self.tracker = tracker
        self.attempter = attempter
        self.target_url = target_url
        self.probe_interval = probe_interval
        self.recovery_interval = recovery_interval
        self.probe_timeout_ms = probe_timeout_ms
        self.recovery_endpoints = tuple(recovery_endpoints)
        self.recovery_timeout_ms = recovery_timeout_ms
        self.recovery_delay_ms = recovery_delay_ms
        self.shutdown_grace = shutdown_grace
        self.housekeeping = housekeeping
        self.housekeeping_interval = housekeeping_interval

        self._executor = _new_executor()
        self._executor_closed = False
        self._tasks: list[asyncio.Task[None]] = []
        self._running = False
        self._stopping: asyncio.Event | None = None
        self._halt = threading.Event()  # interrupts the recovery throttle

        # Diagnostics
        self.probe_count = 0
        self.recovery_count = 0
        self.last_probe_at: str | None = None
        self.last_transition: str | None = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Arm the loops. Safe to call again after stop()."""
        if self._running:
            return
        if self._executor_closed:
            self._executor = _new_executor()
            self._executor_closed = False
        self._running = True
        self._stopping = asyncio.Event()
        self._halt.clear()

        self._tasks = [
            asyncio.create_task(self._probe_loop(), name="monitor-probe"),
            asyncio.create_task(self._recovery_loop(), name="monitor-recovery"),
        ]
        if self.housekeeping is not None:
            self._tasks.append(
                asyncio.create_task(self._housekeeping_loop(), name="monitor-housekeeping"),
            )
        logger.info(
            "Monitor scheduler started: target=%s probe=%ss recovery=%ss",
            self.target_url, self.probe_interval, self.recovery_interval,
        )

    async def stop(self) -> None:
        """Stop the loops, letting in-flight work finish within the grace period."""
        if self._running:
            self._running = False
            self._halt.set()
            if self._stopping is not None:
                self._stopping.set()

            if self._tasks:
                _, pending = await asyncio.wait(self._tasks, timeout=self.shutdown_grace)
                for task in pending:
                    task.cancel()
                if pending:
                    logger.warning("%d monitor task(s) did not finish in %ss", len(pending), self.shutdown_grace)
                    await asyncio.gather(*pending, return_exceptions=True)
            self._tasks.clear()
            logger.info("Monitor scheduler stopped")

        self._executor.shutdown(wait=False)
        self._executor_closed = True

    async def probe_now(self) -> TransitionResult:
        """Run one probe immediately and record it."""
        loop = asyncio.get_running_loop()
        outcome = await loop.run_in_executor(
            self._executor, self.probe.probe, self.target_url, self.probe_timeout_ms,
        )
        result = self.tracker.record_outcome(outcome)

        self.probe_count += 1
        now = datetime.now(timezone.utc).isoformat()
        self.last_probe_at = now
        if result.transition is Transition.DOWN:
            self.last_transition = f"healthy→down @ {now}"
        elif result.transition is Transition.RECOVERY:
            self.last_transition = f"down→healthy @ {now}"
        return result

    async def recover_now(self) -> None:
        """Run one wake cycle (no-op unless the primary is down)."""
        loop = asyncio.get_running_loop()
        wake = functools.partial(
            self.attempter.attempt_wake,
            self.target_url,
            self.recovery_endpoints,
            per_request_timeout_ms=self.recovery_timeout_ms,
            inter_request_delay_ms=self.recovery_delay_ms,
            stop_event=self._halt,
        )
        await loop.run_in_executor(self._executor, wake)
        self.recovery_count += 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "target_url": self.target_url,
            "probe_interval": self.probe_interval,
            "recovery_interval": self.recovery_interval,
            "probe_count": self.probe_count,
            "recovery_count": self.recovery_count,
            "last_probe_at": self.last_probe_at,
            "last_transition": self.last_transition,
        }

    # ── Loops ────────────────────────────────────────────────────────────

    async def _sleep(self, interval: float) -> bool:
        """Sleep for `interval` seconds. False once stop() has been called."""
        if not self._running or self._stopping is None:
            return False
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=interval)
        except asyncio.TimeoutError:
            return self._running
        return False

    async def _probe_loop(self) -> None:
        # Run immediately on start so belief is established without waiting
        await self._probe_once()
        while await self._sleep(self.probe_interval):
            await self._probe_once()

    async def _recovery_loop(self) -> None:
        while await self._sleep(self.recovery_interval):
            try:
                await self.recover_now()
            except Exception:
                logger.exception("Recovery cycle error")

    async def _probe_once(self) -> None:
        try:
            result = await self.probe_now()
            logger.debug(
                "Probe %s: transition=%s failures=%d",
                self.target_url, result.transition.value, result.belief.consecutive_failure_count,
            )
        except Exception:
            logger.exception("Health probe error: %s", self.target_url)

    async def _housekeeping_loop(self) -> None:
        await self._housekeep_once()
        while await self._sleep(self.housekeeping_interval):
            await self._housekeep_once()

    async def _housekeep_once(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(self._executor, self.housekeeping)
        except Exception:
            logger.exception("Housekeeping error")


def _new_executor() -> ThreadPoolExecutor:
    return ThreadPoolExecutor(max_workers=4, thread_name_prefix="monitor")
