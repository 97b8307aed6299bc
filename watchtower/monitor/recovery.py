"""Best-effort wake-up requests while the primary is believed down.

Cheap requests against the usual entry points, meant to nudge a sleeping
host into spinning the primary back up. Nothing here restarts anything.
Every failure is logged and swallowed.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence

from .client import NetworkClient
from .tracker import StateTracker

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINTS = ("/", "/api/health", "/login", "/home")


class RecoveryAttempter:
    """Sends throttled HEAD requests to a fixed list of endpoints."""

    def __init__(self, client: NetworkClient, tracker: StateTracker) -> None:
        self.client = client
        self.tracker = tracker

    def attempt_wake(
        self,
        target_url: str,
        endpoints: Sequence[str] = DEFAULT_ENDPOINTS,
        per_request_timeout_ms: int = 3_000,
        inter_request_delay_ms: int = 1_000,
        stop_event: threading.Event | None = None,
    ) -> None:
        belief = self.tracker.current_status()
        if not belief.is_down:
            return

        logger.info(
            "Attempting to wake primary service (attempt %d)...",
            belief.consecutive_failure_count,
        )
        base = target_url.rstrip("/")
        stop_event = stop_event or threading.Event()

        for i, endpoint in enumerate(endpoints):
            if stop_event.is_set():
                logger.info("Wake cycle interrupted by shutdown")
                return
            try:
                resp = self.client.request("HEAD", f"{base}{endpoint}", per_request_timeout_ms)
                logger.info("%s - request sent (%d)", endpoint, resp.status_code)
            except Exception as e:
                logger.warning("%s - failed: %s", endpoint, e)

            # Throttle between endpoints; shutdown cuts the wait short
            if i < len(endpoints) - 1:
                stop_event.wait(inter_request_delay_ms / 1000)
