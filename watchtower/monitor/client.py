"""httpx-based network client used by the probe and the recovery attempter.

Every call returns a ResponseSummary or raises TransportError. HTTP error
statuses are not exceptions here: classifying them is the caller's job.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

import httpx

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Raised when no HTTP response was received (refused, timeout, DNS...)."""

    def __init__(self, message: str, timed_out: bool = False) -> None:
        self.timed_out = timed_out
        super().__init__(message)


@dataclass(frozen=True)
class ResponseSummary:
    status_code: int

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class NetworkClient:
    """Synchronous httpx client with a per-request deadline.

    httpx timeouts apply per phase (connect, each read, ...), so a server that
    trickles bytes never trips them. The response is streamed and the elapsed
    time is checked against the overall deadline as it arrives.
    """

    def __init__(self, follow_redirects: bool = True) -> None:
        self._follow_redirects = follow_redirects

    def request(self, method: str, url: str, timeout_ms: int) -> ResponseSummary:
        """Send a single request and summarise the response."""
        deadline = time.perf_counter() + timeout_ms / 1000
        try:
            with httpx.Client(
                timeout=timeout_ms / 1000, follow_redirects=self._follow_redirects,
            ) as client:
                with client.stream(method, url) as resp:
                    _check_deadline(deadline, timeout_ms)
                    for _ in resp.iter_raw():
                        _check_deadline(deadline, timeout_ms)
            return ResponseSummary(status_code=resp.status_code)
        except httpx.TimeoutException:
            raise TransportError(f"Timed out after {timeout_ms}ms", timed_out=True)
        except httpx.ConnectError as e:
            raise TransportError(f"Connection error: {e}")
        except httpx.HTTPError as e:
            raise TransportError(f"{type(e).__name__}: {e}")


def _check_deadline(deadline: float, timeout_ms: int) -> None:
    if time.perf_counter() > deadline:
        raise TransportError(f"Timed out after {timeout_ms}ms", timed_out=True)
