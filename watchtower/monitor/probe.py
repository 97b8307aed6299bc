"""Single health probe against the primary service."""

from __future__ import annotations

import logging
import time

from .client import NetworkClient, TransportError
from .models import ProbeFailure, ProbeOutcome, ProbeSuccess

logger = logging.getLogger(__name__)

HEALTH_PATH = "/api/health"
DEFAULT_TIMEOUT_MS = 10_000


class HealthProbe:
    """GET {target}/api/health once and classify the result.

    Success means a 2xx response inside the timeout. Anything else is a
    ProbeFailure carrying a human-readable reason. No retries here.
    """

    def __init__(self, client: NetworkClient | None = None) -> None:
        self.client = client or NetworkClient()

    def probe(self, target_url: str, timeout_ms: int = DEFAULT_TIMEOUT_MS) -> ProbeOutcome:
        url = f"{target_url.rstrip('/')}{HEALTH_PATH}"
        t0 = time.perf_counter()
        try:
            resp = self.client.request("GET", url, timeout_ms)
        except TransportError as e:
            logger.debug("Probe %s failed: %s", url, e)
            return ProbeFailure(reason=str(e), timed_out=e.timed_out)
        except Exception as e:
            return ProbeFailure(reason=f"Error: {type(e).__name__}: {e}")

        latency = int(round((time.perf_counter() - t0) * 1000))
        if latency > timeout_ms:
            # An answer after the deadline is a timeout, whatever its status
            return ProbeFailure(
                reason=f"Timed out after {timeout_ms}ms", timed_out=True, status_code=resp.status_code,
            )
        if resp.ok:
            return ProbeSuccess(response_time_ms=latency)
        return ProbeFailure(reason=f"HTTP {resp.status_code}", status_code=resp.status_code)
