"""Liveness state machine for the primary service.

The tracker is the only writer of LivenessBelief. Transitions are
edge-triggered: the recovery event is written once when the primary comes
back, not on every healthy probe, and repeated failures while already down
only bump the counter.

Persistence is submit-and-forget. Each record gets exactly one attempt; a
failed write goes to the error sink and never affects the belief state.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Executor
from typing import Any

from .models import (
    EmergencyEvent,
    EmergencyKind,
    LivenessBelief,
    ProbeFailure,
    ProbeOutcome,
    ProbeSuccess,
    ServiceStatus,
    StatusRecord,
    Transition,
    TransitionResult,
)
from .store import PersistenceGateway

logger = logging.getLogger(__name__)

PersistErrorSink = Callable[[str, Exception], Any]


def _log_persist_error(what: str, exc: Exception) -> None:
    logger.warning("Failed to persist %s: %s", what, exc)


class StateTracker:
    """Holds the current liveness belief and records its history."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        service_name: str = "primary",
        executor: Executor | None = None,
        on_persist_error: PersistErrorSink | None = None,
        record_failures: bool = False,
    ) -> None:
        self.gateway = gateway
        self.service_name = service_name
        self.record_failures = record_failures
        self._executor = executor  # None = write inline
        self._on_persist_error = on_persist_error or _log_persist_error
        self._belief = LivenessBelief()
        self._lock = threading.Lock()

    # ── State machine ────────────────────────────────────────────────────

    def record_outcome(self, outcome: ProbeOutcome) -> TransitionResult:
        """Apply one probe outcome and return the resulting transition."""
        if isinstance(outcome, ProbeSuccess):
            return self._on_success(outcome)
        if isinstance(outcome, ProbeFailure):
            return self._on_failure(outcome)
        raise TypeError(f"Unknown probe outcome: {outcome!r}")

    def _on_success(self, outcome: ProbeSuccess) -> TransitionResult:
        with self._lock:
            was_down = self._belief.is_down
            if was_down:
                self._belief = LivenessBelief(is_down=False, consecutive_failure_count=0)
            snapshot = self._belief

        self._submit("status record", self.gateway.append_status, StatusRecord(
            service=self.service_name,
            status=ServiceStatus.HEALTHY,
            response_time_ms=outcome.response_time_ms,
        ))

        if not was_down:
            return TransitionResult(Transition.NONE, snapshot)

        logger.info("Primary service restored (%dms)", outcome.response_time_ms)
        self._submit("recovery event", self.gateway.append_emergency, EmergencyEvent(
            kind=EmergencyKind.SERVICE_RECOVERY,
            message="Primary service has recovered",
            payload={"response_time_ms": outcome.response_time_ms},
        ))
        return TransitionResult(Transition.RECOVERY, snapshot)

    def _on_failure(self, outcome: ProbeFailure) -> TransitionResult:
        with self._lock:
            was_down = self._belief.is_down
            self._belief = LivenessBelief(
                is_down=True,
                consecutive_failure_count=self._belief.consecutive_failure_count + 1,
            )
            snapshot = self._belief

        if self.record_failures:
            self._submit("status record", self.gateway.append_status, StatusRecord(
                service=self.service_name,
                status=ServiceStatus.DOWN,
                error=outcome.reason,
            ))

        if was_down:
            logger.debug(
                "Primary still down (%d consecutive failures): %s",
                snapshot.consecutive_failure_count, outcome.reason,
            )
            return TransitionResult(Transition.NONE, snapshot)

        logger.warning("Primary service down: %s", outcome.reason)
        if self.record_failures:
            self._submit("down event", self.gateway.append_emergency, EmergencyEvent(
                kind=EmergencyKind.SERVICE_DOWN,
                message="Primary service is down",
                payload={"reason": outcome.reason, "status_code": outcome.status_code},
            ))
        return TransitionResult(Transition.DOWN, snapshot)

    # ── Commands ─────────────────────────────────────────────────────────

    def record_startup(self, payload: dict[str, Any]) -> None:
        """Log that the monitor started. Not critical if it fails."""
        self._submit("startup event", self.gateway.append_emergency, EmergencyEvent(
            kind=EmergencyKind.STARTUP,
            message="Monitoring service started",
            payload=payload,
        ))

    def record_external_emergency(
        self, kind: EmergencyKind, message: str, payload: dict[str, Any] | None = None,
    ) -> EmergencyEvent:
        """Append an emergency reported by a caller. Raises PersistError."""
        event = EmergencyEvent(kind=kind, message=message, payload=payload or {})
        self.gateway.append_emergency(event)
        logger.warning("Emergency logged: %s - %s", kind.value, message)
        return event

    # ── Queries (never raise) ────────────────────────────────────────────

    def current_status(self) -> LivenessBelief:
        with self._lock:
            return self._belief

    def recent_history(self, limit: int = 100) -> list[StatusRecord]:
        try:
            return self.gateway.query_recent_status(limit)
        except Exception as e:
            logger.warning("Status history unavailable: %s", e)
            return []

    def history(self, status_limit: int = 100, emergency_limit: int = 50) -> dict[str, list[Any]]:
        statuses = self.recent_history(status_limit)
        try:
            emergencies = self.gateway.query_recent_emergencies(emergency_limit)
        except Exception as e:
            logger.warning("Emergency log unavailable: %s", e)
            emergencies = []
        return {"statuses": statuses, "emergencies": emergencies}

    def latest_status(self) -> StatusRecord | None:
        try:
            return self.gateway.find_latest_status(self.service_name)
        except Exception as e:
            logger.warning("Latest status unavailable: %s", e)
            return None

    # ── Persistence helpers ──────────────────────────────────────────────

    def _submit(self, what: str, fn: Callable[[Any], None], record: Any) -> None:
        if self._executor is None:
            self._persist(what, fn, record)
            return
        try:
            self._executor.submit(self._persist, what, fn, record)
        except RuntimeError as e:  # executor already shut down
            self._report(what, e)

    def _persist(self, what: str, fn: Callable[[Any], None], record: Any) -> None:
        try:
            fn(record)
        except Exception as e:
            self._report(what, e)

    def _report(self, what: str, exc: Exception) -> None:
        try:
            self._on_persist_error(what, exc)
        except Exception:
            logger.exception("Persist error sink failed")
