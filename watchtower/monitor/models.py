"""Records and state snapshots shared by the monitor components."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Union


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Enums ────────────────────────────────────────────────────────────────────


class ServiceStatus(str, Enum):
    HEALTHY = "healthy"
    DOWN = "down"


class EmergencyKind(str, Enum):
    STARTUP = "startup"
    SERVICE_DOWN = "service_down"
    SERVICE_RECOVERY = "service_recovery"
    CUSTOM = "custom"


class Transition(str, Enum):
    NONE = "none"
    DOWN = "down"
    RECOVERY = "recovery"


# ── Persisted records ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class StatusRecord:
    """One observation of the primary service's status."""

    service: str
    status: ServiceStatus
    observed_at: datetime = field(default_factory=utcnow)
    response_time_ms: int | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "service": self.service,
            "status": self.status.value,
            "observed_at": self.observed_at.isoformat(),
            "response_time_ms": self.response_time_ms,
            "error": self.error,
        }


@dataclass(frozen=True)
class EmergencyEvent:
    """An entry in the emergency log."""

    kind: EmergencyKind
    message: str
    payload: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "payload": self.payload,
            "occurred_at": self.occurred_at.isoformat(),
        }


# ── Probe outcomes ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ProbeSuccess:
    response_time_ms: int


@dataclass(frozen=True)
class ProbeFailure:
    reason: str
    timed_out: bool = False
    status_code: int | None = None


ProbeOutcome = Union[ProbeSuccess, ProbeFailure]


# ── Liveness state ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class LivenessBelief:
    """Snapshot of what the monitor currently believes about the primary."""

    is_down: bool = False
    consecutive_failure_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "isDown": self.is_down,
            "consecutiveFailureCount": self.consecutive_failure_count,
        }


@dataclass(frozen=True)
class TransitionResult:
    transition: Transition
    belief: LivenessBelief

    @property
    def changed(self) -> bool:
        return self.transition is not Transition.NONE
