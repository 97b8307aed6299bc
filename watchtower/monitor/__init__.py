"""Monitor subsystem: probe, state tracker, recovery, storage and scheduler."""

from .client import NetworkClient, TransportError
from .models import EmergencyEvent, EmergencyKind, LivenessBelief, StatusRecord, Transition
from .probe import HealthProbe
from .recovery import RecoveryAttempter
from .scheduler import MonitorScheduler
from .store import PersistError, PersistenceGateway, SQLiteGateway
from .tracker import StateTracker
