"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from watchtower.monitor.client import NetworkClient, ResponseSummary
from watchtower.monitor.models import EmergencyEvent, StatusRecord
from watchtower.monitor.store import PersistError, PersistenceGateway, SQLiteGateway
from watchtower.monitor.tracker import StateTracker


class FakeGateway(PersistenceGateway):
    """In-memory gateway that can be told to fail reads or writes."""

    def __init__(self) -> None:
        self.statuses: list[StatusRecord] = []
        self.emergencies: list[EmergencyEvent] = []
        self.fail_writes = False
        self.fail_reads = False

    def append_status(self, record: StatusRecord) -> None:
        if self.fail_writes:
            raise PersistError("storage unavailable")
        self.statuses.append(record)

    def append_emergency(self, event: EmergencyEvent) -> None:
        if self.fail_writes:
            raise PersistError("storage unavailable")
        self.emergencies.append(event)

    def query_recent_status(self, limit: int = 100) -> list[StatusRecord]:
        if self.fail_reads:
            raise PersistError("storage unavailable")
        return list(reversed(self.statuses))[:limit]

    def query_recent_emergencies(self, limit: int = 50) -> list[EmergencyEvent]:
        if self.fail_reads:
            raise PersistError("storage unavailable")
        return list(reversed(self.emergencies))[:limit]

    def find_latest_status(self, service: str) -> StatusRecord | None:
        if self.fail_reads:
            raise PersistError("storage unavailable")
        for record in reversed(self.statuses):
            if record.service == service:
                return record
        return None

    def ping(self) -> bool:
        return not self.fail_reads


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def tracker(gateway: FakeGateway) -> StateTracker:
    """Tracker writing inline to the fake gateway."""
    return StateTracker(gateway, service_name="primary")


@pytest.fixture
def sqlite_gateway(tmp_path: Path) -> SQLiteGateway:
    gw = SQLiteGateway(tmp_path / "monitoring.db")
    yield gw
    gw.close()


@pytest.fixture
def mock_client() -> MagicMock:
    """NetworkClient double that answers 200 to everything."""
    client = MagicMock(spec=NetworkClient)
    client.request.return_value = ResponseSummary(status_code=200)
    return client
