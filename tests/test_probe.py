"""Tests for the network client and the health probe."""

from __future__ import annotations

import socket
import threading
import time
from unittest.mock import MagicMock, patch

import httpx
import pytest

from watchtower.monitor.client import NetworkClient, ResponseSummary, TransportError
from watchtower.monitor.models import ProbeFailure, ProbeSuccess
from watchtower.monitor.probe import HealthProbe


def _stream_returns(mock_client_cls, status_code: int, chunks=()) -> MagicMock:
    """Make the patched httpx.Client stream a response with the given status."""
    inner = mock_client_cls.return_value.__enter__.return_value
    resp = MagicMock(status_code=status_code)
    resp.iter_raw.return_value = iter(chunks)
    inner.stream.return_value.__enter__.return_value = resp
    return inner


def _trickling_server(head: list[bytes], tail: list[bytes], delay: float) -> tuple[socket.socket, int]:
    """One-shot HTTP server: sends `head` at once, then each `tail` chunk after `delay`."""
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(("127.0.0.1", 0))
    server.listen(1)

    def serve() -> None:
        try:
            conn, _ = server.accept()
        except OSError:
            return
        with conn:
            try:
                conn.recv(4096)
                conn.sendall(b"".join(head))
                for chunk in tail:
                    time.sleep(delay)
                    conn.sendall(chunk)
            except OSError:
                pass  # client gave up

    threading.Thread(target=serve, daemon=True).start()
    return server, server.getsockname()[1]


# ── NetworkClient ────────────────────────────────────────────────────────────


class TestNetworkClient:
    @patch("watchtower.monitor.client.httpx.Client")
    def test_returns_status_code(self, mock_client_cls) -> None:
        inner = _stream_returns(mock_client_cls, 204)

        resp = NetworkClient().request("HEAD", "http://primary/", 3000)
        assert resp == ResponseSummary(status_code=204)
        assert resp.ok
        inner.stream.assert_called_once_with("HEAD", "http://primary/")
        assert mock_client_cls.call_args.kwargs["timeout"] == 3.0

    @patch("watchtower.monitor.client.httpx.Client")
    def test_error_status_is_not_raised(self, mock_client_cls) -> None:
        _stream_returns(mock_client_cls, 502, chunks=[b"bad gateway"])

        resp = NetworkClient().request("GET", "http://primary/api/health", 1000)
        assert resp.status_code == 502
        assert not resp.ok

    @patch("watchtower.monitor.client.httpx.Client")
    def test_timeout_is_classified(self, mock_client_cls) -> None:
        inner = mock_client_cls.return_value.__enter__.return_value
        inner.stream.side_effect = httpx.ReadTimeout("read timed out")

        with pytest.raises(TransportError) as exc_info:
            NetworkClient().request("GET", "http://primary/api/health", 250)
        assert exc_info.value.timed_out
        assert "250ms" in str(exc_info.value)

    @patch("watchtower.monitor.client.httpx.Client")
    def test_connect_error(self, mock_client_cls) -> None:
        inner = mock_client_cls.return_value.__enter__.return_value
        inner.stream.side_effect = httpx.ConnectError("connection refused")

        with pytest.raises(TransportError) as exc_info:
            NetworkClient().request("GET", "http://primary/api/health", 1000)
        assert not exc_info.value.timed_out
        assert "Connection error" in str(exc_info.value)

    def test_trickled_body_hits_overall_deadline(self) -> None:
        server, port = _trickling_server(
            head=[b"HTTP/1.1 200 OK\r\nContent-Length: 20\r\n\r\n"],
            tail=[b"x"] * 20,
            delay=0.2,
        )
        try:
            t0 = time.perf_counter()
            with pytest.raises(TransportError) as exc_info:
                NetworkClient().request("GET", f"http://127.0.0.1:{port}/api/health", 500)
            elapsed = time.perf_counter() - t0
        finally:
            server.close()

        assert exc_info.value.timed_out
        # Aborted shortly after the deadline, not after the whole 4s body
        assert elapsed < 1.5


# ── HealthProbe ──────────────────────────────────────────────────────────────


class TestHealthProbe:
    def test_success(self, mock_client) -> None:
        outcome = HealthProbe(mock_client).probe("http://primary:3000")
        assert isinstance(outcome, ProbeSuccess)
        assert outcome.response_time_ms >= 0
        mock_client.request.assert_called_once_with("GET", "http://primary:3000/api/health", 10_000)

    def test_trailing_slash_and_timeout(self, mock_client) -> None:
        HealthProbe(mock_client).probe("http://primary:3000/", timeout_ms=500)
        mock_client.request.assert_called_once_with("GET", "http://primary:3000/api/health", 500)

    def test_non_2xx_is_failure(self, mock_client) -> None:
        mock_client.request.return_value = ResponseSummary(status_code=503)
        outcome = HealthProbe(mock_client).probe("http://primary")
        assert isinstance(outcome, ProbeFailure)
        assert outcome.reason == "HTTP 503"
        assert outcome.status_code == 503
        assert not outcome.timed_out

    def test_redirect_status_is_failure(self, mock_client) -> None:
        mock_client.request.return_value = ResponseSummary(status_code=301)
        outcome = HealthProbe(mock_client).probe("http://primary")
        assert isinstance(outcome, ProbeFailure)

    def test_transport_error_is_failure(self, mock_client) -> None:
        mock_client.request.side_effect = TransportError("Connection error: refused")
        outcome = HealthProbe(mock_client).probe("http://primary")
        assert isinstance(outcome, ProbeFailure)
        assert "refused" in outcome.reason

    def test_unexpected_error_is_failure(self, mock_client) -> None:
        mock_client.request.side_effect = ValueError("bad url")
        outcome = HealthProbe(mock_client).probe("http://primary")
        assert isinstance(outcome, ProbeFailure)
        assert "ValueError" in outcome.reason

    def test_unreachable_host(self) -> None:
        # Port 9 (discard) is closed on loopback in CI containers
        outcome = HealthProbe().probe("http://127.0.0.1:9", timeout_ms=1000)
        assert isinstance(outcome, ProbeFailure)

    def test_timeout_against_silent_server(self) -> None:
        """A listener that never answers is a timeout, bounded by the configured limit."""
        server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        server.bind(("127.0.0.1", 0))
        server.listen(1)
        port = server.getsockname()[1]
        try:
            t0 = time.perf_counter()
            outcome = HealthProbe().probe(f"http://127.0.0.1:{port}", timeout_ms=1)
            elapsed = time.perf_counter() - t0
        finally:
            server.close()

        assert isinstance(outcome, ProbeFailure)
        assert outcome.timed_out
        assert "Timed out" in outcome.reason
        assert elapsed < 2.0

    def test_slow_headers_are_not_healthy(self) -> None:
        """A 200 whose headers dribble in past the timeout is a failure."""
        server, port = _trickling_server(
            head=[b"HTTP/1.1 200 OK\r\n"],
            tail=[f"X-Pad-{i}: 1\r\n".encode() for i in range(8)] + [b"Content-Length: 0\r\n\r\n"],
            delay=0.2,
        )
        try:
            outcome = HealthProbe().probe(f"http://127.0.0.1:{port}", timeout_ms=500)
        finally:
            server.close()

        assert isinstance(outcome, ProbeFailure)
        assert outcome.timed_out

    def test_late_response_is_timeout(self, mock_client) -> None:
        def _late(*args):
            time.sleep(0.05)
            return ResponseSummary(status_code=200)

        mock_client.request.side_effect = _late
        outcome = HealthProbe(mock_client).probe("http://primary", timeout_ms=10)
        assert isinstance(outcome, ProbeFailure)
        assert outcome.timed_out
        assert outcome.status_code == 200
