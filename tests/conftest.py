"""Shared fixtures for keytransfer tests."""

import socket
import ssl
import threading
from typing import Optional, Type

import pytest

from keytransfer.config import TransferConfig
from keytransfer.events import SessionEvent

HAS_PSK = getattr(ssl, "HAS_PSK", False)


def pytest_collection_modifyitems(config, items) -> None:
    """Skip tests marked ``psk`` when the ssl module cannot do TLS-PSK."""
    if HAS_PSK:
        return
    skip_psk = pytest.mark.skip(reason="ssl module lacks TLS-PSK support")
    for item in items:
        if item.get_closest_marker("psk") is not None:
            item.add_marker(skip_psk)


class PlainTransport:
    """Stands in for SecureTransportFactory without any TLS."""

    handshake_timeout = 5.0

    def wrap_server(self, sock: socket.socket) -> socket.socket:
        sock.settimeout(self.handshake_timeout)
        return sock

    def wrap_client(self, sock: socket.socket) -> socket.socket:
        sock.settimeout(self.handshake_timeout)
        return sock


class EventRecorder:
    """Observer that records events and lets tests wait for them."""

    def __init__(self) -> None:
        self.events: list[SessionEvent] = []
        self.threads: set[str] = set()
        self._cond = threading.Condition()

    def __call__(self, event: SessionEvent) -> None:
        with self._cond:
            self.events.append(event)
            self.threads.add(threading.current_thread().name)
            self._cond.notify_all()

    def wait_for(self, event_type: Type, timeout: float = 5.0, count: int = 1) -> Optional[SessionEvent]:
        """Wait until ``count`` events of ``event_type`` arrived; returns the last one."""
        with self._cond:
            self._cond.wait_for(lambda: len(self.of_type(event_type)) >= count, timeout)
            matches = self.of_type(event_type)
            return matches[count - 1] if len(matches) >= count else None

    def of_type(self, event_type: Type) -> list:
        return [e for e in self.events if isinstance(e, event_type)]

    def types(self) -> list[Type]:
        with self._cond:
            return [type(e) for e in self.events]


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def peer_recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def plain_transport() -> PlainTransport:
    return PlainTransport()


@pytest.fixture
def local_config() -> TransferConfig:
    """Loopback config with a fast poll tick."""
    return TransferConfig.local_testing().with_timeouts(read_timeout=0.05, frame_timeout=1.0)
