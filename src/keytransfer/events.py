"""Session events and the observer interface."""

from dataclasses import dataclass
from typing import Any, Callable, Union


@dataclass(frozen=True)
class Listening:
    """The listener is bound; ``bundle`` should be shown to the connector."""
    bundle: str


@dataclass(frozen=True)
class Established:
    """The TLS-PSK handshake with the peer completed."""
    peer_address: str


@dataclass(frozen=True)
class SendOk:
    """The pending payload was written; carries the caller's token."""
    token: Any


@dataclass(frozen=True)
class ReceiveOk:
    """One frame was received from the peer."""
    message: bytes


@dataclass(frozen=True)
class Lost:
    """The peer disconnected or the connection failed mid-session."""


@dataclass(frozen=True)
class ErrorConnect:
    """Dialing the listener or the handshake failed."""


@dataclass(frozen=True)
class ErrorListen:
    """Binding, accepting or the handshake failed on the listener."""


SessionEvent = Union[Listening, Established, SendOk, ReceiveOk, Lost, ErrorConnect, ErrorListen]
Observer = Callable[[SessionEvent], None]


class TransferCallback:
    """
    Observer with one method per event type.

    Subclass and override the methods you care about; an instance can be
    passed wherever an observer callable is expected.
    """

    def on_listening(self, bundle: str) -> None:
        pass

    def on_established(self, peer_address: str) -> None:
        pass

    def on_send_ok(self, token: Any) -> None:
        pass

    def on_receive_ok(self, message: bytes) -> None:
        pass

    def on_lost(self) -> None:
        pass

    def on_error_connect(self) -> None:
        pass

    def on_error_listen(self) -> None:
        pass

    def __call__(self, event: SessionEvent) -> None:
        if isinstance(event, Listening):
            self.on_listening(event.bundle)
        elif isinstance(event, Established):
            self.on_established(event.peer_address)
        elif isinstance(event, SendOk):
            self.on_send_ok(event.token)
        elif isinstance(event, ReceiveOk):
            self.on_receive_ok(event.message)
        elif isinstance(event, Lost):
            self.on_lost()
        elif isinstance(event, ErrorConnect):
            self.on_error_connect()
        elif isinstance(event, ErrorListen):
            self.on_error_listen()
        else:
            raise TypeError(f"Unknown session event: {event!r}")
