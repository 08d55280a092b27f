"""
Transfer session: one PSK-secured connection driven by a dedicated worker.

The worker thread owns every socket of the session. It listens or dials,
runs the TLS-PSK handshake and then polls the connection: each tick it
writes the pending outbound payload, if any, and waits up to the read
timeout for an inbound frame. Events go out through an ``EventSink``.

Limitations kept on purpose:

- The outbound slot holds one payload. ``send()`` overwrites an unsent
  payload, which is then never transmitted and gets no ``SendOk``.
- Mid-session I/O errors and a graceful peer disconnect both end as
  ``Lost``.
- ``close()`` detaches the observer, so no terminal event is guaranteed
  after cancellation.
"""

import contextlib
import logging
import socket
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from .bundle import EndpointDescriptor, create_bundle, local_ip_address
from .config import TransferConfig
from .events import (
    ErrorConnect,
    ErrorListen,
    Established,
    Listening,
    Lost,
    ReceiveOk,
    SendOk,
    SessionEvent,
)
from .framing import LineReader, decode_frame, encode_frame
from .secret import PresharedSecret
from .sink import EventSink
from .tls import SecureTransportFactory

logger = logging.getLogger(__name__)


class Role(Enum):
    """Which side of the exchange a session plays."""
    LISTENER = "listener"
    CONNECTOR = "connector"


class SessionState(Enum):
    """Lifecycle of a transfer session."""
    INIT = "init"
    LISTENING = "listening"
    ESTABLISHING = "establishing"
    ESTABLISHED = "established"
    CLOSED = "closed"
    LOST = "lost"
    ERROR_CONNECT = "error_connect"
    ERROR_LISTEN = "error_listen"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset({
    SessionState.CLOSED,
    SessionState.LOST,
    SessionState.ERROR_CONNECT,
    SessionState.ERROR_LISTEN,
})


@dataclass(frozen=True)
class PendingOutbound:
    """A payload waiting for the worker, with the caller's correlation token."""
    payload: bytes
    token: Any


class OutboundSlot:
    """
    One-slot mailbox between the caller and the worker.

    This is an overwrite, not a queue: ``put`` replaces whatever has not been
    taken yet.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pending: Optional[PendingOutbound] = None

    def put(self, payload: bytes, token: Any) -> Optional[PendingOutbound]:
        """Store a payload, returning the one it replaced (if any)."""
        with self._lock:
            replaced = self._pending
            self._pending = PendingOutbound(bytes(payload), token)
        return replaced

    def take(self) -> Optional[PendingOutbound]:
        """Remove and return the pending payload."""
        with self._lock:
            pending, self._pending = self._pending, None
        return pending

    @property
    def is_empty(self) -> bool:
        with self._lock:
            return self._pending is None


class TransferSession:
    """
    A single listen-or-connect attempt and the connection that follows.

    Example usage:
        ```python
        sink = EventSink(print)
        session = TransferSession.listener(PresharedSecret.generate(), sink).start()
        # ... Listening(bundle) arrives, the peer connects ...
        session.send(armored_key, token="key-1")
        # ... SendOk("key-1") arrives ...
        session.close()
        ```
    """

    def __init__(
        self,
        role: Role,
        secret: PresharedSecret,
        sink: EventSink,
        config: Optional[TransferConfig] = None,
        endpoint: Optional[EndpointDescriptor] = None,
        transport: Optional[SecureTransportFactory] = None,
    ) -> None:
        """
        Initialize a session; nothing touches the network until ``start()``.

        Args:
            role: Listener or connector.
            secret: The pre-shared secret for the handshake.
            sink: Where events are delivered.
            config: Network and timing settings.
            endpoint: The listener to dial (connector role only).
            transport: Handshake provider; defaults to TLS-PSK keyed by ``secret``.

        Raises:
            CredentialSetupError: If the TLS-PSK contexts cannot be built.
            ValueError: If a connector has no endpoint.
        """
        if role is Role.CONNECTOR and endpoint is None:
            raise ValueError("Connector sessions need an endpoint")

        self.role = role
        self.secret = secret
        self.config = config or TransferConfig()
        self.endpoint = endpoint
        self.peer_address: Optional[str] = None

        self._sink = sink
        self._transport = transport or SecureTransportFactory.for_secret(
            secret, handshake_timeout=self.config.handshake_timeout
        )
        self._outbound = OutboundSlot()
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._state = SessionState.INIT
        self._listener: Optional[socket.socket] = None
        self._socket: Optional[socket.socket] = None
        self._handshaking: Optional[socket.socket] = None
        self._thread = threading.Thread(
            target=self._run,
            name=f"keytransfer-{role.value}",
            daemon=True,
        )

    @classmethod
    def listener(
        cls,
        secret: PresharedSecret,
        sink: EventSink,
        config: Optional[TransferConfig] = None,
        transport: Optional[SecureTransportFactory] = None,
    ) -> "TransferSession":
        """Creates a listener session."""
        return cls(Role.LISTENER, secret, sink, config=config, transport=transport)

    @classmethod
    def connector(
        cls,
        endpoint: EndpointDescriptor,
        sink: EventSink,
        config: Optional[TransferConfig] = None,
        transport: Optional[SecureTransportFactory] = None,
    ) -> "TransferSession":
        """Creates a connector session for a parsed bundle."""
        return cls(
            Role.CONNECTOR,
            endpoint.secret,
            sink,
            config=config,
            endpoint=endpoint,
            transport=transport,
        )

    # MARK: - Caller API

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def is_alive(self) -> bool:
        """Whether the worker is still running."""
        return self._thread.is_alive()

    @property
    def close_requested(self) -> bool:
        return self._stop.is_set()

    def start(self) -> "TransferSession":
        """Start the worker; returns immediately."""
        logger.info("Starting %s session (secret %s)", self.role.value, self.secret.fingerprint())
        self._thread.start()
        return self

    def send(self, payload: bytes, token: Any = None) -> None:
        """
        Hand a payload to the worker; fire-and-forget.

        Replaces any payload the worker has not picked up yet. ``SendOk(token)``
        is emitted once it has been written.
        """
        if self.state.is_terminal:
            logger.debug("Ignoring send on %s session", self.state.value)
            return
        replaced = self._outbound.put(payload, token)
        if replaced is not None:
            logger.debug("Pending payload %r replaced before it was sent", replaced.token)

    def close(self) -> None:
        """
        Request cancellation. Idempotent; safe before start and after exit.

        Detaches the observer, closes the listening socket to unblock a
        pending accept and shuts down a connection still in its handshake.
        An established connection notices the stop request within one read
        timeout.
        """
        if self._stop.is_set():
            return
        logger.info("Closing %s session", self.role.value)
        self._stop.set()
        self._sink.detach()
        self._release_listener()
        self._interrupt_handshake()
        if not self._thread.is_alive():
            self._set_state(SessionState.CLOSED, only_if_active=True)

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the worker to exit; returns True if it has."""
        if self._thread.ident is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    # MARK: - Worker

    def _run(self) -> None:
        try:
            sock = self._open()
            if sock is not None:
                self._handle_open_connection(sock)
        except Exception:
            logger.exception("Transfer worker failed")
            self._finish(SessionState.LOST, Lost())
        finally:
            self._release_socket()
            self._release_listener()
            if self._stop.is_set():
                self._set_state(SessionState.CLOSED, only_if_active=True)
            self._sink.close()
            logger.debug("%s worker exited in state %s", self.role.value, self.state.value)

    def _open(self) -> Optional[socket.socket]:
        if self._stop.is_set():
            return None
        if self.role is Role.LISTENER:
            sock = self._listen_and_accept()
        else:
            sock = self._dial()
        if sock is None:
            return None

        with self._lock:
            self._socket = sock
        if self._stop.is_set():
            return None

        self.peer_address = sock.getpeername()[0]
        self._set_state(SessionState.ESTABLISHED)
        logger.info("Connection established with %s", self.peer_address)
        self._emit(Established(self.peer_address))
        return sock

    def _listen_and_accept(self) -> Optional[socket.socket]:
        config = self.config
        try:
            listener = socket.create_server((config.bind_host, config.port))
            listener.settimeout(config.read_timeout)
            with self._lock:
                self._listener = listener
            if self._stop.is_set():
                return None

            host = config.advertise_host or local_ip_address(ipv4=True)
            port = listener.getsockname()[1]
            bundle = create_bundle(EndpointDescriptor(host, port, self.secret), scheme=config.scheme)
            self._set_state(SessionState.LISTENING)
            logger.info("Listening on %s:%d, advertising %s", config.bind_host, port, host)
            self._emit(Listening(bundle))

            raw = self._accept(listener)
            if raw is None:
                return None
            self._release_listener()

            self._set_state(SessionState.ESTABLISHING)
            return self._handshake(raw, self._transport.wrap_server)
        except OSError:
            if self._stop.is_set():
                logger.debug("Listening interrupted by close()")
                return None
            logger.warning("Error while listening", exc_info=True)
            self._finish(SessionState.ERROR_LISTEN, ErrorListen())
            return None

    def _accept(self, listener: socket.socket) -> Optional[socket.socket]:
        while not self._stop.is_set():
            try:
                raw, addr = listener.accept()
            except TimeoutError:
                continue
            logger.debug("Accepted TCP connection from %s:%d", addr[0], addr[1])
            return raw
        return None

    def _dial(self) -> Optional[socket.socket]:
        endpoint = self.endpoint
        if endpoint is None:
            raise ValueError("Connector sessions need an endpoint")
        host, port = endpoint.host, endpoint.port
        self._set_state(SessionState.ESTABLISHING)
        try:
            raw = socket.create_connection((host, port), timeout=self.config.connect_timeout)
            return self._handshake(raw, self._transport.wrap_client)
        except OSError:
            if self._stop.is_set():
                logger.debug("Connecting interrupted by close()")
                return None
            logger.warning("Error while connecting to %s:%d", host, port, exc_info=True)
            self._finish(SessionState.ERROR_CONNECT, ErrorConnect())
            return None

    def _handshake(self, raw: socket.socket, wrap: Callable[[socket.socket], socket.socket]) -> socket.socket:
        """Run ``wrap`` on ``raw`` while ``close()`` can still shut it down."""
        with self._lock:
            self._handshaking = raw
        try:
            if self._stop.is_set():
                raise ConnectionAbortedError("Session closed before the handshake")
            return wrap(raw)
        except OSError:
            raw.close()
            raise
        finally:
            with self._lock:
                self._handshaking = None

    def _handle_open_connection(self, sock: socket.socket) -> None:
        reader = LineReader(sock)
        sock.settimeout(self.config.read_timeout)

        try:
            while not self._stop.is_set():
                self._send_if_pending(sock)
                if self._receive_if_available(sock, reader):
                    logger.info("Peer closed the connection")
                    break
        except OSError:
            if not self._stop.is_set():
                logger.warning("Connection error", exc_info=True)

        if self._stop.is_set():
            logger.debug("Poll loop stopped by close()")
            return
        self._finish(SessionState.LOST, Lost())

    def _send_if_pending(self, sock: socket.socket) -> bool:
        pending = self._outbound.take()
        if pending is None:
            return False

        sock.settimeout(self.config.frame_timeout)
        sock.sendall(encode_frame(pending.payload))
        sock.settimeout(self.config.read_timeout)

        logger.debug("Sent %d bytes", len(pending.payload))
        self._emit(SendOk(pending.token))
        return True

    def _receive_if_available(self, sock: socket.socket, reader: LineReader) -> bool:
        """Returns True when the peer has closed the stream."""
        try:
            first_line = reader.readline()
        except TimeoutError:
            return False

        if first_line is None:
            return True

        sock.settimeout(self.config.frame_timeout)
        message = decode_frame(first_line, reader.readline)
        sock.settimeout(self.config.read_timeout)

        logger.debug("Received %d bytes (%d still buffered)", len(message), reader.buffered)
        self._emit(ReceiveOk(message))
        return False

    # MARK: - Helpers

    def _emit(self, event: SessionEvent) -> None:
        self._sink.emit(event)

    def _finish(self, state: SessionState, event: SessionEvent) -> None:
        if self._set_state(state, only_if_active=True):
            self._emit(event)

    def _set_state(self, state: SessionState, only_if_active: bool = False) -> bool:
        with self._lock:
            if only_if_active and self._state.is_terminal:
                return False
            logger.debug("Session %s -> %s", self._state.value, state.value)
            self._state = state
            return True

    def _release_listener(self) -> None:
        with self._lock:
            listener, self._listener = self._listener, None
        if listener is None:
            return
        with contextlib.suppress(OSError):
            listener.shutdown(socket.SHUT_RDWR)
        listener.close()

    def _interrupt_handshake(self) -> None:
        with self._lock:
            raw = self._handshaking
        if raw is not None:
            with contextlib.suppress(OSError):
                raw.shutdown(socket.SHUT_RDWR)

    def _release_socket(self) -> None:
        with self._lock:
            sock, self._socket = self._socket, None
        if sock is not None:
            sock.close()
