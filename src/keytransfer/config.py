"""Configuration for transfer sessions."""

from dataclasses import dataclass, replace
from typing import Optional

from .types import BUNDLE_SCHEME, DEFAULT_PORT, FRAME_TIMEOUT, READ_TIMEOUT


@dataclass(frozen=True)
class TransferConfig:
    """Network and timing settings for a transfer session."""

    port: int = DEFAULT_PORT
    """Port the listener binds to (0 picks an ephemeral port)."""

    bind_host: str = "0.0.0.0"
    """Address the listener binds to."""

    advertise_host: Optional[str] = None
    """Address put into the bundle; defaults to the first non-loopback IPv4 address."""

    scheme: str = BUNDLE_SCHEME
    """URI scheme of the connection bundle."""

    read_timeout: float = READ_TIMEOUT
    """Poll loop tick: how long a read waits before re-checking the outbound slot."""

    frame_timeout: float = FRAME_TIMEOUT
    """Timeout for writing a frame and for reading the rest of a frame."""

    connect_timeout: float = 10.0
    """Timeout for dialing the listener."""

    handshake_timeout: float = 10.0
    """Timeout for the TLS-PSK handshake."""

    @classmethod
    def local_testing(cls) -> "TransferConfig":
        """Creates configuration for loopback-only sessions on an ephemeral port."""
        return cls(port=0, bind_host="127.0.0.1", advertise_host="127.0.0.1")

    def with_timeouts(
        self,
        read_timeout: Optional[float] = None,
        frame_timeout: Optional[float] = None,
    ) -> "TransferConfig":
        """Returns a copy with the poll loop timeouts replaced."""
        return replace(
            self,
            read_timeout=self.read_timeout if read_timeout is None else read_timeout,
            frame_timeout=self.frame_timeout if frame_timeout is None else frame_timeout,
        )
