"""
TLS-PSK transport security for transfer sessions.

Both peers authenticate by knowing the same pre-shared secret. No
certificates are presented or verified: the PSK cipher suites prove
possession of the secret during the handshake, and a peer holding a
different secret fails the handshake.

Requires an interpreter whose ``ssl`` module exposes the PSK callbacks
(Python 3.13+ linked against OpenSSL with PSK support, see ``ssl.HAS_PSK``).
"""

import logging
import socket
import ssl
from typing import Optional, Tuple

from .secret import PresharedSecret
from .types import PSK_CIPHERS, CredentialSetupError

logger = logging.getLogger(__name__)


class PskCredentialSource:
    """
    Supplies handshake keys for both roles.

    There is exactly one valid key per session, so identity names and hints
    are ignored and the same secret is always returned.
    """

    def __init__(self, secret: PresharedSecret) -> None:
        self._secret = secret

    @property
    def fingerprint(self) -> str:
        return self._secret.fingerprint()

    def server_key(self, identity: Optional[str]) -> bytes:
        """Key for the accepting side, whatever identity the client announced."""
        return self._secret.value

    def client_key(self, hint: Optional[str]) -> Tuple[Optional[str], bytes]:
        """Identity and key for the dialing side, whatever hint the server sent."""
        return None, self._secret.value


class SecureTransportFactory:
    """Builds TLS-PSK contexts and runs handshakes over plain TCP sockets."""

    def __init__(self, credentials: PskCredentialSource, handshake_timeout: float = 10.0) -> None:
        """
        Initialize the factory.

        Args:
            credentials: The sole source of handshake keys.
            handshake_timeout: Seconds allowed for a handshake to complete.

        Raises:
            CredentialSetupError: If the TLS provider lacks PSK support.
        """
        self.credentials = credentials
        self.handshake_timeout = handshake_timeout
        self._server_ctx = self._make_server_ctx()
        self._client_ctx = self._make_client_ctx()
        logger.debug("TLS-PSK contexts ready (secret %s)", credentials.fingerprint)

    @classmethod
    def for_secret(cls, secret: PresharedSecret, handshake_timeout: float = 10.0) -> "SecureTransportFactory":
        """Creates a factory keyed by ``secret``."""
        return cls(PskCredentialSource(secret), handshake_timeout=handshake_timeout)

    def wrap_server(self, sock: socket.socket) -> ssl.SSLSocket:
        """
        Run the server-side handshake on an accepted connection.

        Raises:
            ssl.SSLError: If the peer does not hold the same secret.
            OSError: On socket errors or handshake timeout.
        """
        sock.settimeout(self.handshake_timeout)
        return self._server_ctx.wrap_socket(sock, server_side=True)

    def wrap_client(self, sock: socket.socket) -> ssl.SSLSocket:
        """
        Run the client-side handshake on a connected socket.

        Raises:
            ssl.SSLError: If the peer does not hold the same secret.
            OSError: On socket errors or handshake timeout.
        """
        sock.settimeout(self.handshake_timeout)
        return self._client_ctx.wrap_socket(sock, server_side=False, server_hostname=None)

    # -----------------------
    # Internals
    # -----------------------

    def _base_ctx(self, protocol: int) -> ssl.SSLContext:
        if not getattr(ssl, "HAS_PSK", False):
            raise CredentialSetupError("TLS provider does not support pre-shared keys")
        try:
            ctx = ssl.SSLContext(protocol)
            # PSK callbacks drive TLS 1.2 PSK suites; no certificates are involved.
            ctx.maximum_version = ssl.TLSVersion.TLSv1_2
            ctx.set_ciphers(PSK_CIPHERS)
        except (ssl.SSLError, ValueError) as e:
            raise CredentialSetupError(f"Cannot select PSK cipher suites: {e}") from e
        return ctx

    def _make_server_ctx(self) -> ssl.SSLContext:
        ctx = self._base_ctx(ssl.PROTOCOL_TLS_SERVER)
        ctx.verify_mode = ssl.CERT_NONE
        try:
            ctx.set_psk_server_callback(self.credentials.server_key)
        except NotImplementedError as e:
            raise CredentialSetupError("TLS provider does not support pre-shared keys") from e
        return ctx

    def _make_client_ctx(self) -> ssl.SSLContext:
        ctx = self._base_ctx(ssl.PROTOCOL_TLS_CLIENT)
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
        try:
            ctx.set_psk_client_callback(self.credentials.client_key)
        except NotImplementedError as e:
            raise CredentialSetupError("TLS provider does not support pre-shared keys") from e
        return ctx
