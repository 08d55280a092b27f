"""
High-level entry points for listening and connecting.

The TransferInteractor owns at most one live session. Starting another
while the current one is alive is an error: close the old session first.
"""

import logging
from typing import Any, Optional

from .bundle import parse_bundle
from .config import TransferConfig
from .events import Observer
from .secret import PresharedSecret
from .session import TransferSession
from .sink import Dispatch, EventSink
from .types import SessionActiveError, SessionClosedError

logger = logging.getLogger(__name__)


class TransferInteractor:
    """
    Starts listener and connector sessions.

    Example usage:
        ```python
        interactor = TransferInteractor()

        # Device A
        session = interactor.listen(on_event)          # Listening(bundle) follows

        # Device B, after scanning the bundle
        session = interactor.connect(bundle, on_event)  # Established(...) follows
        session.send(key_bytes, token="key")
        ```
    """

    def __init__(
        self,
        config: Optional[TransferConfig] = None,
        dispatch: Optional[Dispatch] = None,
    ) -> None:
        """
        Initialize the interactor.

        Args:
            config: Settings used for every session.
            dispatch: Serial execution context for event delivery (e.g. an
                event loop's ``call_soon_threadsafe``). Defaults to a private
                delivery thread per session.
        """
        self.config = config or TransferConfig()
        self.dispatch = dispatch
        self._session: Optional[TransferSession] = None

    @property
    def session(self) -> Optional[TransferSession]:
        """The most recently started session."""
        return self._session

    def listen(self, observer: Observer) -> TransferSession:
        """
        Start listening with a fresh secret.

        Emits ``Listening(bundle)``, then ``Established`` or ``ErrorListen``.

        Raises:
            SessionActiveError: If the current session has not been closed.
            CredentialSetupError: If TLS-PSK is unavailable.
        """
        self._ensure_idle()
        session = TransferSession.listener(
            PresharedSecret.generate(),
            EventSink(observer, self.dispatch),
            config=self.config,
        )
        return self._start(session)

    def connect(self, bundle: str, observer: Observer) -> TransferSession:
        """
        Connect to the listener described by ``bundle``.

        Emits ``Established`` or ``ErrorConnect``.

        Raises:
            BundleParseError: If the bundle is malformed (before any I/O).
            SessionActiveError: If the current session has not been closed.
            CredentialSetupError: If TLS-PSK is unavailable.
        """
        self._ensure_idle()
        endpoint = parse_bundle(bundle, scheme=self.config.scheme)
        session = TransferSession.connector(
            endpoint,
            EventSink(observer, self.dispatch),
            config=self.config,
        )
        return self._start(session)

    def send_data(self, payload: bytes, token: Any = None) -> None:
        """
        Send through the current session (replacing any unsent payload).

        Raises:
            SessionClosedError: If no session has been started.
        """
        if self._session is None:
            raise SessionClosedError()
        self._session.send(payload, token)

    def close_connection(self) -> None:
        """Close the current session, if any."""
        if self._session is not None:
            self._session.close()
        self._session = None

    def _ensure_idle(self) -> None:
        current = self._session
        if current is not None and current.is_alive and not current.close_requested:
            raise SessionActiveError()

    def _start(self, session: TransferSession) -> TransferSession:
        self._session = session
        return session.start()
