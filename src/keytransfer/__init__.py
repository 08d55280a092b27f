"""
keytransfer - Hand a key to a nearby device over TLS-PSK

One device listens and shows a bundle (address + one-time secret), the
other scans it and connects. Both sides authenticate by knowing the secret;
no certificates are involved.
"""

from .types import (
    SECRET_SIZE,
    DEFAULT_PORT,
    BUNDLE_SCHEME,
    KeyTransferError,
    CredentialSetupError,
    BundleParseError,
    SessionActiveError,
    SessionClosedError,
)
from .config import TransferConfig
from .secret import PresharedSecret
from .bundle import (
    EndpointDescriptor,
    create_bundle,
    parse_bundle,
    local_ip_address,
)
from .tls import PskCredentialSource, SecureTransportFactory
from .framing import encode_frame, decode_frame, LineReader
from .events import (
    SessionEvent,
    Listening,
    Established,
    SendOk,
    ReceiveOk,
    Lost,
    ErrorConnect,
    ErrorListen,
    TransferCallback,
)
from .sink import EventSink
from .session import (
    Role,
    SessionState,
    OutboundSlot,
    TransferSession,
)
from .interactor import TransferInteractor

__version__ = "0.1.0"

__all__ = [
    # Types
    "SECRET_SIZE",
    "DEFAULT_PORT",
    "BUNDLE_SCHEME",
    "KeyTransferError",
    "CredentialSetupError",
    "BundleParseError",
    "SessionActiveError",
    "SessionClosedError",
    # Config
    "TransferConfig",
    # Secret
    "PresharedSecret",
    # Bundle
    "EndpointDescriptor",
    "create_bundle",
    "parse_bundle",
    "local_ip_address",
    # Transport security
    "PskCredentialSource",
    "SecureTransportFactory",
    # Framing
    "encode_frame",
    "decode_frame",
    "LineReader",
    # Events
    "SessionEvent",
    "Listening",
    "Established",
    "SendOk",
    "ReceiveOk",
    "Lost",
    "ErrorConnect",
    "ErrorListen",
    "TransferCallback",
    "EventSink",
    # Session
    "Role",
    "SessionState",
    "OutboundSlot",
    "TransferSession",
    "TransferInteractor",
]
