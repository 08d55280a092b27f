"""Type definitions and constants for keytransfer."""

# Protocol constants
SECRET_SIZE = 16
DEFAULT_PORT = 1336
BUNDLE_SCHEME = "pgp+transfer"

# Poll loop timing (seconds)
READ_TIMEOUT = 0.5
FRAME_TIMEOUT = 2.0

# Frame constants
LINE_TERMINATOR = b"\n"
FRAME_TERMINATOR = LINE_TERMINATOR * 2

# TLS-PSK cipher selection (TLS 1.2 PSK suites only)
PSK_CIPHERS = "PSK"


# Exception types
class KeyTransferError(Exception):
    """Base exception for keytransfer errors."""
    pass


class CredentialSetupError(KeyTransferError):
    """The PSK transport-security context could not be built."""
    pass


class BundleParseError(KeyTransferError):
    """A connection bundle string is malformed."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Invalid connection bundle: {reason}")


class SessionActiveError(KeyTransferError):
    """A new session was requested while the previous one is still alive."""

    def __init__(self) -> None:
        super().__init__("A transfer session is already active; close it first")


class SessionClosedError(KeyTransferError):
    """No transfer session is available for the requested operation."""

    def __init__(self) -> None:
        super().__init__("No active transfer session")
