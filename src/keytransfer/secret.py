"""Pre-shared secret handling for transfer sessions."""

import base64
import binascii
import secrets

from cryptography.hazmat.primitives import constant_time, hashes

from .types import SECRET_SIZE


class PresharedSecret:
    """
    A short-lived 16-byte secret shared out of band between both peers.

    The listener generates it, the connector learns it from the bundle.
    The raw value never appears in ``repr`` or logs; use ``fingerprint()``.
    """

    __slots__ = ("_value",)

    def __init__(self, value: bytes) -> None:
        if len(value) != SECRET_SIZE:
            raise ValueError(f"Secret must be {SECRET_SIZE} bytes, got {len(value)}")
        self._value = bytes(value)

    @classmethod
    def generate(cls) -> "PresharedSecret":
        """Generate a fresh random secret."""
        return cls(secrets.token_bytes(SECRET_SIZE))

    @classmethod
    def decode(cls, text: str) -> "PresharedSecret":
        """
        Decode a secret from unpadded base64url.

        Args:
            text: The encoded secret

        Returns:
            The decoded secret

        Raises:
            ValueError: If the text is not valid base64url or has the wrong length
        """
        padding = 4 - len(text) % 4
        if padding != 4:
            text += "=" * padding
        try:
            raw = base64.b64decode(text.encode("ascii"), altchars=b"-_", validate=True)
        except (binascii.Error, UnicodeEncodeError) as e:
            raise ValueError(f"Secret is not valid base64url: {e}") from e
        return cls(raw)

    @property
    def value(self) -> bytes:
        """The raw secret bytes."""
        return self._value

    def encode(self) -> str:
        """Encode as base64url without padding."""
        return base64.urlsafe_b64encode(self._value).rstrip(b"=").decode("ascii")

    def fingerprint(self) -> str:
        """
        A short, log-safe fingerprint of the secret.

        Returns:
            A fingerprint string like "A7B3 C9D1"
        """
        digest = hashes.Hash(hashes.SHA256())
        digest.update(self._value)
        hex_digest = digest.finalize()[:4].hex().upper()
        return f"{hex_digest[:4]} {hex_digest[4:]}"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PresharedSecret):
            return NotImplemented
        return constant_time.bytes_eq(self._value, other._value)

    def __hash__(self) -> int:
        return hash(self._value)

    def __repr__(self) -> str:
        return f"PresharedSecret(fingerprint={self.fingerprint()!r})"
