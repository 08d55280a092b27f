"""Connection bundle handling for sharing a listener's address and secret."""

import ipaddress
import logging
import socket
from dataclasses import dataclass
from typing import Iterator
from urllib.parse import urlsplit

from .secret import PresharedSecret
from .types import BUNDLE_SCHEME, BundleParseError

logger = logging.getLogger(__name__)

# Documentation-range targets; connecting a UDP socket sends no packets.
_ROUTE_TARGETS = {
    socket.AF_INET: ("192.0.2.1", 9),
    socket.AF_INET6: ("2001:db8::1", 9),
}


@dataclass(frozen=True)
class EndpointDescriptor:
    """Where a listener can be reached and the secret it expects."""
    host: str
    port: int
    secret: PresharedSecret


def create_bundle(endpoint: EndpointDescriptor, scheme: str = BUNDLE_SCHEME) -> str:
    """
    Create a connection bundle for out-of-band transfer (e.g. a scanned code).

    Format: pgp+transfer://<base64url secret>@<host>:<port>

    Args:
        endpoint: The listener's endpoint.
        scheme: The URI scheme.

    Returns:
        The bundle string.
    """
    host = endpoint.host
    if ":" in host:
        host = f"[{host}]"
    return f"{scheme}://{endpoint.secret.encode()}@{host}:{endpoint.port}"


def parse_bundle(bundle: str, scheme: str = BUNDLE_SCHEME) -> EndpointDescriptor:
    """
    Parse a connection bundle.

    Args:
        bundle: The bundle string.
        scheme: The expected URI scheme.

    Returns:
        The described endpoint.

    Raises:
        BundleParseError: If the bundle is malformed.
    """
    try:
        parsed = urlsplit(bundle.strip())
    except ValueError as e:
        raise BundleParseError(str(e)) from e

    if parsed.scheme != scheme.lower():
        raise BundleParseError(f"unexpected scheme {parsed.scheme!r}")

    if not parsed.username:
        raise BundleParseError("missing secret")

    try:
        secret = PresharedSecret.decode(parsed.username)
    except ValueError as e:
        raise BundleParseError(str(e)) from e

    host = parsed.hostname
    if not host:
        raise BundleParseError("missing host")

    try:
        port = parsed.port
    except ValueError as e:
        raise BundleParseError(f"invalid port: {e}") from e
    if port is None or port == 0:
        raise BundleParseError("missing port")

    return EndpointDescriptor(host=host, port=port, secret=secret)


def _candidate_addresses(family: socket.AddressFamily) -> Iterator[str]:
    udp = socket.socket(family, socket.SOCK_DGRAM)
    try:
        udp.connect(_ROUTE_TARGETS[family])
        yield udp.getsockname()[0]
    except OSError:
        pass
    finally:
        udp.close()

    try:
        infos = socket.getaddrinfo(socket.gethostname(), None, family)
    except OSError:
        return
    for info in infos:
        yield info[4][0]


def local_ip_address(ipv4: bool = True) -> str:
    """
    Get the first non-loopback address of this device.

    Args:
        ipv4: Return an IPv4 address if True, IPv6 otherwise.

    Returns:
        The address, or an empty string if none was found. IPv6 addresses
        are upper-cased with any zone suffix dropped.
    """
    family = socket.AF_INET if ipv4 else socket.AF_INET6
    for candidate in _candidate_addresses(family):
        address = candidate.split("%", 1)[0]
        try:
            ip = ipaddress.ip_address(address)
        except ValueError:
            continue
        if ip.is_loopback or ip.is_unspecified:
            continue
        return address if ipv4 else address.upper()

    logger.warning("No non-loopback %s address found", "IPv4" if ipv4 else "IPv6")
    return ""
