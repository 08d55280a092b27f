"""Tests for connection bundles."""

import ipaddress

import pytest
from keytransfer import bundle as bundle_module
from keytransfer.bundle import EndpointDescriptor, create_bundle, local_ip_address, parse_bundle
from keytransfer.secret import PresharedSecret
from keytransfer.types import DEFAULT_PORT, BundleParseError

TEST_SECRET = PresharedSecret(bytes(range(16)))
TEST_SECRET_B64 = "AAECAwQFBgcICQoLDA0ODw"


class TestCreateBundle:
    """Test bundle creation."""

    def test_format(self) -> None:
        """Bundle is scheme://secret@host:port."""
        endpoint = EndpointDescriptor("192.168.1.20", DEFAULT_PORT, TEST_SECRET)
        assert create_bundle(endpoint) == f"pgp+transfer://{TEST_SECRET_B64}@192.168.1.20:1336"

    def test_custom_scheme(self) -> None:
        """The scheme can be overridden."""
        endpoint = EndpointDescriptor("10.0.0.1", 4000, TEST_SECRET)
        assert create_bundle(endpoint, scheme="demo").startswith("demo://")

    def test_ipv6_host_is_bracketed(self) -> None:
        """IPv6 hosts are bracketed so the port stays parseable."""
        endpoint = EndpointDescriptor("FE80::1", DEFAULT_PORT, TEST_SECRET)
        text = create_bundle(endpoint)
        assert text.endswith("@[FE80::1]:1336")
        assert parse_bundle(text).port == DEFAULT_PORT


class TestParseBundle:
    """Test bundle parsing."""

    def test_round_trip(self) -> None:
        """Parsing a created bundle yields the same endpoint."""
        endpoint = EndpointDescriptor("192.168.1.20", DEFAULT_PORT, TEST_SECRET)
        assert parse_bundle(create_bundle(endpoint)) == endpoint

    def test_parse_literal(self) -> None:
        """Parse a bundle produced by another device."""
        endpoint = parse_bundle(f"pgp+transfer://{TEST_SECRET_B64}@10.1.2.3:1336")

        assert endpoint.host == "10.1.2.3"
        assert endpoint.port == 1336
        assert endpoint.secret.value == bytes(range(16))

    def test_surrounding_whitespace_ignored(self) -> None:
        """Scanners often append a newline."""
        endpoint = parse_bundle(f"  pgp+transfer://{TEST_SECRET_B64}@10.1.2.3:1336\n")
        assert endpoint.port == 1336

    @pytest.mark.parametrize(
        "text,reason",
        [
            (f"http://{TEST_SECRET_B64}@10.1.2.3:1336", "scheme"),
            ("pgp+transfer://10.1.2.3:1336", "secret"),
            ("pgp+transfer://AAAA@10.1.2.3:1336", "16 bytes"),
            ("pgp+transfer://!!!!@10.1.2.3:1336", "base64url"),
            (f"pgp+transfer://{TEST_SECRET_B64}@:1336", "host"),
            (f"pgp+transfer://{TEST_SECRET_B64}@10.1.2.3", "port"),
            (f"pgp+transfer://{TEST_SECRET_B64}@10.1.2.3:http", "port"),
            (f"pgp+transfer://{TEST_SECRET_B64}@10.1.2.3:70000", "port"),
            ("", "scheme"),
        ],
    )
    def test_malformed(self, text: str, reason: str) -> None:
        """Malformed bundles raise BundleParseError."""
        with pytest.raises(BundleParseError, match=reason):
            parse_bundle(text)

    def test_error_does_not_leak_secret(self) -> None:
        """Parse errors never echo the secret."""
        with pytest.raises(BundleParseError) as info:
            parse_bundle(f"http://{TEST_SECRET_B64}@10.1.2.3:1336")
        assert TEST_SECRET_B64 not in str(info.value)


class TestLocalIpAddress:
    """Test local address discovery."""

    def test_skips_loopback(self, monkeypatch) -> None:
        """Loopback candidates are skipped."""
        monkeypatch.setattr(
            bundle_module, "_candidate_addresses", lambda family: iter(["127.0.0.1", "192.168.0.7"])
        )
        assert local_ip_address() == "192.168.0.7"

    def test_none_found(self, monkeypatch) -> None:
        """No usable address gives an empty string."""
        monkeypatch.setattr(bundle_module, "_candidate_addresses", lambda family: iter(["127.0.1.1", "0.0.0.0"]))
        assert local_ip_address() == ""

    def test_ipv6_zone_dropped_and_uppercased(self, monkeypatch) -> None:
        """IPv6 addresses lose their zone suffix and are upper-cased."""
        monkeypatch.setattr(bundle_module, "_candidate_addresses", lambda family: iter(["::1", "fe80::abcd%wlan0"]))
        assert local_ip_address(ipv4=False) == "FE80::ABCD"

    def test_real_lookup(self) -> None:
        """On a real machine the result is empty or a non-loopback IPv4 address."""
        address = local_ip_address()
        if address:
            ip = ipaddress.ip_address(address)
            assert ip.version == 4
            assert not ip.is_loopback
