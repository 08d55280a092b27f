"""Tests for line-oriented message framing."""

import socket
from typing import Iterable, Optional

import pytest
from keytransfer.framing import LineReader, decode_frame, encode_frame


def _lines(wire: bytes) -> list[bytes]:
    """Split wire bytes into terminator-stripped lines, like LineReader does."""
    parts = wire.split(b"\n")
    if parts and parts[-1] == b"":
        parts.pop()
    return parts


def _reader(lines: Iterable[Optional[bytes]]):
    it = iter(lines)
    return lambda: next(it, None)


def _decode_wire(wire: bytes) -> tuple[bytes, list[bytes]]:
    """Decode one frame from ``wire``; returns the message and unread lines."""
    lines = _lines(wire)
    rest = iter(lines[1:])
    message = decode_frame(lines[0], lambda: next(rest, None))
    return message, list(rest)


class TestEncodeFrame:
    """Test frame encoding."""

    def test_appends_two_terminators(self) -> None:
        """Payload is written verbatim followed by two newlines."""
        assert encode_frame(b"hello") == b"hello\n\n"

    def test_empty_payload(self) -> None:
        """An empty message is just two blank lines."""
        assert encode_frame(b"") == b"\n\n"

    def test_embedded_newlines_preserved(self) -> None:
        """Embedded line terminators are part of the content."""
        assert encode_frame(b"line1\nline2") == b"line1\nline2\n\n"


class TestDecodeFrame:
    """Test the frame termination rule."""

    def test_single_line(self) -> None:
        """'hello' decodes to 'hello' plus one terminator."""
        message, rest = _decode_wire(encode_frame(b"hello"))
        assert message == b"hello\n"
        assert rest == []

    def test_empty_message(self) -> None:
        """Two blank lines decode to an empty message and are both consumed."""
        message, rest = _decode_wire(encode_frame(b""))
        assert message == b""
        assert rest == []

    def test_multi_line(self) -> None:
        """Each content line gets one terminator."""
        message, _ = _decode_wire(encode_frame(b"line1\nline2"))
        assert message == b"line1\nline2\n"

    def test_content_ending_in_newline(self) -> None:
        """Armored text ending in a newline round-trips exactly."""
        armored = b"-----BEGIN PGP PUBLIC KEY BLOCK-----\n\nmQINBF\n-----END PGP PUBLIC KEY BLOCK-----\n"
        message, rest = _decode_wire(encode_frame(armored))
        assert message == armored
        assert rest == []

    def test_single_blank_line_inside_content_is_kept(self) -> None:
        """A lone blank line between content lines belongs to the message."""
        message, _ = _decode_wire(encode_frame(b"a\n\nb"))
        assert message == b"a\n\nb\n"

    def test_trailing_blank_line_is_swallowed(self) -> None:
        """A payload ending in a blank line loses it to the terminator."""
        message, rest = _decode_wire(encode_frame(b"x\n\n"))
        assert message == b"x\n"
        assert rest == [b""]

    def test_surplus_blank_line_does_not_prefix_next_frame(self) -> None:
        """The blank line left behind by such a payload is dropped, not prepended."""
        wire = encode_frame(b"x\n\n") + encode_frame(b"y\n")
        first, rest = _decode_wire(wire)
        assert first == b"x\n"

        remaining = iter(rest[1:])
        second = decode_frame(rest[0], lambda: next(remaining, None))
        assert second == b"y\n"
        assert list(remaining) == []

    def test_stops_at_terminator(self) -> None:
        """Lines after the terminator belong to the next frame."""
        wire = encode_frame(b"first\n") + encode_frame(b"second\n")
        message, rest = _decode_wire(wire)
        assert message == b"first\n"
        assert rest == [b"second", b"", b""]

    def test_partial_frame_at_end_of_stream(self) -> None:
        """If the stream ends early, whatever was read is returned."""
        message = decode_frame(b"abc", _reader([b"def"]))
        assert message == b"abc\ndef\n"

    def test_quiet_peer_after_blank_line_ends_frame(self) -> None:
        """A timeout after one blank line completes the frame."""
        def read_line() -> bytes:
            raise TimeoutError()

        assert decode_frame(b"", read_line) == b""

        lines = iter([b""])

        def read_then_timeout() -> bytes:
            try:
                return next(lines)
            except StopIteration:
                raise TimeoutError() from None

        assert decode_frame(b"hello", read_then_timeout) == b"hello\n"

    def test_timeout_mid_content_propagates(self) -> None:
        """A timeout before any blank line is an error."""
        def read_line() -> bytes:
            raise TimeoutError()

        with pytest.raises(TimeoutError):
            decode_frame(b"hello", read_line)


class TestLineReader:
    """Test buffered line reading from a socket."""

    @pytest.fixture
    def pair(self):
        a, b = socket.socketpair()
        a.settimeout(0.2)
        yield a, b
        a.close()
        b.close()

    def test_reads_lines(self, pair) -> None:
        """Lines come back without their terminators."""
        a, b = pair
        b.sendall(b"one\r\ntwo\n\n")
        reader = LineReader(a)
        assert reader.readline() == b"one"
        assert reader.readline() == b"two"
        assert reader.readline() == b""

    def test_timeout_keeps_partial_line(self, pair) -> None:
        """Bytes of an incomplete line survive a timeout."""
        a, b = pair
        reader = LineReader(a)
        b.sendall(b"par")
        with pytest.raises(TimeoutError):
            reader.readline()
        assert reader.buffered == 3

        b.sendall(b"tial\n")
        assert reader.readline() == b"partial"

    def test_end_of_stream(self, pair) -> None:
        """An unterminated last line is returned before None."""
        a, b = pair
        b.sendall(b"last")
        b.close()
        reader = LineReader(a)
        assert reader.readline() == b"last"
        assert reader.readline() is None
        assert reader.readline() is None

    def test_decodes_frames_from_socket(self, pair) -> None:
        """Consecutive frames decode one at a time."""
        a, b = pair
        b.sendall(encode_frame(b"alpha\n") + encode_frame(b"") + encode_frame(b"beta\ngamma\n"))
        reader = LineReader(a)

        results = []
        for _ in range(3):
            first = reader.readline()
            results.append(decode_frame(first, reader.readline))

        assert results == [b"alpha\n", b"", b"beta\ngamma\n"]
