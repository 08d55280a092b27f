"""
Line-oriented message framing.

A frame is the message bytes followed by two line terminators. On the
wire the stream is read as lines (terminator stripped) and a frame ends at
two consecutive blank lines::

    b"hello"          -> b"hello\\n\\n"         -> lines: "hello", ""
    b"key\\n"          -> b"key\\n\\n\\n"         -> lines: "key", "", ""
    b""               -> b"\\n\\n"              -> lines: "", ""

Decoding returns every content line followed by one terminator, so
``b"hello"`` decodes to ``b"hello\\n"``. Single blank lines between content
lines are kept. Blank lines trailing the content are never part of the
result: a payload whose text ends in a blank line cannot be told apart
from the frame terminator and loses that line. The surplus blank line it
leaves on the wire is dropped when the next frame is read, never prepended
to that frame's content.
"""

import socket
from typing import Callable, Optional

from .types import FRAME_TERMINATOR, LINE_TERMINATOR

ReadLine = Callable[[], Optional[bytes]]

_RECV_SIZE = 4096


def encode_frame(payload: bytes) -> bytes:
    """
    Encode a message into its wire frame.

    Args:
        payload: The raw message bytes; embedded line terminators are allowed.

    Returns:
        The frame bytes, ready to be written and flushed.
    """
    return bytes(payload) + FRAME_TERMINATOR


def decode_frame(first_line: bytes, read_line: ReadLine) -> bytes:
    """
    Decode exactly one frame, starting from an already-read line.

    Args:
        first_line: The first line of the frame, terminator stripped.
        read_line: Returns the next line, or None at end of stream. May raise
            TimeoutError when no line arrives in time.

    Returns:
        The message with one terminator appended to each content line.
        If the stream ends before the terminator, whatever was read so far.

    Raises:
        TimeoutError: If no further line arrives and the frame has not seen
            a blank line yet.
    """
    message = bytearray()
    blanks = 0
    line: Optional[bytes] = first_line

    while line is not None:
        if line == b"":
            blanks += 1
            if blanks == 2:
                break
        else:
            # A single blank line between content lines is content; blank
            # lines before the first content line are not.
            if message:
                message += LINE_TERMINATOR * blanks
            message += line + LINE_TERMINATOR
            blanks = 0

        try:
            line = read_line()
        except TimeoutError:
            # Content without a trailing newline is followed by only one
            # blank line; a quiet peer after it means the frame is complete.
            if blanks:
                break
            raise

    return bytes(message)


class LineReader:
    """
    Buffered line reader over a socket with a timeout.

    Unlike ``socket.makefile()``, a timeout does not poison the reader: bytes
    of a partially received line stay buffered for the next call.
    """

    def __init__(self, sock: socket.socket) -> None:
        self._sock = sock
        self._buffer = bytearray()
        self._eof = False

    def readline(self) -> Optional[bytes]:
        """
        Read one line with its terminator stripped.

        Accepts ``\\n`` and ``\\r\\n`` terminators. A final unterminated line
        is returned before end of stream is reported.

        Returns:
            The line, or None at end of stream.

        Raises:
            TimeoutError: If no complete line arrives within the socket timeout.
            OSError: On socket errors.
        """
        while True:
            index = self._buffer.find(LINE_TERMINATOR)
            if index >= 0:
                line = bytes(self._buffer[:index])
                del self._buffer[: index + 1]
                return line.removesuffix(b"\r")

            if self._eof:
                if not self._buffer:
                    return None
                line = bytes(self._buffer)
                self._buffer.clear()
                return line.removesuffix(b"\r")

            chunk = self._sock.recv(_RECV_SIZE)
            if not chunk:
                self._eof = True
            else:
                self._buffer.extend(chunk)

    @property
    def buffered(self) -> int:
        """Number of bytes received but not yet returned as lines."""
        return len(self._buffer)
