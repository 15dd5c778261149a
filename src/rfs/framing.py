"""Line-delimited control messages and length-prefixed payloads over TCP.

Control traffic is text, one message per ``\\n``-terminated line. Payloads are
raw bytes whose length was announced on a preceding line, so nothing ever
scans file contents for delimiters.
"""
from __future__ import annotations

import socket

from .constants import ENCODING, ENCODING_ERRORS, MAX_LINE_LENGTH


class FramingError(OSError):
    """The byte stream is unusable: peer closed mid-message or I/O failed."""


class Channel:
    def __init__(self, sock: socket.socket):
        self.sock = sock
        self._closed = False

    def send_all(self, data: bytes) -> None:
        view = memoryview(data)
        total = 0
        while total < len(view):
            try:
                sent = self.sock.send(view[total:])
            except InterruptedError:
                continue
            except OSError as e:
                raise FramingError(f"send failed: {e}") from e
            if sent == 0:
                raise FramingError("connection closed during send")
            total += sent

    def recv_exact(self, n: int) -> bytes:
        buf = bytearray()
        while len(buf) < n:
            try:
                chunk = self.sock.recv(n - len(buf))
            except InterruptedError:
                continue
            except OSError as e:
                raise FramingError(f"recv failed: {e}") from e
            if not chunk:
                raise FramingError(f"connection closed after {len(buf)} of {n} bytes")
            buf += chunk
        return bytes(buf)

    def read_line(self) -> str | None:
        """Return the next line without its terminator, or None at end of stream."""
        buf = bytearray()
        while True:
            try:
                ch = self.sock.recv(1)
            except InterruptedError:
                continue
            except OSError as e:
                raise FramingError(f"recv failed: {e}") from e
            if not ch:
                return None
            if ch == b"\n":
                break
            buf += ch
            if len(buf) > MAX_LINE_LENGTH:
                raise FramingError(f"line exceeds {MAX_LINE_LENGTH} bytes")
        if buf.endswith(b"\r"):
            del buf[-1]
        return buf.decode(ENCODING, ENCODING_ERRORS)

    def send_line(self, text: str) -> None:
        self.send_all((text + "\n").encode(ENCODING, ENCODING_ERRORS))

    def shutdown(self) -> None:
        """Wake up any blocked reader or writer; the owner still closes."""
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # peer already gone

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.shutdown()
        self.sock.close()

    def __enter__(self) -> "Channel":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
