from __future__ import annotations

import socket
import threading

import pytest

from rfs.constants import MAX_LINE_LENGTH
from rfs.framing import Channel, FramingError


class FlakySocket:
    """Raises InterruptedError every other call and moves at most 3 bytes at a time."""

    def __init__(self, incoming: bytes = b""):
        self.incoming = bytearray(incoming)
        self.sent = bytearray()
        self.calls = 0

    def _interrupt(self) -> None:
        self.calls += 1
        if self.calls % 2:
            raise InterruptedError

    def send(self, data) -> int:
        self._interrupt()
        n = min(3, len(data))
        self.sent += bytes(data[:n])
        return n

    def recv(self, n: int) -> bytes:
        self._interrupt()
        n = min(n, 3, len(self.incoming))
        out = bytes(self.incoming[:n])
        del self.incoming[:n]
        return out


@pytest.fixture
def pair():
    a, b = socket.socketpair()
    ca, cb = Channel(a), Channel(b)
    yield ca, cb
    ca.close()
    cb.close()


def test_lines_roundtrip(pair):
    a, b = pair
    a.send_line("LIST")
    a.send_all(b"GET x\r\n")
    assert b.read_line() == "LIST"
    assert b.read_line() == "GET x"


def test_read_line_end_of_stream_is_not_an_error(pair):
    a, b = pair
    a.send_all(b"partial")
    a.sock.shutdown(socket.SHUT_WR)
    assert b.read_line() is None


def test_read_line_keeps_undecodable_bytes(pair):
    a, b = pair
    a.send_all(b"PUT caf\xe9\n")
    line = b.read_line()
    assert line.encode("utf-8", "surrogateescape") == b"PUT caf\xe9"


def test_line_too_long(pair):
    a, b = pair

    def flood():
        try:
            a.send_all(b"x" * (MAX_LINE_LENGTH + 10))
        except FramingError:
            pass  # reader gave up first

    t = threading.Thread(target=flood, daemon=True)
    t.start()
    with pytest.raises(FramingError):
        b.read_line()
    b.close()
    t.join(timeout=5.0)


def test_recv_exact_large_payload(pair):
    a, b = pair
    payload = bytes(range(256)) * 4096  # 1 MiB, larger than socket buffers
    t = threading.Thread(target=a.send_all, args=(payload,), daemon=True)
    t.start()
    assert b.recv_exact(len(payload)) == payload
    t.join(timeout=5.0)


def test_recv_exact_zero(pair):
    _, b = pair
    assert b.recv_exact(0) == b""


def test_recv_exact_premature_close(pair):
    a, b = pair
    a.send_all(b"abc")
    a.sock.shutdown(socket.SHUT_WR)
    with pytest.raises(FramingError):
        b.recv_exact(10)


def test_send_after_close_fails(pair):
    a, b = pair
    b.close()
    with pytest.raises(FramingError):
        # the first send may still land in the buffer; keep going until the reset shows
        for _ in range(100):
            a.send_all(b"x" * 65536)


def test_interrupted_and_partial_io_is_retried():
    sock = FlakySocket(b"OK\r\n12345")
    ch = Channel(sock)  # type: ignore[arg-type]
    assert ch.read_line() == "OK"
    assert ch.recv_exact(5) == b"12345"

    ch.send_line("PUT some-file.bin")
    assert bytes(sock.sent) == b"PUT some-file.bin\n"


def test_close_is_idempotent(pair):
    a, _ = pair
    a.close()
    a.close()
