from __future__ import annotations

import socket
from typing import Tuple

from .constants import BACKLOG
from .framing import Channel


class TcpListener:
    def __init__(self, sock: socket.socket):
        self.sock = sock

    @classmethod
    def listening(
        cls,
        host: str,
        port: int,
        backlog: int = BACKLOG,
        poll_interval: float = 0.0,
    ) -> "TcpListener":
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((host, port))
            sock.listen(backlog)
        except OSError:
            sock.close()
            raise
        if poll_interval > 0:
            sock.settimeout(poll_interval)
        return cls(sock)

    @property
    def address(self) -> Tuple[str, int]:
        host, port = self.sock.getsockname()[:2]
        return host, port

    def accept(self) -> Tuple[Channel, Tuple[str, int]]:
        conn, addr = self.sock.accept()
        # sessions never time out, whatever the listener's poll timeout is
        conn.settimeout(None)
        return Channel(conn), addr

    def close(self) -> None:
        self.sock.close()


def connecting(host: str, port: int, timeout: float | None = None) -> Channel:
    sock = socket.create_connection((host, port), timeout=timeout)
    sock.settimeout(None)
    return Channel(sock)
