from __future__ import annotations

import socket
import threading
from dataclasses import dataclass

import pytest

from rfs.framing import Channel
from rfs.server import FileServer, ServerConfig
from rfs.session import Session
from rfs.storage import ServerRoot


@dataclass
class SessionHarness:
    peer: Channel
    root: ServerRoot
    session: Session
    thread: threading.Thread

    def request(self, *lines: str) -> None:
        for line in lines:
            self.peer.send_line(line)

    def finish(self, timeout: float = 5.0) -> None:
        self.thread.join(timeout)
        assert not self.thread.is_alive()


@pytest.fixture
def harness(tmp_path):
    """A Session on one end of a socketpair; the test drives the other end."""
    a, b = socket.socketpair()
    root = ServerRoot(tmp_path / "root")
    root.ensure()
    session = Session(Channel(a), root, chunk_size=4, peer="test")
    t = threading.Thread(target=session.run, daemon=True)
    t.start()
    peer = Channel(b)
    yield SessionHarness(peer, root, session, t)
    peer.close()
    t.join(timeout=5.0)


@pytest.fixture
def make_server(tmp_path):
    started = []

    def factory(**overrides) -> FileServer:
        opts = {"root": str(tmp_path / "root"), "host": "127.0.0.1", "port": 0, "poll_interval": 0.05}
        opts.update(overrides)
        server = FileServer(ServerConfig(**opts))
        server.start()
        t = threading.Thread(target=server.serve_forever, daemon=True)
        t.start()
        started.append((server, t))
        return server

    yield factory

    for server, t in started:
        server.shutdown(cancel_sessions=True)
        t.join(timeout=5.0)


@pytest.fixture
def server(make_server):
    return make_server()
