from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Tuple

from .constants import BACKLOG, CHUNK_SIZE, DEFAULT_POLL_INTERVAL, DEFAULT_PORT, REAP_THRESHOLD
from .framing import Channel
from .net import TcpListener
from .session import Session
from .storage import ServerRoot

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ServerConfig:
    root: str
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    backlog: int = BACKLOG
    chunk_size: int = CHUNK_SIZE
    max_sessions: int | None = None
    poll_interval: float = DEFAULT_POLL_INTERVAL


class FileServer:
    """Accepts connections and runs one session thread per connection.

    The accept loop polls a stop flag every ``poll_interval`` seconds, so
    ``shutdown()`` may be called from any thread. When the loop ends it waits
    for every session still running.
    """

    def __init__(self, config: ServerConfig):
        self.config = config
        self.root = ServerRoot(config.root)
        self._listener: TcpListener | None = None
        self._workers: dict[threading.Thread, Channel] = {}
        self._lock = threading.Lock()
        self._stopping = threading.Event()
        self._serving = False
        self._slots = threading.BoundedSemaphore(config.max_sessions) if config.max_sessions else None

    def start(self) -> None:
        if self._listener is not None:
            return
        self.root.ensure()
        self._listener = TcpListener.listening(
            self.config.host,
            self.config.port,
            backlog=self.config.backlog,
            poll_interval=self.config.poll_interval,
        )
        host, port = self._listener.address
        log.info("listening on %s:%d, serving %s", host, port, self.root.path)

    @property
    def address(self) -> Tuple[str, int]:
        if self._listener is None:
            raise RuntimeError("server not started")
        return self._listener.address

    @property
    def active_sessions(self) -> int:
        with self._lock:
            return sum(1 for t in self._workers if t.is_alive())

    def serve_forever(self) -> None:
        self.start()
        listener = self._listener
        if listener is None:
            raise RuntimeError("server not started")
        self._serving = True
        try:
            while not self._stopping.is_set():
                if not self._acquire_slot():
                    break
                try:
                    channel, addr = listener.accept()
                except (TimeoutError, InterruptedError):
                    self._release_slot()
                    continue
                except OSError as e:
                    self._release_slot()
                    if not self._stopping.is_set():
                        log.error("accept failed, no longer accepting connections: %s", e)
                    break
                self._dispatch(channel, addr)
        except KeyboardInterrupt:
            log.info("interrupted; closing open sessions")
            self.shutdown(cancel_sessions=True)
        finally:
            listener.close()
            self._listener = None
            self._serving = False
            self._join_all()
            log.info("server stopped")

    def shutdown(self, cancel_sessions: bool = False) -> None:
        """Stop accepting. With ``cancel_sessions`` also cut open connections."""
        self._stopping.set()
        if cancel_sessions:
            with self._lock:
                channels = list(self._workers.values())
            for channel in channels:
                channel.shutdown()

    def close(self) -> None:
        self.shutdown(cancel_sessions=True)
        if not self._serving and self._listener is not None:
            self._listener.close()
            self._listener = None

    def __enter__(self) -> "FileServer":
        self.start()
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _dispatch(self, channel: Channel, addr: Tuple[str, int]) -> None:
        peer = f"{addr[0]}:{addr[1]}"
        log.info("accepted connection from %s", peer)
        session = Session(channel, self.root, chunk_size=self.config.chunk_size, peer=peer)
        t = threading.Thread(target=self._run_session, args=(session,), name=f"session-{peer}", daemon=True)
        with self._lock:
            if len(self._workers) >= REAP_THRESHOLD:
                self._reap_locked()
            self._workers[t] = channel
        t.start()

    def _run_session(self, session: Session) -> None:
        try:
            session.run()
        finally:
            self._release_slot()

    def _reap_locked(self) -> None:
        done = [t for t in self._workers if not t.is_alive()]
        for t in done:
            del self._workers[t]
        if done:
            log.debug("reaped %d finished sessions", len(done))

    def _join_all(self) -> None:
        with self._lock:
            workers = list(self._workers)
        if workers:
            log.info("waiting for %d session(s) to finish", sum(1 for t in workers if t.is_alive()))
        for t in workers:
            t.join()
        with self._lock:
            self._workers.clear()

    def _acquire_slot(self) -> bool:
        if self._slots is None:
            return True
        while not self._stopping.is_set():
            if self._slots.acquire(timeout=self.config.poll_interval or None):
                return True
        return False

    def _release_slot(self) -> None:
        if self._slots is not None:
            self._slots.release()
