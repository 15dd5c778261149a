from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import BinaryIO

from .constants import CHUNK_SIZE, DRAIN_CHUNK_SIZE
from .framing import Channel, FramingError
from .protocol import (
    MSG_INVALID_FILENAME,
    MSG_INVALID_SIZE,
    MSG_TRANSFER_ERROR,
    MSG_UNKNOWN_COMMAND,
    Command,
    ProtocolError,
    Request,
    Response,
    encode_listing,
    is_safe_filename,
    parse_request,
    parse_size,
)
from .storage import RequestError, ServerRoot

log = logging.getLogger(__name__)


@dataclass(slots=True)
class SessionStats:
    requests: int = 0
    errors: int = 0
    bytes_sent: int = 0
    bytes_received: int = 0
    start_ts: float = field(default_factory=time.monotonic)
    end_ts: float | None = None

    @property
    def duration_s(self) -> float:
        if self.end_ts is None:
            return 0.0
        return max(0.0, self.end_ts - self.start_ts)


class Session:
    """Serves one connection until QUIT, peer close or a broken stream.

    Request-level failures are answered with ERR and the loop goes on.
    Stream-level failures end this session and nothing else.
    """

    def __init__(
        self,
        channel: Channel,
        root: ServerRoot,
        chunk_size: int = CHUNK_SIZE,
        peer: str = "",
    ):
        self.channel = channel
        self.root = root
        self.chunk_size = max(1, chunk_size)
        self.peer = peer
        self.stats = SessionStats()

    def run(self) -> SessionStats:
        try:
            while self._serve_one():
                pass
        except FramingError as e:
            log.debug("%s: stream ended: %s", self.peer, e)
        finally:
            self.channel.close()
            self.stats.end_ts = time.monotonic()

        log.info(
            "%s: session closed; requests=%d errors=%d sent=%d received=%d seconds=%.3f",
            self.peer,
            self.stats.requests,
            self.stats.errors,
            self.stats.bytes_sent,
            self.stats.bytes_received,
            self.stats.duration_s,
        )
        return self.stats

    def _serve_one(self) -> bool:
        line = self.channel.read_line()
        if line is None:
            return False

        request = parse_request(line)
        self.stats.requests += 1
        log.debug("%s: %s", self.peer, request.command.name)

        if request.command is Command.LIST:
            return self._handle_list()
        if request.command is Command.GET:
            return self._handle_get(request)
        if request.command is Command.PUT:
            return self._handle_put(request)
        if request.command is Command.QUIT:
            return False
        self._reply(Response.failure(MSG_UNKNOWN_COMMAND))
        return True

    def _reply(self, response: Response) -> None:
        if not response.ok:
            self.stats.errors += 1
            log.debug("%s: ERR %s", self.peer, response.message)
        for line in response.lines():
            self.channel.send_line(line)

    def _handle_list(self) -> bool:
        try:
            payload = encode_listing(self.root.list_entries())
        except RequestError as e:
            self._reply(Response.failure(e.message))
            return True

        self._reply(Response.success(len(payload)))
        if payload:
            self.channel.send_all(payload)
            self.stats.bytes_sent += len(payload)
        return True

    def _handle_get(self, request: Request) -> bool:
        try:
            f, size = self.root.open_for_read(request.filename or "")
        except RequestError as e:
            self._reply(Response.failure(e.message))
            return True

        with f:
            self._reply(Response.success(size))
            remaining = size
            while remaining > 0:
                # After the header there is no way to report a failure in-band;
                # ending the session leaves the client with a short read.
                try:
                    chunk = f.read(min(self.chunk_size, remaining))
                except OSError as e:
                    log.warning("%s: reading %s failed mid-transfer: %s", self.peer, request.filename, e)
                    return False
                if not chunk:
                    log.warning("%s: %s shrank by %d bytes during transfer", self.peer, request.filename, remaining)
                    return False
                self.channel.send_all(chunk)
                self.stats.bytes_sent += len(chunk)
                remaining -= len(chunk)
        return True

    def _handle_put(self, request: Request) -> bool:
        # The size line is consumed whatever the filename turns out to be,
        # and a rejected payload is drained, so the next command starts on a
        # line boundary.
        size_line = self.channel.read_line()
        if size_line is None:
            return False
        try:
            size = parse_size(size_line)
        except ProtocolError:
            self._reply(Response.failure(MSG_INVALID_SIZE))
            return False

        name = request.filename or ""
        if not is_safe_filename(name):
            self._reply(Response.failure(MSG_INVALID_FILENAME))
            self._drain(size)
            return True

        try:
            out = self.root.open_for_write(name)
        except RequestError as e:
            self._drain(size)
            self._reply(Response.failure(e.message))
            return True

        return self._receive_into(out, name, size)

    def _receive_into(self, out: BinaryIO, name: str, size: int) -> bool:
        write_failed = False
        try:
            with out:
                remaining = size
                while remaining > 0:
                    chunk = self.channel.recv_exact(min(self.chunk_size, remaining))
                    remaining -= len(chunk)
                    self.stats.bytes_received += len(chunk)
                    if write_failed:
                        continue
                    try:
                        out.write(chunk)
                    except OSError as e:
                        log.warning("%s: writing %s failed: %s", self.peer, name, e)
                        write_failed = True
        except FramingError as e:
            log.debug("%s: upload of %s cut short: %s", self.peer, name, e)
            self.root.discard(name)
            try:
                self._reply(Response.failure(MSG_TRANSFER_ERROR))
            except FramingError:
                log.debug("%s: peer gone before transfer error was sent", self.peer)
            return False
        except OSError as e:
            log.warning("%s: closing %s failed: %s", self.peer, name, e)
            write_failed = True

        if write_failed:
            self.root.discard(name)
            self._reply(Response.failure(MSG_TRANSFER_ERROR))
        else:
            self._reply(Response.success())
        return True

    def _drain(self, size: int) -> None:
        remaining = size
        while remaining > 0:
            chunk = self.channel.recv_exact(min(DRAIN_CHUNK_SIZE, remaining))
            remaining -= len(chunk)
            self.stats.bytes_received += len(chunk)
