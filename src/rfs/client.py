from __future__ import annotations

import logging
import os
import sys
from typing import BinaryIO, TextIO

from .constants import CHUNK_SIZE, DRAIN_CHUNK_SIZE, STATUS_ERR, STATUS_OK, USAGE
from .framing import Channel, FramingError
from .net import connecting
from .protocol import (
    DirEntry,
    ProtocolError,
    Request,
    Response,
    encode_request,
    parse_listing,
    parse_size,
)

log = logging.getLogger(__name__)


class RemoteError(Exception):
    """The server answered ERR."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class TransferError(Exception):
    """A payload was cut short; the connection can no longer be trusted."""


class LocalFileError(Exception):
    pass


class Client:
    def __init__(self, channel: Channel, chunk_size: int = CHUNK_SIZE):
        self.channel = channel
        self.chunk_size = max(1, chunk_size)

    @classmethod
    def connect(cls, host: str, port: int, timeout: float | None = None) -> "Client":
        channel = connecting(host, port, timeout=timeout)
        log.info("connected to %s:%d", host, port)
        return cls(channel)

    def list(self) -> list[DirEntry]:
        self._send(Request.listing())
        size = self._expect_size()
        return parse_listing(self.channel.recv_exact(size))

    def get(self, filename: str, dest_dir: str | os.PathLike[str] = ".") -> int:
        """Download ``filename`` into ``dest_dir`` under the same name."""
        self._send(Request.get(filename))
        size = self._expect_size()

        path = os.path.join(dest_dir, filename)
        try:
            out = open(path, "wb")
        except OSError as e:
            self._receive(None, size)
            raise LocalFileError(f"Failed to open local file for writing: {path}") from e

        with out:
            self._receive(out, size)
        log.debug("downloaded %s (%d bytes)", filename, size)
        return size

    def put(self, path: str | os.PathLike[str], remote_name: str | None = None) -> int:
        path = os.fspath(path)
        if not os.path.isfile(path):
            raise LocalFileError(f"Local file not found: {path}")
        name = remote_name if remote_name is not None else os.path.basename(path)
        try:
            f = open(path, "rb")
        except OSError as e:
            raise LocalFileError(f"Failed to open local file for reading: {path}") from e

        with f:
            size = os.fstat(f.fileno()).st_size
            self._send(Request.put(name))
            self.channel.send_line(str(size))
            sent = 0
            while sent < size:
                try:
                    chunk = f.read(min(self.chunk_size, size - sent))
                except OSError as e:
                    raise TransferError(f"reading {path} failed after {sent} of {size} bytes: {e}") from e
                if not chunk:
                    raise TransferError(f"{path} shrank during upload ({sent} of {size} bytes sent)")
                self.channel.send_all(chunk)
                sent += len(chunk)

        response = self._read_status()
        if not response.ok:
            raise RemoteError(response.message or "")
        log.debug("uploaded %s as %s (%d bytes)", path, name, size)
        return size

    def quit(self) -> None:
        try:
            self._send(Request.quit())
        finally:
            self.close()

    def close(self) -> None:
        self.channel.close()

    def __enter__(self) -> "Client":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _send(self, request: Request) -> None:
        self.channel.send_line(encode_request(request))

    def _read_line(self) -> str:
        line = self.channel.read_line()
        if line is None:
            raise FramingError("connection closed by server")
        return line

    def _read_status(self) -> Response:
        status = self._read_line()
        if status == STATUS_OK:
            return Response.success()
        if status == STATUS_ERR:
            return Response.failure(self._read_line())
        raise ProtocolError(f"unexpected response: {status!r}")

    def _expect_size(self) -> int:
        response = self._read_status()
        if not response.ok:
            raise RemoteError(response.message or "")
        return parse_size(self._read_line())

    def _receive(self, out: BinaryIO | None, size: int) -> None:
        """Read exactly ``size`` payload bytes, writing them to ``out`` if given.

        A local write failure stops writing but the rest of the payload is
        still consumed, so the next response starts where it should.
        """
        write_error: OSError | None = None
        received = 0
        bufsize = self.chunk_size if out is not None else DRAIN_CHUNK_SIZE
        while received < size:
            try:
                chunk = self.channel.recv_exact(min(bufsize, size - received))
            except FramingError as e:
                raise TransferError(f"connection lost after {received} of {size} bytes") from e
            received += len(chunk)
            if out is None or write_error is not None:
                continue
            try:
                out.write(chunk)
            except OSError as e:
                write_error = e
        if write_error is not None:
            raise LocalFileError(f"Failed to write local file: {write_error}") from write_error


def run_shell(
    client: Client,
    stdin: TextIO | None = None,
    stdout: TextIO | None = None,
    stderr: TextIO | None = None,
) -> int:
    """Interactive command loop; returns once the user quits or the link drops."""
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout
    stderr = stderr or sys.stderr

    while True:
        stdout.write("> ")
        stdout.flush()
        line = stdin.readline()
        if not line:
            break
        cmd = line.rstrip("\r\n")
        if not cmd:
            continue
        try:
            if not _shell_command(client, cmd, stdout, stderr):
                break
        except RemoteError as e:
            print(f"Server error: {e.message}", file=stderr)
        except LocalFileError as e:
            print(e, file=stderr)
        except (TransferError, FramingError, ProtocolError) as e:
            print(f"Connection error: {e}", file=stderr)
            break

    client.close()
    print("Disconnected.", file=stdout)
    return 0


def _shell_command(client: Client, cmd: str, stdout: TextIO, stderr: TextIO) -> bool:
    if cmd.startswith("LIST"):
        entries = client.list()
        print("Server listing:", file=stdout)
        for entry in entries:
            print(f"{entry.name}\t{entry.kind.value}", file=stdout)
    elif cmd.startswith("GET "):
        filename = cmd[4:]
        if not filename:
            print("Usage: GET <filename>", file=stderr)
            return True
        size = client.get(filename)
        print(f"Downloaded {filename} ({size} bytes)", file=stdout)
    elif cmd.startswith("PUT "):
        filename = cmd[4:]
        if not filename:
            print("Usage: PUT <filename>", file=stderr)
            return True
        client.put(filename, remote_name=filename)
        print("Upload successful", file=stdout)
    elif cmd.startswith("QUIT"):
        client.quit()
        return False
    else:
        print(USAGE, file=stdout)
    return True
