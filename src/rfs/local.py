"""Local mode: the client commands run straight against a directory.

There is no socket here. Filename checks and directory creation match what
the server does, so a session can be rehearsed without a network.
"""
from __future__ import annotations

import os
import shutil
import sys
from typing import TextIO

from .constants import CHUNK_SIZE, USAGE
from .protocol import MSG_TRANSFER_ERROR, DirEntry, is_safe_filename
from .storage import RequestError, ServerRoot


class LocalShell:
    def __init__(self, root: ServerRoot, cwd: str | os.PathLike[str] = "."):
        self.root = root
        self.cwd = os.fspath(cwd)

    def list(self) -> list[DirEntry]:
        self._ensure_root()
        return self.root.list_entries()

    def get(self, name: str) -> int:
        src, size = self.root.open_for_read(name)
        dst_path = os.path.join(self.cwd, name)
        with src:
            try:
                dst = open(dst_path, "wb")
            except OSError as e:
                raise RequestError("Failed to open local file for writing") from e
            try:
                with dst:
                    shutil.copyfileobj(src, dst, CHUNK_SIZE)
            except OSError as e:
                _remove_quietly(dst_path)
                raise RequestError(MSG_TRANSFER_ERROR) from e
        return size

    def put(self, name: str) -> int:
        if not is_safe_filename(name):
            raise RequestError("Invalid filename")
        src_path = os.path.join(self.cwd, name)
        if not os.path.isfile(src_path):
            raise RequestError(f"Local file not found: {name}")
        self._ensure_root()
        try:
            src = open(src_path, "rb")
        except OSError as e:
            raise RequestError("Failed to open local file for reading") from e
        with src:
            dst = self.root.open_for_write(name)
            try:
                with dst:
                    shutil.copyfileobj(src, dst, CHUNK_SIZE)
            except OSError as e:
                self.root.discard(name)
                raise RequestError(MSG_TRANSFER_ERROR) from e
            return os.fstat(src.fileno()).st_size

    def _ensure_root(self) -> None:
        try:
            self.root.ensure()
        except OSError as e:
            raise RequestError("Failed to create server directory") from e

    def run_shell(self, stdin: TextIO | None = None, stdout: TextIO | None = None, stderr: TextIO | None = None) -> int:
        stdin = stdin or sys.stdin
        stdout = stdout or sys.stdout
        stderr = stderr or sys.stderr

        print(f"Running in local mode. Serving directory: {self.root.path}", file=stdout)
        while True:
            stdout.write("> ")
            stdout.flush()
            line = stdin.readline()
            if not line:
                break
            cmd = line.rstrip("\r\n")
            if not cmd:
                continue
            if cmd.startswith("QUIT"):
                break
            try:
                self._command(cmd, stdout)
            except RequestError as e:
                print(e.message, file=stderr)

        print("Local mode exited.", file=stdout)
        return 0

    def _command(self, cmd: str, stdout: TextIO) -> None:
        if cmd.startswith("LIST"):
            for entry in self.list():
                stdout.write(entry.to_line())
        elif cmd.startswith("GET "):
            name = cmd[4:]
            size = self.get(name)
            print(f"Downloaded {name} ({size} bytes)", file=stdout)
        elif cmd.startswith("PUT "):
            name = cmd[4:]
            self.put(name)
            print(f"Uploaded {name} to server directory", file=stdout)
        else:
            print(USAGE, file=stdout)


def _remove_quietly(path: str) -> None:
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass
