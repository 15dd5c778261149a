from __future__ import annotations

import logging
import os
from typing import BinaryIO

from .protocol import (
    MSG_CREATE_FAILED,
    MSG_INVALID_FILENAME,
    MSG_LIST_FAILED,
    MSG_NOT_FOUND,
    MSG_OPEN_FAILED,
    DirEntry,
    EntryKind,
    is_safe_filename,
)

log = logging.getLogger(__name__)


class RequestError(Exception):
    """A failure the peer is told about with ``ERR <message>``."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ServerRoot:
    """The one directory a server (or local mode) reads from and writes into.

    No locking is done here. Two uploads of the same name race in the
    filesystem and the last writer wins.
    """

    def __init__(self, path: str | os.PathLike[str]):
        self.path = os.fspath(path)

    def __repr__(self) -> str:
        return f"ServerRoot({self.path!r})"

    def ensure(self) -> None:
        os.makedirs(self.path, exist_ok=True)

    def resolve(self, name: str) -> str:
        if not is_safe_filename(name):
            raise RequestError(MSG_INVALID_FILENAME)
        return os.path.join(self.path, name)

    def list_entries(self) -> list[DirEntry]:
        entries = []
        try:
            with os.scandir(self.path) as it:
                for entry in it:
                    if entry.is_file():
                        kind = EntryKind.FILE
                    elif entry.is_dir():
                        kind = EntryKind.DIRECTORY
                    else:
                        kind = EntryKind.OTHER
                    entries.append(DirEntry(entry.name, kind))
        except OSError as e:
            log.debug("listing %s failed: %s", self.path, e)
            raise RequestError(MSG_LIST_FAILED) from e
        return entries

    def open_for_read(self, name: str) -> tuple[BinaryIO, int]:
        path = self.resolve(name)
        if not os.path.isfile(path):
            raise RequestError(MSG_NOT_FOUND)
        try:
            f = open(path, "rb")
        except OSError as e:
            log.debug("open %s for read failed: %s", path, e)
            raise RequestError(MSG_OPEN_FAILED) from e
        return f, os.fstat(f.fileno()).st_size

    def open_for_write(self, name: str) -> BinaryIO:
        path = self.resolve(name)
        try:
            return open(path, "wb")
        except OSError as e:
            log.debug("open %s for write failed: %s", path, e)
            raise RequestError(MSG_CREATE_FAILED) from e

    def discard(self, name: str) -> None:
        try:
            os.unlink(self.resolve(name))
        except FileNotFoundError:
            pass
        except OSError as e:
            log.warning("could not remove partial upload %s: %s", name, e)
