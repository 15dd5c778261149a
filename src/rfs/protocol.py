from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterable

from .constants import (
    CMD_GET,
    CMD_LIST,
    CMD_PUT,
    CMD_QUIT,
    ENCODING,
    ENCODING_ERRORS,
    STATUS_ERR,
    STATUS_OK,
)

MSG_INVALID_FILENAME = "Invalid filename"
MSG_NOT_FOUND = "File not found"
MSG_OPEN_FAILED = "Failed to open file"
MSG_CREATE_FAILED = "Failed to create file"
MSG_TRANSFER_ERROR = "Transfer error"
MSG_UNKNOWN_COMMAND = "Unknown command"
MSG_INVALID_SIZE = "Invalid size header"
MSG_LIST_FAILED = "Failed to list directory"

_GET_PREFIX = CMD_GET + " "
_PUT_PREFIX = CMD_PUT + " "


class ProtocolError(ValueError):
    pass


class Command(enum.Enum):
    LIST = CMD_LIST
    GET = CMD_GET
    PUT = CMD_PUT
    QUIT = CMD_QUIT
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True, slots=True)
class Request:
    command: Command
    filename: str | None = None
    raw: str = ""

    @staticmethod
    def listing() -> "Request":
        return Request(Command.LIST, raw=CMD_LIST)

    @staticmethod
    def get(filename: str) -> "Request":
        return Request(Command.GET, filename, _GET_PREFIX + filename)

    @staticmethod
    def put(filename: str) -> "Request":
        return Request(Command.PUT, filename, _PUT_PREFIX + filename)

    @staticmethod
    def quit() -> "Request":
        return Request(Command.QUIT, raw=CMD_QUIT)


def parse_request(line: str) -> Request:
    """Classify one command line.

    The filename of GET/PUT is everything after the four-character prefix,
    embedded spaces included and nothing trimmed. It is not validated here.
    """
    # LIST and QUIT match as prefixes: "LISTX" is served as LIST, "QUITTING" as QUIT
    if line.startswith(CMD_LIST):
        return Request(Command.LIST, raw=line)
    if line.startswith(_GET_PREFIX):
        return Request(Command.GET, line[len(_GET_PREFIX) :], line)
    if line.startswith(_PUT_PREFIX):
        return Request(Command.PUT, line[len(_PUT_PREFIX) :], line)
    if line.startswith(CMD_QUIT):
        return Request(Command.QUIT, raw=line)
    return Request(Command.UNKNOWN, raw=line)


def encode_request(request: Request) -> str:
    if request.command is Command.UNKNOWN:
        return request.raw
    if request.filename is None:
        return request.command.value
    return f"{request.command.value} {request.filename}"


@dataclass(frozen=True, slots=True)
class Response:
    ok: bool
    size: int | None = None
    message: str | None = None

    @staticmethod
    def success(size: int | None = None) -> "Response":
        return Response(ok=True, size=size)

    @staticmethod
    def failure(message: str) -> "Response":
        return Response(ok=False, message=message)

    def lines(self) -> list[str]:
        if not self.ok:
            return [STATUS_ERR, self.message or ""]
        if self.size is None:
            return [STATUS_OK]
        return [STATUS_OK, str(self.size)]


def parse_size(line: str) -> int:
    if not line or not (line.isascii() and line.isdigit()):
        raise ProtocolError(f"invalid size line: {line!r}")
    return int(line)


def is_safe_filename(name: str) -> bool:
    """True if ``name`` cannot escape the directory it is joined to."""
    if not name:
        return False
    return "/" not in name and "\\" not in name and ".." not in name


class EntryKind(enum.Enum):
    FILE = "file"
    DIRECTORY = "dir"
    OTHER = "other"


@dataclass(frozen=True, slots=True)
class DirEntry:
    name: str
    kind: EntryKind

    def to_line(self) -> str:
        return f"{self.name}\t{self.kind.value}\n"


def encode_listing(entries: Iterable[DirEntry]) -> bytes:
    return "".join(e.to_line() for e in entries).encode(ENCODING, ENCODING_ERRORS)


def parse_listing(payload: bytes) -> list[DirEntry]:
    entries = []
    text = payload.decode(ENCODING, ENCODING_ERRORS)
    for line in text.split("\n"):
        if not line:
            continue
        name, sep, kind = line.rpartition("\t")
        if not sep:
            raise ProtocolError(f"malformed listing line: {line!r}")
        try:
            entries.append(DirEntry(name, EntryKind(kind)))
        except ValueError as e:
            raise ProtocolError(f"unknown entry kind: {kind!r}") from e
    return entries
