from __future__ import annotations

STATUS_OK = "OK"
STATUS_ERR = "ERR"

CMD_LIST = "LIST"
CMD_GET = "GET"
CMD_PUT = "PUT"
CMD_QUIT = "QUIT"

ENCODING = "utf-8"
ENCODING_ERRORS = "surrogateescape"  # raw filename bytes survive decode/encode

DEFAULT_PORT = 12345
BACKLOG = 10

CHUNK_SIZE = 8192
DRAIN_CHUNK_SIZE = 4096
MAX_LINE_LENGTH = 64 * 1024

REAP_THRESHOLD = 50
DEFAULT_POLL_INTERVAL = 0.5

USAGE = "Unknown command. Supported: LIST, GET <file>, PUT <file>, QUIT"
