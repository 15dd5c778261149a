from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from dataclasses import asdict

from .bench import run_benchmark
from .client import Client, run_shell
from .constants import CHUNK_SIZE, DEFAULT_PORT
from .local import LocalShell
from .server import FileServer, ServerConfig
from .storage import ServerRoot

log = logging.getLogger(__name__)


def cmd_server(args: argparse.Namespace) -> int:
    config = ServerConfig(
        root=args.dir,
        host=args.host,
        port=args.port,
        chunk_size=args.chunk_size,
        max_sessions=args.max_sessions,
    )
    server = FileServer(config)
    try:
        server.start()
    except OSError as e:
        log.error("cannot listen on %s:%d: %s", args.host, args.port, e)
        return 1

    server.serve_forever()
    return 0


def cmd_client(args: argparse.Namespace) -> int:
    try:
        client = Client.connect(args.host, args.port, timeout=args.connect_timeout)
    except OSError as e:
        print(f"connect() failed: {e}", file=sys.stderr)
        return 1
    print(f"Connected to {args.host}:{args.port}")
    return run_shell(client)


def cmd_local(args: argparse.Namespace) -> int:
    return LocalShell(ServerRoot(args.dir)).run_shell()


def cmd_bench(args: argparse.Namespace) -> int:
    r = run_benchmark(size_bytes=args.size_bytes, chunk_size=args.chunk_size)
    payload = {"role": "bench", **asdict(r)}
    print(json.dumps(payload, indent=2) if args.json else payload)
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="rfs", description="Remote file access over TCP (LIST/GET/PUT).")
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    sub = p.add_subparsers(dest="cmd", required=True)

    server = sub.add_parser("server", help="serve a directory")
    server.add_argument("--host", default="0.0.0.0")
    server.add_argument("--port", type=int, default=DEFAULT_PORT)
    server.add_argument("--dir", default=os.getcwd(), help="directory to serve (created if missing)")
    server.add_argument("--chunk-size", type=int, default=CHUNK_SIZE)
    server.add_argument("--max-sessions", type=int, default=None, help="cap on concurrent sessions")
    server.set_defaults(func=cmd_server)

    client = sub.add_parser("client", help="interactive client")
    client.add_argument("host")
    client.add_argument("--port", type=int, default=DEFAULT_PORT)
    client.add_argument("--connect-timeout", type=float, default=None)
    client.set_defaults(func=cmd_client)

    local = sub.add_parser("local", help="run the client commands against a local directory")
    local.add_argument("--dir", default=os.getcwd())
    local.set_defaults(func=cmd_local)

    bench = sub.add_parser("bench", help="loopback PUT/GET throughput")
    bench.add_argument("--size-bytes", type=int, default=5_000_000)
    bench.add_argument("--chunk-size", type=int, default=CHUNK_SIZE)
    bench.add_argument("--json", action="store_true")
    bench.set_defaults(func=cmd_bench)

    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s [%(levelname)s] %(message)s")
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
