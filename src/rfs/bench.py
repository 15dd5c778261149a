from __future__ import annotations

import os
import tempfile
import threading
import time
from dataclasses import dataclass

from .client import Client
from .constants import CHUNK_SIZE
from .server import FileServer, ServerConfig


@dataclass(frozen=True, slots=True)
class BenchmarkResult:
    bytes_transferred: int
    upload_s: float
    download_s: float
    upload_mbps: float
    download_mbps: float


def _mbps(size_bytes: int, seconds: float) -> float:
    return (size_bytes * 8 / 1_000_000) / max(0.001, seconds)


def run_benchmark(*, size_bytes: int, chunk_size: int = CHUNK_SIZE) -> BenchmarkResult:
    """PUT then GET ``size_bytes`` over loopback and time both directions."""
    with tempfile.TemporaryDirectory() as work:
        root = os.path.join(work, "root")
        local = os.path.join(work, "local")
        os.makedirs(local)
        src = os.path.join(local, "bench.bin")
        with open(src, "wb") as f:
            f.write(os.urandom(size_bytes))

        server = FileServer(ServerConfig(root=root, host="127.0.0.1", port=0, chunk_size=chunk_size, poll_interval=0.1))
        server.start()
        t = threading.Thread(target=server.serve_forever, daemon=True)
        t.start()
        try:
            host, port = server.address
            with Client.connect(host, port) as client:
                client.chunk_size = chunk_size

                start = time.perf_counter()
                client.put(src)
                upload_s = time.perf_counter() - start

                os.unlink(src)
                start = time.perf_counter()
                client.get("bench.bin", local)
                download_s = time.perf_counter() - start

                client.quit()
        finally:
            server.shutdown(cancel_sessions=True)
            t.join(timeout=10.0)

        with open(os.path.join(root, "bench.bin"), "rb") as a, open(src, "rb") as b:
            if a.read() != b.read():
                raise RuntimeError("round trip mismatch")

    return BenchmarkResult(
        bytes_transferred=size_bytes,
        upload_s=upload_s,
        download_s=download_s,
        upload_mbps=_mbps(size_bytes, upload_s),
        download_mbps=_mbps(size_bytes, download_s),
    )
