from __future__ import annotations

import os
import tempfile
import threading
from dataclasses import dataclass

from .receiver import Receiver
from .session import send_file


@dataclass(frozen=True, slots=True)
class BenchmarkResult:
    bytes_transferred: int
    duration_ms: float
    rate_mbs: float
    acked: bool


def run_benchmark(*, size_bytes: int, throttle: bool = False, timeout_s: float = 30.0) -> BenchmarkResult:
    """Send ``size_bytes`` of data to a loopback receiver and report throughput."""
    receiver = Receiver()
    server = receiver.serve("127.0.0.1", 0)
    port = server.socket.getsockname()[1]
    t = threading.Thread(target=server.serve_forever, daemon=True)
    t.start()

    fd, path = tempfile.mkstemp(prefix="wssend-bench-")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(b"A" * size_bytes)

        result = send_file(
            f"ws://127.0.0.1:{port}",
            path,
            throttle=throttle,
            connect_timeout=timeout_s,
            drain_timeout=timeout_s,
            ack_timeout=timeout_s,
        )
    finally:
        server.shutdown()
        t.join(timeout=10.0)
        os.unlink(path)

    assert receiver.received and len(receiver.received[0].content) == size_bytes

    return BenchmarkResult(
        bytes_transferred=size_bytes,
        duration_ms=result.metrics.duration_ms,
        rate_mbs=result.metrics.rate_mbs,
        acked=result.ack is not None,
    )
