from __future__ import annotations

import argparse
import json
import logging
from dataclasses import asdict

from .bench import run_benchmark
from .errors import TransferError
from .receiver import Receiver
from .session import send_file
from .transport import TlsOptions

logger = logging.getLogger(__name__)


def cmd_send(args: argparse.Namespace) -> int:
    tls = TlsOptions(
        certfile=args.certfile,
        keyfile=args.keyfile,
        cafile=args.cafile,
        ciphers=args.ciphers,
        check_hostname=not args.no_check_hostname,
    )
    try:
        result = send_file(
            args.url,
            args.file,
            tls,
            connect_timeout=args.connect_timeout,
            drain_timeout=args.drain_timeout,
            ack_timeout=args.ack_timeout,
            strict_load=args.strict,
            show_progress=args.progress,
        )
    except TransferError as exc:
        logger.error("transfer failed: %s", exc)
        return 1

    payload = {
        "role": "sender",
        "id": result.session_id,
        "bytes": result.metrics.bytes_sent,
        "ms": result.metrics.duration_ms,
        "mbs": result.metrics.rate_mbs,
        "ack": result.ack_status.value if result.ack_status else None,
    }
    print(json.dumps(payload, indent=2) if args.json else payload)
    return 0


def cmd_recv(args: argparse.Namespace) -> int:
    receiver = Receiver(out_dir=args.out)
    with receiver.serve(args.host, args.port) as server:
        logger.info("listening on %s:%d", args.host, args.port)
        try:
            server.serve_forever()
        except KeyboardInterrupt:
            pass
    return 0


def cmd_bench(args: argparse.Namespace) -> int:
    r = run_benchmark(size_bytes=args.size_bytes, throttle=args.throttle)
    payload = {"role": "bench", **asdict(r)}
    print(json.dumps(payload, indent=2) if args.json else payload)
    return 0


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(prog="wssend", description="Send one file over a WebSocket and wait for its ack.")
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    sub = p.add_subparsers(dest="cmd", required=True)

    send = sub.add_parser("send", help="send a file and wait for the ack")
    send.add_argument("url")
    send.add_argument("file")
    send.add_argument("--cafile", default="SYSTEM", help='PEM bundle, "SYSTEM" or "NONE"')
    send.add_argument("--certfile")
    send.add_argument("--keyfile")
    send.add_argument("--ciphers")
    send.add_argument("--no-check-hostname", action="store_true")
    send.add_argument("--connect-timeout", type=float, default=None)
    send.add_argument("--drain-timeout", type=float, default=None)
    send.add_argument("--ack-timeout", type=float, default=None)
    send.add_argument("--strict", action="store_true", help="fail instead of sending empty content")
    send.add_argument("--progress", action="store_true")
    send.add_argument("--json", action="store_true")
    send.set_defaults(func=cmd_send)

    recv = sub.add_parser("recv", help="accept envelopes and ack them")
    recv.add_argument("--host", default="0.0.0.0")
    recv.add_argument("--port", type=int, required=True)
    recv.add_argument("--out", default=None, help="directory to write received files to")
    recv.set_defaults(func=cmd_recv)

    bench = sub.add_parser("bench", help="loopback throughput benchmark")
    bench.add_argument("--size-bytes", type=int, default=10 * 1024 * 1024)
    bench.add_argument("--throttle", action="store_true")
    bench.add_argument("--json", action="store_true")
    bench.set_defaults(func=cmd_bench)

    args = p.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s [%(levelname)s] %(message)s")
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
