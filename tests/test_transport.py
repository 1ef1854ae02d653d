from __future__ import annotations

import socket
import ssl
import threading

import pytest

from wssend.bench import run_benchmark
from wssend.coordinator import AckStatus
from wssend.errors import TransferTimeout
from wssend.receiver import Receiver
from wssend.session import send_file
from wssend.transport import _STOP, TlsOptions, WebSocketTransport


@pytest.fixture
def receiver_url(tmp_path):
    receiver = Receiver(out_dir=str(tmp_path / "out"))
    server = receiver.serve("127.0.0.1", 0)
    port = server.socket.getsockname()[1]
    t = threading.Thread(target=server.serve_forever, daemon=True)
    t.start()
    try:
        yield f"ws://127.0.0.1:{port}", receiver
    finally:
        server.shutdown()
        t.join(timeout=5.0)


def _closed_port() -> int:
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    return port


@pytest.mark.filterwarnings("error::DeprecationWarning")
def test_loopback_transfer_is_acked(receiver_url, tmp_path):
    url, receiver = receiver_url
    src = tmp_path / "blob.bin"
    data = bytes(range(256)) * 1000  # several fragments
    src.write_bytes(data)

    transport = WebSocketTransport(fragment_size=16 * 1024)
    result = send_file(url, str(src), transport=transport, connect_timeout=5, drain_timeout=5, ack_timeout=5)

    assert result.ack_status is AckStatus.MATCHED
    assert result.ack.fields["ok"] is True
    assert transport.buffered_amount() == 0
    assert [e.content for e in receiver.received] == [data]
    assert (tmp_path / "out" / "blob.bin").read_bytes() == data

    transport.stop()  # already stopped by the session


@pytest.mark.filterwarnings("error::DeprecationWarning")
def test_loopback_missing_file_is_acked(receiver_url, tmp_path):
    url, receiver = receiver_url
    result = send_file(url, str(tmp_path / "absent.bin"), connect_timeout=5, drain_timeout=5, ack_timeout=5)
    assert not result.load_ok
    assert result.ack_status is AckStatus.MATCHED
    assert receiver.received[0].content == b""


def test_refused_connection_never_opens():
    url = f"ws://127.0.0.1:{_closed_port()}"
    with pytest.raises(TransferTimeout):
        send_file(url, __file__, connect_timeout=1.0)


def test_send_before_connect_is_refused():
    transport = WebSocketTransport()
    assert transport.buffered_amount() == 0
    assert transport.send_binary(b"data", lambda current, total: True) is False
    transport.stop()
    transport.stop()


def test_tls_options_context():
    insecure = TlsOptions(cafile="NONE").ssl_context()
    assert insecure.verify_mode == ssl.CERT_NONE
    assert not insecure.check_hostname

    default = TlsOptions().ssl_context()
    assert default.verify_mode == ssl.CERT_REQUIRED
    assert default.check_hostname


def test_benchmark_reports_rate():
    r = run_benchmark(size_bytes=200_000, timeout_s=10.0)
    assert r.acked
    assert r.bytes_transferred == 200_000
    assert r.rate_mbs > 0


class _RecordingConnection:
    def __init__(self, transport):
        self.transport = transport
        self.seen = []

    def send(self, message):
        for _ in message:
            self.seen.append(self.transport.buffered_amount())
        # send has written the closing fin frame by now
        self.seen.append(self.transport.buffered_amount())


def test_last_fragment_counts_until_message_is_written():
    transport = WebSocketTransport(fragment_size=4)
    transport._writable = True
    assert transport.send_binary(b"x" * 10, lambda current, total: True)
    transport._outbound.put(_STOP)

    conn = _RecordingConnection(transport)
    transport._write_loop(conn)

    assert conn.seen == [10, 6, 2, 2]
    assert transport.buffered_amount() == 0
