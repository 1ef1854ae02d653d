from __future__ import annotations

import contextlib
import logging
import queue
import ssl
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, Optional, Protocol

from websockets.exceptions import ConnectionClosed, InvalidStatus, WebSocketException
from websockets.sync.client import ClientConnection, connect

from .constants import (
    CLOSE_ABNORMAL,
    CLOSE_INTERNAL_ERROR,
    DEFAULT_CLOSE_TIMEOUT_S,
    DEFAULT_OPEN_TIMEOUT_S,
    FRAGMENT_SIZE,
)
from .errors import TransferAborted
from .events import Close, Error, EventHandler, Message, Open, TransportEvent

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], bool]

# outbound queue markers
_END = object()
_ABORT = object()
_STOP = object()


@dataclass(frozen=True, slots=True)
class TlsOptions:
    """Client TLS settings, applied to ``wss://`` URLs only.

    ``cafile`` is ``"SYSTEM"`` for the default trust store, ``"NONE"`` to
    disable peer verification, or a path to a PEM bundle.
    """

    certfile: Optional[str] = None
    keyfile: Optional[str] = None
    cafile: str = "SYSTEM"
    ciphers: Optional[str] = None
    check_hostname: bool = True

    def ssl_context(self) -> ssl.SSLContext:
        ctx = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)
        if self.cafile == "NONE":
            ctx.check_hostname = False
            ctx.verify_mode = ssl.CERT_NONE
        else:
            if self.cafile != "SYSTEM":
                ctx.load_verify_locations(cafile=self.cafile)
            ctx.check_hostname = self.check_hostname
        if self.certfile:
            ctx.load_cert_chain(self.certfile, self.keyfile)
        if self.ciphers:
            ctx.set_ciphers(self.ciphers)
        return ctx


class Transport(Protocol):
    def configure(self, url: str, compression_enabled: bool, tls_options: Optional[TlsOptions]) -> None: ...

    def set_event_handler(self, handler: EventHandler) -> None: ...

    def start(self) -> None: ...

    def stop(self) -> None: ...

    def send_binary(self, payload: bytes, progress: ProgressCallback) -> bool: ...

    def buffered_amount(self) -> int: ...


def _ignore(event: TransportEvent) -> None:
    pass


class WebSocketTransport:
    """Message-oriented transport over a ``websockets`` threading client.

    ``start`` spawns a reader thread that connects and dispatches events; once
    connected it starts a writer thread that streams queued fragments. The
    caller of ``send_binary`` only splits and enqueues, so ``buffered_amount``
    counts the bytes handed over but not yet written to the socket.
    """

    def __init__(
        self,
        fragment_size: int = FRAGMENT_SIZE,
        open_timeout: float = DEFAULT_OPEN_TIMEOUT_S,
        close_timeout: float = DEFAULT_CLOSE_TIMEOUT_S,
    ):
        self.url = ""
        self.compression_enabled = False
        self.tls_options: Optional[TlsOptions] = None
        self.fragment_size = max(1, fragment_size)
        self.open_timeout = open_timeout
        self.close_timeout = close_timeout

        self._handler: EventHandler = _ignore
        self._lock = threading.Lock()
        self._ws: Optional[ClientConnection] = None
        self._writable = False
        self._stopped = False
        self._buffered = 0
        self._tail = 0
        self._outbound: "queue.Queue[Any]" = queue.Queue()
        self._reader: Optional[threading.Thread] = None
        self._writer: Optional[threading.Thread] = None

    def configure(self, url: str, compression_enabled: bool, tls_options: Optional[TlsOptions] = None) -> None:
        self.url = url
        self.compression_enabled = compression_enabled
        self.tls_options = tls_options

    def set_event_handler(self, handler: EventHandler) -> None:
        self._handler = handler

    def start(self) -> None:
        logger.info("Connecting to url: %s", self.url)
        self._reader = threading.Thread(target=self._run, name="wssend-reader", daemon=True)
        self._reader.start()

    def stop(self) -> None:
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
            self._writable = False
            ws = self._ws
        self._outbound.put(_STOP)
        if ws is not None:
            ws.close()
        current = threading.current_thread()
        for thread in (self._writer, self._reader):
            if thread is not None and thread is not current:
                thread.join(self.close_timeout)

    def buffered_amount(self) -> int:
        with self._lock:
            return self._buffered

    def send_binary(self, payload: bytes, progress: ProgressCallback) -> bool:
        with self._lock:
            ready = self._writable
        if not ready:
            logger.warning("cannot send %d bytes: connection is not open", len(payload))
            return False

        n = self.fragment_size
        total = max(1, -(-len(payload) // n))
        for current in range(total):
            if not progress(current, total):
                self._outbound.put(_ABORT)
                return False
            chunk = payload[current * n : (current + 1) * n]
            with self._lock:
                if not self._writable:
                    return False
                self._buffered += len(chunk)
            self._outbound.put(chunk)
        self._outbound.put(_END)
        return True

    def _emit(self, event: TransportEvent) -> None:
        self._handler(event)

    def _connect(self):
        kwargs: Dict[str, Any] = {}
        if self.tls_options is not None and self.url.startswith("wss://"):
            kwargs["ssl"] = self.tls_options.ssl_context()
        return connect(
            self.url,
            compression="deflate" if self.compression_enabled else None,
            open_timeout=self.open_timeout,
            close_timeout=self.close_timeout,
            max_size=None,
            **kwargs,
        )

    def _run(self) -> None:
        with contextlib.ExitStack() as stack:
            try:
                ws: ClientConnection = stack.enter_context(self._connect())
            except InvalidStatus as exc:
                self._emit(Error(reason=str(exc), http_status=exc.response.status_code))
                return
            except (WebSocketException, OSError) as exc:
                self._emit(Error(reason=str(exc) or type(exc).__name__))
                return

            with self._lock:
                if self._stopped:
                    return
                self._ws = ws
                self._writable = True

            headers = dict(ws.response.headers.raw_items()) if ws.response is not None else {}
            self._emit(Open(uri=self.url, headers=headers))

            self._writer = threading.Thread(target=self._write_loop, args=(ws,), name="wssend-writer", daemon=True)
            self._writer.start()
            self._read_loop(ws)

    def _read_loop(self, ws: ClientConnection) -> None:
        while True:
            try:
                data = ws.recv()
            except ConnectionClosed as exc:
                with self._lock:
                    self._writable = False
                frame = exc.rcvd or exc.sent
                if frame is None:
                    self._emit(Close(code=CLOSE_ABNORMAL))
                else:
                    self._emit(Close(code=frame.code, reason=frame.reason))
                return
            payload = data.encode("utf-8") if isinstance(data, str) else bytes(data)
            self._emit(Message(payload=payload, wire_size=len(payload)))

    def _write_loop(self, ws: ClientConnection) -> None:
        while True:
            item = self._outbound.get()
            if item is _STOP:
                return
            if item is _END or item is _ABORT:
                continue
            try:
                ws.send(self._fragments(item))
                # the final frame is out once send returns
                with self._lock:
                    self._buffered -= self._tail
                self._tail = 0
            except TransferAborted as exc:
                logger.warning("%s; failing connection with code %d", exc, CLOSE_INTERNAL_ERROR)
                self._discard_pending()
                return
            except ConnectionClosed as exc:
                logger.warning("connection closed while sending: %s", exc)
                self._discard_pending()
                return

    def _fragments(self, first: bytes) -> Iterator[bytes]:
        chunk = first
        while True:
            self._tail = len(chunk)
            yield chunk
            item = self._outbound.get()
            if item is _END:
                return
            if item is _ABORT:
                raise TransferAborted("send aborted by progress callback")
            if item is _STOP:
                raise TransferAborted("transport stopped during send")
            # resumed only once the previous fragment hit the socket
            with self._lock:
                self._buffered -= len(chunk)
            chunk = item

    def _discard_pending(self) -> None:
        with self._lock:
            self._writable = False
            self._buffered = 0
        self._tail = 0
