from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Optional

from .coordinator import AckStatus, LifecycleCoordinator
from .envelope import Ack, Envelope, load_file
from .errors import FileLoadError
from .metrics import Bench, TransferMetrics
from .sender import FlowControlledSender
from .transport import TlsOptions, Transport, WebSocketTransport

logger = logging.getLogger(__name__)


class SessionState(enum.Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    SENDING = "sending"
    DRAINING = "draining"
    AWAITING_ACK = "awaiting_ack"
    DONE = "done"


@dataclass(frozen=True, slots=True)
class TransferResult:
    session_id: str
    filename: str
    load_ok: bool
    metrics: TransferMetrics
    ack_status: Optional[AckStatus]
    ack: Optional[Ack]


@dataclass(slots=True)
class TransferSession:
    """One connect, send, drain, ack sequence over an already configured transport."""

    transport: Transport
    throttle: bool = False
    connect_timeout: Optional[float] = None
    drain_timeout: Optional[float] = None
    ack_timeout: Optional[float] = None
    strict_load: bool = False
    show_progress: bool = False
    state: SessionState = field(default=SessionState.IDLE, init=False)
    coordinator: LifecycleCoordinator = field(default_factory=LifecycleCoordinator, init=False)
    sender: FlowControlledSender = field(init=False)

    def __post_init__(self) -> None:
        self.sender = FlowControlledSender(
            self.transport,
            throttle=self.throttle,
            drain_timeout=self.drain_timeout,
            show_progress=self.show_progress,
        )

    def _enter(self, state: SessionState) -> None:
        logger.debug("session %s -> %s", self.state.value, state.value)
        self.state = state

    def cancel(self) -> None:
        self.coordinator.cancel()
        self.sender.cancelled.set()

    def run(self, path: str) -> TransferResult:
        if self.state is not SessionState.IDLE:
            raise RuntimeError("a TransferSession runs exactly once")

        self.transport.set_event_handler(self.coordinator.notify)
        self._enter(SessionState.CONNECTING)
        try:
            self.transport.start()
            self.coordinator.wait_for_connection(self.connect_timeout)
            self._enter(SessionState.CONNECTED)

            with Bench("load file from disk"):
                loaded = load_file(path)
            if not loaded.ok:
                if self.strict_load:
                    raise FileLoadError(f"cannot read {path}: {loaded.error}")
                logger.warning("cannot read %s (%s); sending empty content", path, loaded.error)

            envelope = Envelope.build(loaded.content, path)
            self.coordinator.session_id = envelope.id
            payload = envelope.to_bytes()

            logger.info("Sending...")
            self._enter(SessionState.SENDING)
            metrics = self.sender.run(
                payload,
                len(envelope.content),
                filename=path,
                on_draining=lambda: self._enter(SessionState.DRAINING),
            )

            self._enter(SessionState.AWAITING_ACK)
            self.coordinator.wait_for_ack(self.ack_timeout)
            logger.info("Done !")
            self._enter(SessionState.DONE)
        finally:
            self.transport.stop()

        return TransferResult(
            session_id=envelope.id,
            filename=path,
            load_ok=loaded.ok,
            metrics=metrics,
            ack_status=self.coordinator.ack_status,
            ack=self.coordinator.ack,
        )


def send_file(
    url: str,
    path: str,
    tls_options: Optional[TlsOptions] = None,
    *,
    throttle: bool = False,
    compression: bool = False,
    connect_timeout: Optional[float] = None,
    drain_timeout: Optional[float] = None,
    ack_timeout: Optional[float] = None,
    strict_load: bool = False,
    show_progress: bool = False,
    transport: Optional[Transport] = None,
) -> TransferResult:
    transport = transport or WebSocketTransport()
    transport.configure(url, compression, tls_options)
    session = TransferSession(
        transport,
        throttle=throttle,
        connect_timeout=connect_timeout,
        drain_timeout=drain_timeout,
        ack_timeout=ack_timeout,
        strict_load=strict_load,
        show_progress=show_progress,
    )
    return session.run(path)


def ws_send_main(
    url: str,
    path: str,
    tls_options: Optional[TlsOptions] = None,
    *,
    connect_timeout: Optional[float] = None,
    drain_timeout: Optional[float] = None,
    ack_timeout: Optional[float] = None,
) -> int:
    send_file(
        url,
        path,
        tls_options,
        throttle=False,
        compression=False,
        connect_timeout=connect_timeout,
        drain_timeout=drain_timeout,
        ack_timeout=ack_timeout,
    )
    return 0
