from __future__ import annotations

import enum
import logging
import queue
import time
from typing import Any, Optional

from .envelope import Ack
from .errors import TransferCancelled, TransferTimeout
from .events import Close, Error, Message, Open, TransportEvent

logger = logging.getLogger(__name__)

_CANCEL = object()


class AckStatus(enum.Enum):
    MATCHED = "matched"
    MISMATCHED = "mismatched"
    MALFORMED = "malformed"


class LifecycleCoordinator:
    """Bridges transport events into the session's sequential flow.

    ``notify`` is the only method called from the transport's thread and it
    only enqueues. The waits consume the queue on the caller's thread, so an
    event that arrives before anyone waits for it is kept, not lost. Each of
    the two signals (connected, acked) is satisfied at most once.
    """

    def __init__(self) -> None:
        self._events: "queue.Queue[Any]" = queue.Queue()
        self.connected = False
        self.acked = False
        self.session_id: Optional[str] = None
        self.ack: Optional[Ack] = None
        self.ack_status: Optional[AckStatus] = None

    def notify(self, event: TransportEvent) -> None:
        self._events.put(event)

    def cancel(self) -> None:
        self._events.put(_CANCEL)

    def wait_for_connection(self, timeout: Optional[float] = None) -> None:
        logger.info("Connecting...")
        self._wait("connection", lambda: self.connected, timeout)

    def wait_for_ack(self, timeout: Optional[float] = None) -> None:
        logger.info("Waiting for ack...")
        self._wait("ack", lambda: self.acked, timeout)

    def _wait(self, what: str, satisfied, timeout: Optional[float]) -> None:
        deadline = None if timeout is None else time.monotonic() + timeout
        while not satisfied():
            remaining = None
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise TransferTimeout(f"no {what} after {timeout:.3f}s")
            try:
                event = self._events.get(timeout=remaining)
            except queue.Empty:
                raise TransferTimeout(f"no {what} after {timeout:.3f}s") from None
            if event is _CANCEL:
                raise TransferCancelled(f"cancelled while waiting for {what}")
            self.dispatch(event)

    def dispatch(self, event: TransportEvent) -> None:
        if isinstance(event, Open):
            self._on_open(event)
        elif isinstance(event, Message):
            self._on_message(event)
        elif isinstance(event, Close):
            logger.warning("connection closed: code %d reason %r", event.code, event.reason)
        elif isinstance(event, Error):
            logger.warning(
                "Connection error: %s; #retries: %d; wait time(ms): %s; HTTP status: %d",
                event.reason,
                event.retries,
                event.wait_time,
                event.http_status,
            )
        else:
            logger.warning("unknown transport event: %r", event)

    def _on_open(self, event: Open) -> None:
        if self.connected:
            logger.warning("ignoring duplicate open event for %s", event.uri)
            return
        self.connected = True
        logger.info("connected")
        logger.info("Uri: %s", event.uri)
        logger.info("Headers:")
        for name, value in event.headers.items():
            logger.info("%s: %s", name, value)

    def _on_message(self, event: Message) -> None:
        logger.info("received message (%d bytes)", event.wire_size)
        if self.acked:
            logger.warning("ignoring message received after the ack")
            return
        self.acked = True
        try:
            ack = Ack.from_bytes(event.payload)
        except ValueError as exc:
            logger.warning("Invalid MsgPack response: %s", exc)
            self.ack_status = AckStatus.MALFORMED
            return
        self.ack = ack
        if ack.id != self.session_id:
            logger.warning("Invalid id: expected %s, got %s", self.session_id, ack.id)
            self.ack_status = AckStatus.MISMATCHED
        else:
            logger.info("ack received for id %s", ack.id)
            self.ack_status = AckStatus.MATCHED
