from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from tqdm import tqdm

from .constants import POLL_INTERVAL_S, THROTTLE_INTERVAL_S
from .errors import TransferCancelled, TransferTimeout
from .metrics import Bench, TransferMetrics, transfer_rate
from .transport import Transport

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class FlowControlledSender:
    transport: Transport
    throttle: bool = False
    drain_timeout: Optional[float] = None
    show_progress: bool = False
    poll_interval: float = POLL_INTERVAL_S
    throttle_interval: float = THROTTLE_INTERVAL_S
    cancelled: threading.Event = field(default_factory=threading.Event)

    def send(self, payload: bytes, filename: str = "") -> bool:
        bar = tqdm(desc=f"Sending {filename}", unit="frag", disable=not self.show_progress)

        def on_progress(current: int, total: int) -> bool:
            logger.debug("Step %d out of %d", current, total)
            if bar.total != total:
                bar.total = total
            bar.update(1)
            if self.throttle:
                time.sleep(self.throttle_interval)
            return not self.cancelled.is_set()

        try:
            ok = self.transport.send_binary(payload, on_progress)
        finally:
            bar.close()
        if not ok:
            logger.warning("transport did not accept the full payload (%d bytes)", len(payload))
        return ok

    def drain(self) -> None:
        """Poll until the transport reports nothing left to flush.

        Without ``drain_timeout`` this only returns once ``buffered_amount``
        is exactly 0, or raises when cancelled.
        """
        deadline = None if self.drain_timeout is None else time.monotonic() + self.drain_timeout
        while True:
            buffered = self.transport.buffered_amount()
            if buffered == 0:
                return
            if self.cancelled.is_set():
                raise TransferCancelled(f"cancelled with {buffered} bytes left to be sent")
            if deadline is not None and time.monotonic() >= deadline:
                raise TransferTimeout(f"{buffered} bytes still buffered after {self.drain_timeout:.3f}s")
            logger.debug("%d bytes left to be sent", buffered)
            self.cancelled.wait(self.poll_interval)

    def run(
        self,
        payload: bytes,
        content_size: int,
        filename: str = "",
        on_draining: Optional[Callable[[], None]] = None,
    ) -> TransferMetrics:
        bench = Bench("Sending file through websocket")
        self.send(payload, filename)
        if on_draining is not None:
            on_draining()
        self.drain()
        duration_ms = bench.report()

        rate = transfer_rate(content_size, duration_ms)
        logger.info("Send transfer rate: %.2f MB/s", rate)
        return TransferMetrics(bytes_sent=content_size, duration_ms=duration_ms, rate_mbs=rate)
