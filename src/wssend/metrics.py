from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional

from .constants import MIB

logger = logging.getLogger(__name__)


def transfer_rate(size_bytes: int, elapsed_ms: float) -> float:
    """MB/s for ``size_bytes`` moved in ``elapsed_ms``, clamped to at least 1 ms."""
    elapsed_ms = max(1.0, elapsed_ms)
    return size_bytes * 1000 / elapsed_ms / MIB


@dataclass(frozen=True, slots=True)
class TransferMetrics:
    bytes_sent: int
    duration_ms: float
    rate_mbs: float


class Bench:
    """Wall-clock stopwatch that logs its duration once."""

    def __init__(self, description: str):
        self.description = description
        self._start = time.monotonic()
        self._duration_ms: Optional[float] = None

    def __enter__(self) -> "Bench":
        return self

    def __exit__(self, *exc_info) -> None:
        if self._duration_ms is None:
            self.report()

    def report(self) -> float:
        self._duration_ms = (time.monotonic() - self._start) * 1000
        logger.info("%s completed in %.1f ms", self.description, self._duration_ms)
        return self._duration_ms

    @property
    def duration_ms(self) -> float:
        if self._duration_ms is None:
            return (time.monotonic() - self._start) * 1000
        return self._duration_ms
