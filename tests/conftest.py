from __future__ import annotations

import threading
from typing import Callable, List, Optional, Sequence

import pytest
import umsgpack

from wssend.envelope import Envelope
from wssend.events import Message, Open, TransportEvent


def ack_message(ack_id: str, **extra) -> Message:
    raw = umsgpack.packb({"id": ack_id, **extra})
    return Message(payload=raw, wire_size=len(raw))


def matching_ack(payload: bytes) -> List[TransportEvent]:
    return [ack_message(Envelope.from_bytes(payload).id)]


class FakeTransport:
    """Deterministic transport double.

    ``start`` fires ``on_start`` from a background thread. After a send the
    buffered count shrinks in ``drain_steps`` calls to ``buffered_amount``
    (never, when ``stuck``); ``reply`` is fired once it reaches zero.
    """

    def __init__(
        self,
        on_start: Sequence[TransportEvent] = (Open(uri="ws://fake/"),),
        reply: Optional[Callable[[bytes], List[TransportEvent]]] = matching_ack,
        drain_steps: int = 3,
        stuck: bool = False,
        fragments: int = 4,
    ):
        self.on_start = list(on_start)
        self.reply = reply
        self.drain_steps = drain_steps
        self.stuck = stuck
        self.fragments = fragments
        self.handler: Callable[[TransportEvent], None] = lambda event: None
        self.configured = None
        self.sent: List[bytes] = []
        self.progress_calls = []
        self.buffered = 0
        self.polls = 0
        self.starts = 0
        self.stops = 0
        self._step = 1

    def configure(self, url, compression_enabled, tls_options=None):
        self.configured = (url, compression_enabled, tls_options)

    def set_event_handler(self, handler):
        self.handler = handler

    def start(self):
        self.starts += 1
        t = threading.Thread(target=self._fire, args=(self.on_start,), daemon=True)
        t.start()
        t.join()

    def stop(self):
        self.stops += 1

    def send_binary(self, payload, progress):
        for current in range(self.fragments):
            self.progress_calls.append((current, self.fragments))
            if not progress(current, self.fragments):
                return False
        self.sent.append(payload)
        self.buffered = len(payload)
        self._step = max(1, -(-len(payload) // self.drain_steps))
        return True

    def buffered_amount(self):
        self.polls += 1
        current = self.buffered
        if current and not self.stuck:
            self.buffered = max(0, current - self._step)
            if self.buffered == 0 and self.reply is not None:
                self._fire(self.reply(self.sent[-1]))
        return current

    def _fire(self, events):
        for event in events:
            self.handler(event)


@pytest.fixture
def fake_transport():
    return FakeTransport()


def run_in_thread(fn):
    """Start ``fn`` in a daemon thread; returns (thread, errors list)."""
    errors = []

    def target():
        try:
            fn()
        except Exception as exc:  # surfaced to the test through ``errors``
            errors.append(exc)

    t = threading.Thread(target=target, daemon=True)
    t.start()
    return t, errors
