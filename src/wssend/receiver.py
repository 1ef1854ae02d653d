from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional

from websockets.sync.server import Server, ServerConnection, serve

from .envelope import Ack, Envelope

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Receiver:
    """Acking endpoint for ``send`` envelopes.

    Each binary message is decoded, its djb2 hash recomputed, the content
    optionally written under ``out_dir`` (basename only) and an ack carrying
    the envelope id sent back. Undecodable messages are logged and dropped.
    """

    out_dir: Optional[str] = None
    received: List[Envelope] = field(default_factory=list)

    def handle(self, ws: ServerConnection) -> None:
        for raw in ws:
            if isinstance(raw, str):
                logger.warning("ignoring text message (%d chars)", len(raw))
                continue
            try:
                envelope = Envelope.from_bytes(raw)
            except ValueError as exc:
                logger.warning("invalid envelope: %s", exc)
                continue

            ok = envelope.verify()
            if not ok:
                logger.error("djb2 hash mismatch for %s (id=%s)", envelope.filename, envelope.id)
            elif self.out_dir is not None:
                self._write(envelope)
            logger.info("received %s (%d bytes, id=%s)", envelope.filename, len(envelope.content), envelope.id)
            self.received.append(envelope)
            ws.send(Ack.for_envelope(envelope, ok))

    def _write(self, envelope: Envelope) -> None:
        name = os.path.basename(envelope.filename)
        if not name or name in (".", ".."):
            logger.warning("refusing to write unnamed file (id=%s)", envelope.id)
            return
        os.makedirs(self.out_dir, exist_ok=True)
        with open(os.path.join(self.out_dir, name), "wb") as out:
            out.write(envelope.content)

    def serve(self, host: str, port: int) -> Server:
        return serve(self.handle, host, port, compression=None, max_size=None)
