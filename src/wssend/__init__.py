"""wssend: send one file over a WebSocket and wait for its ack.

The package keeps the pieces of a transfer apart so each can be tested alone:
- envelope: the msgpack transfer unit and its djb2 integrity hash
- transport: the WebSocket adapter and the contract the session relies on
- sender / coordinator: flow-controlled send + drain, and lifecycle events
- session: the connect, send, drain, ack sequence
"""

from .session import TransferResult, TransferSession, send_file, ws_send_main

__all__ = ["TransferResult", "TransferSession", "send_file", "ws_send_main"]
