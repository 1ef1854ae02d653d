"""Transport events delivered to the session's event handler."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, Union


@dataclass(frozen=True, slots=True)
class Open:
    uri: str
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Close:
    code: int
    reason: str = ""


@dataclass(frozen=True, slots=True)
class Message:
    payload: bytes
    wire_size: int


@dataclass(frozen=True, slots=True)
class Error:
    reason: str
    retries: int = 0
    wait_time: float = 0.0
    http_status: int = 0


TransportEvent = Union[Open, Close, Message, Error]
EventHandler = Callable[[TransportEvent], None]
