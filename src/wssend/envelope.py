from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

import umsgpack

from .constants import DJB2_MASK, DJB2_SEED, KIND_SEND


def djb2_hash(data: bytes) -> int:
    h = DJB2_SEED
    for c in data:
        h = (h * 33 + c) & DJB2_MASK
    return h


@dataclass(frozen=True, slots=True)
class LoadResult:
    ok: bool
    content: bytes = b""
    error: Optional[str] = None


def load_file(path: str) -> LoadResult:
    """Read a whole file into memory.

    An unreadable path is reported through ``ok=False`` with empty content;
    the caller decides whether to abort or send an empty envelope.
    """
    try:
        with open(path, "rb") as f:
            return LoadResult(ok=True, content=f.read())
    except OSError as exc:
        return LoadResult(ok=False, error=str(exc))


def _unpack_map(raw: Union[bytes, str]) -> Dict[Any, Any]:
    if isinstance(raw, str):
        raw = raw.encode("utf-8")
    try:
        data = umsgpack.unpackb(raw)
    except umsgpack.UnpackException as exc:
        raise ValueError(f"invalid msgpack: {exc!r}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"expected a msgpack map, got {type(data).__name__}")
    return data


@dataclass(frozen=True, slots=True)
class Envelope:
    id: str
    content: bytes
    djb2_hash: str
    filename: str
    kind: str = KIND_SEND

    @classmethod
    def build(cls, content: bytes, filename: str, id: Optional[str] = None) -> "Envelope":
        return cls(
            id=id or str(uuid.uuid4()),
            content=content,
            djb2_hash=str(djb2_hash(content)),
            filename=filename,
        )

    def verify(self) -> bool:
        return str(djb2_hash(self.content)) == self.djb2_hash

    def to_bytes(self) -> bytes:
        return umsgpack.packb(
            {
                "kind": self.kind,
                "id": self.id,
                "content": self.content,
                "djb2_hash": self.djb2_hash,
                "filename": self.filename,
            }
        )

    @staticmethod
    def from_bytes(raw: bytes) -> "Envelope":
        data = _unpack_map(raw)
        for key, typ in (("kind", str), ("id", str), ("content", bytes), ("djb2_hash", str), ("filename", str)):
            if not isinstance(data.get(key), typ):
                raise ValueError(f"envelope field {key!r} missing or not {typ.__name__}")
        if data["kind"] != KIND_SEND:
            raise ValueError(f"unsupported envelope kind: {data['kind']!r}")
        return Envelope(
            id=data["id"],
            content=data["content"],
            djb2_hash=data["djb2_hash"],
            filename=data["filename"],
            kind=data["kind"],
        )


@dataclass(frozen=True, slots=True)
class Ack:
    id: str
    fields: Dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def from_bytes(raw: Union[bytes, str]) -> "Ack":
        data = _unpack_map(raw)
        ack_id = data.get("id")
        if not isinstance(ack_id, str):
            raise ValueError("ack has no string 'id'")
        return Ack(id=ack_id, fields={k: v for k, v in data.items() if k != "id"})

    @staticmethod
    def for_envelope(envelope: Envelope, ok: bool) -> bytes:
        return umsgpack.packb(
            {
                "id": envelope.id,
                "filename": envelope.filename,
                "djb2_hash": envelope.djb2_hash,
                "ok": ok,
            }
        )
