from __future__ import annotations

import base64
import binascii
import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

from .errors import ValidationError

type SortOrder = Literal["ASC", "DESC"]

_SCALAR_TEXT = {"S", "N"}
_TEXT_SETS = {"SS", "NS"}


@dataclass(frozen=True)
class Page[T]:
    items: list[T]
    count: int = 0
    scanned_count: int = 0
    cursor: str | None = None
    consumed_capacity: float | None = None
    segment_cursors: Mapping[int, str] = field(default_factory=dict)

    @property
    def has_more(self) -> bool:
        return self.cursor is not None


@dataclass(frozen=True)
class Cursor:
    last_key: dict[str, Any]
    index: str | None = None
    sort: SortOrder | None = None


def _b64(raw: Any) -> str:
    if not isinstance(raw, (bytes, bytearray)):
        raise ValueError("binary value must be bytes")
    return base64.b64encode(bytes(raw)).decode("ascii")


def _unb64(text: Any) -> bytes:
    if not isinstance(text, str):
        raise ValueError("binary value must be a base64 string")
    return base64.b64decode(text, validate=True)


def _attribute_to_json(av: Any) -> dict[str, Any]:
    if not isinstance(av, Mapping) or len(av) != 1:
        raise ValueError("attribute value must be a single-key map")
    ((kind, value),) = av.items()

    if kind in _SCALAR_TEXT or kind in _TEXT_SETS:
        return {kind: value}
    if kind == "B":
        return {"B": _b64(value)}
    if kind == "BS":
        return {"BS": [_b64(v) for v in value]}
    if kind in {"BOOL", "NULL"}:
        return {kind: bool(value)}
    if kind == "L":
        return {"L": [_attribute_to_json(v) for v in value]}
    if kind == "M":
        return {"M": {str(k): _attribute_to_json(value[k]) for k in sorted(value)}}
    raise ValueError(f"unsupported attribute value type: {kind}")


def _attribute_from_json(enc: Any) -> dict[str, Any]:
    if not isinstance(enc, dict) or len(enc) != 1:
        raise ValueError("attribute value must be a single-key map")
    ((kind, value),) = enc.items()

    if kind in _SCALAR_TEXT:
        if not isinstance(value, str):
            raise ValueError(f"{kind} value must be a string")
        return {kind: value}
    if kind in _TEXT_SETS:
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ValueError(f"{kind} value must be a list of strings")
        return {kind: value}
    if kind == "B":
        return {"B": _unb64(value)}
    if kind == "BS":
        if not isinstance(value, list):
            raise ValueError("BS value must be a list")
        return {"BS": [_unb64(v) for v in value]}
    if kind in {"BOOL", "NULL"}:
        if not isinstance(value, bool):
            raise ValueError(f"{kind} value must be a boolean")
        return {kind: value}
    if kind == "L":
        if not isinstance(value, list):
            raise ValueError("L value must be a list")
        return {"L": [_attribute_from_json(v) for v in value]}
    if kind == "M":
        if not isinstance(value, dict):
            raise ValueError("M value must be a map")
        return {"M": {str(k): _attribute_from_json(v) for k, v in value.items()}}
    raise ValueError(f"unsupported attribute value type: {kind}")


def encode_cursor(
    last_key: Mapping[str, Any] | None,
    *,
    index: str | None = None,
    sort: SortOrder | None = None,
) -> str | None:
    """Wrap a ``LastEvaluatedKey`` into an opaque URL-safe token.

    The token remembers the index and sort direction it was produced for so
    it cannot silently be replayed against a different request shape.
    """
    if not last_key:
        return None

    payload: dict[str, Any] = {
        "lastKey": {str(k): _attribute_to_json(last_key[k]) for k in sorted(last_key)},
    }
    if index is not None:
        payload["index"] = index
    if sort is not None:
        payload["sort"] = sort

    raw = json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_cursor(cursor: str) -> Cursor:
    raw = str(cursor or "").strip()
    if not raw:
        raise ValidationError("cursor is empty")

    try:
        data = base64.urlsafe_b64decode(raw + "=" * (-len(raw) % 4)).decode("utf-8")
        parsed = json.loads(data)
        if not isinstance(parsed, dict) or not isinstance(parsed.get("lastKey"), dict):
            raise ValueError("cursor lastKey is missing")
        last_key = {str(k): _attribute_from_json(v) for k, v in parsed["lastKey"].items()}
    except (binascii.Error, UnicodeDecodeError, ValueError) as err:
        raise ValidationError(f"invalid cursor: {err}") from err

    index = parsed.get("index")
    sort = parsed.get("sort")
    return Cursor(
        last_key=last_key,
        index=index if isinstance(index, str) else None,
        sort=sort if sort in {"ASC", "DESC"} else None,
    )
