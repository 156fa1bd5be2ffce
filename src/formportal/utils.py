from __future__ import annotations

import base64
import binascii
from datetime import date, datetime, timezone
from typing import Any

import orjson
import ulid


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    return ensure_aware(dt).isoformat()


def ensure_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_dt(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return ensure_aware(value)
    if isinstance(value, str) and value:
        try:
            return ensure_aware(datetime.fromisoformat(value))
        except ValueError:
            return None
    return None


def dumps_json(value: Any) -> str:
    return orjson.dumps(value).decode("utf-8")


def loads_json(value: str | None) -> Any:
    if not value:
        return None
    return orjson.loads(value)


def new_ulid() -> str:
    value = ulid.new()
    return getattr(value, "str", str(value))


def encode_blob(data: bytes | None) -> str | None:
    if data is None:
        return None
    return base64.b64encode(data).decode("ascii")


def decode_blob(value: Any) -> bytes | None:
    """Decode a base64 payload, accepting ``data:<mime>;base64,`` URLs."""
    if value in (None, ""):
        return None
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    text = str(value)
    if text.startswith("data:") and "," in text:
        text = text.split(",", 1)[1]
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("invalid base64 payload") from exc


def format_long_date(value: date | datetime) -> str:
    """``March 5, 2024``"""
    return f"{value.strftime('%B')} {value.day}, {value.year}"


def format_short_date(value: date | datetime) -> str:
    """``Mar 5, 2024``"""
    return f"{value.strftime('%b')} {value.day}, {value.year}"


def format_numeric_date(value: date | datetime) -> str:
    return f"{value.month}/{value.day}/{value.year}"
