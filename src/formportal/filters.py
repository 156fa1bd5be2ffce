from __future__ import annotations

import base64
from datetime import datetime

from formportal.domain import Submission
from formportal.utils import ensure_aware


def encode_cursor(created_at: datetime, submission_id: str) -> str:
    value = f"{ensure_aware(created_at).isoformat()}|{submission_id}"
    return base64.urlsafe_b64encode(value.encode("utf-8")).decode("utf-8")


def decode_cursor(cursor: str) -> tuple[datetime, str] | None:
    try:
        raw = base64.urlsafe_b64decode(cursor.encode("utf-8")).decode("utf-8")
        created_at_raw, submission_id = raw.split("|", 1)
        created_at = datetime.fromisoformat(created_at_raw)
        return ensure_aware(created_at), submission_id
    except (ValueError, UnicodeDecodeError):
        return None


def paginate(
    items: list[Submission],
    cursor: tuple[datetime, str] | None,
    limit: int,
) -> tuple[list[Submission], str | None]:
    """Page of newest-first submissions after ``cursor`` plus the next cursor."""
    ordered = sorted(items, key=lambda item: (ensure_aware(item.created_at), item.id), reverse=True)
    if cursor:
        cursor_dt, cursor_id = cursor
        ordered = [
            item
            for item in ordered
            if ensure_aware(item.created_at) < cursor_dt
            or (ensure_aware(item.created_at) == cursor_dt and item.id < cursor_id)
        ]
    page = ordered[:limit]
    next_cursor = None
    if len(page) == limit and len(ordered) > limit:
        last = page[-1]
        next_cursor = encode_cursor(last.created_at, last.id)
    return page, next_cursor
