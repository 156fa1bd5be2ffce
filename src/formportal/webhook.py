from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlsplit

import httpx

from formportal.domain import Submission
from formportal.utils import to_iso

logger = logging.getLogger(__name__)


def is_valid_webhook_url(url: str) -> bool:
    if not url:
        return False
    parsed = urlsplit(url)
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def build_payload(event: str, submission: Submission) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "event": event,
        "submission_id": submission.id,
        "form_template_id": submission.form_template_id,
        "form_name": submission.form_name,
        "status": submission.status.value,
        "submitted_by": submission.submitted_by,
        "assigned_approvers": list(submission.assigned_approvers),
        "approved_by": submission.approved_by(),
    }
    if submission.updated_at:
        payload["updated_at"] = to_iso(submission.updated_at)
    return payload


async def send_webhook(url: str, event: str, submission: Submission) -> bool:
    if not is_valid_webhook_url(url):
        return False

    payload = build_payload(event, submission)
    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.post(url, json=payload)
            response.raise_for_status()
        logger.info("Webhook sent successfully: %s -> %s", event, url)
        return True
    except Exception:
        logger.exception("Webhook failed: %s -> %s", event, url)
        return False
