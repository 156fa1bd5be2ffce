from __future__ import annotations

import logging
from datetime import datetime
from typing import Protocol

from formportal.domain import Notification, Submission
from formportal.storage import NotificationRepository
from formportal.utils import new_ulid

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify(self, notifications: list[Notification]) -> None: ...


class StorageNotifier:
    """Persists notifications so recipients can list them later."""

    def __init__(self, repo: NotificationRepository) -> None:
        self._repo = repo

    def notify(self, notifications: list[Notification]) -> None:
        for notification in notifications:
            self._repo.create_notification(notification)
            logger.info(
                "Notification %s queued for %s (form %s)",
                notification.id,
                notification.recipient_id,
                notification.form_id,
            )


def submission_notifications(submission: Submission, created_at: datetime) -> list[Notification]:
    submitter = submission.submitted_by_name or submission.submitted_by
    return [
        Notification(
            id=new_ulid(),
            recipient_id=approver_id,
            form_id=submission.id,
            type="form_submitted",
            title=f"New form submission: {submission.form_name}",
            message=f"{submitter} submitted a form for approval",
            created_at=created_at,
        )
        for approver_id in submission.assigned_approvers
    ]
