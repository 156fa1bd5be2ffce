from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, Protocol

from formportal.config import Settings, ensure_dirs
from formportal.domain import FormTemplate, Notification, Submission, SubmissionStatus
from formportal.errors import ConcurrentUpdateError

logger = logging.getLogger(__name__)

SubmissionChange = Callable[[Submission], Submission]


class TemplateRepository(Protocol):
    def list_templates(self) -> list[FormTemplate]: ...

    def get_template(self, template_id: str) -> FormTemplate | None: ...

    def create_template(self, template: FormTemplate) -> None: ...

    def update_template(self, template: FormTemplate) -> FormTemplate: ...

    def delete_template(self, template_id: str) -> None: ...


class SubmissionRepository(Protocol):
    def list_submissions(
        self,
        submitted_by: str | None = None,
        status: SubmissionStatus | None = None,
    ) -> list[Submission]: ...

    def get_submission(self, submission_id: str) -> Submission | None: ...

    def create_submission(self, submission: Submission) -> Submission: ...

    def mutate(self, submission_id: str, change: SubmissionChange) -> Submission: ...

    def delete_submission(self, submission_id: str, expected_version: int) -> bool: ...


class NotificationRepository(Protocol):
    def list_notifications(self, recipient_id: str, limit: int = 10) -> list[Notification]: ...

    def get_notification(self, notification_id: str) -> Notification | None: ...

    def create_notification(self, notification: Notification) -> None: ...

    def mark_read(self, notification_id: str) -> Notification: ...

    def delete_notification(self, notification_id: str) -> None: ...


class Storage(Protocol):
    templates: TemplateRepository
    submissions: SubmissionRepository
    notifications: NotificationRepository


def apply_with_retry(
    submission_id: str,
    read: Callable[[str], Submission | None],
    swap: Callable[[int, Submission], bool],
    change: SubmissionChange,
    retries: int,
) -> Submission:
    """Optimistic read-modify-write keyed on the submission version.

    ``change`` is re-applied to a fresh read after every lost race, so its
    decisions are always taken against the latest stored state. Returning the
    input unchanged is a no-op and skips the write.
    """
    for attempt in range(1, retries + 1):
        current = read(submission_id)
        if current is None:
            raise KeyError(submission_id)
        updated = change(current)
        if updated is current:
            return current
        stored = replace(updated, version=current.version + 1)
        if swap(current.version, stored):
            return stored
        logger.debug(
            "Version conflict on submission %s (attempt %d/%d)",
            submission_id,
            attempt,
            retries,
        )
    raise ConcurrentUpdateError(
        f"Submission {submission_id} is being updated concurrently, try again"
    )


def init_storage(settings: Settings) -> Storage:
    ensure_dirs(settings)
    if settings.storage_backend == "json":
        from formportal.repo_json import JSONStorage

        return JSONStorage(settings.json_path, cas_retries=settings.cas_retries)
    from formportal.repo_sqlite import SQLiteStorage

    return SQLiteStorage(settings.sqlite_path, cas_retries=settings.cas_retries)
