from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from filelock import FileLock
from tinydb import Query, TinyDB

from formportal.domain import (
    FormTemplate,
    Notification,
    Submission,
    SubmissionStatus,
    notification_from_record,
    notification_to_record,
    submission_from_record,
    submission_to_record,
    template_from_record,
    template_to_record,
)
from formportal.storage import SubmissionChange, apply_with_retry

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class JSONRepoBase:
    def __init__(self, path: Path, lock: FileLock) -> None:
        self._path = path
        self._lock = lock

    @contextmanager
    def _db(self) -> Iterable[TinyDB]:
        with self._lock:
            db = TinyDB(self._path)
            try:
                yield db
            finally:
                db.close()


class JSONTemplateRepo(JSONRepoBase):
    def list_templates(self) -> list[FormTemplate]:
        with self._db() as db:
            items = db.table("templates").all()
        templates = [template_from_record(item) for item in items]
        return sorted(
            templates,
            key=lambda x: x.updated_at or x.created_at or EPOCH,
            reverse=True,
        )

    def get_template(self, template_id: str) -> FormTemplate | None:
        with self._db() as db:
            item = db.table("templates").get(Query().id == template_id)
        return template_from_record(item) if item else None

    def create_template(self, template: FormTemplate) -> None:
        with self._db() as db:
            db.table("templates").insert(template_to_record(template))

    def update_template(self, template: FormTemplate) -> FormTemplate:
        record = template_to_record(template)
        with self._db() as db:
            table = db.table("templates")
            if not table.contains(Query().id == template.id):
                raise KeyError(template.id)
            table.update(record, Query().id == template.id)
        return template_from_record(record)

    def delete_template(self, template_id: str) -> None:
        with self._db() as db:
            db.table("templates").remove(Query().id == template_id)


class JSONSubmissionRepo(JSONRepoBase):
    def __init__(self, path: Path, lock: FileLock, cas_retries: int) -> None:
        super().__init__(path, lock)
        self._cas_retries = cas_retries

    def list_submissions(
        self,
        submitted_by: str | None = None,
        status: SubmissionStatus | None = None,
    ) -> list[Submission]:
        with self._db() as db:
            items = db.table("submissions").all()
        submissions = [submission_from_record(item) for item in items]
        if submitted_by:
            submissions = [s for s in submissions if s.submitted_by == submitted_by]
        if status:
            submissions = [s for s in submissions if s.status == status]
        return sorted(submissions, key=lambda x: (x.created_at, x.id), reverse=True)

    def get_submission(self, submission_id: str) -> Submission | None:
        with self._db() as db:
            item = db.table("submissions").get(Query().id == submission_id)
        return submission_from_record(item) if item else None

    def create_submission(self, submission: Submission) -> Submission:
        with self._db() as db:
            db.table("submissions").insert(submission_to_record(submission))
        return submission

    def mutate(self, submission_id: str, change: SubmissionChange) -> Submission:
        return apply_with_retry(
            submission_id,
            self.get_submission,
            self._swap,
            change,
            self._cas_retries,
        )

    def _swap(self, expected_version: int, submission: Submission) -> bool:
        with self._db() as db:
            table = db.table("submissions")
            item = table.get(Query().id == submission.id)
            if not item or int(item.get("version") or 0) != expected_version:
                return False
            table.update(submission_to_record(submission), Query().id == submission.id)
        return True

    def delete_submission(self, submission_id: str, expected_version: int) -> bool:
        with self._db() as db:
            table = db.table("submissions")
            item = table.get(Query().id == submission_id)
            if not item or int(item.get("version") or 0) != expected_version:
                return False
            table.remove(Query().id == submission_id)
        return True


class JSONNotificationRepo(JSONRepoBase):
    def list_notifications(self, recipient_id: str, limit: int = 10) -> list[Notification]:
        with self._db() as db:
            items = db.table("notifications").search(Query().recipient_id == recipient_id)
        notifications = [notification_from_record(item) for item in items]
        notifications.sort(key=lambda x: (x.created_at, x.id), reverse=True)
        return notifications[:limit]

    def get_notification(self, notification_id: str) -> Notification | None:
        with self._db() as db:
            item = db.table("notifications").get(Query().id == notification_id)
        return notification_from_record(item) if item else None

    def create_notification(self, notification: Notification) -> None:
        with self._db() as db:
            db.table("notifications").insert(notification_to_record(notification))

    def mark_read(self, notification_id: str) -> Notification:
        with self._db() as db:
            table = db.table("notifications")
            item = table.get(Query().id == notification_id)
            if not item:
                raise KeyError(notification_id)
            item["read"] = True
            table.update({"read": True}, Query().id == notification_id)
        return notification_from_record(item)

    def delete_notification(self, notification_id: str) -> None:
        with self._db() as db:
            db.table("notifications").remove(Query().id == notification_id)


class JSONStorage:
    def __init__(self, path: Path, cas_retries: int = 20) -> None:
        self._lock = FileLock(f"{path}.lock")
        self.templates = JSONTemplateRepo(path, self._lock)
        self.submissions = JSONSubmissionRepo(path, self._lock, cas_retries)
        self.notifications = JSONNotificationRepo(path, self._lock)

    def dispose(self) -> None:
        return None
