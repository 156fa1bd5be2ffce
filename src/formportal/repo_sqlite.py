from __future__ import annotations

from pathlib import Path

from sqlalchemy import create_engine, update
from sqlalchemy.orm import sessionmaker

from formportal.domain import (
    FormTemplate,
    Notification,
    Submission,
    SubmissionStatus,
    notification_from_record,
    submission_from_record,
    submission_to_record,
    template_from_record,
    template_to_record,
)
from formportal.models import Base, NotificationModel, SubmissionModel, TemplateModel
from formportal.storage import SubmissionChange, apply_with_retry
from formportal.utils import dumps_json, loads_json, now_utc


class SQLiteTemplateRepo:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._Session = session_factory

    def list_templates(self) -> list[FormTemplate]:
        with self._Session() as session:
            rows = session.query(TemplateModel).order_by(TemplateModel.updated_at.desc()).all()
            return [self._to_template(row) for row in rows]

    def get_template(self, template_id: str) -> FormTemplate | None:
        with self._Session() as session:
            row = session.get(TemplateModel, template_id)
            return self._to_template(row) if row else None

    def create_template(self, template: FormTemplate) -> None:
        with self._Session() as session:
            row = TemplateModel(
                id=template.id,
                name=template.name,
                category=template.category,
                data_json=dumps_json(template_to_record(template)),
                created_at=template.created_at,
                updated_at=template.updated_at,
            )
            session.add(row)
            session.commit()

    def update_template(self, template: FormTemplate) -> FormTemplate:
        with self._Session() as session:
            row = session.get(TemplateModel, template.id)
            if not row:
                raise KeyError(template.id)
            row.name = template.name
            row.category = template.category
            row.data_json = dumps_json(template_to_record(template))
            row.updated_at = template.updated_at
            session.commit()
            session.refresh(row)
            return self._to_template(row)

    def delete_template(self, template_id: str) -> None:
        with self._Session() as session:
            row = session.get(TemplateModel, template_id)
            if row:
                session.delete(row)
                session.commit()

    @staticmethod
    def _to_template(row: TemplateModel) -> FormTemplate:
        return template_from_record(loads_json(row.data_json) or {"id": row.id})


class SQLiteSubmissionRepo:
    def __init__(self, session_factory: sessionmaker, cas_retries: int) -> None:
        self._Session = session_factory
        self._cas_retries = cas_retries

    def list_submissions(
        self,
        submitted_by: str | None = None,
        status: SubmissionStatus | None = None,
    ) -> list[Submission]:
        with self._Session() as session:
            query = session.query(SubmissionModel)
            if submitted_by:
                query = query.filter(SubmissionModel.submitted_by == submitted_by)
            if status:
                query = query.filter(SubmissionModel.status == status.value)
            rows = query.order_by(
                SubmissionModel.created_at.desc(), SubmissionModel.id.desc()
            ).all()
            return [self._to_submission(row) for row in rows]

    def get_submission(self, submission_id: str) -> Submission | None:
        with self._Session() as session:
            row = session.get(SubmissionModel, submission_id)
            return self._to_submission(row) if row else None

    def create_submission(self, submission: Submission) -> Submission:
        with self._Session() as session:
            row = SubmissionModel(
                id=submission.id,
                form_template_id=submission.form_template_id,
                submitted_by=submission.submitted_by,
                status=submission.status.value,
                data_json=dumps_json(submission_to_record(submission)),
                version=submission.version,
                created_at=submission.created_at,
                updated_at=submission.updated_at,
            )
            session.add(row)
            session.commit()
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
        # A single conditional UPDATE; the row only changes if nobody else
        # bumped the version since it was read.
        with self._Session() as session:
            result = session.execute(
                update(SubmissionModel)
                .where(
                    SubmissionModel.id == submission.id,
                    SubmissionModel.version == expected_version,
                )
                .values(
                    status=submission.status.value,
                    data_json=dumps_json(submission_to_record(submission)),
                    version=submission.version,
                    updated_at=submission.updated_at or now_utc(),
                )
            )
            session.commit()
            return result.rowcount == 1

    def delete_submission(self, submission_id: str, expected_version: int) -> bool:
        with self._Session() as session:
            deleted = (
                session.query(SubmissionModel)
                .filter(
                    SubmissionModel.id == submission_id,
                    SubmissionModel.version == expected_version,
                )
                .delete(synchronize_session=False)
            )
            session.commit()
            return deleted == 1

    @staticmethod
    def _to_submission(row: SubmissionModel) -> Submission:
        record = loads_json(row.data_json) or {}
        record["version"] = row.version
        return submission_from_record(record)


class SQLiteNotificationRepo:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._Session = session_factory

    def list_notifications(self, recipient_id: str, limit: int = 10) -> list[Notification]:
        with self._Session() as session:
            rows = (
                session.query(NotificationModel)
                .filter(NotificationModel.recipient_id == recipient_id)
                .order_by(NotificationModel.created_at.desc(), NotificationModel.id.desc())
                .limit(limit)
                .all()
            )
            return [self._to_notification(row) for row in rows]

    def get_notification(self, notification_id: str) -> Notification | None:
        with self._Session() as session:
            row = session.get(NotificationModel, notification_id)
            return self._to_notification(row) if row else None

    def create_notification(self, notification: Notification) -> None:
        with self._Session() as session:
            row = NotificationModel(
                id=notification.id,
                recipient_id=notification.recipient_id,
                form_id=notification.form_id,
                type=notification.type,
                title=notification.title,
                message=notification.message,
                read=int(notification.read),
                created_at=notification.created_at,
            )
            session.add(row)
            session.commit()

    def mark_read(self, notification_id: str) -> Notification:
        with self._Session() as session:
            row = session.get(NotificationModel, notification_id)
            if not row:
                raise KeyError(notification_id)
            row.read = 1
            session.commit()
            session.refresh(row)
            return self._to_notification(row)

    def delete_notification(self, notification_id: str) -> None:
        with self._Session() as session:
            row = session.get(NotificationModel, notification_id)
            if row:
                session.delete(row)
                session.commit()

    @staticmethod
    def _to_notification(row: NotificationModel) -> Notification:
        return notification_from_record(
            {
                "id": row.id,
                "recipient_id": row.recipient_id,
                "form_id": row.form_id,
                "type": row.type,
                "title": row.title,
                "message": row.message,
                "read": bool(row.read),
                "created_at": row.created_at,
            }
        )


class SQLiteStorage:
    def __init__(self, db_path: Path, cas_retries: int = 20) -> None:
        self._engine = create_engine(
            f"sqlite:///{db_path}",
            future=True,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        self._Session = sessionmaker(self._engine, expire_on_commit=False)
        Base.metadata.create_all(self._engine)
        self.templates = SQLiteTemplateRepo(self._Session)
        self.submissions = SQLiteSubmissionRepo(self._Session, cas_retries)
        self.notifications = SQLiteNotificationRepo(self._Session)

    def dispose(self) -> None:
        self._engine.dispose()
