"""Approval workflow for submitted forms.

A submission moves Draft -> Pending Approval -> Approved | Rejected. Every
mutation is expressed as a pure change function that the submission
repository applies with a compare-and-swap on the record version, so the
"append my record, then check completion" step is always evaluated against
the latest stored timeline. The status written is recomputed from the
approver snapshot and the timeline with ``derive_status`` on every write.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable

from formportal.domain import (
    Actor,
    ApprovalAction,
    ApprovalRecord,
    Attachment,
    FormTemplate,
    Notification,
    Submission,
    SubmissionStatus,
    derive_status,
)
from formportal.errors import (
    DuplicateActionError,
    NotAuthorizedError,
    NotFoundError,
    StaleStateError,
    ValidationError,
)
from formportal.notifications import Notifier, StorageNotifier, submission_notifications
from formportal.schema import missing_required_fields, validate_form_data
from formportal.storage import Storage
from formportal.utils import new_ulid, now_utc

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


@dataclass(frozen=True)
class ActionResult:
    submission: Submission
    completed: bool = False
    notifications: tuple[Notification, ...] = ()


class ApprovalEngine:
    def __init__(
        self,
        storage: Storage,
        notifier: Notifier | None = None,
        clock: Clock = now_utc,
        retries: int = 20,
    ) -> None:
        self._storage = storage
        self._notifier = notifier if notifier is not None else StorageNotifier(storage.notifications)
        self._clock = clock
        self._retries = max(1, retries)

    # -- lookups -------------------------------------------------------------

    def get_template(self, template_id: str) -> FormTemplate:
        template = self._storage.templates.get_template(template_id)
        if template is None:
            raise NotFoundError(f"Form template {template_id} not found")
        return template

    def get(self, submission_id: str) -> Submission:
        submission = self._storage.submissions.get_submission(submission_id)
        if submission is None:
            raise NotFoundError(f"Submission {submission_id} not found")
        return submission

    def list_for_submitter(
        self, submitter_id: str, status: SubmissionStatus | None = None
    ) -> list[Submission]:
        return self._storage.submissions.list_submissions(submitted_by=submitter_id, status=status)

    def pending_for_approver(self, approver_id: str) -> list[Submission]:
        """Pending submissions assigned to the approver that still need their approval."""
        return [
            item
            for item in self._storage.submissions.list_submissions(status=SubmissionStatus.PENDING)
            if approver_id in item.assigned_approvers and not item.has_approved(approver_id)
        ]

    def list_approved(self, submitted_by: str | None = None) -> list[Submission]:
        return self._storage.submissions.list_submissions(
            submitted_by=submitted_by, status=SubmissionStatus.APPROVED
        )

    # -- intake --------------------------------------------------------------

    def create(
        self,
        template_id: str,
        submitter: Actor,
        form_data: dict[str, Any],
        signature: bytes | None = None,
        attachments: tuple[Attachment, ...] = (),
        as_draft: bool = True,
    ) -> ActionResult:
        """Create a Draft, or a submission that goes straight to Pending Approval.

        Direct submission checks the submit precondition before anything is
        stored, so a failed submit leaves no record and sends nothing.
        """
        template = self.get_template(template_id)
        self._check_shape(template, form_data)
        now = self._clock()
        draft = Submission(
            id=new_ulid(),
            form_template_id=template.id,
            form_name=template.name,
            form_category=template.category,
            form_revision_number=template.revision_number,
            submitted_by=submitter.id,
            submitted_by_name=submitter.name,
            submitted_by_position=submitter.position,
            submitted_by_department=submitter.department,
            submitted_by_email=submitter.email,
            signature=signature,
            form_data=dict(form_data),
            attachments=tuple(attachments),
            created_at=now,
            updated_at=now,
        )
        if as_draft:
            stored = self._storage.submissions.create_submission(draft)
            logger.info("Draft %s created by %s for %s", stored.id, submitter.id, template.name)
            return ActionResult(stored)

        pending = self._to_pending(draft, template, now)
        stored = self._storage.submissions.create_submission(pending)
        logger.info("Submission %s submitted by %s for %s", stored.id, submitter.id, template.name)
        return ActionResult(stored, notifications=self._emit(stored, now))

    def update_draft(
        self,
        submission_id: str,
        actor_id: str,
        form_data: dict[str, Any] | None = None,
        signature: bytes | None = None,
        attachments: tuple[Attachment, ...] | None = None,
    ) -> Submission:
        current = self.get(submission_id)
        if form_data is not None:
            self._check_shape(self.get_template(current.form_template_id), form_data)

        def change(submission: Submission) -> Submission:
            self._require_owner(submission, actor_id)
            self._require_status(submission, SubmissionStatus.DRAFT, "edit")
            return replace(
                submission,
                form_data=dict(form_data) if form_data is not None else submission.form_data,
                signature=signature if signature is not None else submission.signature,
                attachments=tuple(attachments) if attachments is not None else submission.attachments,
                updated_at=self._clock(),
            )

        return self._mutate(submission_id, change)

    def submit(self, submission_id: str, actor_id: str) -> ActionResult:
        current = self.get(submission_id)
        template = self.get_template(current.form_template_id)

        def change(submission: Submission) -> Submission:
            self._require_owner(submission, actor_id)
            self._require_status(submission, SubmissionStatus.DRAFT, "submit")
            return self._to_pending(submission, template, self._clock())

        submitted = self._mutate(submission_id, change)
        logger.info("Draft %s submitted by %s", submission_id, actor_id)
        return ActionResult(
            submitted, notifications=self._emit(submitted, submitted.submitted_at or self._clock())
        )

    def delete(self, submission_id: str, actor_id: str) -> None:
        """Delete a Draft. Anything that entered the approval queue is kept."""
        for _ in range(self._retries):
            current = self.get(submission_id)
            self._require_owner(current, actor_id)
            self._require_status(current, SubmissionStatus.DRAFT, "delete")
            if self._storage.submissions.delete_submission(submission_id, current.version):
                logger.info("Draft %s deleted by %s", submission_id, actor_id)
                return
        # The draft kept changing underneath us; report whatever it is now.
        latest = self.get(submission_id)
        raise StaleStateError(
            f"Submission {submission_id} changed while deleting", latest.status.value
        )

    # -- approver actions ----------------------------------------------------

    def approve(
        self,
        submission_id: str,
        approver: Actor,
        signature: bytes | None = None,
        comments: str = "",
    ) -> ActionResult:
        outcome: dict[str, bool] = {}

        def change(submission: Submission) -> Submission:
            outcome.clear()
            self._require_acting_on_pending(submission, approver.id)
            if submission.has_approved(approver.id):
                raise DuplicateActionError(
                    f"{approver.id} already approved submission {submission.id}",
                    approver.id,
                    submission,
                )
            self._require_status(submission, SubmissionStatus.PENDING, "approve")
            now = self._clock()
            record = self._record(ApprovalAction.APPROVED, approver, now, signature, comments)
            timeline = submission.approval_timeline + (record,)
            status = derive_status(submission.assigned_approvers, timeline)
            outcome["completed"] = status == SubmissionStatus.APPROVED
            return replace(
                submission,
                approval_timeline=timeline,
                status=status,
                approved_at=now if status == SubmissionStatus.APPROVED else submission.approved_at,
                updated_at=now,
            )

        try:
            updated = self._mutate(submission_id, change)
        except DuplicateActionError:
            logger.info("Duplicate approval of %s by %s ignored", submission_id, approver.id)
            raise
        completed = outcome.get("completed", False)
        if completed:
            logger.info("Submission %s fully approved (last approver %s)", submission_id, approver.id)
        else:
            remaining = [a for a in updated.assigned_approvers if not updated.has_approved(a)]
            logger.info(
                "Submission %s partially approved by %s, waiting for %s",
                submission_id,
                approver.id,
                ", ".join(remaining),
            )
        return ActionResult(updated, completed=completed)

    def reject(
        self,
        submission_id: str,
        approver: Actor,
        reason: str,
        signature: bytes | None = None,
    ) -> ActionResult:
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError(
                "A reason is required to reject a form", messages=["reason is required"]
            )

        def change(submission: Submission) -> Submission:
            self._require_acting_on_pending(submission, approver.id)
            self._require_status(submission, SubmissionStatus.PENDING, "reject")
            now = self._clock()
            record = self._record(ApprovalAction.REJECTED, approver, now, signature, reason)
            timeline = submission.approval_timeline + (record,)
            return replace(
                submission,
                approval_timeline=timeline,
                status=derive_status(submission.assigned_approvers, timeline),
                rejected_at=now,
                rejected_by=approver.id,
                rejection_reason=reason,
                updated_at=now,
            )

        updated = self._mutate(submission_id, change)
        logger.info("Submission %s rejected by %s", submission_id, approver.id)
        return ActionResult(updated)

    # -- helpers -------------------------------------------------------------

    def _mutate(self, submission_id: str, change: Callable[[Submission], Submission]) -> Submission:
        try:
            return self._storage.submissions.mutate(submission_id, change)
        except KeyError as exc:
            raise NotFoundError(f"Submission {submission_id} not found") from exc

    def _to_pending(self, submission: Submission, template: FormTemplate, now: datetime) -> Submission:
        missing = missing_required_fields(template, submission.form_data)
        messages = [f"{label} is required" for label in missing]
        if submission.signature is None:
            messages.append("a signature is required before submitting")
        if not template.approvers:
            messages.append(f"form template {template.name} has no approvers assigned")
        if messages:
            raise ValidationError(
                "Submission is incomplete", missing_fields=missing, messages=messages
            )
        record = ApprovalRecord(
            action=ApprovalAction.SUBMITTED,
            by=submission.submitted_by,
            timestamp=now,
            by_name=submission.submitted_by_name,
            by_position=submission.submitted_by_position,
            by_department=submission.submitted_by_department,
        )
        timeline = submission.approval_timeline + (record,)
        assigned = tuple(template.approvers)
        return replace(
            submission,
            form_name=template.name,
            form_category=template.category,
            form_revision_number=template.revision_number,
            assigned_approvers=assigned,
            approval_timeline=timeline,
            status=derive_status(assigned, timeline),
            submitted_at=now,
            updated_at=now,
        )

    def _emit(self, submission: Submission, now: datetime) -> tuple[Notification, ...]:
        notifications = submission_notifications(submission, now)
        try:
            self._notifier.notify(notifications)
        except Exception:
            logger.exception("Could not deliver notifications for submission %s", submission.id)
        return tuple(notifications)

    @staticmethod
    def _check_shape(template: FormTemplate, form_data: Any) -> None:
        messages = validate_form_data(template, form_data)
        if messages:
            raise ValidationError("Form data does not match the template", messages=messages)

    @staticmethod
    def _record(
        action: ApprovalAction,
        actor: Actor,
        now: datetime,
        signature: bytes | None,
        comments: str,
    ) -> ApprovalRecord:
        return ApprovalRecord(
            action=action,
            by=actor.id,
            timestamp=now,
            by_name=actor.name,
            by_position=actor.position,
            by_department=actor.department,
            signature=signature,
            comments=(comments or "").strip(),
        )

    @staticmethod
    def _require_owner(submission: Submission, actor_id: str) -> None:
        if submission.submitted_by != actor_id:
            raise NotAuthorizedError(f"{actor_id} does not own submission {submission.id}")

    @classmethod
    def _require_acting_on_pending(cls, submission: Submission, approver_id: str) -> None:
        # Drafts have no approver snapshot yet, so report the state first.
        if submission.status == SubmissionStatus.DRAFT:
            cls._require_status(submission, SubmissionStatus.PENDING, "act on")
        if approver_id not in submission.assigned_approvers:
            raise NotAuthorizedError(
                f"{approver_id} is not an assigned approver of submission {submission.id}"
            )

    @staticmethod
    def _require_status(submission: Submission, expected: SubmissionStatus, action: str) -> None:
        if submission.status != expected:
            raise StaleStateError(
                f"Cannot {action} submission {submission.id} while it is {submission.status.value}",
                submission.status.value,
            )
