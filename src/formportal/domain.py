from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterable

from formportal.utils import decode_blob, encode_blob, parse_dt, to_iso


class SubmissionStatus(str, Enum):
    DRAFT = "Draft"
    PENDING = "Pending Approval"
    APPROVED = "Approved"
    REJECTED = "Rejected"

    @property
    def is_terminal(self) -> bool:
        return self in (SubmissionStatus.APPROVED, SubmissionStatus.REJECTED)


class ApprovalAction(str, Enum):
    SUBMITTED = "Submitted"
    APPROVED = "Approved"
    REJECTED = "Rejected"


FIELD_TYPES = ("text", "email", "textarea", "number", "date", "select", "checkbox")


@dataclass(frozen=True)
class FormField:
    id: str
    label: str
    type: str = "text"
    required: bool = False
    placeholder: str = ""
    options: tuple[str, ...] = ()
    is_note: bool = False


@dataclass(frozen=True)
class ReferenceDocument:
    name: str
    data: bytes
    mime_type: str = ""
    size: int = 0


@dataclass(frozen=True)
class FormTemplate:
    id: str
    name: str
    fields: tuple[FormField, ...] = ()
    approvers: tuple[str, ...] = ()
    description: str = ""
    category: str = ""
    notes: str = ""
    revision_number: str = ""
    reference_document: ReferenceDocument | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def get_field(self, field_id: str) -> FormField | None:
        for item in self.fields:
            if item.id == field_id:
                return item
        return None


@dataclass(frozen=True)
class Actor:
    """Identity plus the profile values denormalized into records."""

    id: str
    name: str = ""
    position: str = ""
    department: str = ""
    email: str = ""


@dataclass(frozen=True)
class Attachment:
    name: str
    data: bytes
    type: str = ""
    size: int = 0


@dataclass(frozen=True)
class ApprovalRecord:
    action: ApprovalAction
    by: str
    timestamp: datetime
    by_name: str = ""
    by_position: str = ""
    by_department: str = ""
    signature: bytes | None = None
    comments: str = ""


@dataclass(frozen=True)
class Submission:
    id: str
    form_template_id: str
    form_name: str
    submitted_by: str
    created_at: datetime
    form_category: str = ""
    form_revision_number: str = ""
    submitted_by_name: str = ""
    submitted_by_position: str = ""
    submitted_by_department: str = ""
    submitted_by_email: str = ""
    signature: bytes | None = None
    form_data: dict[str, Any] = field(default_factory=dict)
    attachments: tuple[Attachment, ...] = ()
    assigned_approvers: tuple[str, ...] = ()
    status: SubmissionStatus = SubmissionStatus.DRAFT
    approval_timeline: tuple[ApprovalRecord, ...] = ()
    updated_at: datetime | None = None
    submitted_at: datetime | None = None
    approved_at: datetime | None = None
    rejected_at: datetime | None = None
    rejected_by: str = ""
    rejection_reason: str = ""
    version: int = 0

    def approved_by(self) -> list[str]:
        """Distinct approver ids with an Approved record, in timeline order."""
        seen: list[str] = []
        for record in self.approval_timeline:
            if record.action == ApprovalAction.APPROVED and record.by not in seen:
                seen.append(record.by)
        return seen

    def approved_records(self) -> list[ApprovalRecord]:
        records: list[ApprovalRecord] = []
        seen: set[str] = set()
        for record in self.approval_timeline:
            if record.action == ApprovalAction.APPROVED and record.by not in seen:
                seen.add(record.by)
                records.append(record)
        return records

    def has_approved(self, approver_id: str) -> bool:
        return approver_id in self.approved_by()


@dataclass(frozen=True)
class Notification:
    id: str
    recipient_id: str
    form_id: str
    title: str
    message: str
    created_at: datetime
    type: str = "form_submitted"
    read: bool = False


def derive_status(
    assigned_approvers: Iterable[str],
    timeline: Iterable[ApprovalRecord],
) -> SubmissionStatus:
    """Status as a pure function of the approver snapshot and the timeline."""
    submitted = False
    rejected = False
    approved: set[str] = set()
    for record in timeline:
        if record.action == ApprovalAction.SUBMITTED:
            submitted = True
        elif record.action == ApprovalAction.REJECTED:
            rejected = True
        elif record.action == ApprovalAction.APPROVED:
            approved.add(record.by)
    if rejected:
        return SubmissionStatus.REJECTED
    if not submitted:
        return SubmissionStatus.DRAFT
    required = set(assigned_approvers)
    if required and required <= approved:
        return SubmissionStatus.APPROVED
    return SubmissionStatus.PENDING


# -- record conversion -------------------------------------------------------


def _iso_or_none(value: datetime | None) -> str | None:
    return to_iso(value) if value else None


def field_to_record(item: FormField) -> dict[str, Any]:
    return {
        "id": item.id,
        "label": item.label,
        "type": item.type,
        "required": item.required,
        "placeholder": item.placeholder,
        "options": list(item.options),
        "is_note": item.is_note,
    }


def field_from_record(record: dict[str, Any]) -> FormField:
    return FormField(
        id=str(record["id"]),
        label=str(record.get("label", "")),
        type=str(record.get("type", "text")),
        required=bool(record.get("required", False)),
        placeholder=str(record.get("placeholder") or ""),
        options=tuple(str(option) for option in record.get("options") or []),
        is_note=bool(record.get("is_note", False)),
    )


def template_to_record(template: FormTemplate) -> dict[str, Any]:
    reference = template.reference_document
    return {
        "id": template.id,
        "name": template.name,
        "description": template.description,
        "category": template.category,
        "fields": [field_to_record(item) for item in template.fields],
        "approvers": list(template.approvers),
        "notes": template.notes,
        "revision_number": template.revision_number,
        "reference_document": (
            {
                "name": reference.name,
                "data": encode_blob(reference.data),
                "mime_type": reference.mime_type,
                "size": reference.size,
            }
            if reference
            else None
        ),
        "created_at": _iso_or_none(template.created_at),
        "updated_at": _iso_or_none(template.updated_at),
    }


def template_from_record(record: dict[str, Any]) -> FormTemplate:
    raw_reference = record.get("reference_document")
    reference = None
    if raw_reference:
        data = decode_blob(raw_reference.get("data")) or b""
        reference = ReferenceDocument(
            name=str(raw_reference.get("name", "")),
            data=data,
            mime_type=str(raw_reference.get("mime_type", "")),
            size=int(raw_reference.get("size") or len(data)),
        )
    return FormTemplate(
        id=str(record["id"]),
        name=str(record.get("name", "")),
        description=str(record.get("description") or ""),
        category=str(record.get("category") or ""),
        fields=tuple(field_from_record(item) for item in record.get("fields") or []),
        approvers=tuple(str(item) for item in record.get("approvers") or []),
        notes=str(record.get("notes") or ""),
        revision_number=str(record.get("revision_number") or ""),
        reference_document=reference,
        created_at=parse_dt(record.get("created_at")),
        updated_at=parse_dt(record.get("updated_at")),
    )


def approval_record_to_record(record: ApprovalRecord) -> dict[str, Any]:
    return {
        "action": record.action.value,
        "by": record.by,
        "by_name": record.by_name,
        "by_position": record.by_position,
        "by_department": record.by_department,
        "signature": encode_blob(record.signature),
        "timestamp": to_iso(record.timestamp),
        "comments": record.comments,
    }


def approval_record_from_record(record: dict[str, Any]) -> ApprovalRecord:
    return ApprovalRecord(
        action=ApprovalAction(record["action"]),
        by=str(record["by"]),
        timestamp=parse_dt(record.get("timestamp")),
        by_name=str(record.get("by_name") or ""),
        by_position=str(record.get("by_position") or ""),
        by_department=str(record.get("by_department") or ""),
        signature=decode_blob(record.get("signature")),
        comments=str(record.get("comments") or ""),
    )


def submission_to_record(submission: Submission) -> dict[str, Any]:
    return {
        "id": submission.id,
        "form_template_id": submission.form_template_id,
        "form_name": submission.form_name,
        "form_category": submission.form_category,
        "form_revision_number": submission.form_revision_number,
        "submitted_by": submission.submitted_by,
        "submitted_by_name": submission.submitted_by_name,
        "submitted_by_position": submission.submitted_by_position,
        "submitted_by_department": submission.submitted_by_department,
        "submitted_by_email": submission.submitted_by_email,
        "signature": encode_blob(submission.signature),
        "form_data": dict(submission.form_data),
        "attachments": [
            {
                "name": item.name,
                "data": encode_blob(item.data),
                "type": item.type,
                "size": item.size,
            }
            for item in submission.attachments
        ],
        "assigned_approvers": list(submission.assigned_approvers),
        "status": submission.status.value,
        "approval_timeline": [
            approval_record_to_record(item) for item in submission.approval_timeline
        ],
        "created_at": to_iso(submission.created_at),
        "updated_at": _iso_or_none(submission.updated_at),
        "submitted_at": _iso_or_none(submission.submitted_at),
        "approved_at": _iso_or_none(submission.approved_at),
        "rejected_at": _iso_or_none(submission.rejected_at),
        "rejected_by": submission.rejected_by,
        "rejection_reason": submission.rejection_reason,
        "version": submission.version,
    }


def submission_from_record(record: dict[str, Any]) -> Submission:
    return Submission(
        id=str(record["id"]),
        form_template_id=str(record.get("form_template_id", "")),
        form_name=str(record.get("form_name", "")),
        form_category=str(record.get("form_category") or ""),
        form_revision_number=str(record.get("form_revision_number") or ""),
        submitted_by=str(record.get("submitted_by", "")),
        submitted_by_name=str(record.get("submitted_by_name") or ""),
        submitted_by_position=str(record.get("submitted_by_position") or ""),
        submitted_by_department=str(record.get("submitted_by_department") or ""),
        submitted_by_email=str(record.get("submitted_by_email") or ""),
        signature=decode_blob(record.get("signature")),
        form_data=dict(record.get("form_data") or {}),
        attachments=tuple(
            Attachment(
                name=str(item.get("name", "")),
                data=decode_blob(item.get("data")) or b"",
                type=str(item.get("type") or ""),
                size=int(item.get("size") or 0),
            )
            for item in record.get("attachments") or []
        ),
        assigned_approvers=tuple(record.get("assigned_approvers") or []),
        status=SubmissionStatus(record.get("status", SubmissionStatus.DRAFT.value)),
        approval_timeline=tuple(
            approval_record_from_record(item)
            for item in record.get("approval_timeline") or []
        ),
        created_at=parse_dt(record.get("created_at")),
        updated_at=parse_dt(record.get("updated_at")),
        submitted_at=parse_dt(record.get("submitted_at")),
        approved_at=parse_dt(record.get("approved_at")),
        rejected_at=parse_dt(record.get("rejected_at")),
        rejected_by=str(record.get("rejected_by") or ""),
        rejection_reason=str(record.get("rejection_reason") or ""),
        version=int(record.get("version") or 0),
    )


def notification_to_record(notification: Notification) -> dict[str, Any]:
    return {
        "id": notification.id,
        "recipient_id": notification.recipient_id,
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "form_id": notification.form_id,
        "created_at": to_iso(notification.created_at),
        "read": notification.read,
    }


def notification_from_record(record: dict[str, Any]) -> Notification:
    return Notification(
        id=str(record["id"]),
        recipient_id=str(record.get("recipient_id", "")),
        type=str(record.get("type") or "form_submitted"),
        title=str(record.get("title") or ""),
        message=str(record.get("message") or ""),
        form_id=str(record.get("form_id") or ""),
        created_at=parse_dt(record.get("created_at")),
        read=bool(record.get("read", False)),
    )
