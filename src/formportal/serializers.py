from __future__ import annotations

from typing import Any

from formportal.domain import (
    FormTemplate,
    Notification,
    Submission,
    SubmissionStatus,
    field_to_record,
    notification_to_record,
    submission_to_record,
    template_to_record,
)


def template_output(template: FormTemplate) -> dict[str, Any]:
    return template_to_record(template)


def template_summary(template: FormTemplate) -> dict[str, Any]:
    return {
        "id": template.id,
        "name": template.name,
        "description": template.description,
        "category": template.category,
        "revision_number": template.revision_number,
        "field_count": len([item for item in template.fields if not item.is_note]),
        "approvers": list(template.approvers),
    }


def submission_output(submission: Submission, include_blobs: bool = True) -> dict[str, Any]:
    record = submission_to_record(submission)
    approved = submission.approved_by()
    record["approved_by"] = approved
    record["partially_approved_by"] = (
        approved if submission.status == SubmissionStatus.PENDING else []
    )
    record["fully_approved_by"] = (
        approved if submission.status == SubmissionStatus.APPROVED else []
    )
    if not include_blobs:
        record["signature"] = None
        record["has_signature"] = submission.signature is not None
        for item in record["attachments"]:
            item["data"] = None
        for item in record["approval_timeline"]:
            item["signature"] = None
    return record


def notification_output(notification: Notification) -> dict[str, Any]:
    return notification_to_record(notification)


def fill_output(template: FormTemplate, fields: list, values: dict[str, Any]) -> dict[str, Any]:
    return {
        "template_id": template.id,
        "name": template.name,
        "revision_number": template.revision_number,
        "notes": template.notes,
        "fields": [field_to_record(item) for item in fields],
        "values": values,
    }
