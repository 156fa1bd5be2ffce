from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone

from conftest import leave_template, make_png

from formportal.domain import (
    ApprovalAction,
    ApprovalRecord,
    FormTemplate,
    Submission,
    SubmissionStatus,
)
from formportal.layout import (
    BODY_FONT,
    CONTENT_BOTTOM,
    MARGIN,
    PAGE_WIDTH,
    SIGNATURE_COLUMN_WIDTH,
    Checkbox,
    DocumentHeader,
    Line,
    Picture,
    Text,
    approver_label,
    layout_document,
    text_width,
    wrap_text,
)

HEADER = DocumentHeader("ACME SHIPPING", ("1 Harbor Road", "Tel. 555-0100"))
SUBMITTED_AT = datetime(2024, 3, 5, 9, 0, tzinfo=timezone.utc)


def approved_submission(approvers=("bob", "carol"), form_data=None, signature=None):
    signature = make_png() if signature is None else signature
    timeline = [
        ApprovalRecord(ApprovalAction.SUBMITTED, "alice", SUBMITTED_AT, by_name="Alice Reyes")
    ]
    for index, approver in enumerate(approvers, start=1):
        timeline.append(
            ApprovalRecord(
                ApprovalAction.APPROVED,
                approver,
                SUBMITTED_AT + timedelta(days=index),
                by_name=approver.title(),
                by_position="Approver",
                signature=signature,
            )
        )
    return Submission(
        id="sub-1",
        form_template_id="leave",
        form_name="Leave Application",
        submitted_by="alice",
        submitted_by_name="Alice Reyes",
        submitted_by_position="Deck Officer",
        submitted_by_department="Operations",
        created_at=SUBMITTED_AT,
        submitted_at=SUBMITTED_AT,
        signature=signature,
        form_data=form_data
        if form_data is not None
        else {
            "employee_name": "Alice Reyes",
            "leave_type": "Vacation",
            "start_date": "2024-03-11",
            "reason": "Family visit",
            "certify": True,
        },
        assigned_approvers=tuple(approvers),
        status=SubmissionStatus.APPROVED,
        approval_timeline=tuple(timeline),
    )


def all_texts(layout):
    return [text for page in layout.pages for text in page.texts()]


def test_single_page_document():
    layout = layout_document(approved_submission(), leave_template(), HEADER)
    assert len(layout.pages) == 1
    texts = layout.pages[0].texts()
    assert texts[0] == "ACME SHIPPING"
    assert "LEAVE APPLICATION" in texts
    assert "March 5, 2024" in texts
    assert "Page 1 of 1" in texts
    assert "ISC LH Rev.00/ Jan 2, 2024" in texts
    assert "NOTES:" in texts
    assert "Leave policy applies" not in " ".join(texts)


def test_fields_follow_template_order():
    layout = layout_document(approved_submission(), leave_template(), HEADER)
    labels = [
        text
        for text in layout.pages[0].texts()
        if text in {"Employee Name:", "Leave Type:", "Start Date:", "Reason:",
                    "I certify the above is true"}
    ]
    assert labels == [
        "Employee Name:",
        "Leave Type:",
        "Start Date:",
        "Reason:",
        "I certify the above is true",
    ]
    boxes = [op for op in layout.pages[0].ops if isinstance(op, Checkbox)]
    assert len(boxes) == 1 and boxes[0].checked


def test_empty_textarea_gets_ruled_lines():
    data = {"employee_name": "Alice Reyes", "leave_type": "Sick", "start_date": "2024-03-11"}
    layout = layout_document(approved_submission(form_data=data), leave_template(), HEADER)
    full_width = [
        op
        for op in layout.pages[0].ops
        if isinstance(op, Line) and op.x1 == MARGIN and op.x2 == PAGE_WIDTH - MARGIN
    ]
    assert len(full_width) == 3


def test_long_textarea_breaks_by_line():
    reason = " ".join(["overtime"] * 3000)
    data = {"employee_name": "Alice Reyes", "leave_type": "Sick",
            "start_date": "2024-03-11", "reason": reason}
    layout = layout_document(approved_submission(form_data=data), leave_template(), HEADER)

    total = len(layout.pages)
    assert total >= 3
    assert all_texts(layout).count("Reason:") == 1
    for page in layout.pages:
        texts = page.texts()
        assert texts[0] == "ACME SHIPPING"
        assert f"Page {page.number} of {total}" in texts
        assert "ISC LH Rev.00/ Jan 2, 2024" in texts
        for op in page.ops:
            if isinstance(op, Text) and op.font == BODY_FONT and op.size == 10:
                assert op.y < CONTENT_BOTTOM
    assert any("overtime" in text for text in layout.pages[1].texts())


def test_three_signatures_center_the_last():
    layout = layout_document(approved_submission(), leave_template(), HEADER)
    blocks = layout.signature_blocks
    assert [b.label for b in blocks] == [
        "Signature of Employee",
        "Supervisor's Approval",
        "HR Approval",
    ]
    assert blocks[0].y == blocks[1].y
    assert blocks[0].x == MARGIN
    assert blocks[1].x > blocks[0].x
    assert blocks[2].y > blocks[0].y
    assert blocks[2].x == (PAGE_WIDTH - SIGNATURE_COLUMN_WIDTH) / 2
    assert all(b.has_image for b in blocks)
    assert blocks[0].date == "3/5/2024"
    assert blocks[2].date == "3/7/2024"


def test_signature_grid_beyond_three_levels():
    approvers = ("bob", "carol", "dan", "erin")
    layout = layout_document(approved_submission(approvers=approvers), leave_template(), HEADER)
    labels = [b.label for b in layout.signature_blocks]
    assert labels == [
        "Signature of Employee",
        "Supervisor's Approval",
        "HR Approval",
        "Management Approval",
        "Level 4 Approval",
    ]
    assert layout.signature_blocks[4].x == MARGIN
    assert approver_label(6) == "Level 7 Approval"


def test_approvals_are_counted_once_per_approver():
    submission = approved_submission()
    repeated = submission.approval_timeline + (submission.approval_timeline[1],)
    layout = layout_document(
        replace(submission, approval_timeline=repeated),
        leave_template(),
        HEADER,
    )
    assert len(layout.signature_blocks) == 3


def test_undecodable_signature_falls_back_to_name(caplog):
    submission = approved_submission(signature=b"not an image")
    with caplog.at_level(logging.WARNING, logger="formportal.layout"):
        layout = layout_document(submission, leave_template(), HEADER)
    assert not any(b.has_image for b in layout.signature_blocks)
    assert not any(isinstance(op, Picture) for op in layout.pages[-1].ops)
    italic = [
        op.text
        for op in layout.pages[-1].ops
        if isinstance(op, Text) and op.font == "Helvetica-Oblique"
    ]
    assert italic == ["Alice Reyes", "Bob", "Carol"]
    assert "could not be decoded" in caplog.text


def test_template_without_fields_renders_stored_values():
    submission = approved_submission(
        form_data={"employeeName": "Alice Reyes", "FIELD_2": "trip", "FIELD_1": "Jane Uniquevalue"}
    )
    template = FormTemplate(id="leave", name="Leave Application")
    layout = layout_document(submission, template, HEADER)
    texts = layout.pages[0].texts()
    assert "Alice Reyes" in texts
    assert "Jane Uniquevalue" in texts
    assert "trip" in texts
    assert texts.index("Field 1:") < texts.index("Field 2:") < texts.index("Employee Name:")


def test_long_unbroken_textarea_value_wraps_within_margins():
    data = {"employee_name": "Alice Reyes", "leave_type": "Sick",
            "start_date": "2024-03-11", "reason": "x" * 400}
    layout = layout_document(approved_submission(form_data=data), leave_template(), HEADER)
    width = PAGE_WIDTH - 2 * MARGIN
    lines = [
        op.text
        for op in layout.pages[0].ops
        if isinstance(op, Text) and op.x == MARGIN and set(op.text) == {"x"}
    ]
    assert len(lines) > 1
    assert "".join(lines) == "x" * 400
    assert all(text_width(line) <= width for line in lines)


def test_wrap_text_breaks_long_words_only():
    url = "https://example.com/" + "a" * 200
    lines = wrap_text(f"see {url} for details", 60)
    assert lines[0] == "see"
    assert lines[-1] == "for details"
    assert "".join(lines[1:-1]) == url
    assert all(text_width(line) <= 60 for line in lines)
