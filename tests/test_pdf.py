from __future__ import annotations

from dataclasses import replace
from io import BytesIO

import pytest
from conftest import ALICE, BOB, CAROL, leave_template
from pypdf import PdfReader
from test_layout import HEADER, approved_submission

from formportal.domain import FormTemplate, SubmissionStatus
from formportal.errors import DocumentNotApprovedError, NotFoundError
from formportal.layout import layout_document
from formportal.pdf import render_document, render_stored_document
from formportal.schema import parse_template_fields


def page_count(data: bytes) -> int:
    return len(PdfReader(BytesIO(data)).pages)


def test_render_is_deterministic():
    submission = approved_submission()
    first = render_document(submission, leave_template(), HEADER)
    second = render_document(submission, leave_template(), HEADER)
    assert first.startswith(b"%PDF")
    assert first == second


def test_pdf_matches_layout():
    data = {"employee_name": "Alice Reyes", "leave_type": "Sick", "start_date": "2024-03-11",
            "reason": " ".join(["overtime"] * 1500)}
    submission = approved_submission(form_data=data)
    layout = layout_document(submission, leave_template(), HEADER)
    pdf = render_document(submission, leave_template(), HEADER)

    reader = PdfReader(BytesIO(pdf))
    assert len(reader.pages) == len(layout.pages) > 1
    first = reader.pages[0].extract_text()
    assert "LEAVE APPLICATION" in first
    assert "ACME SHIPPING" in first
    assert f"Page 1 of {len(layout.pages)}" in first
    last = reader.pages[-1].extract_text()
    assert "Signature of Employee" in last
    assert "HR Approval" in last


def test_render_with_undecodable_signature():
    submission = approved_submission(signature=b"\x89PNG broken")
    pdf = render_document(submission, leave_template(), HEADER)
    assert page_count(pdf) == 1


@pytest.mark.parametrize("status", ["Draft", "Pending Approval", "Rejected"])
def test_only_approved_submissions_render(status):
    submission = replace(approved_submission(), status=SubmissionStatus(status))
    with pytest.raises(DocumentNotApprovedError) as excinfo:
        render_document(submission, leave_template(), HEADER)
    assert excinfo.value.status == status


def test_render_stored_document(engine, storage, make_template, form_data, signature_png):
    template = make_template()
    pending = engine.create(
        template.id, ALICE, form_data, signature=signature_png, as_draft=False
    ).submission

    with pytest.raises(DocumentNotApprovedError):
        render_stored_document(storage, pending.id, HEADER)

    engine.approve(pending.id, BOB, signature=signature_png)
    engine.approve(pending.id, CAROL, signature=signature_png)
    first = render_stored_document(storage, pending.id, HEADER)
    assert page_count(first) == 1
    assert render_stored_document(storage, pending.id, HEADER) == first

    storage.templates.delete_template(template.id)
    assert page_count(render_stored_document(storage, pending.id, HEADER)) >= 1

    with pytest.raises(NotFoundError):
        render_stored_document(storage, "missing", HEADER)


def test_deleted_template_keeps_values_and_revision(engine, storage, signature_png):
    fields, errors = parse_template_fields(
        [
            {"label": "Traveller", "type": "text", "required": True},
            {"label": "Purpose", "type": "textarea"},
        ]
    )
    assert errors == []
    template = FormTemplate(
        id="travel",
        name="Travel Request",
        fields=tuple(fields),
        approvers=("bob",),
        revision_number="ISC TR Rev.02/ Feb 1, 2024",
    )
    storage.templates.create_template(template)
    submitted = engine.create(
        "travel",
        ALICE,
        {"FIELD_1": "Jane Uniquevalue", "FIELD_2": "trip"},
        signature=signature_png,
        as_draft=False,
    ).submission
    assert submitted.form_revision_number == "ISC TR Rev.02/ Feb 1, 2024"
    engine.approve(submitted.id, BOB, signature=signature_png)

    storage.templates.delete_template("travel")
    stored = storage.submissions.get_submission(submitted.id)
    assert stored.form_revision_number == "ISC TR Rev.02/ Feb 1, 2024"
    reader = PdfReader(BytesIO(render_stored_document(storage, submitted.id, HEADER)))
    text = reader.pages[0].extract_text()
    assert "Jane Uniquevalue" in text
    assert "Field 1:" in text
    assert "ISC TR Rev.02/ Feb 1, 2024" in text
