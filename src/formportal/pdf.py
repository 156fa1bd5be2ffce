from __future__ import annotations

import logging
from io import BytesIO

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from formportal.config import Settings
from formportal.domain import FormTemplate, Submission, SubmissionStatus
from formportal.errors import DocumentNotApprovedError, NotFoundError
from formportal.layout import (
    BLACK,
    Checkbox,
    DocumentHeader,
    DocumentLayout,
    Line,
    PAGE_HEIGHT,
    Picture,
    Text,
    layout_document,
)
from formportal.storage import Storage

logger = logging.getLogger(__name__)


def header_from_settings(settings: Settings) -> DocumentHeader:
    return DocumentHeader(org_name=settings.org_name, lines=tuple(settings.org_lines))


def render_document(
    submission: Submission,
    template: FormTemplate,
    header: DocumentHeader,
) -> bytes:
    """Render the signed document of a fully approved submission.

    Rendering depends only on stored data, so the same submission always
    produces the same bytes.
    """
    if submission.status != SubmissionStatus.APPROVED:
        raise DocumentNotApprovedError(
            f"Submission {submission.id} is {submission.status.value}, not Approved",
            submission.status.value,
        )
    layout = layout_document(submission, template, header)
    data = paint(layout, author=header.org_name)
    logger.info(
        "Rendered document for submission %s (%d pages)", submission.id, len(layout.pages)
    )
    return data


def render_stored_document(storage: Storage, submission_id: str, header: DocumentHeader) -> bytes:
    submission = storage.submissions.get_submission(submission_id)
    if submission is None:
        raise NotFoundError(f"Submission {submission_id} not found")
    template = storage.templates.get_template(submission.form_template_id)
    if template is None:
        logger.warning(
            "Template %s of submission %s is gone, rendering stored values only",
            submission.form_template_id,
            submission_id,
        )
        template = FormTemplate(
            id=submission.form_template_id,
            name=submission.form_name,
            revision_number=submission.form_revision_number,
        )
    return render_document(submission, template, header)


def paint(layout: DocumentLayout, author: str = "") -> bytes:
    buf = BytesIO()
    pdf = canvas.Canvas(buf, pagesize=A4, invariant=1)
    pdf.setTitle(layout.title)
    if author:
        pdf.setAuthor(author)
    for page in layout.pages:
        for op in page.ops:
            _draw(pdf, op)
        pdf.showPage()
    pdf.save()
    return buf.getvalue()


def _y(value: float) -> float:
    return (PAGE_HEIGHT - value) * mm


def _rgb(pdf: canvas.Canvas, color: tuple[int, int, int], stroke: bool = False) -> None:
    r, g, b = (c / 255 for c in color)
    if stroke:
        pdf.setStrokeColorRGB(r, g, b)
    else:
        pdf.setFillColorRGB(r, g, b)


def _draw(pdf: canvas.Canvas, op: object) -> None:
    if isinstance(op, Text):
        _rgb(pdf, op.color)
        pdf.setFont(op.font, op.size)
        if op.align == "center":
            pdf.drawCentredString(op.x * mm, _y(op.y), op.text)
        elif op.align == "right":
            pdf.drawRightString(op.x * mm, _y(op.y), op.text)
        else:
            pdf.drawString(op.x * mm, _y(op.y), op.text)
    elif isinstance(op, Line):
        _rgb(pdf, op.color, stroke=True)
        pdf.setLineWidth(op.width * mm)
        pdf.line(op.x1 * mm, _y(op.y1), op.x2 * mm, _y(op.y2))
    elif isinstance(op, Checkbox):
        _rgb(pdf, BLACK, stroke=True)
        pdf.setLineWidth(0.3 * mm)
        pdf.rect(op.x * mm, _y(op.y + op.size), op.size * mm, op.size * mm, stroke=1, fill=0)
        if op.checked:
            pdf.line(op.x * mm, _y(op.y), (op.x + op.size) * mm, _y(op.y + op.size))
            pdf.line((op.x + op.size) * mm, _y(op.y), op.x * mm, _y(op.y + op.size))
    elif isinstance(op, Picture):
        pdf.drawImage(
            ImageReader(BytesIO(op.data)),
            op.x * mm,
            _y(op.y + op.height),
            width=op.width * mm,
            height=op.height * mm,
            preserveAspectRatio=True,
            anchor="c",
            mask="auto",
        )
    else:
        raise TypeError(f"Unknown draw operation: {op!r}")
