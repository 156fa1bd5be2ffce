"""Page layout for the signed approval document.

The layout is computed in millimetres from the top-left corner of an A4 page
and kept as plain draw operations, so pagination can be inspected without
parsing a PDF. ``formportal.pdf`` paints it with reportlab.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import datetime
from io import BytesIO
from typing import Any, Union

from PIL import Image, UnidentifiedImageError
from reportlab.lib.units import mm
from reportlab.lib.utils import simpleSplit
from reportlab.pdfbase.pdfmetrics import stringWidth

from formportal.domain import FormField, FormTemplate, Submission
from formportal.utils import format_long_date, format_numeric_date

logger = logging.getLogger(__name__)

PAGE_WIDTH = 210.0
PAGE_HEIGHT = 297.0
MARGIN = 20.0
CONTENT_TOP = MARGIN + 28
# Body blocks never extend past this line; the space below is kept for the
# signature grid and the footer.
CONTENT_BOTTOM = PAGE_HEIGHT - 70
SIGNATURE_BOTTOM = PAGE_HEIGHT - 15
FOOTER_Y = PAGE_HEIGHT - 10

FIELD_LINE_HEIGHT = 6.0
TEXTAREA_LABEL_HEIGHT = 5.0
TEXTAREA_LINE_HEIGHT = 4.5
TEXTAREA_BLANK_LINES = 3
NOTES_LABEL_HEIGHT = 5.0
NOTES_LINE_HEIGHT = 4.0
EMPTY_VALUE_RULE = 50.0
CHECKBOX_SIZE = 4.0

SIGNATURE_BLOCK_HEIGHT = 45.0
SIGNATURE_GUTTER = 10.0
SIGNATURE_COLUMN_WIDTH = (PAGE_WIDTH - 2 * MARGIN - SIGNATURE_GUTTER) / 2

BODY_FONT = "Helvetica"
BOLD_FONT = "Helvetica-Bold"
ITALIC_FONT = "Helvetica-Oblique"

BLACK = (0, 0, 0)
GREY = (150, 150, 150)
DARK_GREY = (100, 100, 100)
SIGNATURE_BLUE = (0, 102, 204)

APPROVER_LABELS = ("Supervisor's Approval", "HR Approval", "Management Approval")
SUBMITTER_LABEL = "Signature of Employee"

Color = tuple[int, int, int]


@dataclass(frozen=True)
class DocumentHeader:
    org_name: str
    lines: tuple[str, ...] = ()


@dataclass(frozen=True)
class Text:
    x: float
    y: float
    text: str
    font: str = BODY_FONT
    size: float = 10
    color: Color = BLACK
    align: str = "left"


@dataclass(frozen=True)
class Line:
    x1: float
    y1: float
    x2: float
    y2: float
    width: float = 0.3
    color: Color = GREY


@dataclass(frozen=True)
class Checkbox:
    x: float
    y: float
    size: float
    checked: bool


@dataclass(frozen=True)
class Picture:
    x: float
    y: float
    width: float
    height: float
    data: bytes


Op = Union[Text, Line, Checkbox, Picture]


@dataclass
class Page:
    number: int
    ops: list[Op] = field(default_factory=list)

    def texts(self) -> list[str]:
        return [op.text for op in self.ops if isinstance(op, Text)]


@dataclass(frozen=True)
class SignatureBlock:
    label: str
    name: str
    position: str
    department: str
    date: str
    page: int
    x: float
    y: float
    has_image: bool


@dataclass
class DocumentLayout:
    title: str
    pages: list[Page] = field(default_factory=list)
    signature_blocks: list[SignatureBlock] = field(default_factory=list)


def text_width(text: str, font: str = BODY_FONT, size: float = 10) -> float:
    return stringWidth(text, font, size) / mm


def wrap_text(text: str, width: float, font: str = BODY_FONT, size: float = 10) -> list[str]:
    """Wrap at spaces, then break any word still wider than ``width`` by character."""
    lines: list[str] = []
    for line in simpleSplit(text, font, size, width * mm):
        while text_width(line, font, size) > width:
            cut = 1
            while cut < len(line) and text_width(line[: cut + 1], font, size) <= width:
                cut += 1
            lines.append(line[:cut])
            line = line[cut:]
        lines.append(line)
    return lines


def fit_text(text: str, width: float, font: str = BODY_FONT, size: float = 10) -> str:
    """Truncate ``text`` with an ellipsis so it fits on one line."""
    if text_width(text, font, size) <= width:
        return text
    ellipsis = "..."
    while text and text_width(text + ellipsis, font, size) > width:
        text = text[:-1]
    return text.rstrip() + ellipsis


def approver_label(index: int) -> str:
    """Cosmetic label of the ``index``-th approved signature (0-based)."""
    if index < len(APPROVER_LABELS):
        return APPROVER_LABELS[index]
    return f"Level {index + 1} Approval"


def decodable_image(data: bytes | None) -> bool:
    if not data:
        return False
    try:
        with Image.open(BytesIO(data)) as image:
            image.load()
    except (UnidentifiedImageError, OSError, ValueError):
        return False
    return True


def value_text(item: FormField, value: Any) -> str:
    if item.type == "checkbox":
        return "Yes" if value else "No"
    if value is None or value == "":
        return ""
    return str(value)


class _Cursor:
    def __init__(self, layout: DocumentLayout, header: DocumentHeader, revision: str) -> None:
        self.layout = layout
        self.header = header
        self.revision = revision
        self.page: Page
        self.y = CONTENT_TOP
        self.new_page()

    def new_page(self) -> None:
        self.page = Page(number=len(self.layout.pages) + 1)
        self.layout.pages.append(self.page)
        self._draw_header()
        self.y = CONTENT_TOP

    def ensure_room(self, height: float, bottom: float = CONTENT_BOTTOM) -> None:
        if self.y + height > bottom:
            self.new_page()

    def add(self, op: Op) -> None:
        self.page.ops.append(op)

    def _draw_header(self) -> None:
        right = PAGE_WIDTH - MARGIN
        self.add(Text(right, MARGIN, self.header.org_name, BOLD_FONT, 10, align="right"))
        for index, line in enumerate(self.header.lines, start=1):
            self.add(Text(right, MARGIN + 5 * index, line, BODY_FONT, 8, align="right"))

    def finish(self) -> None:
        total = len(self.layout.pages)
        for page in self.layout.pages:
            if self.revision:
                page.ops.append(Text(MARGIN, FOOTER_Y, self.revision, BODY_FONT, 7))
            page.ops.append(
                Text(
                    PAGE_WIDTH - MARGIN,
                    FOOTER_Y,
                    f"Page {page.number} of {total}",
                    BODY_FONT,
                    7,
                    align="right",
                )
            )


def layout_document(
    submission: Submission,
    template: FormTemplate,
    header: DocumentHeader,
) -> DocumentLayout:
    layout = DocumentLayout(title=submission.form_name or template.name)
    cursor = _Cursor(layout, header, template.revision_number)

    _draw_title(cursor, submission, template)
    if template.fields:
        for item in template.fields:
            if item.is_note:
                continue
            _draw_field(cursor, item, submission.form_data.get(item.id))
    else:
        _draw_untemplated_values(cursor, submission.form_data)
    if template.notes.strip():
        _draw_notes(cursor, template.notes)
    _draw_signatures(cursor, submission)

    cursor.finish()
    return layout


def _draw_title(cursor: _Cursor, submission: Submission, template: FormTemplate) -> None:
    title = (submission.form_name or template.name).upper()
    cursor.add(Text(PAGE_WIDTH / 2, cursor.y, title, BOLD_FONT, 16, (80, 80, 80), "center"))
    cursor.y += 10

    name = submission.submitted_by_name or "N/A"
    y = cursor.y
    cursor.add(Text(MARGIN, y, "NAME:"))
    cursor.add(Line(MARGIN + 18, y + 1, MARGIN + 18 + text_width(name) + 5, y + 1))
    cursor.add(Text(MARGIN + 20, y, name))

    submitted = submission.submitted_at or submission.created_at
    date_value = format_long_date(submitted)
    date_x = PAGE_WIDTH / 2 + 40
    cursor.add(Text(date_x, y, "DATE:"))
    cursor.add(Line(date_x + 15, y + 1, date_x + 15 + text_width(date_value) + 5, y + 1))
    cursor.add(Text(date_x + 17, y, date_value))
    cursor.y += 10


def _draw_field(cursor: _Cursor, item: FormField, value: Any) -> None:
    if item.type == "checkbox":
        cursor.ensure_room(FIELD_LINE_HEIGHT)
        y = cursor.y
        cursor.add(Checkbox(MARGIN, y - 3, CHECKBOX_SIZE, bool(value)))
        cursor.add(Text(MARGIN + CHECKBOX_SIZE + 3, y, item.label))
        cursor.y += FIELD_LINE_HEIGHT
    elif item.type == "textarea":
        _draw_textarea(cursor, item.label, value_text(item, value))
    else:
        _draw_single_line(cursor, item.label, value_text(item, value))


def _draw_single_line(cursor: _Cursor, label: str, value: str) -> None:
    cursor.ensure_room(FIELD_LINE_HEIGHT)
    y = cursor.y
    label_text = f"{label}:"
    cursor.add(Text(MARGIN, y, label_text))
    value_x = MARGIN + text_width(label_text) + 3
    right = PAGE_WIDTH - MARGIN
    if value:
        value = fit_text(value, right - value_x - 2)
        rule_end = min(value_x + text_width(value) + 5, right)
    else:
        rule_end = min(value_x + EMPTY_VALUE_RULE, right)
    cursor.add(Line(value_x, y + 1, rule_end, y + 1))
    if value:
        cursor.add(Text(value_x + 2, y, value))
    cursor.y += FIELD_LINE_HEIGHT


def _draw_textarea(cursor: _Cursor, label: str, value: str) -> None:
    # The label is only drawn once; it moves to a new page together with the
    # first line so it is never left alone at the bottom.
    cursor.ensure_room(TEXTAREA_LABEL_HEIGHT + TEXTAREA_LINE_HEIGHT)
    cursor.add(Text(MARGIN, cursor.y, f"{label}:"))
    cursor.y += TEXTAREA_LABEL_HEIGHT

    width = PAGE_WIDTH - 2 * MARGIN
    if value:
        for line in wrap_text(value, width):
            cursor.ensure_room(TEXTAREA_LINE_HEIGHT)
            cursor.add(Text(MARGIN, cursor.y, line))
            cursor.y += TEXTAREA_LINE_HEIGHT
    else:
        for _ in range(TEXTAREA_BLANK_LINES):
            cursor.ensure_room(TEXTAREA_LINE_HEIGHT)
            cursor.add(Line(MARGIN, cursor.y, PAGE_WIDTH - MARGIN, cursor.y))
            cursor.y += TEXTAREA_LINE_HEIGHT
    cursor.y += 1


def _field_number(key: str) -> int:
    match = re.search(r"FIELD_(\d+)", key)
    return int(match.group(1)) if match else 999999


def _humanize(key: str) -> str:
    match = re.fullmatch(r"FIELD_(\d+)", key)
    if match:
        return f"Field {match.group(1)}"
    spaced = re.sub(r"([A-Z])", r" \1", key).strip()
    return spaced[:1].upper() + spaced[1:]


def _draw_untemplated_values(cursor: _Cursor, form_data: dict[str, Any]) -> None:
    """Used when the template no longer has fields: render what was stored."""
    for key in sorted(form_data, key=lambda k: (_field_number(k), k)):
        if key.startswith("_"):
            continue
        value = form_data[key]
        if isinstance(value, bool):
            text = "Yes" if value else "No"
        else:
            text = "" if value in (None, "") else str(value)
        _draw_single_line(cursor, _humanize(key), text)


def _draw_notes(cursor: _Cursor, notes: str) -> None:
    cursor.y += 2
    cursor.ensure_room(NOTES_LABEL_HEIGHT + NOTES_LINE_HEIGHT)
    cursor.add(Text(MARGIN, cursor.y, "NOTES:", BOLD_FONT, 10, (60, 60, 60)))
    cursor.y += NOTES_LABEL_HEIGHT
    for line in wrap_text(notes, PAGE_WIDTH - 2 * MARGIN, BODY_FONT, 9):
        cursor.ensure_room(NOTES_LINE_HEIGHT)
        cursor.add(Text(MARGIN, cursor.y, line, BODY_FONT, 9, (80, 80, 80)))
        cursor.y += NOTES_LINE_HEIGHT
    cursor.y += 3


@dataclass(frozen=True)
class _Signer:
    label: str
    name: str
    position: str
    department: str
    when: datetime
    signature: bytes | None


def _signers(submission: Submission) -> list[_Signer]:
    signers = [
        _Signer(
            SUBMITTER_LABEL,
            submission.submitted_by_name or "Employee",
            submission.submitted_by_position,
            submission.submitted_by_department,
            submission.submitted_at or submission.created_at,
            submission.signature,
        )
    ]
    for index, record in enumerate(submission.approved_records()):
        signers.append(
            _Signer(
                approver_label(index),
                record.by_name or f"Approver {index + 1}",
                record.by_position,
                record.by_department,
                record.timestamp,
                record.signature,
            )
        )
    return signers


def _draw_signatures(cursor: _Cursor, submission: Submission) -> None:
    signers = _signers(submission)
    rows = math.ceil(len(signers) / 2)
    if cursor.y + rows * SIGNATURE_BLOCK_HEIGHT > SIGNATURE_BOTTOM:
        cursor.new_page()
    else:
        cursor.y += 2

    centered_last = len(signers) == 3
    for row in range(rows):
        cursor.ensure_room(SIGNATURE_BLOCK_HEIGHT, SIGNATURE_BOTTOM)
        row_signers = signers[row * 2 : row * 2 + 2]
        for column, signer in enumerate(row_signers):
            if centered_last and row == 1:
                x = (PAGE_WIDTH - SIGNATURE_COLUMN_WIDTH) / 2
            else:
                x = MARGIN + column * (SIGNATURE_COLUMN_WIDTH + SIGNATURE_GUTTER)
            _draw_signature_block(cursor, signer, x, cursor.y)
        cursor.y += SIGNATURE_BLOCK_HEIGHT


def _draw_signature_block(cursor: _Cursor, signer: _Signer, x: float, y: float) -> None:
    width = SIGNATURE_COLUMN_WIDTH
    center = x + width / 2
    has_image = decodable_image(signer.signature)
    if has_image:
        cursor.add(Picture(x + 15, y + 2, width - 30, 16, signer.signature))
    else:
        if signer.signature:
            logger.warning("Signature image of %s could not be decoded, using text", signer.name)
        cursor.add(Text(center, y + 10, signer.name, ITALIC_FONT, 9, SIGNATURE_BLUE, "center"))

    cursor.add(Line(x + 15, y + 21, x + width - 15, y + 21, 0.4, BLACK))
    cursor.add(Text(center, y + 25, signer.label, BODY_FONT, 7, align="center"))
    cursor.add(Text(center, y + 29, signer.name, BOLD_FONT, 7, align="center"))
    if signer.position:
        cursor.add(Text(center, y + 33, signer.position, BODY_FONT, 6, DARK_GREY, "center"))
    if signer.department:
        cursor.add(Text(center, y + 37, signer.department, BODY_FONT, 6, DARK_GREY, "center"))
    date_text = format_numeric_date(signer.when)
    cursor.add(Text(center, y + 41, f"Date: {date_text}", BODY_FONT, 6, DARK_GREY, "center"))

    cursor.layout.signature_blocks.append(
        SignatureBlock(
            label=signer.label,
            name=signer.name,
            position=signer.position,
            department=signer.department,
            date=date_text,
            page=cursor.page.number,
            x=x,
            y=y,
            has_image=has_image,
        )
    )
