from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from io import BytesIO

import pytest
from PIL import Image, ImageDraw

from formportal.domain import Actor, FormField, FormTemplate
from formportal.engine import ApprovalEngine
from formportal.repo_json import JSONStorage
from formportal.repo_sqlite import SQLiteStorage

ALICE = Actor(
    id="alice",
    name="Alice Reyes",
    position="Deck Officer",
    department="Operations",
    email="alice@example.com",
)
BOB = Actor(id="bob", name="Bob Santos", position="Supervisor", department="Operations")
CAROL = Actor(id="carol", name="Carol Cruz", position="HR Manager", department="Human Resources")
DAN = Actor(id="dan", name="Dan Lim", position="General Manager", department="Management")
MALLORY = Actor(id="mallory", name="Mallory")


class StepClock:
    """Deterministic clock advancing one minute per reading."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or datetime(2024, 3, 5, 9, 0, tzinfo=timezone.utc)
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            current = self._now
            self._now = current + timedelta(minutes=1)
            return current


def make_png(width: int = 160, height: int = 50) -> bytes:
    image = Image.new("RGB", (width, height), "white")
    draw = ImageDraw.Draw(image)
    draw.line((10, 35, 60, 10, 110, 40, 150, 15), fill="navy", width=3)
    buf = BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture(params=["sqlite", "json"])
def storage(request, tmp_path):
    if request.param == "sqlite":
        store = SQLiteStorage(tmp_path / "app.db")
    else:
        store = JSONStorage(tmp_path / "store.json")
    yield store
    store.dispose()


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def engine(storage, clock):
    return ApprovalEngine(storage, clock=clock)


@pytest.fixture
def signature_png():
    return make_png()


def leave_template(template_id: str = "leave", approvers: tuple[str, ...] = ("bob", "carol")):
    return FormTemplate(
        id=template_id,
        name="Leave Application",
        category="HR",
        description="Request for leave of absence",
        notes="File at least three days before the leave starts.",
        revision_number="ISC LH Rev.00/ Jan 2, 2024",
        approvers=approvers,
        fields=(
            FormField(id="employee_name", label="Employee Name", required=True),
            FormField(id="leave_type", label="Leave Type", type="select",
                      options=("Vacation", "Sick"), required=True),
            FormField(id="start_date", label="Start Date", type="date", required=True),
            FormField(id="reason", label="Reason", type="textarea"),
            FormField(id="policy_note", label="Leave policy applies", is_note=True),
            FormField(id="certify", label="I certify the above is true", type="checkbox"),
        ),
    )


@pytest.fixture
def make_template(storage):
    def factory(template_id: str = "leave", approvers: tuple[str, ...] = ("bob", "carol")):
        template = leave_template(template_id, approvers)
        storage.templates.create_template(template)
        return template

    return factory


@pytest.fixture
def form_data():
    return {
        "employee_name": "Alice Reyes",
        "leave_type": "Vacation",
        "start_date": "2024-03-11",
        "reason": "Family visit",
        "certify": True,
    }
