from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone

from conftest import leave_template, make_png

from formportal.domain import Attachment, Notification, ReferenceDocument, Submission
from formportal.storage import init_storage
from formportal.config import Settings

AT = datetime(2024, 3, 5, 9, 0, tzinfo=timezone.utc)


def test_template_roundtrip(storage):
    template = replace(
        leave_template(),
        reference_document=ReferenceDocument("policy.pdf", b"%PDF-1.4", "application/pdf", 8),
        created_at=AT,
        updated_at=AT,
    )
    storage.templates.create_template(template)
    assert storage.templates.get_template("leave") == template
    assert storage.templates.list_templates() == [template]

    renamed = replace(template, name="Leave Request")
    assert storage.templates.update_template(renamed) == renamed
    assert storage.templates.get_template("leave").name == "Leave Request"

    storage.templates.delete_template("leave")
    assert storage.templates.get_template("leave") is None


def test_submission_roundtrip(storage):
    submission = Submission(
        id="s1",
        form_template_id="leave",
        form_name="Leave Application",
        submitted_by="alice",
        created_at=AT,
        updated_at=AT,
        signature=make_png(),
        form_data={"employee_name": "Alice Reyes", "certify": True},
        attachments=(Attachment("note.txt", b"hello", "text/plain", 5),),
    )
    storage.submissions.create_submission(submission)
    assert storage.submissions.get_submission("s1") == submission
    assert storage.submissions.get_submission("missing") is None


def test_conditional_delete(storage):
    submission = Submission(
        id="s1", form_template_id="leave", form_name="Leave", submitted_by="alice", created_at=AT
    )
    storage.submissions.create_submission(submission)
    changed = storage.submissions.mutate("s1", lambda s: replace(s, form_data={"reason": "x"}))
    assert changed.version == 1

    assert storage.submissions.delete_submission("s1", expected_version=0) is False
    assert storage.submissions.get_submission("s1") is not None
    assert storage.submissions.delete_submission("s1", expected_version=1) is True
    assert storage.submissions.get_submission("s1") is None


def test_notifications_newest_first(storage):
    for index in range(3):
        storage.notifications.create_notification(
            Notification(
                id=f"n{index}",
                recipient_id="bob",
                form_id="s1",
                title="New form submission: Leave",
                message="Alice submitted a form for approval",
                created_at=AT + timedelta(minutes=index),
            )
        )
    assert [n.id for n in storage.notifications.list_notifications("bob", limit=2)] == ["n2", "n1"]
    assert storage.notifications.list_notifications("carol") == []
    assert storage.notifications.mark_read("n0").read is True
    assert storage.notifications.get_notification("n0").read is True


def test_init_storage_selects_backend(tmp_path, monkeypatch):
    monkeypatch.setenv("STORAGE_BACKEND", "json")
    monkeypatch.setenv("JSON_PATH", str(tmp_path / "nested" / "store.json"))
    storage = init_storage(Settings())
    storage.templates.create_template(leave_template())
    assert (tmp_path / "nested" / "store.json").exists()
    assert type(storage).__name__ == "JSONStorage"
