from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime, timezone

import pytest
from conftest import ALICE, BOB, CAROL

from formportal.domain import Actor, Submission, SubmissionStatus
from formportal.errors import ConcurrentUpdateError
from formportal.storage import apply_with_retry


def test_last_two_approvals_interleaved(engine, storage, make_template, form_data, signature_png):
    template = make_template()
    pending = engine.create(
        template.id, ALICE, form_data, signature=signature_png, as_draft=False
    ).submission

    original = storage.submissions.mutate
    results = {}
    raced = []

    def racing_mutate(submission_id, change):
        def change_then_race(current):
            updated = change(current)
            if not raced:
                raced.append(True)
                # Carol's approval lands between Bob's read and Bob's write.
                results["carol"] = engine.approve(submission_id, CAROL)
            return updated

        return original(submission_id, change_then_race)

    storage.submissions.mutate = racing_mutate
    try:
        results["bob"] = engine.approve(pending.id, BOB)
    finally:
        storage.submissions.mutate = original

    assert results["carol"].completed is False
    assert results["bob"].completed is True
    final = engine.get(pending.id)
    assert final.status == SubmissionStatus.APPROVED
    assert sorted(final.approved_by()) == ["bob", "carol"]
    assert final.version == pending.version + 2


def test_parallel_approvals_complete_exactly_once(
    engine, make_template, form_data, signature_png
):
    approvers = [Actor(id=f"approver{i}", name=f"Approver {i}") for i in range(4)]
    template = make_template(approvers=tuple(a.id for a in approvers))
    pending = engine.create(
        template.id, ALICE, form_data, signature=signature_png, as_draft=False
    ).submission

    barrier = threading.Barrier(len(approvers))
    outcomes = []
    errors = []

    def approve(actor):
        barrier.wait()
        try:
            outcomes.append(engine.approve(pending.id, actor).completed)
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=approve, args=(actor,)) for actor in approvers]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert sorted(outcomes) == [False, False, False, True]
    final = engine.get(pending.id)
    assert final.status == SubmissionStatus.APPROVED
    assert sorted(final.approved_by()) == sorted(a.id for a in approvers)
    assert len(final.approval_timeline) == 1 + len(approvers)


def test_retries_are_bounded():
    stored = Submission(
        id="s1",
        form_template_id="leave",
        form_name="Leave Application",
        submitted_by="alice",
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )
    swaps = []

    def swap(expected_version, submission):
        swaps.append((expected_version, submission.version))
        return False

    with pytest.raises(ConcurrentUpdateError):
        apply_with_retry(
            "s1", lambda _id: stored, swap, lambda s: replace(s, form_name="Renamed"), 3
        )
    assert swaps == [(0, 1)] * 3


def test_unchanged_result_skips_the_write():
    stored = Submission(
        id="s1",
        form_template_id="leave",
        form_name="Leave Application",
        submitted_by="alice",
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )

    def swap(expected_version, submission):
        raise AssertionError("no write expected")

    assert apply_with_retry("s1", lambda _id: stored, swap, lambda s: s, 3) is stored


def test_missing_submission_raises_key_error():
    with pytest.raises(KeyError):
        apply_with_retry("nope", lambda _id: None, lambda v, s: True, lambda s: s, 3)
