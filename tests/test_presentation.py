from __future__ import annotations

from conftest import ALICE, leave_template

from formportal.domain import FormField, FormTemplate
from formportal.presentation import autofill_values, display_fields, field_sort_key


def test_field_sort_key():
    assert field_sort_key(FormField(id="a", label="Full Name")) == 1
    assert field_sort_key(FormField(id="b", label="Department")) == 3
    assert field_sort_key(FormField(id="c", label="Anything", type="checkbox")) == 100
    assert field_sort_key(FormField(id="d", label="Anything", type="textarea")) == 50
    assert field_sort_key(FormField(id="e", label="Anything")) == 30


def test_display_order_is_stable():
    template = FormTemplate(
        id="t",
        name="Overtime",
        fields=(
            FormField(id="agree", label="I agree", type="checkbox"),
            FormField(id="why", label="Purpose"),
            FormField(id="x", label="Vessel"),
            FormField(id="y", label="Port"),
            FormField(id="name", label="Employee Name"),
        ),
    )
    assert [f.id for f in display_fields(template)] == ["name", "x", "y", "why", "agree"]


def test_autofill_from_profile():
    template = FormTemplate(
        id="t",
        name="Profile",
        fields=(
            FormField(id="n", label="Your Name"),
            FormField(id="d", label="Department"),
            FormField(id="p", label="Position / Title"),
            FormField(id="e", label="Employee Email", type="email"),
            FormField(id="c", label="Employee name confirmed", type="checkbox"),
            FormField(id="k", label="Contact Number"),
        ),
    )
    assert autofill_values(template, ALICE) == {
        "n": "Alice Reyes",
        "d": "Operations",
        "p": "Deck Officer",
        "e": "alice@example.com",
    }


def test_autofill_skips_notes():
    values = autofill_values(leave_template(), ALICE)
    assert values == {"employee_name": "Alice Reyes"}
