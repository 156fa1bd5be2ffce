from __future__ import annotations

from typing import Any

from formportal.domain import Actor, FormField, FormTemplate

# Label keyword -> display priority, checked in order; first match wins.
ORDER_PRIORITY: tuple[tuple[str, int], ...] = (
    ("name", 1),
    ("full name", 1),
    ("employee name", 1),
    ("your name", 1),
    ("position", 2),
    ("title", 2),
    ("role", 2),
    ("department", 3),
    ("email", 4),
    ("phone", 5),
    ("contact", 5),
    ("leave type", 6),
    ("type of leave", 6),
    ("start date", 7),
    ("from date", 7),
    ("end date", 8),
    ("to date", 8),
    ("date from", 7),
    ("date to", 8),
    ("number of days", 9),
    ("days", 9),
    ("total days", 9),
    ("credits", 10),
    ("balance", 10),
    ("available", 10),
    ("remaining", 10),
    ("sick leave", 11),
    ("vacation leave", 11),
    ("reason", 50),
    ("purpose", 50),
    ("details", 51),
    ("description", 51),
    ("comments", 52),
    ("notes", 52),
    ("remarks", 52),
    ("attachment", 60),
    ("medical certificate", 60),
    ("acknowledge", 100),
    ("agree", 100),
    ("confirm", 100),
    ("certify", 100),
)

TYPE_PRIORITY = {"checkbox": 100, "textarea": 50, "date": 15}
DEFAULT_PRIORITY = 30


def field_sort_key(field: FormField) -> int:
    label = field.label.lower()
    for keyword, priority in ORDER_PRIORITY:
        if keyword in label:
            return priority
    return TYPE_PRIORITY.get(field.type, DEFAULT_PRIORITY)


def display_fields(template: FormTemplate) -> list[FormField]:
    """Fields in fill-in order. Stable, so equal priorities keep template order.

    Only used for data entry screens; documents always follow template order.
    """
    return sorted(template.fields, key=field_sort_key)


def autofill_values(template: FormTemplate, profile: Actor) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for item in template.fields:
        if item.is_note or item.type == "checkbox":
            continue
        label = item.label.lower()
        if "name" in label and (
            "your" in label or "employee" in label or "full" in label or label == "name"
        ):
            values[item.id] = profile.name
        if "department" in label:
            values[item.id] = profile.department
        if "position" in label or "title" in label or "role" in label:
            values[item.id] = profile.position
        if "email" in label and ("your" in label or "employee" in label):
            values[item.id] = profile.email
    return values
