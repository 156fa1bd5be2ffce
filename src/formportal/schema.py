from __future__ import annotations

import re
from datetime import date
from typing import Any

from jsonschema import Draft7Validator

from formportal.domain import FIELD_TYPES, FormField, FormTemplate
from formportal.utils import format_short_date

KEY_PATTERN = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_\-]*$")
EMAIL_PATTERN = r"^$|^[^@\s]+@[^@\s]+\.[^@\s]+$"
NUMBER_PATTERN = r"^$|^-?\d+(\.\d+)?$"
DATE_PATTERN = r"^$|^\d{4}-\d{2}-\d{2}$"


def generate_revision_number(prefix: str, today: date) -> str:
    return f"{prefix}/ {format_short_date(today)}"


def parse_template_fields(raw_fields: Any) -> tuple[list[FormField], list[str]]:
    errors: list[str] = []
    if not isinstance(raw_fields, list):
        return [], ["fields must be a list"]

    seen_ids: set[str] = set()
    fields: list[FormField] = []
    for index, raw in enumerate(raw_fields, start=1):
        loc = f"field {index}"
        if not isinstance(raw, dict):
            errors.append(f"{loc}: must be an object")
            continue
        field_id = str(raw.get("id", "")).strip()
        label = str(raw.get("label", "")).strip()
        field_type = str(raw.get("type", "text")).strip() or "text"

        if not label:
            errors.append(f"{loc}: label is required")
        if not field_id:
            field_id = f"FIELD_{index}"
        if not KEY_PATTERN.match(field_id):
            errors.append(f"{loc}: invalid id ({field_id})")
        if field_id in seen_ids:
            errors.append(f"{loc}: duplicate id ({field_id})")
        else:
            seen_ids.add(field_id)
        if field_type not in FIELD_TYPES:
            errors.append(f"{loc}: invalid type ({field_type})")

        options = [
            value.strip()
            for value in (raw.get("options") or [])
            if isinstance(value, str) and value.strip()
        ]
        is_note = bool(raw.get("is_note"))
        if field_type == "select" and not options and not is_note:
            errors.append(f"{loc}: select fields need options")

        fields.append(
            FormField(
                id=field_id,
                label=label,
                type=field_type,
                required=bool(raw.get("required")) and not is_note,
                placeholder=str(raw.get("placeholder", "")).strip(),
                options=tuple(options),
                is_note=is_note,
            )
        )
    return fields, errors


def parse_approvers(raw_approvers: Any) -> tuple[list[str], list[str]]:
    if not isinstance(raw_approvers, list):
        return [], ["approvers must be a list"]
    approvers: list[str] = []
    errors: list[str] = []
    for value in raw_approvers:
        approver = str(value).strip()
        if not approver:
            continue
        if approver in approvers:
            errors.append(f"duplicate approver ({approver})")
            continue
        approvers.append(approver)
    return approvers, errors


def build_property(item: FormField) -> dict[str, Any]:
    if item.type == "checkbox":
        prop: dict[str, Any] = {"type": "boolean"}
    elif item.type == "select":
        prop = {"type": "string", "enum": ["", *item.options]}
    elif item.type == "email":
        prop = {"type": "string", "pattern": EMAIL_PATTERN}
    elif item.type == "number":
        prop = {"type": "string", "pattern": NUMBER_PATTERN}
    elif item.type == "date":
        prop = {"type": "string", "pattern": DATE_PATTERN}
    else:
        prop = {"type": "string"}
    prop["title"] = item.label or item.id
    return prop


def schema_from_fields(fields: tuple[FormField, ...] | list[FormField]) -> dict[str, Any]:
    """JSON Schema for the shape of ``formData``.

    Required fields are not listed: drafts may be incomplete, and the submit
    precondition is checked separately so the missing labels can be named.
    """
    properties = {item.id: build_property(item) for item in fields if not item.is_note}
    return {"type": "object", "properties": properties, "additionalProperties": False}


def validate_form_data(template: FormTemplate, data: Any) -> list[str]:
    if not isinstance(data, dict):
        return ["form_data must be an object"]
    validator = Draft7Validator(schema_from_fields(template.fields))
    errors = sorted(validator.iter_errors(data), key=lambda err: list(err.path))
    messages: list[str] = []
    for err in errors:
        location = ".".join(str(part) for part in err.path)
        messages.append(f"{location}: {err.message}" if location else err.message)
    return messages


def is_empty_value(value: Any) -> bool:
    if value is None or value is False:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def missing_required_fields(template: FormTemplate, data: dict[str, Any]) -> list[str]:
    return [
        item.label or item.id
        for item in template.fields
        if item.required and not item.is_note and is_empty_value(data.get(item.id))
    ]
