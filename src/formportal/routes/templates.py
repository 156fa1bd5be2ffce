from __future__ import annotations

from dataclasses import replace
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from formportal.auth import actor_id_from_request, admin_guard
from formportal.domain import Actor, FormTemplate, ReferenceDocument
from formportal.errors import NotFoundError, ValidationError
from formportal.presentation import autofill_values, display_fields
from formportal.schema import generate_revision_number, parse_approvers, parse_template_fields
from formportal.serializers import fill_output, template_output, template_summary
from formportal.utils import decode_blob, new_ulid, now_utc

router = APIRouter()


def _text(payload: dict[str, Any], key: str) -> str:
    return str(payload.get(key) or "").strip()


def _reference_document(raw: Any) -> ReferenceDocument | None:
    if not raw:
        return None
    if not isinstance(raw, dict):
        raise ValidationError(
            "reference_document is invalid", messages=["reference_document must be an object"]
        )
    try:
        data = decode_blob(raw.get("data")) or b""
    except ValueError as exc:
        raise ValidationError(
            "reference_document is invalid", messages=["reference_document.data must be base64"]
        ) from exc
    return ReferenceDocument(
        name=str(raw.get("name") or "document"),
        data=data,
        mime_type=str(raw.get("mime_type") or ""),
        size=len(data),
    )


def _template_updates(payload: Any, partial: bool) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be an object", messages=["body must be an object"])
    updates: dict[str, Any] = {}
    errors: list[str] = []
    if "name" in payload or not partial:
        name = _text(payload, "name")
        if not name:
            errors.append("name is required")
        updates["name"] = name
    for key in ("description", "category", "notes"):
        if key in payload:
            updates[key] = _text(payload, key)
    if "fields" in payload or not partial:
        fields, field_errors = parse_template_fields(payload.get("fields", []))
        errors.extend(field_errors)
        updates["fields"] = tuple(fields)
    if "approvers" in payload or not partial:
        approvers, approver_errors = parse_approvers(payload.get("approvers", []))
        errors.extend(approver_errors)
        updates["approvers"] = tuple(approvers)
    if "reference_document" in payload:
        updates["reference_document"] = _reference_document(payload.get("reference_document"))
    if errors:
        raise ValidationError("Form template is invalid", messages=errors)
    return updates


def _get_template(request: Request, template_id: str) -> FormTemplate:
    template = request.app.state.storage.templates.get_template(template_id)
    if template is None:
        raise NotFoundError(f"Form template {template_id} not found")
    return template


@router.get("/api/templates", tags=["api/templates"])
async def api_list_templates(request: Request) -> JSONResponse:
    templates = request.app.state.storage.templates.list_templates()
    return JSONResponse([template_summary(template) for template in templates])


@router.post("/api/templates", tags=["api/templates"], dependencies=[Depends(admin_guard)])
async def api_create_template(request: Request) -> JSONResponse:
    storage = request.app.state.storage
    settings = request.app.state.settings
    updates = _template_updates(await request.json(), partial=False)
    now = now_utc()
    template = FormTemplate(
        id=new_ulid(),
        revision_number=generate_revision_number(settings.revision_prefix, now.date()),
        created_at=now,
        updated_at=now,
        **updates,
    )
    storage.templates.create_template(template)
    return JSONResponse(template_output(template), status_code=201)


@router.get("/api/templates/{template_id}", tags=["api/templates"])
async def api_get_template(template_id: str, request: Request) -> JSONResponse:
    return JSONResponse(template_output(_get_template(request, template_id)))


@router.put(
    "/api/templates/{template_id}", tags=["api/templates"], dependencies=[Depends(admin_guard)]
)
async def api_update_template(template_id: str, request: Request) -> JSONResponse:
    storage = request.app.state.storage
    current = _get_template(request, template_id)
    updates = _template_updates(await request.json(), partial=True)
    # The revision number identifies the printed layout and stays as issued.
    updated = replace(current, updated_at=now_utc(), **updates)
    stored = storage.templates.update_template(updated)
    return JSONResponse(template_output(stored))


@router.delete(
    "/api/templates/{template_id}", tags=["api/templates"], dependencies=[Depends(admin_guard)]
)
async def api_delete_template(template_id: str, request: Request) -> JSONResponse:
    _get_template(request, template_id)
    request.app.state.storage.templates.delete_template(template_id)
    return JSONResponse({"deleted": template_id})


@router.get("/api/templates/{template_id}/fill", tags=["api/templates"])
async def api_fill_template(template_id: str, request: Request) -> JSONResponse:
    template = _get_template(request, template_id)
    params = request.query_params
    actor = Actor(
        id=actor_id_from_request(request, params.get("actor")),
        name=params.get("name", ""),
        position=params.get("position", ""),
        department=params.get("department", ""),
        email=params.get("email", ""),
    )
    return JSONResponse(
        fill_output(template, display_fields(template), autofill_values(template, actor))
    )
