from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response

from formportal.auth import actor_from_payload, actor_id_from_request
from formportal.domain import Attachment, Submission, SubmissionStatus
from formportal.errors import DuplicateActionError, ValidationError
from formportal.filters import decode_cursor, paginate
from formportal.pdf import render_stored_document
from formportal.serializers import submission_output
from formportal.utils import decode_blob
from formportal.webhook import send_webhook

router = APIRouter()


async def _json_body(request: Request) -> dict[str, Any]:
    payload = await request.json()
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be an object", messages=["body must be an object"])
    return payload


def _signature(payload: dict[str, Any]) -> bytes | None:
    try:
        return decode_blob(payload.get("signature"))
    except ValueError as exc:
        raise ValidationError("signature is invalid", messages=["signature must be base64"]) from exc


def _attachments(raw: Any) -> tuple[Attachment, ...]:
    if not isinstance(raw, list):
        raise ValidationError("attachments are invalid", messages=["attachments must be a list"])
    attachments: list[Attachment] = []
    for index, item in enumerate(raw, start=1):
        if not isinstance(item, dict):
            raise ValidationError(
                "attachments are invalid", messages=[f"attachment {index} must be an object"]
            )
        try:
            data = decode_blob(item.get("data")) or b""
        except ValueError as exc:
            raise ValidationError(
                "attachments are invalid", messages=[f"attachment {index} data must be base64"]
            ) from exc
        attachments.append(
            Attachment(
                name=str(item.get("name") or f"attachment-{index}"),
                data=data,
                type=str(item.get("type") or ""),
                size=len(data),
            )
        )
    return tuple(attachments)


async def _notify(request: Request, event: str, submission: Submission) -> None:
    url = request.app.state.settings.webhook_url
    if url:
        await send_webhook(url, event, submission)


@router.post("/api/submissions", tags=["api/submissions"])
async def api_create_submission(request: Request) -> JSONResponse:
    engine = request.app.state.engine
    payload = await _json_body(request)
    template_id = str(payload.get("template_id") or "").strip()
    if not template_id:
        raise ValidationError("template_id is required", messages=["template_id is required"])
    actor = actor_from_payload(request, payload.get("actor"))
    result = engine.create(
        template_id,
        actor,
        payload.get("form_data") or {},
        signature=_signature(payload),
        attachments=_attachments(payload.get("attachments") or []),
        as_draft=not payload.get("submit", False),
    )
    if result.submission.status == SubmissionStatus.PENDING:
        await _notify(request, "submission.submitted", result.submission)
    return JSONResponse(submission_output(result.submission), status_code=201)


@router.get("/api/submissions", tags=["api/submissions"])
async def api_list_submissions(request: Request) -> JSONResponse:
    engine = request.app.state.engine
    params = request.query_params

    status = None
    if params.get("status"):
        try:
            status = SubmissionStatus(params["status"])
        except ValueError as exc:
            raise ValidationError(
                "status is invalid", messages=[f"unknown status {params['status']}"]
            ) from exc
    try:
        limit = int(params.get("limit", 50))
    except ValueError as exc:
        raise ValidationError("limit is invalid", messages=["limit must be an integer"]) from exc
    if limit < 1:
        raise ValidationError("limit is invalid", messages=["limit must be positive"])

    cursor = None
    if params.get("cursor"):
        cursor = decode_cursor(params["cursor"])
        if cursor is None:
            raise ValidationError("cursor is invalid", messages=["cursor is invalid"])

    if params.get("approver"):
        items = engine.pending_for_approver(params["approver"])
    else:
        items = request.app.state.storage.submissions.list_submissions(
            submitted_by=params.get("submitted_by") or None, status=status
        )
    page, next_cursor = paginate(items, cursor, limit)
    headers: dict[str, str] = {}
    if next_cursor:
        headers["X-Next-Cursor"] = next_cursor
    return JSONResponse(
        [submission_output(item, include_blobs=False) for item in page], headers=headers
    )


@router.get("/api/submissions/{submission_id}", tags=["api/submissions"])
async def api_get_submission(submission_id: str, request: Request) -> JSONResponse:
    return JSONResponse(submission_output(request.app.state.engine.get(submission_id)))


@router.put("/api/submissions/{submission_id}", tags=["api/submissions"])
async def api_update_submission(submission_id: str, request: Request) -> JSONResponse:
    engine = request.app.state.engine
    payload = await _json_body(request)
    actor = actor_from_payload(request, payload.get("actor"))
    updated = engine.update_draft(
        submission_id,
        actor.id,
        form_data=payload.get("form_data") if "form_data" in payload else None,
        signature=_signature(payload),
        attachments=_attachments(payload["attachments"]) if "attachments" in payload else None,
    )
    return JSONResponse(submission_output(updated))


@router.delete("/api/submissions/{submission_id}", tags=["api/submissions"])
async def api_delete_submission(submission_id: str, request: Request) -> JSONResponse:
    actor_id = actor_id_from_request(request, request.query_params.get("actor"))
    request.app.state.engine.delete(submission_id, actor_id)
    return JSONResponse({"deleted": submission_id})


@router.post("/api/submissions/{submission_id}/submit", tags=["api/submissions"])
async def api_submit_submission(submission_id: str, request: Request) -> JSONResponse:
    engine = request.app.state.engine
    payload = await _json_body(request)
    actor = actor_from_payload(request, payload.get("actor"))
    result = engine.submit(submission_id, actor.id)
    await _notify(request, "submission.submitted", result.submission)
    return JSONResponse(submission_output(result.submission))


@router.post("/api/submissions/{submission_id}/actions", tags=["api/submissions"])
async def api_submission_action(submission_id: str, request: Request) -> JSONResponse:
    engine = request.app.state.engine
    payload = await _json_body(request)
    action = str(payload.get("action") or "").strip().lower()
    actor = actor_from_payload(request, payload.get("actor"))

    if action == "approve":
        try:
            result = engine.approve(
                submission_id,
                actor,
                signature=_signature(payload),
                comments=str(payload.get("comments") or ""),
            )
        except DuplicateActionError as exc:
            current = exc.submission or engine.get(submission_id)
            return JSONResponse(
                {"submission": submission_output(current), "completed": False, "duplicate": True}
            )
        if result.completed:
            await _notify(request, "submission.approved", result.submission)
        return JSONResponse(
            {
                "submission": submission_output(result.submission),
                "completed": result.completed,
                "duplicate": False,
            }
        )
    if action == "reject":
        result = engine.reject(
            submission_id,
            actor,
            str(payload.get("reason") or payload.get("comments") or ""),
            signature=_signature(payload),
        )
        await _notify(request, "submission.rejected", result.submission)
        return JSONResponse(
            {"submission": submission_output(result.submission), "completed": True, "duplicate": False}
        )
    raise ValidationError("action is invalid", messages=["action must be approve or reject"])


@router.get("/api/submissions/{submission_id}/document", tags=["api/submissions"])
async def api_submission_document(submission_id: str, request: Request) -> Response:
    data = render_stored_document(
        request.app.state.storage, submission_id, request.app.state.document_header
    )
    return Response(
        data,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{submission_id}.pdf"'},
    )
