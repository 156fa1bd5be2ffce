from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from formportal.auth import actor_id_from_request
from formportal.domain import Notification
from formportal.errors import NotAuthorizedError, NotFoundError, ValidationError
from formportal.serializers import notification_output

router = APIRouter()


def _owned_notification(request: Request, notification_id: str) -> Notification:
    recipient = actor_id_from_request(request, request.query_params.get("recipient"))
    notification = request.app.state.storage.notifications.get_notification(notification_id)
    if notification is None:
        raise NotFoundError(f"Notification {notification_id} not found")
    if notification.recipient_id != recipient:
        raise NotAuthorizedError(f"Notification {notification_id} belongs to another user")
    return notification


@router.get("/api/notifications", tags=["api/notifications"])
async def api_list_notifications(request: Request) -> JSONResponse:
    recipient = actor_id_from_request(request, request.query_params.get("recipient"))
    try:
        limit = int(request.query_params.get("limit", 10))
    except ValueError as exc:
        raise ValidationError("limit is invalid", messages=["limit must be an integer"]) from exc
    notifications = request.app.state.storage.notifications.list_notifications(
        recipient, limit=max(1, limit)
    )
    return JSONResponse([notification_output(item) for item in notifications])


@router.post("/api/notifications/{notification_id}/read", tags=["api/notifications"])
async def api_mark_notification_read(notification_id: str, request: Request) -> JSONResponse:
    _owned_notification(request, notification_id)
    updated = request.app.state.storage.notifications.mark_read(notification_id)
    return JSONResponse(notification_output(updated))


@router.delete("/api/notifications/{notification_id}", tags=["api/notifications"])
async def api_delete_notification(notification_id: str, request: Request) -> JSONResponse:
    _owned_notification(request, notification_id)
    request.app.state.storage.notifications.delete_notification(notification_id)
    return JSONResponse({"deleted": notification_id})
