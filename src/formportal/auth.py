from __future__ import annotations

from typing import Any, Protocol

from fastapi import HTTPException, Request

from formportal.config import Settings
from formportal.domain import Actor
from formportal.errors import NotAuthorizedError, ValidationError

IDENTITY_HEADER = "X-User-Id"


class AuthProvider(Protocol):
    def require_admin(self, request: Request) -> None: ...

    def identity(self, request: Request, claimed: str | None) -> str: ...


class NoAuthProvider:
    """Trusts the identity named in the request; for trusted front-ends."""

    def require_admin(self, request: Request) -> None:
        return None

    def identity(self, request: Request, claimed: str | None) -> str:
        if not claimed:
            raise ValidationError("actor id is required", messages=["actor.id is required"])
        return claimed


class HeaderAuthProvider:
    """Identity asserted by an upstream proxy in ``X-User-Id``."""

    def __init__(self, admin_users: set[str]) -> None:
        self._admin_users = set(admin_users)

    def _header(self, request: Request) -> str:
        value = request.headers.get(IDENTITY_HEADER, "").strip()
        if not value:
            raise HTTPException(status_code=401, detail=f"{IDENTITY_HEADER} header is required")
        return value

    def require_admin(self, request: Request) -> None:
        if self._header(request) not in self._admin_users:
            raise HTTPException(status_code=403, detail="administrator access required")

    def identity(self, request: Request, claimed: str | None) -> str:
        user_id = self._header(request)
        if claimed and claimed != user_id:
            raise NotAuthorizedError(f"{user_id} cannot act as {claimed}")
        return user_id


def get_auth_provider(settings: Settings) -> AuthProvider:
    if settings.auth_mode == "header":
        return HeaderAuthProvider(settings.admin_users)
    return NoAuthProvider()


def admin_guard(request: Request) -> None:
    request.app.state.auth_provider.require_admin(request)


def actor_from_payload(request: Request, raw: Any) -> Actor:
    """Resolve the acting user from an ``actor`` object (or bare id)."""
    if isinstance(raw, str):
        raw = {"id": raw}
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValidationError("actor must be an object", messages=["actor must be an object"])
    claimed = str(raw.get("id") or "").strip() or None
    user_id = request.app.state.auth_provider.identity(request, claimed)
    return Actor(
        id=user_id,
        name=str(raw.get("name") or "").strip(),
        position=str(raw.get("position") or "").strip(),
        department=str(raw.get("department") or "").strip(),
        email=str(raw.get("email") or "").strip(),
    )


def actor_id_from_request(request: Request, claimed: str | None) -> str:
    return request.app.state.auth_provider.identity(request, (claimed or "").strip() or None)
