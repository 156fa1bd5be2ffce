from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from formportal.auth import get_auth_provider
from formportal.config import Settings
from formportal.engine import ApprovalEngine
from formportal.errors import (
    ConcurrentUpdateError,
    DocumentNotApprovedError,
    NotAuthorizedError,
    NotFoundError,
    StaleStateError,
    ValidationError,
)
from formportal.pdf import header_from_settings
from formportal.routes.notifications import router as notifications_router
from formportal.routes.submissions import router as submissions_router
from formportal.routes.templates import router as templates_router
from formportal.storage import Storage, init_storage

logger = logging.getLogger(__name__)


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    async def handle_validation(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(
            {
                "detail": str(exc),
                "missing_fields": exc.missing_fields,
                "messages": exc.messages,
            },
            status_code=400,
        )

    @app.exception_handler(NotAuthorizedError)
    async def handle_not_authorized(request: Request, exc: NotAuthorizedError) -> JSONResponse:
        return JSONResponse({"detail": str(exc)}, status_code=403)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse({"detail": str(exc)}, status_code=404)

    @app.exception_handler(StaleStateError)
    async def handle_stale(request: Request, exc: StaleStateError) -> JSONResponse:
        return JSONResponse({"detail": str(exc), "status": exc.status}, status_code=409)

    @app.exception_handler(DocumentNotApprovedError)
    async def handle_not_approved(
        request: Request, exc: DocumentNotApprovedError
    ) -> JSONResponse:
        return JSONResponse({"detail": str(exc), "status": exc.status}, status_code=409)

    @app.exception_handler(ConcurrentUpdateError)
    async def handle_concurrent(request: Request, exc: ConcurrentUpdateError) -> JSONResponse:
        logger.warning("%s", exc)
        return JSONResponse({"detail": str(exc)}, status_code=409)


def create_app(settings: Settings | None = None, storage: Storage | None = None) -> FastAPI:
    settings = settings or Settings()
    storage = storage or init_storage(settings)

    app = FastAPI(
        title="Form Approval Portal",
        openapi_tags=[
            {"name": "api/templates", "description": "REST API: form templates"},
            {"name": "api/submissions", "description": "REST API: submissions and approvals"},
            {"name": "api/notifications", "description": "REST API: notifications"},
            {"name": "system", "description": "System"},
        ],
    )

    app.state.storage = storage
    app.state.settings = settings
    app.state.auth_provider = get_auth_provider(settings)
    app.state.engine = ApprovalEngine(storage, retries=settings.cas_retries)
    app.state.document_header = header_from_settings(settings)

    _register_error_handlers(app)

    @app.get("/healthz", tags=["system"])
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(templates_router)
    app.include_router(submissions_router)
    app.include_router(notifications_router)

    return app
