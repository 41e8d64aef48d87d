# budget_auth/main.py
import logging
from datetime import datetime
from typing import Callable, Optional

from fastapi import Depends, FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.responses import JSONResponse, RedirectResponse
from prometheus_client import CollectorRegistry
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.middleware.sessions import SessionMiddleware
from starlette.requests import Request

from budget_auth.api.deps import require_identity
from budget_auth.api.routes.router import api_router
from budget_auth.core.config import Settings, load_settings
from budget_auth.core.errors import AuthServiceError, LoginRequired, RateLimited
from budget_auth.core.logging import setup_logging
from budget_auth.core.security import utc_now
from budget_auth.db.database import Database, StorageError
from budget_auth.services.runtime import AuthRuntime

logger = logging.getLogger(__name__)


def _error(status_code: int, code: str, message: str, details=None, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"code": code, "message": message, "details": jsonable_encoder(details)},
        headers=headers,
    )


def _install_exception_handlers(api: FastAPI, settings: Settings) -> None:
    @api.exception_handler(LoginRequired)
    def handle_login_required(request: Request, exc: LoginRequired):
        return RedirectResponse(exc.redirect_to, status_code=302)

    @api.exception_handler(AuthServiceError)
    def handle_service_error(request: Request, exc: AuthServiceError):
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        if isinstance(exc, RateLimited) and exc.retry_after:
            headers = {"Retry-After": str(exc.retry_after)}
        if exc.status_code >= 500:
            logger.error("%s: %s", type(exc).__name__, exc.message, exc_info=exc.__cause__)
        return _error(exc.status_code, exc.error_code, exc.message, exc.details, headers)

    @api.exception_handler(RequestValidationError)
    def handle_validation_error(request: Request, exc: RequestValidationError):
        return _error(400, "validation_error", "Invalid request", exc.errors())

    @api.exception_handler(StorageError)
    def handle_storage_error(request: Request, exc: StorageError):
        logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
        details = None if settings.is_production else str(exc)
        return _error(500, "server_error", "Storage backend error", details)

    @api.exception_handler(Exception)
    def handle_unexpected(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        details = None if settings.is_production else str(exc)
        return _error(500, "server_error", "Internal server error", details)


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    clock: Callable[[], datetime] = utc_now,
) -> FastAPI:
    settings = settings or load_settings()
    runtime = AuthRuntime(settings, database, clock=clock)

    api = FastAPI(
        title="Budget Auth",
        version="1.0.0",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    api.state.runtime = runtime
    api.state.settings = settings

    api.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    api.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret(),
        session_cookie="budget_auth_session",
        same_site="lax",
        https_only=settings.SESSION_COOKIE_SECURE,
    )

    # /metrics (Prometheus); one registry per app instance
    Instrumentator(registry=CollectorRegistry()).instrument(api).expose(
        api, include_in_schema=False, should_gzip=True
    )

    api.include_router(api_router)
    _install_exception_handlers(api, settings)

    @api.get("/healthz", tags=["health"])
    def healthz():
        return {"status": "ok"}

    @api.get("/openapi.json", include_in_schema=False, dependencies=[Depends(require_identity)])
    def openapi_schema():
        return JSONResponse(api.openapi())

    @api.get("/docs", include_in_schema=False, dependencies=[Depends(require_identity)])
    def swagger_ui():
        return get_swagger_ui_html(
            openapi_url="/openapi.json",
            title=f"{api.title} - Docs",
            swagger_ui_parameters={"displayRequestDuration": True, "persistAuthorization": True},
        )

    @api.on_event("startup")
    async def startup():
        await runtime.start()

    @api.on_event("shutdown")
    async def shutdown():
        await runtime.stop()

    return api


def app_factory() -> FastAPI:
    """ASGI factory: ``uvicorn --factory budget_auth.main:app_factory``."""
    settings = load_settings()
    setup_logging(settings.LOG_LEVEL)
    return create_app(settings)
