"""FastAPI application entrypoint for Partner Me."""

from __future__ import annotations

from time import perf_counter
from uuid import uuid4

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from partner_me.auth.middleware import AUTH_CONTEXT_KEY, resolve_request_auth_context
from partner_me.auth.router import router as auth_router
from partner_me.core.config import get_settings
from partner_me.core.errors import AppError, RateLimitError
from partner_me.core.logger import bind_request_context, clear_request_context, get_logger
from partner_me.core.metrics import record_http_request, record_rate_limit_block, render_prometheus_metrics
from partner_me.core.network import resolve_client_ip
from partner_me.core.observability import capture_exception, init_sentry, sentry_scope
from partner_me.core.rate_limit import RateLimitDecision, get_ip_rate_limiter
from partner_me.files import FileStorageError
from partner_me.ideas.router import router as ideas_router
from partner_me.media.router import router as media_router
from partner_me.partnerships.router import router as partnerships_router
from partner_me.schemas.common import field_errors
from partner_me.storage.db import load_models
from partner_me.storage.db import test_connection as test_db_connection
from partner_me.storage.redis_client import test_connection as test_redis_connection
from partner_me.submissions.router import admin_router as admin_submissions_router
from partner_me.submissions.router import router as submissions_router


API_PREFIX = "/api"
HTTP_ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "AUTH_REQUIRED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    413: "PAYLOAD_TOO_LARGE",
    429: "RATE_LIMIT_EXCEEDED",
}

settings = get_settings()
logger = get_logger("partner_me.api")

app = FastAPI(title=settings.app_name, version=settings.app_version)


def _error_response(status_code: int, payload: dict, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=payload, headers=headers)


def _apply_rate_limit_headers(response: Response, decision: RateLimitDecision) -> None:
    response.headers["x-rate-limit-limit"] = str(decision.limit)
    response.headers["x-rate-limit-remaining"] = str(decision.remaining)
    response.headers["x-rate-limit-reset"] = str(decision.reset_seconds)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    headers = None
    if isinstance(exc, RateLimitError):
        headers = {"Retry-After": str(exc.retry_after)}
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, code=exc.code, error=str(exc.__cause__ or exc))
        capture_exception(exc)
    else:
        logger.info("request_rejected", path=request.url.path, code=exc.code, status_code=exc.status_code)
    return _error_response(exc.status_code, exc.to_payload(), headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    error = AppError("Validation failed", code="VALIDATION_ERROR", status_code=400, details=field_errors(exc.errors()))
    return _error_response(400, error.to_payload())


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR")
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return _error_response(exc.status_code, AppError(message, code=code).to_payload(), getattr(exc, "headers", None))


@app.exception_handler(FileStorageError)
async def file_storage_error_handler(request: Request, exc: FileStorageError) -> JSONResponse:
    logger.error("storage_operation_failed", path=request.url.path, error=str(exc))
    capture_exception(exc)
    return _error_response(500, AppError("Storage operation failed", code="STORAGE_ERROR").to_payload())


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("database_operation_failed", path=request.url.path, error=str(exc))
    capture_exception(exc)
    return _error_response(500, AppError("Database operation failed", code="DATABASE_ERROR").to_payload())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_exception", path=request.url.path)
    capture_exception(exc)
    return _error_response(500, AppError("An unexpected error occurred").to_payload())


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    started_at = perf_counter()
    request_id = request.headers.get("x-request-id", str(uuid4()))
    auth_context = resolve_request_auth_context(request)
    setattr(request.state, AUTH_CONTEXT_KEY, auth_context)

    user_id = auth_context.user_id if auth_context is not None else None
    bind_request_context(request_id=request_id, user_id=user_id)

    response = None
    decision = None
    status_code = 500

    try:
        with sentry_scope(user_id=user_id, request_id=request_id):
            client_ip = resolve_client_ip(request)
            if settings.ip_rate_limit_enabled and settings.is_production and client_ip:
                limiter = get_ip_rate_limiter()
                decision = limiter.check(ip=client_ip)
                if not decision.allowed:
                    record_rate_limit_block(kind="ip")
                    response = _error_response(
                        429,
                        RateLimitError("Rate limit exceeded", retry_after=decision.reset_seconds).to_payload(),
                        {"Retry-After": str(max(decision.reset_seconds, 1))},
                    )
                else:
                    response = await call_next(request)
            else:
                response = await call_next(request)
        status_code = int(response.status_code)
    finally:
        duration = perf_counter() - started_at
        if settings.metrics_enabled:
            record_http_request(
                method=request.method,
                path=request.url.path,
                status_code=status_code,
                duration_seconds=duration,
            )
        clear_request_context()

    if decision is not None:
        _apply_rate_limit_headers(response, decision)
    response.headers["x-request-id"] = request_id
    return response


@app.on_event("startup")
def on_startup() -> None:
    load_models()
    sentry_enabled = init_sentry()
    logger.info(
        "application_startup",
        env=settings.env,
        version=settings.app_version,
        sentry_enabled=sentry_enabled,
        metrics_enabled=settings.metrics_enabled,
        ip_rate_limit_enabled=settings.ip_rate_limit_enabled,
        storage_type=settings.storage_type,
        sms_provider=settings.sms_provider,
    )


@app.get("/health")
def health() -> JSONResponse:
    db_ok, db_error = test_db_connection()
    redis_ok, redis_error = test_redis_connection()

    healthy = db_ok and redis_ok
    status = "ok" if healthy else "degraded"

    payload = {
        "status": status,
        "env": settings.env,
        "services": {
            "database": {"ok": db_ok, "error": db_error},
            "redis": {"ok": redis_ok, "error": redis_error},
        },
    }

    return JSONResponse(content=payload, status_code=200 if healthy else 503)


@app.get("/version")
def version() -> dict[str, str]:
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "env": settings.env,
    }


@app.get("/metrics")
def metrics() -> PlainTextResponse:
    if not settings.metrics_enabled:
        return PlainTextResponse("metrics disabled\n", status_code=404)

    payload = render_prometheus_metrics(
        app_name=settings.app_name,
        app_version=settings.app_version,
        env=settings.env,
    )
    return PlainTextResponse(
        payload,
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )


app.include_router(auth_router, prefix=API_PREFIX)
app.include_router(submissions_router, prefix=API_PREFIX)
app.include_router(admin_submissions_router, prefix=API_PREFIX)
app.include_router(media_router, prefix=API_PREFIX)
app.include_router(ideas_router, prefix=API_PREFIX)
app.include_router(partnerships_router, prefix=API_PREFIX)
