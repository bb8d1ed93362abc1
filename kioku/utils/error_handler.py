import uuid
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError, IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from kioku.utils.exceptions import KiokuError
from kioku.core.logging import get_logger
from kioku.core.config import settings

logger = get_logger(__name__)


def _request_correlation_id(request: Request) -> str:
    # Set by RequestLoggingMiddleware; missing for paths it skips
    return getattr(request.state, "correlation_id", None) or str(uuid.uuid4())


def error_body(
        error_code: str,
        message: str,
        status_code: int,
        correlation_id: str,
        path: str,
        details: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """The error envelope shared by every handler"""
    error = {
        "code": error_code,
        "message": message,
        "status": status_code,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "correlation_id": correlation_id,
        "path": path,
    }
    if details:
        error["details"] = details
    return {"error": error}


def _respond(status_code: int, body: Dict[str, Any]) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=body,
        headers={"X-Correlation-ID": body["error"]["correlation_id"]}
    )


async def handle_kioku_error(request: Request, exc: KiokuError) -> JSONResponse:
    exc.correlation_id = getattr(request.state, "correlation_id", exc.correlation_id)
    log_data = {
        "correlation_id": exc.correlation_id,
        "endpoint": request.url.path,
        "method": request.method,
    }
    if exc.status_code >= 500:
        logger.error(f"Server error: {exc.message}", extra=log_data)
    else:
        logger.warning(f"Client error: {exc.message}", extra=log_data)

    body = exc.to_dict()
    body["error"]["path"] = request.url.path
    return _respond(exc.status_code, body)


async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    correlation_id = _request_correlation_id(request)
    logger.warning(f"HTTP exception: {exc.detail}", extra={"correlation_id": correlation_id, "endpoint": request.url.path})
    return _respond(exc.status_code, error_body(
        "HTTP_ERROR", str(exc.detail), exc.status_code, correlation_id, request.url.path
    ))


async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    correlation_id = _request_correlation_id(request)
    errors = [
        {
            "field": error["loc"][-1] if error.get("loc") else "unknown",
            "location": ".".join(str(part) for part in error.get("loc", ())),
            "message": error.get("msg", "Validation failed"),
            "type": error.get("type", "validation_error"),
        }
        for error in exc.errors()
    ]
    logger.warning(
        f"Request validation failed with {len(errors)} errors",
        extra={"correlation_id": correlation_id, "endpoint": request.url.path}
    )
    return _respond(422, error_body(
        "VALIDATION_ERROR", "Request validation failed", 422, correlation_id, request.url.path,
        details={"validation_errors": errors, "error_count": len(errors)}
    ))


async def handle_store_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Store errors that escaped a session; integrity violations are conflicts"""
    correlation_id = _request_correlation_id(request)
    logger.error(
        f"Local store error: {exc}",
        extra={"correlation_id": correlation_id, "endpoint": request.url.path},
        exc_info=True
    )

    if isinstance(exc, IntegrityError):
        status_code, code, message = 409, "DATABASE_INTEGRITY_ERROR", "The operation conflicts with existing data"
    else:
        status_code, code, message = 500, "DATABASE_ERROR", "A local store error occurred"
    details = {"error_type": type(exc).__name__} if settings.ENVIRONMENT == "development" else None
    return _respond(status_code, error_body(code, message, status_code, correlation_id, request.url.path, details))


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    correlation_id = _request_correlation_id(request)
    logger.error(
        f"Unexpected error: {exc}",
        extra={"correlation_id": correlation_id, "endpoint": request.url.path},
        exc_info=True
    )

    if settings.ENVIRONMENT == "production":
        message, details = "An unexpected error occurred", None
    else:
        message, details = f"Unexpected error: {exc}", {"error_type": type(exc).__name__}
    return _respond(500, error_body("INTERNAL_ERROR", message, 500, correlation_id, request.url.path, details))


def setup_exception_handlers(app: FastAPI) -> None:
    """Render every error as the JSON error envelope"""
    app.add_exception_handler(KiokuError, handle_kioku_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    app.add_exception_handler(SQLAlchemyError, handle_store_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
