from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from starlette.exceptions import HTTPException as StarletteHTTPException
from app.schemas.response import ErrorResponse, ErrorDetail
from datetime import datetime, timezone
import logging
import uuid

logger = logging.getLogger(__name__)

def _get_error_code(status_code: int) -> str:
    code_map = {
        400: "BAD_REQUEST",
        401: "UNAUTHORIZED",
        403: "FORBIDDEN",
        404: "NOT_FOUND",
        409: "CONFLICT",
        422: "VALIDATION_ERROR",
        500: "INTERNAL_SERVER_ERROR",
        501: "NOT_IMPLEMENTED",
        503: "SERVICE_UNAVAILABLE",
    }
    return code_map.get(status_code, f"HTTP_{status_code}")

def _get_client_action(exc: StarletteHTTPException) -> str:
    action = getattr(exc, "client_action", None)
    if action:
        return action
    if exc.status_code >= 500:
        return "retry"
    if exc.status_code in (401, 403, 404):
        return "none"
    return "fix_request"

def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())

def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()

async def validation_exception_handler(request: Request, exc: RequestValidationError):
    request_id = _request_id(request)
    error_response = ErrorResponse(
        error=ErrorDetail(
            code="VALIDATION_ERROR",
            message="Request validation failed",
            action="fix_request",
            details={"validation_errors": jsonable_encoder(exc.errors())}
        ),
        timestamp=_timestamp(),
        path=str(request.url),
        request_id=request_id
    )
    logger.warning(f"[{request_id}] Validation error: {exc.errors()}", extra={"request_id": request_id})
    return JSONResponse(status_code=422, content=error_response.model_dump())

async def global_exception_handler(request: Request, exc: Exception):
    request_id = _request_id(request)

    if isinstance(exc, StarletteHTTPException):
        error_code = getattr(exc, "error_code", None) or _get_error_code(exc.status_code)
        context = getattr(exc, "context", None)
        error_response = ErrorResponse(
            error=ErrorDetail(
                code=error_code,
                message=exc.detail if isinstance(exc.detail, str) else str(exc.detail),
                action=_get_client_action(exc),
                details=jsonable_encoder(context) if context else None
            ),
            timestamp=_timestamp(),
            path=str(request.url),
            request_id=request_id
        )
        logger.warning(f"[{request_id}] HTTP {exc.status_code} {error_code}: {exc.detail}", extra={"request_id": request_id})
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response.model_dump(),
            headers=getattr(exc, "headers", None)
        )

    error_response = ErrorResponse(
        error=ErrorDetail(
            code="INTERNAL_SERVER_ERROR",
            message="An unexpected error occurred",
            action="retry",
            details={"error_type": type(exc).__name__}
        ),
        timestamp=_timestamp(),
        path=str(request.url),
        request_id=request_id
    )
    logger.error(f"[{request_id}] Unhandled exception: {exc}", exc_info=True, extra={"request_id": request_id})
    return JSONResponse(status_code=500, content=error_response.model_dump())
