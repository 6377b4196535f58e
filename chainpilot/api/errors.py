"""Structured error responses for the ChainPilot API.

Every failure leaves the API in the same envelope:

    {
        "error": {
            "code": "NO_CONTRACT",
            "message": "Human-readable description",
            "details": [...optional field-level errors...],
            "request_id": "abc-123"
        }
    }
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from chainpilot.core.errors import ChainPilotError, ErrorCode

logger = logging.getLogger(__name__)

VALIDATION_ERROR = "VALIDATION_ERROR"
INTERNAL_ERROR = "INTERNAL_ERROR"


# ── Error Schemas ────────────────────────────────────────────────────────────


class FieldError(BaseModel):
    """Individual field validation error."""

    field: str
    message: str
    type: str


class ErrorEnvelope(BaseModel):
    code: str
    message: str
    details: list[FieldError] | list[dict[str, Any]] | None = None
    request_id: str | None = None


class ErrorResponse(BaseModel):
    error: ErrorEnvelope


# ── Domain code → HTTP status ───────────────────────────────────────────────

_CODE_TO_STATUS: dict[ErrorCode, int] = {
    ErrorCode.INVALID_ADDRESS: 400,
    ErrorCode.SCHEMA_INVALID: 400,
    ErrorCode.TASK_UNRESOLVED: 400,
    ErrorCode.NO_CONTRACT: 404,
    ErrorCode.FUNCTION_NOT_FOUND: 404,
    ErrorCode.WORKFLOW_NOT_FOUND: 404,
    ErrorCode.SIGNER_REQUIRED: 409,
    ErrorCode.VALIDATION_FAILED: 409,
    ErrorCode.MISSING_DEPENDENCY: 409,
    ErrorCode.CONDITION_FAILED: 409,
    ErrorCode.CHAIN_RPC_ERROR: 502,
}

_STATUS_TO_CODE: dict[int, str] = {
    400: "BAD_REQUEST",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    422: VALIDATION_ERROR,
    500: INTERNAL_ERROR,
    502: "DEPENDENCY_ERROR",
}


def status_for(exc: ChainPilotError) -> int:
    return _CODE_TO_STATUS.get(exc.code, 500)


def _get_request_id(request: Request) -> str | None:
    return request.headers.get("X-Request-ID") or getattr(request.state, "request_id", None)


# ── Exception Handlers ──────────────────────────────────────────────────────


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle Pydantic / FastAPI validation errors with structured detail."""
    details = []
    for err in exc.errors():
        loc = err.get("loc", [])
        field = ".".join(str(part) for part in loc if part != "body")
        details.append(
            FieldError(
                field=field or "unknown",
                message=err.get("msg", "Invalid value"),
                type=err.get("type", "value_error"),
            ).model_dump()
        )

    body = ErrorResponse(
        error=ErrorEnvelope(
            code=VALIDATION_ERROR,
            message=f"Request validation failed: {len(details)} error(s)",
            details=details,
            request_id=_get_request_id(request),
        )
    )
    return JSONResponse(status_code=422, content=body.model_dump())


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = _STATUS_TO_CODE.get(exc.status_code, INTERNAL_ERROR)
    body = ErrorResponse(
        error=ErrorEnvelope(
            code=code,
            message=str(exc.detail) if exc.detail else code,
            request_id=_get_request_id(request),
        )
    )
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


async def chainpilot_error_handler(request: Request, exc: ChainPilotError) -> JSONResponse:
    """Render a domain error with the status its code maps to."""
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code.value, request.method, request.url.path, exc.message)
    body = ErrorResponse(
        error=ErrorEnvelope(
            code=exc.code.value,
            message=exc.message,
            details=exc.details,
            request_id=_get_request_id(request),
        )
    )
    return JSONResponse(status_code=status_code, content=body.model_dump())


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log full traceback, return generic error."""
    logger.exception("Unhandled exception on %s %s: %s", request.method, request.url.path, exc)
    body = ErrorResponse(
        error=ErrorEnvelope(
            code=INTERNAL_ERROR,
            message="An internal server error occurred. Please try again later.",
            request_id=_get_request_id(request),
        )
    )
    return JSONResponse(status_code=500, content=body.model_dump())


def register_error_handlers(app: Any) -> None:
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(ChainPilotError, chainpilot_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
