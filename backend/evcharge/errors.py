# backend/evcharge/errors.py
"""
RFC 7807 problem responses.

Every error leaves the API as ``{type, title, status, detail, instance,
code?, errors?}``. Domain exceptions arrive here as HTTPExceptions built by
``DomainException.to_http_exception``; request validation failures are 400s.
"""

import logging
from typing import Any, Dict, Optional, Tuple

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.exceptions import DomainException

logger = logging.getLogger(__name__)

PROBLEM_MEDIA_TYPE = "application/problem+json"

STATUS_TITLES: Dict[int, str] = {
    400: "Bad Request",
    401: "Unauthorized",
    402: "Payment Required",
    403: "Forbidden",
    404: "Not Found",
    409: "Conflict",
    422: "Unprocessable Entity",
    500: "Internal Server Error",
    502: "Bad Gateway",
}


def problem_body(
    status: int,
    instance: str,
    detail: Optional[str] = None,
    code: Optional[str] = None,
    errors: Optional[Any] = None,
) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "type": "about:blank",
        "title": STATUS_TITLES.get(status, "Error"),
        "status": status,
        "detail": detail or "",
        "instance": instance,
    }
    if code:
        body["code"] = code
    if errors is not None:
        body["errors"] = jsonable_encoder(errors)
    return body


def _split_detail(detail: Any) -> Tuple[Optional[str], Optional[str], Optional[Any]]:
    """Pull (message, code, errors) out of an HTTPException detail."""
    if detail is None:
        return None, None, None
    if not isinstance(detail, dict):
        return str(detail), None, None

    message = detail.get("message") or detail.get("detail")
    code = detail.get("code")
    errors = detail.get("details") or detail.get("errors")
    return (
        message if isinstance(message, str) else None,
        code if isinstance(code, str) else None,
        errors or None,
    )


def _problem_response(
    body: Dict[str, Any], headers: Optional[Dict[str, str]] = None
) -> JSONResponse:
    return JSONResponse(
        body, status_code=body["status"], media_type=PROBLEM_MEDIA_TYPE, headers=headers
    )


def _from_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message, code, errors = _split_detail(exc.detail)
    body = problem_body(exc.status_code, request.url.path, message, code, errors)
    return _problem_response(body, getattr(exc, "headers", None))


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return _from_http_exception(request, exc)

    @app.exception_handler(StarletteHTTPException)
    async def starlette_http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        return _from_http_exception(request, exc)

    @app.exception_handler(DomainException)
    async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
        # Routes normally convert these; this catches any that escape.
        return _from_http_exception(request, exc.to_http_exception())

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        body = problem_body(
            400,
            request.url.path,
            "Request validation failed",
            code="validation_error",
            errors=exc.errors(),
        )
        return _problem_response(body)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        body = problem_body(
            500, request.url.path, "Internal Server Error", code="internal_server_error"
        )
        return _problem_response(body)
