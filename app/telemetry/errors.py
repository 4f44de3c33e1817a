"""JSON error bodies for the non-image routes.

The image route answers failures itself (passthrough, fallback bytes, empty
403/502). Everything else, and any imaging error that escapes a handler, is
rendered here as ``{"detail", "code", "request_id"}``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.imaging.errors import ImagingError
from app.middleware.request_id import HEADER, get_request_id

log = logging.getLogger(__name__)

_STATUS_TO_CODE = {
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    415: "unsupported_media_type",
    422: "validation_error",
    502: "bad_gateway",
    503: "unavailable",
}


def error_code(status: int) -> str:
    return _STATUS_TO_CODE.get(status, "error")


def _json_error(
    request: Request,
    *,
    detail: str,
    status: int,
    code: Optional[str] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    rid = get_request_id() or request.headers.get(HEADER) or str(uuid4())
    body: Dict[str, Any] = {"detail": detail, "code": code or error_code(status), "request_id": rid}
    if extra:
        body.update(extra)
    return JSONResponse(status_code=status, content=body, headers={HEADER: rid})


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exc_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        detail = exc.detail if isinstance(exc.detail, str) else "HTTP error"
        return _json_error(request, detail=detail, status=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_exc_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _json_error(
            request,
            detail="Validation failed",
            status=422,
            extra={"errors": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(ImagingError)
    async def imaging_exc_handler(request: Request, exc: ImagingError) -> JSONResponse:
        log.warning("imaging error on %s: %s", request.url.path, exc, extra={"kind": exc.kind.value})
        return _json_error(request, detail=str(exc), status=exc.status_code, code=exc.kind.value)

    @app.exception_handler(Exception)
    async def unhandled_exc_handler(request: Request, exc: Exception) -> JSONResponse:
        log.exception("unhandled error on %s", request.url.path)
        return _json_error(request, detail="Internal server error", status=500, code="internal_error")
