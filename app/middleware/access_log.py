from __future__ import annotations

import json
import logging
import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

logger = logging.getLogger("access")


def _request_id_from_request(request: Request) -> str:
    rid = getattr(request.state, "request_id", None)
    if rid is None:
        rid = request.headers.get("X-Request-ID")
    return str(rid) if rid else ""


class AccessLogMiddleware(BaseHTTPMiddleware):
    """One JSON access record per request."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        record = {
            "event": "request",
            "request_id": _request_id_from_request(request),
            "method": request.method,
            "path": str(request.url.path),
            "status_code": response.status_code,
            "content_type": response.headers.get("content-type", ""),
            "cache": response.headers.get("x-cache", ""),
            "duration_ms": round((time.perf_counter() - started) * 1000.0, 2),
        }
        logger.info(json.dumps(record, ensure_ascii=False))
        return response
