# app/routes/metrics.py
# Prometheus /metrics exposition.
# - Hidden (404) when METRICS_ENABLED is off.
# - Optional key via METRICS_API_KEY (X-API-KEY or Bearer).

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import Response
from prometheus_client import REGISTRY, generate_latest

from app.config import Settings

router = APIRouter(tags=["metrics"])

# Force the classic Prometheus text exposition content type.
TEXT_EXPO_V004 = "text/plain; version=0.0.4; charset=utf-8"


def _auth_ok(request: Request, required: str) -> bool:
    hdr_key = request.headers.get("x-api-key")
    if hdr_key and hdr_key == required:
        return True
    auth = request.headers.get("authorization", "")
    if auth.lower().startswith("bearer "):
        return auth[7:].strip() == required
    return False


@router.get("/metrics", include_in_schema=False)
async def metrics(request: Request) -> Response:
    settings: Settings = request.app.state.settings
    if not settings.METRICS_ENABLED:
        raise HTTPException(status_code=404, detail="Not Found")

    required: Optional[str] = (settings.METRICS_API_KEY or "").strip() or None
    if required is not None and not _auth_ok(request, required):
        raise HTTPException(status_code=401, detail="Unauthorized")

    resp = Response(content=generate_latest(REGISTRY))
    resp.headers["Content-Type"] = TEXT_EXPO_V004
    return resp
