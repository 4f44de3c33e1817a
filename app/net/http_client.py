from __future__ import annotations

import httpx

from app.config import Settings, get_settings


def build_http_client(
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Pooled client for origin fetches; ``transport`` is swapped in by tests."""
    cfg = settings or get_settings()
    limits = httpx.Limits(
        max_connections=cfg.HTTPX_MAX_CONNECTIONS,
        max_keepalive_connections=cfg.HTTPX_MAX_KEEPALIVE,
        keepalive_expiry=cfg.HTTPX_KEEPALIVE_S,
    )
    return httpx.AsyncClient(
        timeout=cfg.HTTPX_TIMEOUT_S,
        limits=limits,
        transport=transport,
        headers={"user-agent": f"{cfg.APP_NAME}/{cfg.VERSION}"},
    )
