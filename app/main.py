# app/main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx
from fastapi import FastAPI

from app.cache import CacheGateway, ImageCache, RedisImageCache, build_store
from app.config import Settings, get_settings
from app.imaging.whitelist import WhitelistConfig
from app.middleware.access_log import AccessLogMiddleware
from app.middleware.request_id import RequestIDMiddleware
from app.net.http_client import build_http_client
from app.routes import health, image, metrics
from app.telemetry.errors import register_error_handlers
from app.telemetry.logging import configure_root_logging

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings: Settings = app.state.settings
    log.info(
        "gateway starting",
        extra={
            "whitelist": list(app.state.whitelist.suffixes),
            "cache_backend": settings.CACHE_BACKEND if app.state.cache.enabled else "disabled",
        },
    )
    try:
        yield
    finally:
        await app.state.http_client.aclose()
        store = app.state.cache.store
        if isinstance(store, RedisImageCache):
            await store.r.aclose()


def _build_cache(settings: Settings, store: Optional[ImageCache]) -> CacheGateway:
    if store is None and settings.CACHE_ENABLED:
        store = build_store(
            settings.CACHE_BACKEND,
            max_entries=settings.CACHE_MAX_ENTRIES,
            redis_url=settings.REDIS_URL,
            prefix=settings.CACHE_REDIS_PREFIX,
        )
    return CacheGateway(store, ttl_s=settings.CACHE_TTL_S)


def create_app(
    settings: Settings | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    cache_store: ImageCache | None = None,
) -> FastAPI:
    """Build the gateway.

    ``transport`` replaces the outbound HTTP transport and ``cache_store`` the
    configured cache backend; both exist for tests and embedding.
    """
    cfg = settings or get_settings()
    configure_root_logging(cfg.LOG_LEVEL, json_lines=cfg.LOG_JSON)

    app = FastAPI(
        title="Edge Image Gateway",
        description="Fetch, transform, re-encode and cache images by URL.",
        version=cfg.VERSION,
        lifespan=lifespan,
    )
    app.state.settings = cfg
    app.state.whitelist = WhitelistConfig.from_csv(cfg.WHITE_LIST)
    app.state.http_client = build_http_client(cfg, transport=transport)
    app.state.cache = _build_cache(cfg, cache_store)

    register_error_handlers(app)

    app.include_router(health.router)
    app.include_router(metrics.router)
    app.include_router(image.router)

    # Last added runs first: the request id must exist before the access log.
    app.add_middleware(AccessLogMiddleware)
    app.add_middleware(RequestIDMiddleware)
    return app
