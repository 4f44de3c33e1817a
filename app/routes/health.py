from __future__ import annotations

import platform
import sys
import time
from typing import Any, Dict

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from app import config
from app.cache import MemoryImageCache, RedisImageCache
from app.imaging import codecs, registry

router = APIRouter(tags=["ops"])


def _ok(name: str, detail: Any | None = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"status": "ok"}
    if detail is not None:
        payload["detail"] = detail
    return {name: payload}


def _fail(name: str, detail: Any | None = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"status": "fail"}
    if detail is not None:
        payload["detail"] = detail
    return {name: payload}


def _check_codecs() -> Dict[str, Any]:
    if codecs.webp_available():
        return _ok("codecs", {"webp": True})
    return _fail("codecs", {"webp": False})


async def _check_cache(app: Any) -> Dict[str, Any]:
    gateway = getattr(app.state, "cache", None)
    store = getattr(gateway, "store", None)
    if store is None:
        return _ok("cache", {"backend": "disabled"})
    if isinstance(store, MemoryImageCache):
        return _ok("cache", {"backend": "memory", "entries": len(store)})
    if isinstance(store, RedisImageCache):
        try:
            pong = bool(await store.r.ping())
        except Exception as exc:  # pragma: no cover - depends on live redis
            return _fail("cache", {"backend": "redis", "error": type(exc).__name__})
        detail = {"backend": "redis", "ping": pong}
        return _ok("cache", detail) if pong else _fail("cache", detail)
    return _ok("cache", {"backend": type(store).__name__})


@router.get("/livez")
async def livez() -> JSONResponse:
    return JSONResponse({"status": "ok", "ok": True, "time": time.time()})


@router.get("/readyz")
async def readyz(request: Request) -> JSONResponse:
    checks: Dict[str, Any] = {}
    checks.update(_check_codecs())
    checks.update(await _check_cache(request.app))

    overall = "ok"
    for value in checks.values():
        if isinstance(value, dict) and value.get("status") == "fail":
            overall = "fail"
            break

    status_code = 200 if overall == "ok" else 503
    payload = {"status": overall, "ok": overall == "ok", "checks": checks}
    return JSONResponse(payload, status_code=status_code)


@router.get("/health")
async def health_alias(request: Request) -> JSONResponse:
    return await readyz(request)


@router.get("/status")
async def status(request: Request) -> JSONResponse:
    settings: config.Settings = request.app.state.settings
    whitelist = request.app.state.whitelist
    return JSONResponse(
        {
            "status": "ok",
            "name": settings.APP_NAME,
            "version": settings.VERSION,
            "git_sha": config.GIT_SHA,
            "build_ts": config.BUILD_TS,
            "runtime": {
                "python": sys.version.split(" ")[0],
                "platform": platform.platform(),
            },
            "operations": registry.names(),
            "whitelist": list(whitelist.suffixes),
            "cache": {
                "enabled": request.app.state.cache.enabled,
                "backend": settings.CACHE_BACKEND,
            },
        }
    )
