"""GET /: fetch, transform, encode and cache an image.

Response policy:

- cache hit: the cached response is replayed.
- no ``url``: 302 to the project info page.
- ``url`` outside the whitelist: 403 with an empty body.
- upstream answers non-2xx: that response is passed through unchanged.
- upstream unreachable: 502 with an empty body.
- anything failing after the fetch: the original bytes with the upstream
  headers, 415 for decode/runtime faults and 500 otherwise, never cached.
"""

from __future__ import annotations

import logging
import time
from typing import Dict

import httpx
from fastapi import APIRouter, Request
from starlette.responses import RedirectResponse, Response

from app.cache import CachedImage, CacheGateway, cache_control, cache_key
from app.config import Settings
from app.imaging.acquire import (
    acquire,
    passthrough_headers,
    select_forward_headers,
)
from app.imaging.encoder import encode
from app.imaging.errors import (
    AccessDenied,
    DecodeError,
    ErrorKind,
    FetchError,
    ProcessingError,
    UpstreamFetchError,
    status_for,
)
from app.imaging.handle import ImageHandle
from app.imaging.params import RequestParams
from app.imaging.pipeline import parse_pipeline, run_pipeline
from app.imaging.whitelist import WhitelistConfig, permitted
from app.metrics import FALLBACKS, REQUEST_SECONDS, REQUESTS
from app.telemetry.logging import bind

router = APIRouter(tags=["image"])

log = logging.getLogger(__name__)


def _cached_response(entry: CachedImage) -> Response:
    headers = dict(entry.headers)
    headers["x-cache"] = "HIT"
    return Response(content=entry.body, status_code=entry.status, headers=headers)


def _upstream_response(resp: httpx.Response) -> Response:
    return Response(
        content=resp.content,
        status_code=resp.status_code,
        headers=passthrough_headers(resp.headers),
    )


def _fallback_response(
    kind: ErrorKind, source: bytes, headers: Dict[str, str]
) -> Response:
    FALLBACKS.labels(kind=kind.value).inc()
    REQUESTS.labels(outcome="fallback").inc()
    return Response(content=source, status_code=status_for(kind), headers=headers)


@router.get("/")
async def transform_image(request: Request) -> Response:
    started = time.perf_counter()
    try:
        return await _serve(request)
    finally:
        REQUEST_SECONDS.observe(time.perf_counter() - started)


async def _serve(request: Request) -> Response:
    state = request.app.state
    settings: Settings = state.settings
    gateway: CacheGateway = state.cache
    whitelist: WhitelistConfig = state.whitelist
    client: httpx.AsyncClient = state.http_client

    key = cache_key(str(request.url))
    cached = await gateway.lookup(key)
    if cached is not None:
        REQUESTS.labels(outcome="cached").inc()
        return _cached_response(cached)

    params = RequestParams.from_query(
        request.query_params,
        default_format=settings.DEFAULT_FORMAT,
        default_quality=settings.DEFAULT_QUALITY,
    )
    rlog = bind(log, url=params.url, format=params.format, quality=params.quality)
    rlog.info("params", extra={"action": params.action})

    if not params.url:
        REQUESTS.labels(outcome="redirect").inc()
        return RedirectResponse(settings.INFO_URL, status_code=302)

    if not permitted(whitelist, params.url):
        denied = AccessDenied(params.url)
        rlog.warning(str(denied))
        REQUESTS.labels(outcome="forbidden").inc()
        return Response(status_code=denied.status_code)

    forward = select_forward_headers(request.headers, settings.forward_headers)
    try:
        acquired = await acquire(client, params.url, forward)
    except UpstreamFetchError as exc:
        REQUESTS.labels(outcome="upstream").inc()
        return _upstream_response(exc.response)
    except FetchError as exc:
        rlog.warning("%s", exc)
        REQUESTS.labels(outcome="upstream").inc()
        return Response(status_code=502)
    except DecodeError as exc:
        rlog.error("process:error %s: %s", exc.kind.value, exc)
        return _fallback_response(exc.kind, exc.source, dict(exc.headers))

    source = acquired.body
    source_headers = acquired.headers

    async def fetch_secondary(url: str) -> ImageHandle:
        secondary = await acquire(client, url, forward, label="secondary")
        return secondary.handle

    try:
        with acquired.handle as handle:
            await run_pipeline(
                handle,
                parse_pipeline(params.action),
                whitelist=whitelist,
                fetch_secondary=fetch_secondary,
            )
            encoded = encode(handle, params.format, params.quality)
    except ProcessingError as exc:
        rlog.error("process:error %s: %s", exc.kind.value, exc)
        return _fallback_response(exc.kind, source, source_headers)
    except Exception:
        # Unclassified fault: still answer with the source image.
        rlog.exception("process:error unclassified")
        return _fallback_response(ErrorKind.INTERNAL, source, source_headers)

    headers = {
        "content-type": encoded.content_type,
        "cache-control": cache_control(settings.CACHE_MAX_AGE, settings.CACHE_S_MAXAGE),
    }
    entry = CachedImage(
        status=200,
        headers=dict(headers),
        body=encoded.body,
        content_type=encoded.content_type,
    )
    headers["x-cache"] = "MISS"
    REQUESTS.labels(outcome="ok").inc()
    return Response(
        content=encoded.body,
        status_code=200,
        headers=headers,
        background=gateway.deferred_write(key, entry),
    )
