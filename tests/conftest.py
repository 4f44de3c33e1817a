# tests/conftest.py
from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List

import pytest
from starlette.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.cache import MemoryImageCache  # noqa: E402
from app.config import Settings  # noqa: E402
from app.main import create_app  # noqa: E402
from tests.testlib.fake_upstream import FakeUpstream, encode_image  # noqa: E402


@pytest.fixture()
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture()
def png_bytes() -> Callable[..., bytes]:
    return lambda size=(8, 8), color=(200, 10, 10, 255): encode_image(size, color, "PNG")


@pytest.fixture()
def webp_bytes() -> Callable[..., bytes]:
    return lambda size=(8, 8), color=(200, 10, 10, 255): encode_image(size, color, "WEBP")


@pytest.fixture()
def make_client(upstream: FakeUpstream) -> Iterator[Callable[..., TestClient]]:
    """Build a gateway wired to the fake upstream; keyword args become settings."""
    opened: List[TestClient] = []

    def _make(cache_store: Any = None, **overrides: Any) -> TestClient:
        values: Dict[str, Any] = {"LOG_JSON": False}
        values.update(overrides)
        settings = Settings(**values)
        if cache_store is None and settings.CACHE_ENABLED:
            cache_store = MemoryImageCache(max_entries=settings.CACHE_MAX_ENTRIES)
        app = create_app(settings, transport=upstream.transport, cache_store=cache_store)
        client = TestClient(app)
        client.__enter__()
        opened.append(client)
        return client

    yield _make
    for client in opened:
        client.__exit__(None, None, None)


@pytest.fixture()
def client(make_client: Callable[..., TestClient]) -> TestClient:
    return make_client()


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Minimal asyncio support without requiring pytest-asyncio."""

    test_func = pyfuncitem.obj
    if asyncio.iscoroutinefunction(test_func):
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            call_kwargs = {
                name: pyfuncitem.funcargs[name] for name in pyfuncitem._fixtureinfo.argnames
            }
            loop.run_until_complete(test_func(**call_kwargs))
        finally:
            asyncio.set_event_loop(None)
            loop.close()
        return True
    return None
