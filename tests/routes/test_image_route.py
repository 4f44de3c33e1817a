# tests/routes/test_image_route.py
# End-to-end behaviour of GET / against a fake image origin.

from __future__ import annotations

from typing import List, Tuple
from urllib.parse import quote

from prometheus_client import REGISTRY

from app.cache import MemoryImageCache
from app.imaging.handle import ImageHandle
from tests.testlib.fake_upstream import open_rgba

ORIGIN = "https://img.example.com/cat.png"
MARK = "https://cdn.example.com/mark.png"
RED = (200, 10, 10, 255)
BLUE = (0, 0, 255, 255)


def _fallbacks(kind: str) -> float:
    return REGISTRY.get_sample_value("imagegw_fallback_total", {"kind": kind}) or 0.0


def test_transform_defaults_to_cacheable_webp(client, upstream, png_bytes) -> None:
    upstream.add(ORIGIN, png_bytes((40, 20)))
    r = client.get("/", params={"url": ORIGIN, "action": "resize!20,10"})
    assert r.status_code == 200
    assert r.headers["content-type"] == "image/webp"
    assert r.headers["cache-control"] == "public,max-age=15552000"
    assert r.headers["x-cache"] == "MISS"
    assert r.content[:4] == b"RIFF"
    assert open_rgba(r.content).size == (20, 10)


def test_second_request_is_served_from_cache(client, upstream, png_bytes) -> None:
    upstream.add(ORIGIN, png_bytes())
    params = {"url": ORIGIN, "action": "grayscale", "format": "png"}
    first = client.get("/", params=params)
    second = client.get("/", params=params)
    assert first.status_code == second.status_code == 200
    assert second.headers["x-cache"] == "HIT"
    assert second.content == first.content
    assert second.headers["content-type"] == "image/png"
    assert upstream.called(ORIGIN) == 1


def test_cache_disabled_always_refetches(make_client, upstream, png_bytes) -> None:
    client = make_client(CACHE_ENABLED=False)
    upstream.add(ORIGIN, png_bytes())
    client.get("/", params={"url": ORIGIN})
    r = client.get("/", params={"url": ORIGIN})
    assert r.headers["x-cache"] == "MISS"
    assert upstream.called(ORIGIN) == 2


def test_png_output_is_exact(client, upstream, png_bytes) -> None:
    upstream.add(ORIGIN, png_bytes((4, 4), RED))
    r = client.get("/", params={"url": ORIGIN, "format": "png", "action": "fliph|flipv"})
    assert r.status_code == 200
    img = open_rgba(r.content)
    assert img.size == (4, 4)
    assert img.getpixel((0, 0)) == RED


def test_jpg_alias_and_quality(client, upstream, png_bytes) -> None:
    upstream.add(ORIGIN, png_bytes((32, 32)))
    r = client.get("/", params={"url": ORIGIN, "format": "jpg", "quality": "500"})
    assert r.status_code == 200
    assert r.headers["content-type"] == "image/jpeg"
    assert r.content[:2] == b"\xff\xd8"


def test_webp_source_is_decoded(client, upstream, webp_bytes) -> None:
    url = "https://img.example.com/cat.webp"
    upstream.add(url, webp_bytes((10, 6)), content_type="image/webp")
    r = client.get("/", params={"url": url, "format": "png", "action": "rotate!90"})
    assert r.status_code == 200
    assert open_rgba(r.content).size == (6, 10)


def test_missing_url_redirects_to_info_page(client, upstream) -> None:
    r = client.get("/", follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == "https://github.com/ccbikai/cloudflare-worker-image"
    assert upstream.calls == []


def test_url_outside_whitelist_is_forbidden(make_client, upstream) -> None:
    client = make_client(WHITE_LIST="example.com")
    r = client.get("/", params={"url": "https://evil.test/a.png"})
    assert r.status_code == 403
    assert r.content == b""
    assert upstream.calls == []


def test_whitelisted_subdomain_is_allowed(make_client, upstream, png_bytes) -> None:
    client = make_client(WHITE_LIST="example.com")
    upstream.add(ORIGIN, png_bytes())
    assert client.get("/", params={"url": ORIGIN}).status_code == 200


def test_upstream_error_is_passed_through(client, upstream) -> None:
    upstream.add(ORIGIN, b"missing", content_type="text/plain", status=404, headers={"x-origin": "1"})
    r = client.get("/", params={"url": ORIGIN, "action": "grayscale"})
    assert r.status_code == 404
    assert r.content == b"missing"
    assert r.headers["content-type"].startswith("text/plain")
    assert r.headers["x-origin"] == "1"
    assert "x-cache" not in r.headers


def test_unreachable_upstream_is_bad_gateway(client, upstream) -> None:
    upstream.fail(ORIGIN)
    r = client.get("/", params={"url": ORIGIN})
    assert r.status_code == 502
    assert r.content == b""


def test_undecodable_source_falls_back_to_original_bytes(make_client, upstream) -> None:
    store = MemoryImageCache()
    client = make_client(cache_store=store)
    upstream.add(ORIGIN, b"not really a png", headers={"etag": '"v1"'})
    before = _fallbacks("decode")
    r = client.get("/", params={"url": ORIGIN, "action": "grayscale"})
    assert r.status_code == 415
    assert r.content == b"not really a png"
    assert r.headers["content-type"] == "image/png"
    assert r.headers["etag"] == '"v1"'
    assert "x-cache" not in r.headers
    assert len(store) == 0
    assert _fallbacks("decode") == before + 1
    client.get("/", params={"url": ORIGIN, "action": "grayscale"})
    assert upstream.called(ORIGIN) == 2


def test_failing_operation_falls_back_to_original_bytes(client, upstream, png_bytes) -> None:
    source = png_bytes((8, 8))
    upstream.add(ORIGIN, source)
    r = client.get("/", params={"url": ORIGIN, "action": "grayscale|crop!6,6,2,2"})
    assert r.status_code == 415
    assert r.content == source


def test_encode_failure_is_server_error(client, upstream, png_bytes, monkeypatch) -> None:
    from app.imaging import codecs

    def _boom(*_a, **_k):
        raise OSError("no encoder")

    monkeypatch.setattr(codecs, "webp_encode", _boom)
    source = png_bytes()
    upstream.add(ORIGIN, source)
    r = client.get("/", params={"url": ORIGIN})
    assert r.status_code == 500
    assert r.content == source


def test_unknown_action_is_a_noop(client, upstream, png_bytes) -> None:
    upstream.add(ORIGIN, png_bytes((5, 5), RED))
    r = client.get("/", params={"url": ORIGIN, "action": "sparkle!1,2", "format": "png"})
    assert r.status_code == 200
    img = open_rgba(r.content)
    assert img.size == (5, 5)
    assert img.getpixel((2, 2)) == RED


def test_watermark_fetches_secondary_image(client, upstream, png_bytes) -> None:
    upstream.add(ORIGIN, png_bytes((8, 8), RED))
    upstream.add(MARK, png_bytes((2, 2), BLUE))
    action = f"watermark!{quote(MARK, safe='')},3,3"
    r = client.get("/", params={"url": ORIGIN, "action": action, "format": "png"})
    assert r.status_code == 200
    img = open_rgba(r.content)
    assert img.getpixel((3, 3)) == BLUE
    assert img.getpixel((0, 0)) == RED
    assert upstream.called(MARK) == 1


def test_dual_op_with_forbidden_secondary_is_a_noop(make_client, upstream, png_bytes) -> None:
    client = make_client(WHITE_LIST="example.com")
    evil = "https://evil.test/mark.png"
    upstream.add(ORIGIN, png_bytes((8, 8), RED))
    upstream.add(evil, png_bytes((8, 8), BLUE))
    action = f"watermark!{quote(evil, safe='')},0,0"
    r = client.get("/", params={"url": ORIGIN, "action": action, "format": "png"})
    assert r.status_code == 200
    assert open_rgba(r.content).getpixel((0, 0)) == RED
    assert upstream.called(evil) == 0


def test_dual_op_with_broken_secondary_is_a_noop(client, upstream, png_bytes) -> None:
    upstream.add(ORIGIN, png_bytes((8, 8), RED))
    upstream.add(MARK, b"garbage")
    action = f"blend!{quote(MARK, safe='')},multiply|fliph"
    r = client.get("/", params={"url": ORIGIN, "action": action, "format": "png"})
    assert r.status_code == 200
    assert open_rgba(r.content).getpixel((0, 0)) == RED


def test_forwards_selected_request_headers(client, upstream, png_bytes) -> None:
    upstream.add(ORIGIN, png_bytes())
    client.get(
        "/",
        params={"url": ORIGIN},
        headers={"User-Agent": "gw-test", "Cookie": "secret=1"},
    )
    sent = upstream.calls[0].headers
    assert sent["user-agent"] == "gw-test"
    assert "cookie" not in sent


def test_request_id_is_echoed(client, upstream, png_bytes) -> None:
    upstream.add(ORIGIN, png_bytes())
    r = client.get("/", params={"url": ORIGIN}, headers={"X-Request-ID": "rid-123"})
    assert r.headers["X-Request-ID"] == "rid-123"


def test_unparsable_primary_url_is_forbidden(client, upstream) -> None:
    r = client.get("/", params={"url": "https://img.example.com/a\x00b.png"})
    assert r.status_code == 403
    assert r.content == b""
    assert upstream.calls == []


def test_unparsable_secondary_url_is_a_noop(client, upstream, png_bytes) -> None:
    upstream.add(ORIGIN, png_bytes((8, 8), RED))
    bad = quote("https://cdn.example.com/a\x00b.png", safe="")
    r = client.get(
        "/", params={"url": ORIGIN, "action": f"watermark!{bad},0,0|fliph", "format": "png"}
    )
    assert r.status_code == 200
    assert open_rgba(r.content).getpixel((0, 0)) == RED
    assert len(upstream.calls) == 1


def _record_releases(monkeypatch) -> List[Tuple[str, bool]]:
    released: List[Tuple[str, bool]] = []
    original = ImageHandle.release

    def _release(self: ImageHandle) -> bool:
        result = original(self)
        released.append((self.label, result))
        return result

    monkeypatch.setattr(ImageHandle, "release", _release)
    return released


def test_failing_operation_releases_primary(client, upstream, png_bytes, monkeypatch) -> None:
    released = _record_releases(monkeypatch)
    upstream.add(ORIGIN, png_bytes((8, 8)))
    r = client.get("/", params={"url": ORIGIN, "action": "grayscale|crop!6,6,2,2"})
    assert r.status_code == 415
    assert ("primary", True) in released


def test_failing_dual_operation_releases_both_images(
    client, upstream, png_bytes, monkeypatch
) -> None:
    released = _record_releases(monkeypatch)
    upstream.add(ORIGIN, png_bytes((8, 8), RED))
    upstream.add(MARK, png_bytes((2, 2), BLUE))
    r = client.get("/", params={"url": ORIGIN, "action": f"blend!{quote(MARK, safe='')}"})
    assert r.status_code == 415
    assert ("primary", True) in released
    assert ("secondary", True) in released


def test_encode_failure_releases_primary(client, upstream, png_bytes, monkeypatch) -> None:
    from app.imaging import codecs

    def _boom(*_a, **_k):
        raise OSError("no encoder")

    released = _record_releases(monkeypatch)
    monkeypatch.setattr(codecs, "webp_encode", _boom)
    upstream.add(ORIGIN, png_bytes())
    r = client.get("/", params={"url": ORIGIN})
    assert r.status_code == 500
    assert ("primary", True) in released
