# tests/logging/test_json_logging.py
# JSON formatter output and per-request access records.

from __future__ import annotations

import json
import logging
import sys

from app.middleware.request_id import _REQUEST_ID
from app.telemetry.logging import JsonFormatter, bind


def _record(msg: str, **extra) -> logging.LogRecord:
    rec = logging.LogRecord("app.test", logging.INFO, __file__, 1, msg, None, None)
    for k, v in extra.items():
        setattr(rec, k, v)
    return rec


def _find_json_event(caplog, event: str) -> dict | None:
    for rec in caplog.records:
        try:
            obj = json.loads(rec.getMessage())
        except ValueError:
            continue
        if isinstance(obj, dict) and obj.get("event") == event:
            return obj
    return None


def test_formatter_emits_stable_keys_and_extras() -> None:
    out = json.loads(JsonFormatter().format(_record("applying action", action="resize", params=["1", "2"])))
    assert out["level"] == "INFO"
    assert out["logger"] == "app.test"
    assert out["message"] == "applying action"
    assert out["ts"].endswith("Z")
    assert out["action"] == "resize"
    assert out["params"] == ["1", "2"]


def test_formatter_summarizes_bytes() -> None:
    out = json.loads(JsonFormatter().format(_record("cached", body=b"\x00" * 42)))
    assert out["body"] == "<42 bytes>"


def test_formatter_includes_current_request_id() -> None:
    token = _REQUEST_ID.set("rid-log")
    try:
        out = json.loads(JsonFormatter().format(_record("hello")))
    finally:
        _REQUEST_ID.reset(token)
    assert out["request_id"] == "rid-log"
    assert "request_id" not in json.loads(JsonFormatter().format(_record("hello")))


def test_formatter_renders_exceptions() -> None:
    try:
        raise ValueError("bad pixel")
    except ValueError:
        rec = logging.LogRecord("app.test", logging.ERROR, __file__, 1, "boom", None, sys.exc_info())
    out = json.loads(JsonFormatter().format(rec))
    assert "ValueError: bad pixel" in out["exc_info"]


def test_bind_merges_context(caplog) -> None:
    log = bind(logging.getLogger("app.test.bind"), url="https://a.example.com/x.png", format="png")
    with caplog.at_level(logging.INFO, logger="app.test.bind"):
        log.info("params", extra={"format": "webp", "action": "fliph"})
    rec = caplog.records[-1]
    assert rec.url == "https://a.example.com/x.png"
    assert rec.format == "webp"
    assert rec.action == "fliph"


def test_access_record_per_request(client, upstream, png_bytes, caplog) -> None:
    url = "https://img.example.com/log.png"
    upstream.add(url, png_bytes())
    with caplog.at_level(logging.INFO, logger="access"):
        r = client.get("/", params={"url": url})
    assert r.status_code == 200
    ev = _find_json_event(caplog, "request")
    assert ev is not None
    assert ev["method"] == "GET"
    assert ev["path"] == "/"
    assert ev["status_code"] == 200
    assert ev["content_type"] == "image/webp"
    assert ev["cache"] == "MISS"
    assert ev["request_id"] == r.headers["X-Request-ID"]
    assert isinstance(ev["duration_ms"], float)
