"""Error taxonomy for the image pipeline.

Each failure is classified where it happens (access, fetch, decode, runtime,
encode) so the request layer maps kinds to responses without inspecting
exception names.
"""

from __future__ import annotations

from enum import Enum
from typing import Mapping, Optional

import httpx


class ErrorKind(str, Enum):
    ACCESS_DENIED = "access_denied"
    UPSTREAM_FETCH = "upstream_fetch"
    FETCH = "fetch"
    DECODE = "decode"
    RUNTIME = "runtime"
    ENCODE = "encode"
    INTERNAL = "internal"


_STATUS_BY_KIND = {
    ErrorKind.ACCESS_DENIED: 403,
    ErrorKind.FETCH: 502,
    ErrorKind.DECODE: 415,
    ErrorKind.RUNTIME: 415,
    ErrorKind.ENCODE: 500,
    ErrorKind.INTERNAL: 500,
}


def status_for(kind: ErrorKind) -> int:
    """HTTP status for a failure kind. Upstream failures keep their own status."""
    return _STATUS_BY_KIND.get(kind, 500)


class ImagingError(Exception):
    kind: ErrorKind = ErrorKind.INTERNAL

    @property
    def status_code(self) -> int:
        return status_for(self.kind)


class AccessDenied(ImagingError):
    kind = ErrorKind.ACCESS_DENIED

    def __init__(self, url: str) -> None:
        super().__init__(f"url not permitted by whitelist: {url}")
        self.url = url


class FetchError(ImagingError):
    """Transport-level failure (connect, timeout, protocol) before any status."""

    kind = ErrorKind.FETCH

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"failed to fetch {url}: {reason}")
        self.url = url


class UpstreamFetchError(ImagingError):
    """Upstream answered with a non-success status; the response is kept as-is."""

    kind = ErrorKind.UPSTREAM_FETCH

    def __init__(self, url: str, response: httpx.Response) -> None:
        super().__init__(f"upstream fetch failed for {url} (status: {response.status_code})")
        self.url = url
        self.response = response

    @property
    def status_code(self) -> int:
        return self.response.status_code


class ProcessingError(ImagingError):
    """Failure after the source bytes were fetched; carries them for fallback."""

    def __init__(
        self,
        message: str,
        *,
        kind: Optional[ErrorKind] = None,
        source: bytes = b"",
        headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        super().__init__(message)
        if kind is not None:
            self.kind = kind
        self.source = source
        self.headers: Mapping[str, str] = dict(headers or {})


class DecodeError(ProcessingError):
    kind = ErrorKind.DECODE


class RuntimeProcessingError(ProcessingError):
    kind = ErrorKind.RUNTIME


class EncodeError(ProcessingError):
    kind = ErrorKind.ENCODE


class InvalidActionParam(ValueError):
    """Raised by an operation when a required parameter is missing."""


class HandleReleasedError(RuntimeError):
    """An image handle was used after its buffer was released."""


__all__ = [
    "ErrorKind",
    "status_for",
    "ImagingError",
    "AccessDenied",
    "FetchError",
    "UpstreamFetchError",
    "ProcessingError",
    "DecodeError",
    "RuntimeProcessingError",
    "EncodeError",
    "InvalidActionParam",
    "HandleReleasedError",
]
