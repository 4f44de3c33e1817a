"""Parse a pipe chain and run it against an image handle.

Grammar::

    chain  := step ('|' step)*
    step   := name ('!' params)?
    params := param (',' param)*

Steps run strictly left to right. Unknown names are skipped. For two-image
steps the first parameter is the secondary image URL; if it is missing,
rejected by the whitelist or cannot be fetched or decoded, the step is skipped
and the primary image is left as it was.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, Tuple
from urllib.parse import unquote

from PIL import Image

from app.imaging.errors import (
    DecodeError,
    ErrorKind,
    FetchError,
    InvalidActionParam,
    ProcessingError,
    RuntimeProcessingError,
    UpstreamFetchError,
)
from app.imaging.handle import ImageHandle
from app.imaging.registry import DualImageOp, OperationHandler, SingleImageOp, resolve
from app.imaging.whitelist import WhitelistConfig, permitted
from app.metrics import PIPELINE_STEPS

log = logging.getLogger(__name__)

STEP_SEP = "|"
OP_SEP = "!"
PARAM_SEP = ","

SecondaryFetcher = Callable[[str], Awaitable[ImageHandle]]

# Faults raised by the image engine on bad input or bad parameters.
_RUNTIME_FAULTS = (
    InvalidActionParam,
    ValueError,
    OSError,
    ArithmeticError,
    IndexError,
    Image.DecompressionBombError,
)


class Arity(str, Enum):
    SINGLE = "single"
    DUAL = "dual"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Action:
    name: str
    arity: Arity
    params: Tuple[str, ...] = ()

    @property
    def secondary_url(self) -> Optional[str]:
        if self.arity is not Arity.DUAL or not self.params:
            return None
        url = unquote(self.params[0].strip())
        return url or None

    @property
    def literal_params(self) -> Tuple[str, ...]:
        if self.arity is Arity.DUAL:
            return self.params[1:]
        return self.params


def _arity_of(handler: Optional[OperationHandler]) -> Arity:
    if handler is None:
        return Arity.UNKNOWN
    if isinstance(handler, DualImageOp):
        return Arity.DUAL
    return Arity.SINGLE


def parse_step(step: str) -> Action:
    name, _, raw = step.partition(OP_SEP)
    name = name.strip()
    params: Tuple[str, ...] = tuple(raw.split(PARAM_SEP)) if raw else ()
    return Action(name=name, arity=_arity_of(resolve(name)), params=params)


def parse_pipeline(chain: str | None) -> Tuple[Action, ...]:
    steps = [s for s in (chain or "").split(STEP_SEP) if s.strip()]
    return tuple(parse_step(s) for s in steps)


def _classify(action: Action, exc: Exception) -> ProcessingError:
    message = f"{action.name} failed: {exc}"
    if isinstance(exc, _RUNTIME_FAULTS):
        return RuntimeProcessingError(message)
    return ProcessingError(message, kind=ErrorKind.INTERNAL)


async def _run_dual(
    handle: ImageHandle,
    action: Action,
    op: DualImageOp,
    whitelist: WhitelistConfig,
    fetch_secondary: SecondaryFetcher,
) -> bool:
    url = action.secondary_url
    if url is None:
        log.warning("skipping %s: no secondary image url", action.name)
        return False
    if not permitted(whitelist, url):
        log.warning("skipping %s: secondary url not whitelisted", action.name, extra={"url": url})
        return False
    try:
        secondary = await fetch_secondary(url)
    except (FetchError, UpstreamFetchError, DecodeError) as exc:
        log.warning("skipping %s: %s", action.name, exc, extra={"url": url})
        return False
    with secondary:
        try:
            result = op.apply(handle.image, secondary.image, action.literal_params)
        except Exception as exc:
            raise _classify(action, exc) from exc
    handle.replace(result)
    return True


def _run_single(handle: ImageHandle, action: Action, op: SingleImageOp) -> bool:
    try:
        result = op.apply(handle.image, action.literal_params)
    except Exception as exc:
        raise _classify(action, exc) from exc
    handle.replace(result)
    return True


async def run_pipeline(
    handle: ImageHandle,
    actions: Tuple[Action, ...],
    *,
    whitelist: WhitelistConfig,
    fetch_secondary: SecondaryFetcher,
) -> ImageHandle:
    """Apply ``actions`` in order; ``handle`` always holds the current image."""
    for action in actions:
        handler = resolve(action.name)
        if handler is None:
            log.warning("unknown action: %s", action.name)
            PIPELINE_STEPS.labels(operation="unknown", result="skipped").inc()
            continue

        log.info(
            "applying action: %s",
            action.name,
            extra={"action": action.name, "params": list(action.params)},
        )
        try:
            if isinstance(handler, DualImageOp):
                applied = await _run_dual(handle, action, handler, whitelist, fetch_secondary)
            else:
                applied = _run_single(handle, action, handler)
        except ProcessingError:
            PIPELINE_STEPS.labels(operation=action.name, result="error").inc()
            raise
        PIPELINE_STEPS.labels(
            operation=action.name, result="applied" if applied else "skipped"
        ).inc()
    return handle


__all__ = [
    "Action",
    "Arity",
    "SecondaryFetcher",
    "parse_step",
    "parse_pipeline",
    "run_pipeline",
]
