from __future__ import annotations

from typing import Any, Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.imaging.encoder import normalize_format

DEFAULT_QUALITY = 99
MIN_QUALITY = 1
MAX_QUALITY = 100

OutputFormat = Literal["jpeg", "jpg", "png", "webp"]


class RequestParams(BaseModel):
    """Query parameters of an image request, validated with defaults applied."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    url: str = ""
    action: str = ""
    format: OutputFormat = Field(default="webp")
    quality: int = Field(default=DEFAULT_QUALITY, ge=MIN_QUALITY, le=MAX_QUALITY)

    @field_validator("url", "action", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> str:
        return "" if value is None else str(value).strip()

    @field_validator("format", mode="before")
    @classmethod
    def _format(cls, value: Any) -> str:
        return normalize_format(None if value is None else str(value))

    @field_validator("quality", mode="before")
    @classmethod
    def _quality(cls, value: Any) -> int:
        if value is None or str(value).strip() == "":
            return DEFAULT_QUALITY
        try:
            q = int(float(str(value).strip()))
        except (ValueError, OverflowError):
            return DEFAULT_QUALITY
        return max(MIN_QUALITY, min(MAX_QUALITY, q))

    @classmethod
    def from_query(
        cls,
        query: Mapping[str, str],
        *,
        default_format: str = "webp",
        default_quality: int = DEFAULT_QUALITY,
    ) -> "RequestParams":
        data = {
            "url": query.get("url"),
            "action": query.get("action"),
            "format": query.get("format") or default_format,
            "quality": query.get("quality") or default_quality,
        }
        return cls.model_validate(data)


__all__ = ["RequestParams", "OutputFormat", "DEFAULT_QUALITY"]
