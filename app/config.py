# app/config.py
from __future__ import annotations

import os
from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings

from app.imaging.whitelist import split_csv

APP_VERSION = os.getenv("APP_VERSION", "1.0.0")
GIT_SHA = os.getenv("GIT_SHA", "")
BUILD_TS = os.getenv("BUILD_TS", "")

# 180 days
DEFAULT_MAX_AGE = 15552000


class Settings(BaseSettings):
    # --- Identity / Build ---
    APP_NAME: str = Field(default="edge-image-gateway")
    VERSION: str = Field(default=APP_VERSION)

    # --- Access control ---
    # Comma-separated hostname suffixes; empty allows every host.
    WHITE_LIST: str = Field(default="")

    # --- Request defaults ---
    INFO_URL: str = Field(default="https://github.com/ccbikai/cloudflare-worker-image")
    DEFAULT_FORMAT: Literal["jpeg", "jpg", "png", "webp"] = Field(default="webp")
    DEFAULT_QUALITY: int = Field(default=99, ge=1, le=100)
    # Request headers passed through to the image origin.
    FORWARD_HEADERS: str = Field(default="accept,accept-language,user-agent,referer")

    # --- Edge cache ---
    CACHE_ENABLED: bool = Field(default=True)
    CACHE_BACKEND: Literal["memory", "redis"] = Field(default="memory")
    CACHE_MAX_ENTRIES: int = Field(default=256, ge=0)
    CACHE_TTL_S: int = Field(default=DEFAULT_MAX_AGE, ge=0)
    CACHE_MAX_AGE: int = Field(default=DEFAULT_MAX_AGE, ge=0)
    CACHE_S_MAXAGE: bool = Field(default=False)
    CACHE_REDIS_PREFIX: str = Field(default="imagegw:cache")
    REDIS_URL: Optional[str] = None  # e.g. redis://localhost:6379/0

    # --- Outbound HTTP ---
    HTTPX_TIMEOUT_S: int = Field(default=30, ge=1)
    HTTPX_MAX_CONNECTIONS: int = Field(default=200, ge=1)
    HTTPX_MAX_KEEPALIVE: int = Field(default=100, ge=0)
    HTTPX_KEEPALIVE_S: int = Field(default=20, ge=0)

    # --- Logging / metrics ---
    LOG_JSON: bool = Field(default=True)
    LOG_LEVEL: str = Field(default="INFO")
    METRICS_ENABLED: bool = Field(default=True)
    METRICS_API_KEY: Optional[str] = None

    model_config = {
        "extra": "ignore",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }

    @property
    def forward_headers(self) -> List[str]:
        return split_csv(self.FORWARD_HEADERS)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    get_settings.cache_clear()
