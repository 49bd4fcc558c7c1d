"""Pydantic configuration model for crisscross-guest."""

from __future__ import annotations

from typing import Any, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from crisscross_guest.constants import (
    DEFAULT_CACHE_TTL,
    DEFAULT_HOST,
    DEFAULT_LOG_LEVEL,
    DEFAULT_PORT,
    DEFAULT_REQUEST_TIMEOUT,
)
from crisscross_guest.errors import ConfigurationError

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


class GuestConfig(BaseModel):
    """Connection and cache settings for a guest."""

    host: str = Field(default=DEFAULT_HOST, min_length=1, description="Host running the guest API.")
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535, description="Guest API port.")
    cache_ttl: float = Field(
        default=DEFAULT_CACHE_TTL,
        gt=0,
        description="Seconds between background refreshes of the server list.",
    )
    request_timeout: float = Field(
        default=DEFAULT_REQUEST_TIMEOUT,
        gt=0,
        description="Pull request timeout in seconds.",
    )
    reload_timeout: Optional[float] = Field(
        default=None,
        gt=0,
        description="Seconds an awaited reload may take before failing (None waits forever).",
    )
    log_level: str = Field(default=DEFAULT_LOG_LEVEL)

    @field_validator("host", mode="before")
    @classmethod
    def _strip_host(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(_LOG_LEVELS)}")
        return level

    @classmethod
    def from_options(cls, options: Any) -> "GuestConfig":
        """Build a config from start-up options.

        A list is rejected; anything that is not a mapping yields the
        defaults; falsey ``host``/``port`` fall back to the defaults.
        """
        if isinstance(options, (list, tuple)):
            raise ConfigurationError(
                "Guest init options cannot be an array, it must be an object"
            )
        if not isinstance(options, Mapping):
            return cls()
        data = {k: v for k, v in options.items() if v is not None}
        for key in ("host", "port"):
            if key in data and not data[key]:
                del data[key]
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid guest init options: {exc}") from exc
