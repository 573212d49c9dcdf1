"""Structured logging configuration using structlog.

Every component takes an injected logger and falls back to
``get_logger(__name__)``. The ``create_*`` factories call
``configure_logging`` once with the ``debug`` flag from their settings:

- DEBUG level when the flag is set, ``LOG_LEVEL`` otherwise
- JSON lines when ``ENVIRONMENT=production``, console lines otherwise
- credentials redacted before rendering
- output on stderr, since stdout may belong to the host
"""

from __future__ import annotations

import logging
import sys
from functools import lru_cache
from typing import TYPE_CHECKING, Any, Literal

import structlog
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:
    from collections.abc import MutableMapping

SENSITIVE_FIELDS: frozenset[str] = frozenset(
    {"password", "token", "access_token", "authorization", "secret", "bearer", "credential"}
)
_SENSITIVE_SUBSTRINGS = ("password", "secret", "token")

REDACTED_VALUE: str = "***REDACTED***"

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class LoggingSettings(BaseSettings):
    """Logging configuration from ``LOG_LEVEL`` and ``ENVIRONMENT``.

    Example:
        >>> LoggingSettings(environment="production").use_json_logs
        True
    """

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    log_level: LogLevel = "INFO"
    environment: str = "development"

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: Any) -> str:
        return str(v).upper()

    @property
    def use_json_logs(self) -> bool:
        return self.environment == "production"

    @property
    def log_level_int(self) -> int:
        return logging.getLevelNamesMapping()[self.log_level]


class SensitiveDataProcessor:
    """Structlog processor that redacts credential-bearing fields.

    A field is redacted when its name, case-insensitively, is in
    ``SENSITIVE_FIELDS`` or contains "password", "secret" or "token".
    """

    def __call__(
        self,
        logger: Any,
        method_name: str,
        event_dict: MutableMapping[str, Any],
    ) -> MutableMapping[str, Any]:
        for key in list(event_dict):
            lowered = key.lower()
            if lowered in SENSITIVE_FIELDS or any(s in lowered for s in _SENSITIVE_SUBSTRINGS):
                event_dict[key] = REDACTED_VALUE
        return event_dict


@lru_cache(maxsize=1)
def get_logging_settings() -> LoggingSettings:
    """Cached LoggingSettings; clear with ``get_logging_settings.cache_clear()``."""
    return LoggingSettings()


def configure_logging(settings: LoggingSettings | None = None, *, debug: bool = False) -> None:
    """Configure structlog for this process.

    Args:
        settings: Logging settings, loaded from the environment if omitted.
        debug: Force DEBUG level regardless of ``settings.log_level``.
    """
    if settings is None:
        settings = get_logging_settings()

    level = logging.DEBUG if debug else settings.log_level_int
    renderer = (
        structlog.processors.JSONRenderer()
        if settings.use_json_logs
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            SensitiveDataProcessor(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.typing.WrappedLogger:
    """Return a structlog logger bound to ``name`` (typically ``__name__``)."""
    return structlog.get_logger().bind(logger=name)
