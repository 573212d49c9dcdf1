"""Proxyauth Infra Observability -- structlog configuration and logger factory."""

from __future__ import annotations

from proxyauth.infra.observability.logging import (
    LoggingSettings,
    SensitiveDataProcessor,
    configure_logging,
    get_logger,
)

__all__ = [
    "LoggingSettings",
    "SensitiveDataProcessor",
    "configure_logging",
    "get_logger",
]
