"""Logging and tracing for the helpdesk API.

Ticket transitions are logged at INFO by ``apps.api.services.tickets``.
Notification fan-out failures are logged there too, with a traceback, and
never re-raised. Every fan-out runs inside a ``notifications.fanout`` span,
exported over OTLP/HTTP when tracing is enabled.
"""

from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from apps.api.core.config import Settings

APP_LOGGER = "apps.api"
SERVICE_NAMESPACE = "helpdesk"

# Driver loggers stay at WARNING unless SQL echo is requested.
_DATABASE_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "asyncpg")

_TRACER_INITIALISED = False


def parse_otlp_headers(header_string: str | None) -> dict[str, str]:
    """Parse ``key=value,key2=value2`` into a header mapping."""

    if not header_string:
        return {}
    pairs = (item.partition("=") for item in header_string.split(","))
    return {key.strip(): value.strip() for key, sep, value in pairs if sep and key.strip()}


def _level(name: str) -> int:
    return getattr(logging, name.upper(), logging.INFO)


def logging_config(settings: Settings) -> dict[str, Any]:
    level = _level(settings.log_level)
    database_level = logging.INFO if settings.database_echo else logging.WARNING
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"helpdesk": {"format": settings.log_format}},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "helpdesk",
                "level": level,
            }
        },
        "loggers": {
            APP_LOGGER: {"level": level},
            **{name: {"level": database_level} for name in _DATABASE_LOGGERS},
        },
        "root": {"handlers": ["console"], "level": level},
    }


def configure_logging(settings: Settings) -> logging.Logger:
    """Apply :func:`logging_config` and return the ``apps.api`` logger."""

    dictConfig(logging_config(settings))
    logger = logging.getLogger(APP_LOGGER)
    logger.debug(
        "Logging configured. environment=%s level=%s sql_echo=%s",
        settings.environment,
        settings.log_level,
        settings.database_echo,
    )
    return logger


def tracing_resource(settings: Settings) -> Resource:
    return Resource.create(
        {
            "service.name": settings.otel_service_name,
            "service.namespace": SERVICE_NAMESPACE,
            "deployment.environment": settings.environment,
        }
    )


def init_tracer(settings: Settings) -> TracerProvider | None:
    """Install the OTLP tracer provider once, when tracing is enabled."""

    global _TRACER_INITIALISED

    if _TRACER_INITIALISED or not settings.otel_enabled:
        return None

    exporter_kwargs: dict[str, object] = {}
    if settings.otel_exporter_otlp_endpoint:
        exporter_kwargs["endpoint"] = settings.otel_exporter_otlp_endpoint
    headers = parse_otlp_headers(settings.otel_exporter_otlp_headers)
    if headers:
        exporter_kwargs["headers"] = headers

    provider = TracerProvider(resource=tracing_resource(settings))
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(**exporter_kwargs)))
    trace.set_tracer_provider(provider)
    _TRACER_INITIALISED = True
    logging.getLogger(APP_LOGGER).info(
        "Tracing enabled. service=%s endpoint=%s",
        settings.otel_service_name,
        settings.otel_exporter_otlp_endpoint or "default",
    )
    return provider


def shutdown_tracer(provider: TracerProvider | None) -> None:
    """Flush pending fan-out spans and release the provider."""

    global _TRACER_INITIALISED

    if provider is None:
        return
    provider.shutdown()
    _TRACER_INITIALISED = False
