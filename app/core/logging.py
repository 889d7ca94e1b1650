"""Log and trace setup for the Ticket Desk API."""

from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SpanExporter

from app.core.config import Settings

# The global tracer provider can only be installed once per process.
_active_provider: TracerProvider | None = None


def parse_otlp_headers(raw: str | None) -> dict[str, str]:
    """Turn ``key=value,key2=value2`` into a header mapping, skipping malformed pairs."""

    pairs = (item.partition("=") for item in (raw or "").split(","))
    return {key.strip(): value.strip() for key, sep, value in pairs if sep and key.strip()}


def _logging_config(settings: Settings) -> dict[str, Any]:
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"console": {"format": settings.log_format}},
        "handlers": {
            "console": {"class": "logging.StreamHandler", "formatter": "console", "level": level},
        },
        # httpx logs every upload request at INFO.
        "loggers": {"httpx": {"level": max(level, logging.WARNING)}},
        "root": {"handlers": ["console"], "level": level},
    }


def configure_logging(settings: Settings) -> logging.Logger:
    """Install the console handler and return the application logger."""

    config = _logging_config(settings)
    dictConfig(config)
    logger = logging.getLogger(settings.app_name)
    logger.setLevel(config["root"]["level"])
    return logger


def init_tracer(settings: Settings, *, exporter: SpanExporter | None = None) -> TracerProvider | None:
    """Install an OTLP/HTTP tracer provider when tracing is switched on.

    Returns ``None`` when tracing is disabled or a provider is already active.
    Ticket service spans (``tickets.create``, ``tickets.upload_attachment``,
    ``tickets.respond``, ``tickets.set_status``) flow through this provider.
    """

    global _active_provider

    if not settings.otel_enabled or _active_provider is not None:
        return None

    if exporter is None:
        options: dict[str, Any] = {}
        if settings.otel_exporter_otlp_endpoint:
            options["endpoint"] = settings.otel_exporter_otlp_endpoint
        headers = parse_otlp_headers(settings.otel_exporter_otlp_headers)
        if headers:
            options["headers"] = headers
        exporter = OTLPSpanExporter(**options)

    provider = TracerProvider(resource=Resource.create({"service.name": settings.otel_service_name}))
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
    _active_provider = provider
    return provider


def shutdown_tracer(provider: TracerProvider | None) -> None:
    """Flush and stop ``provider``; a ``None`` provider is ignored."""

    global _active_provider

    if provider is None:
        return
    provider.shutdown()
    if provider is _active_provider:
        _active_provider = None
