#!/usr/bin/env python3
"""
Spool Logging
=============
Structured logging for encoders and tools, built on structlog.

    configure_logging(level="DEBUG", json_format=True)
    log = get_logger(__name__)
    log.debug("segment_encoded", encoding="json+zstd", segment_size=1234)

Logs go to stderr so CLI tools can keep stdout for their JSON results.
If nothing configured structlog yet, the first get_logger() call installs
a WARNING-level console setup.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, Optional

import structlog

_SERVICE_NAME = "spool"


def _add_service_metadata(logger, method_name: str, event_dict):
    event_dict.setdefault("service", _SERVICE_NAME)
    return event_dict


def _stderr_logger_factory(*args):
    # resolved per logger so a swapped sys.stderr is honoured
    return structlog.PrintLogger(file=sys.stderr)


def configure_logging(
    level: str = "INFO",
    json_format: Optional[bool] = None,
    service: str = "spool",
) -> None:
    """Configure structlog for the process.

    Args:
        level: DEBUG, INFO, WARNING or ERROR
        json_format: True for JSON lines, False for console, None to pick JSON when stderr is not a tty
        service: value of the `service` field on every event
    """
    global _SERVICE_NAME
    _SERVICE_NAME = service

    if json_format is None:
        json_format = not sys.stderr.isatty()

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        _add_service_metadata,
    ]
    if json_format:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level.upper())),
        context_class=dict,
        logger_factory=_stderr_logger_factory,
        cache_logger_on_first_use=False,
    )


def get_logger(name: Optional[str] = None, **initial_values: Any):
    if not structlog.is_configured():
        configure_logging(level="WARNING", json_format=False)
    return structlog.get_logger(name, **initial_values)


def bind_context(**kwargs: Any) -> None:
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
