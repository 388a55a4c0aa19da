"""
Structured logging for taproom.

Every module logs through structlog with dotted snake_case event names and
key/value fields::

    logger = get_logger(__name__)
    logger.info("enrichment.updated", beer_id="7781234", abv=5.6)

JSON output uses ECS field names (``@timestamp``, ``log.level``,
``service.name``) so worker and CLI logs land in the same index. Records go
to stderr; stdout is reserved for command output such as ``--json``.
Credentials that end up in a log call are masked before rendering.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

_SERVICE_NAME = "taproom"

_SECRET_KEYS = frozenset({"api_key", "authorization", "password", "smtp_password", "token"})


def _add_service_metadata(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    event_dict.setdefault("service.name", _SERVICE_NAME)
    return event_dict


def _mask_secrets(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    for key in _SECRET_KEYS.intersection(event_dict):
        if event_dict[key]:
            event_dict[key] = "***"
    return event_dict


def _elasticsearch_compatible(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    if "timestamp" in event_dict:
        event_dict["@timestamp"] = event_dict.pop("timestamp")
    if "level" in event_dict:
        event_dict["log.level"] = event_dict.pop("level")
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "taproom",
) -> None:
    """Configure structlog and the stdlib root logger once per process.

    Args:
        level: DEBUG, INFO, WARNING or ERROR.
        json_format: JSON lines when True, coloured console output when
            False, and JSON whenever stderr is not a terminal when None.
        service: Value of ``service.name`` on every record.
    """
    global _SERVICE_NAME
    _SERVICE_NAME = service
    numeric_level = getattr(logging, level.upper())

    if json_format is None:
        json_format = not sys.stderr.isatty()

    processors: list[Processor] = [
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.dev.set_exc_info,
        _add_service_metadata,
        _mask_secrets,
    ]
    if json_format:
        processors += [
            structlog.processors.format_exc_info,
            _elasticsearch_compatible,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=numeric_level)


def get_logger(name: str | None = None) -> Any:
    return structlog.get_logger(name)


class LogContext:
    """Bind fields for one unit of work and restore the previous values after.

    Nested contexts are safe: leaving the inner one puts back whatever the
    outer one had bound under the same keys.

    Example:
        async with LogContext(queue="beer-enrichment", message_id=envelope.id):
            logger.info("enrichment.received")
    """

    def __init__(self, **fields: Any):
        self._fields = fields
        self._tokens: dict[str, Any] = {}

    def __enter__(self) -> LogContext:
        self._tokens = structlog.contextvars.bind_contextvars(**self._fields)
        return self

    def __exit__(self, *exc_info: object) -> None:
        structlog.contextvars.reset_contextvars(**self._tokens)

    async def __aenter__(self) -> LogContext:
        return self.__enter__()

    async def __aexit__(self, *exc_info: object) -> None:
        self.__exit__(*exc_info)


__all__ = ["LogContext", "configure_logging", "get_logger"]
