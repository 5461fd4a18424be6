"""structlog wiring for the CLI and library callers.

structlog events and records from third-party stdlib loggers (httpx,
httpcore, asyncio) are both rendered by one ``ProcessorFormatter`` and
written to stderr. stdout is left to the command's own output.

Loggers only enqueue records; a ``QueueListener`` thread does the rendering
and the stderr writes, so a slow terminal never stalls the event loop.
"""

from __future__ import annotations

import atexit
import copy
import logging
import logging.config
import queue
import sys
from datetime import datetime, timezone
from logging.handlers import QueueHandler, QueueListener
from typing import Any

import structlog

from sourcerr.infrastructure.config.schema import AppConfig

log = structlog.get_logger(__name__)

_HTTP_LOGGERS = ("httpx", "httpcore")

_listener: QueueListener | None = None


def _stamp_foreign_record(
    _: Any, __: Any, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Timestamp stdlib records with their creation time.

    Rendering happens later on the listener thread; ``TimeStamper`` would
    stamp the render time instead.
    """
    record = event_dict.get("_record")
    if isinstance(record, logging.LogRecord):
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        event_dict["timestamp"] = created.isoformat().replace("+00:00", "Z")
    return event_dict


_FOREIGN_PRE_CHAIN: list[structlog.typing.Processor] = [
    structlog.contextvars.merge_contextvars,
    _stamp_foreign_record,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
]


def _final_renderer(log_format: str) -> structlog.typing.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def _formatter(config: AppConfig) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=list(_FOREIGN_PRE_CHAIN),
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _final_renderer(config.log_format),
        ],
    )


class _EventDictQueueHandler(QueueHandler):
    """Enqueue records as-is.

    The stock ``prepare`` flattens ``record.msg`` to a string, which would
    destroy the event dict ``ProcessorFormatter`` renders from.
    """

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        return copy.copy(record)


def build_logging_config(config: AppConfig) -> dict[str, Any]:
    """dictConfig for the stdlib side.

    The HTTP libraries log every request at INFO; they stay at WARNING
    unless the whole app runs at DEBUG.
    """
    http_level = "DEBUG" if config.log_level == "DEBUG" else "WARNING"
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "structlog": {
                "()": structlog.stdlib.ProcessorFormatter,
                "foreign_pre_chain": list(_FOREIGN_PRE_CHAIN),
                "processors": [
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    _final_renderer(config.log_format),
                ],
            },
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "structlog",
                "stream": "ext://sys.stderr",
            },
        },
        "loggers": {name: {"level": http_level} for name in _HTTP_LOGGERS},
        "root": {"handlers": ["default"], "level": config.log_level},
    }


def stop_log_listener() -> None:
    """Flush queued records and stop the listener thread (idempotent)."""
    global _listener
    listener, _listener = _listener, None
    if listener is not None:
        listener.stop()


def _route_through_queue(config: AppConfig) -> None:
    """Swap every handler for one queue handler feeding a stderr listener."""
    global _listener
    stop_log_listener()

    sink = logging.StreamHandler(stream=sys.stderr)
    sink.setFormatter(_formatter(config))

    records: queue.Queue[logging.LogRecord] = queue.Queue()
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(_EventDictQueueHandler(records))
    root.setLevel(config.log_level)

    for name in list(logging.root.manager.loggerDict):
        logger = logging.getLogger(name)
        logger.handlers.clear()
        logger.propagate = True

    _listener = QueueListener(records, sink, respect_handler_level=True)
    _listener.start()


def configure_logging(config: AppConfig) -> dict[str, Any]:
    """Configure structlog and stdlib logging; returns the applied dictConfig.

    The dictConfig sets levels; emission is then moved onto the queue.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    dict_config = build_logging_config(config)
    logging.config.dictConfig(dict_config)
    _route_through_queue(config)
    atexit.register(stop_log_listener)

    log.debug(
        "logging_configured",
        log_format=config.log_format,
        log_level=config.log_level,
    )
    return dict_config
