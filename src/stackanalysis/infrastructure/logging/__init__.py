"""Structured logging for stack analysis runs -- structlog over stdlib logging.

:func:`setup_logging` routes both structlog events and plain
``logging.getLogger`` records (``httpx`` among them) through one processor
chain.  Every event carries a UTC timestamp, its level, the logger name and,
while a lifecycle is running, the correlation id bound with
:func:`bind_correlation_id`.

Console output is human readable unless ``json_output`` is set; the optional
log file is always JSON.
"""
from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from typing import Any

import structlog

_NOISY_LOGGERS = ("httpx", "httpcore", "asyncio")

_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")


def bind_correlation_id(correlation_id: str | None) -> None:
    """Tag every event logged in the current context with *correlation_id*."""
    _correlation_id.set(correlation_id or "")


def _inject_correlation_id(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    cid = _correlation_id.get()
    if cid:
        event_dict.setdefault("correlation_id", cid)
    return event_dict


def _pre_chain() -> list[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _inject_correlation_id,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _handler(handler: logging.Handler, renderer: Any, pre_chain: list[Any]) -> logging.Handler:
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
            foreign_pre_chain=pre_chain,
        )
    )
    return handler


def setup_logging(level: str = "info", json_output: bool = False, log_file: str | None = None) -> None:
    """Configure structlog and the root stdlib logger.

    Args:
        level: ``debug``, ``info``, ``warning`` or ``error``; unknown values
            fall back to ``info``.
        json_output: Render console lines as JSON instead of the dev renderer.
        log_file: Also append JSON lines to this file.
    """
    pre_chain = _pre_chain()
    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    console_renderer: Any = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    )
    handlers = [_handler(logging.StreamHandler(sys.stderr), console_renderer, pre_chain)]
    if log_file:
        handlers.append(
            _handler(logging.FileHandler(log_file, encoding="utf-8"), structlog.processors.JSONRenderer(), pre_chain)
        )

    root = logging.getLogger()
    root.handlers[:] = handlers
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.get_logger(__name__).debug("logging_configured", level=level, json_output=json_output, log_file=log_file)


__all__ = ["bind_correlation_id", "setup_logging"]
