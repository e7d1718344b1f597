"""structlog setup for the worker process.

Structured events from ``get_logger`` and plain ``logging.getLogger`` records
from leaf modules share one stdout handler. Every line logged while a job
runs carries its ``job_id``.
"""

from __future__ import annotations

import logging
import os
import sys
from contextvars import ContextVar

import structlog

# Key of the queued job being handled; set by JobService.run_job.
job_id_ctx: ContextVar[str | None] = ContextVar("job_id", default=None)

_QUIET_LOGGERS = ("httpx", "httpcore", "fpdf")

_configured = False


def _add_job_id(logger: logging.Logger, method_name: str, event_dict: dict) -> dict:
    job_id = job_id_ctx.get()
    if job_id is not None:
        event_dict["job_id"] = job_id
    return event_dict


def _pre_chain() -> list:
    return [
        structlog.contextvars.merge_contextvars,
        _add_job_id,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
    ]


def _handler(json_output: bool) -> logging.Handler:
    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_pre_chain(),
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )
    return handler


def configure_logging(*, level: str | None = None, json_output: bool | None = None) -> None:
    """Route structlog and stdlib logging to stdout; later calls are no-ops.

    ``level`` falls back to ``LOG_LEVEL`` (INFO). ``json_output`` falls back
    to ``LOG_FORMAT`` being ``json``, its default.
    """
    global _configured
    if _configured:
        return
    _configured = True

    level = level or os.environ.get("LOG_LEVEL", "INFO")
    if json_output is None:
        json_output = os.environ.get("LOG_FORMAT", "json") == "json"

    structlog.configure(
        processors=[*_pre_chain(), structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(_handler(json_output))
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
