"""Structured logging with job-ID correlation, and share pipeline counters."""

from .logging import configure_logging, get_logger, job_id_ctx
from .metrics import metrics_text

__all__ = [
    "configure_logging",
    "get_logger",
    "job_id_ctx",
    "metrics_text",
]
