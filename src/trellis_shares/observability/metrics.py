"""Prometheus metrics for trellis-shares.

Usage::

    from trellis_shares.observability.metrics import SHARE_JOBS_TOTAL

    SHARE_JOBS_TOTAL.labels(mode="link", status="success").inc()
"""

from __future__ import annotations

from prometheus_client import (
    REGISTRY,
    Counter,
    generate_latest,
    CONTENT_TYPE_LATEST,
)

# ---------------------------------------------------------------------------
# Share pipeline
# ---------------------------------------------------------------------------

SHARE_JOBS_TOTAL = Counter(
    "trellis_shares_jobs_total",
    "Share jobs handled, by share mode and outcome.",
    labelnames=["mode", "status"],
    registry=REGISTRY,
)

PDF_RENDERS_TOTAL = Counter(
    "trellis_shares_pdf_renders_total",
    "Masked PDF renderings attempted, by outcome (rendered/skipped).",
    labelnames=["outcome"],
    registry=REGISTRY,
)

EMAIL_JOBS_TOTAL = Counter(
    "trellis_shares_email_jobs_total",
    "Notification email jobs enqueued, by doctype.",
    labelnames=["doctype"],
    registry=REGISTRY,
)


def metrics_text() -> tuple[bytes, str]:
    """Generate Prometheus exposition text and content-type header."""
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
