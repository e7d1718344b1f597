"""Share pipeline: path resolution, copy/mask, notification, orchestration."""

from .copy import CopyEngine, CopyOutcome
from .errors import (
    ConfigurationError,
    JobConfigError,
    RecipientListNotFound,
    ShareError,
    UpstreamError,
)
from .model import ShareJobConfig, ShareMode
from .notify import NotificationDispatcher
from .orchestrator import JOB_TYPE, ShareJobHandler
from .resolver import ensure_linked
from .tree import SchemaNode

__all__ = [
    "JOB_TYPE",
    "ConfigurationError",
    "CopyEngine",
    "CopyOutcome",
    "JobConfigError",
    "NotificationDispatcher",
    "RecipientListNotFound",
    "SchemaNode",
    "ShareError",
    "ShareJobConfig",
    "ShareJobHandler",
    "ShareMode",
    "UpstreamError",
    "ensure_linked",
]
