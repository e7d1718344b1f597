"""Job queue runner and failure reporters."""

from .reporters import FailureReporter, SlackReporter
from .service import JobOutcome, JobService

__all__ = [
    "FailureReporter",
    "JobOutcome",
    "JobService",
    "SlackReporter",
]
