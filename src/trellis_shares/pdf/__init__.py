"""PDF rendering of masked documents."""

from .extract import Row, Summary, pull_data
from .renderer import MaskedPdfRenderer, build_masked_pdf, default_filename

__all__ = [
    "MaskedPdfRenderer",
    "Row",
    "Summary",
    "build_masked_pdf",
    "default_filename",
    "pull_data",
]
