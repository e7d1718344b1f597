"""trellis-shares: link or copy shared documents into a trading partner's namespace."""

__version__ = "0.1.0"
