"""Document-store access: HTTP client, in-memory store, error hierarchy."""

from .client import OadaClient, StoreResponse, normalize_path, resource_id_from_location
from .errors import (
    StoreAuthError,
    StoreConflictError,
    StoreError,
    StoreNotFoundError,
    StorePreconditionFailed,
    StoreTimeoutError,
)
from .inmemory import InMemoryStore

__all__ = [
    "InMemoryStore",
    "OadaClient",
    "StoreAuthError",
    "StoreConflictError",
    "StoreError",
    "StoreNotFoundError",
    "StorePreconditionFailed",
    "StoreResponse",
    "StoreTimeoutError",
    "normalize_path",
    "resource_id_from_location",
]
