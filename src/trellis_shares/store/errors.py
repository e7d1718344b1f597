"""Document-store error hierarchy.

The in-memory store and the HTTP client raise exactly these exceptions.
They carry no httpx types, no response object and never the bearer token.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class StoreError(Exception):
    """Base error for a non-2xx answer from the document store."""

    status_code: int
    message: str
    method: str = ""
    path: str = ""

    def __str__(self) -> str:
        bits: list[str] = [f"StoreError(status={self.status_code})"]
        if self.method or self.path:
            bits.append(f"{self.method} {self.path}".strip())
        bits.append(self.message)
        return " ".join(bits)


class StoreAuthError(StoreError):
    """401/403: bad token or no permission on the path."""


class StoreNotFoundError(StoreError):
    """404: nothing at the path. Used as a control-flow signal by existence probes."""


class StoreConflictError(StoreError):
    """409 conflicts."""


class StorePreconditionFailed(StoreError):
    """412: If-Match revision did not match the current revision."""


class StoreTimeoutError(StoreError):
    """Request to the store timed out (status 0)."""


def error_for_status(status_code: int) -> type[StoreError]:
    if status_code in (401, 403):
        return StoreAuthError
    if status_code == 404:
        return StoreNotFoundError
    if status_code == 409:
        return StoreConflictError
    if status_code == 412:
        return StorePreconditionFailed
    return StoreError
