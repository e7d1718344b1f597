"""Share pipeline exceptions.

Taxonomy:
  - ``ConfigurationError``: bad schema tree, unknown doctype, malformed job
    config. Fatal, never retried, surfaced verbatim to the job framework.
  - ``UpstreamError``: any non-404 store failure, wrapped with the operation
    and path/id it happened on. Fatal to the current job.

A 404 on an existence probe is not an error here; callers catch
``StoreNotFoundError`` directly where that is the expected signal.
"""

from __future__ import annotations

from types import TracebackType

from trellis_shares.store.errors import StoreError


class ShareError(Exception):
    """Base exception for the share pipeline."""


class ConfigurationError(ShareError):
    """Job or schema configuration cannot be satisfied."""


class JobConfigError(ConfigurationError):
    """Job config failed validation at the pipeline entry."""

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        self.errors = errors or []
        detail = f': {"; ".join(self.errors)}' if self.errors else ''
        super().__init__(f'{message}{detail}')


class RecipientListNotFound(ConfigurationError):
    """No notification recipients could be found for the destination."""

    def __init__(self, message: str, trading_partner: str | None = None) -> None:
        self.trading_partner = trading_partner
        super().__init__(message)


class UpstreamError(ShareError):
    """A store call failed; carries which operation and target were involved."""

    def __init__(self, operation: str, target: str, cause: StoreError) -> None:
        self.operation = operation
        self.target = target
        self.status_code = cause.status_code
        super().__init__(
            f'{operation} failed for {target}: '
            f'status={cause.status_code} {cause.message}'
        )


class upstream:
    """Context manager wrapping ``StoreError`` into ``UpstreamError``.

    Usage::

        with upstream('create copy resource', '/resources'):
            resp = await store.post('/resources', data)
    """

    def __init__(self, operation: str, target: str) -> None:
        self.operation = operation
        self.target = target

    def __enter__(self) -> upstream:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        if isinstance(exc, StoreError):
            raise UpstreamError(self.operation, self.target, exc) from exc
        return False
