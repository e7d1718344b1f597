"""Async HTTP client for an OADA-style resource store.

This is the single point of HTTP interaction with the document store. Paths
are hierarchical (``/bookmarks/...`` or ``/resources/<id>/...``); a link is a
small ``{"_id": ..., "_rev"?: ...}`` object stored at a key, and ``_meta`` is
the reserved per-resource metadata sub-path.

Transient failures (429/5xx, timeouts) are retried with exponential backoff
and full jitter. Every other non-2xx status raises the matching
``StoreError`` subclass immediately.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Mapping

import httpx

from .errors import StoreError, StoreTimeoutError, error_for_status

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

_DEFAULT_MAX_RETRIES = 3
_DEFAULT_BASE_DELAY = 0.5  # seconds
_DEFAULT_MAX_DELAY = 10.0  # seconds

JSON_CONTENT_TYPE = "application/json"

# Module-level shared client for connection pooling in worker runtimes.
_shared_async_client: httpx.AsyncClient | None = None


def _get_shared_async_client(verify: bool = True) -> httpx.AsyncClient:
    global _shared_async_client
    if _shared_async_client is None:
        _shared_async_client = httpx.AsyncClient(verify=verify)
    return _shared_async_client


def _reset_shared_async_client_for_tests() -> None:
    """Test helper: clear shared client cache (does not close the instance)."""
    global _shared_async_client
    _shared_async_client = None


@dataclass(frozen=True, slots=True)
class StoreResponse:
    """Successful store answer: status, decoded body, and response headers."""

    status: int
    data: Any = None
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def location(self) -> str | None:
        return self.headers.get("content-location")

    @property
    def resource_id(self) -> str | None:
        """``resources/<id>`` derived from the content-location header."""
        return resource_id_from_location(self.location)


def resource_id_from_location(location: str | None) -> str | None:
    if not location:
        return None
    return location.lstrip("/")


def normalize_path(path: str) -> str:
    return "/" + path.strip("/")


class OadaClient:
    """Minimal async client for get/put/post/delete over the resource graph."""

    def __init__(
        self,
        *,
        domain: str,
        token: str,
        http_client: httpx.AsyncClient | None = None,
        verify_tls: bool = True,
        timeout_seconds: float = 30.0,
        max_retries: int = _DEFAULT_MAX_RETRIES,
        base_delay: float = _DEFAULT_BASE_DELAY,
        max_delay: float = _DEFAULT_MAX_DELAY,
    ) -> None:
        if not domain:
            raise ValueError("domain is required")
        if not token:
            raise ValueError("token is required")

        if not domain.startswith("http"):
            domain = f"https://{domain}"
        self._base_url = domain.rstrip("/")
        self._token = token
        self._client = http_client or _get_shared_async_client(verify=verify_tls)
        self._timeout = float(timeout_seconds)
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._max_delay = max_delay

    @property
    def base_url(self) -> str:
        return self._base_url

    def _auth_headers(self) -> dict[str, str]:
        # Never log these headers.
        return {"Authorization": f"Bearer {self._token}"}

    def _raise_for_error(self, resp: httpx.Response, method: str, path: str) -> None:
        if resp.status_code < 400:
            return

        body = resp.text
        message = body[:200] if body else f"HTTP {resp.status_code}"
        try:
            payload = resp.json()
            if isinstance(payload, dict):
                message = str(payload.get("message") or payload.get("title") or message)
        except ValueError:
            pass

        err_cls = error_for_status(resp.status_code)
        raise err_cls(
            status_code=resp.status_code,
            message=message,
            method=method,
            path=path,
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        data: Any = None,
        content_type: str | None = None,
        extra_headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        path = normalize_path(path)
        url = f"{self._base_url}{path}"
        headers = {**self._auth_headers(), **(extra_headers or {})}

        kwargs: dict[str, Any] = {}
        if data is not None:
            if isinstance(data, (bytes, bytearray)):
                kwargs["content"] = bytes(data)
                headers["Content-Type"] = content_type or "application/octet-stream"
            else:
                kwargs["json"] = data
                headers["Content-Type"] = content_type or JSON_CONTENT_TYPE

        for attempt in range(self._max_retries + 1):
            try:
                resp = await self._client.request(
                    method,
                    url,
                    headers=headers,
                    timeout=self._timeout,
                    **kwargs,
                )
            except httpx.TimeoutException as e:
                if attempt < self._max_retries:
                    delay = self._backoff_delay(attempt)
                    logger.warning(
                        "Store %s %s timed out (attempt %d/%d), retrying in %.1fs",
                        method,
                        path,
                        attempt + 1,
                        self._max_retries + 1,
                        delay,
                    )
                    await asyncio.sleep(delay)
                    continue
                raise StoreTimeoutError(
                    status_code=0, message=str(e) or "request timed out", method=method, path=path
                ) from e

            if resp.status_code not in _RETRYABLE_STATUS_CODES or attempt >= self._max_retries:
                self._raise_for_error(resp, method, path)
                return resp

            delay = self._retry_after_delay(resp, attempt)
            logger.warning(
                "Store %s %s returned %d (attempt %d/%d), retrying in %.1fs",
                method,
                path,
                resp.status_code,
                attempt + 1,
                self._max_retries + 1,
                delay,
            )
            await asyncio.sleep(delay)

        raise StoreError(status_code=0, message="exhausted retries with no response", method=method, path=path)

    def _backoff_delay(self, attempt: int) -> float:
        """Exponential backoff with full jitter."""
        ceiling = min(self._max_delay, self._base_delay * (2**attempt))
        return random.uniform(0, ceiling)

    def _retry_after_delay(self, resp: httpx.Response, attempt: int) -> float:
        retry_after = resp.headers.get("retry-after")
        if retry_after:
            try:
                return min(float(retry_after), self._max_delay)
            except ValueError:
                pass
        return self._backoff_delay(attempt)

    @staticmethod
    def _decode(resp: httpx.Response) -> Any:
        if not resp.content:
            return None
        ctype = resp.headers.get("content-type", "")
        if "json" in ctype:
            return resp.json()
        if ctype.startswith("text/"):
            return resp.text
        return resp.content

    def _response(self, resp: httpx.Response, *, decode: bool = True) -> StoreResponse:
        return StoreResponse(
            status=resp.status_code,
            data=self._decode(resp) if decode else None,
            headers=dict(resp.headers),
        )

    async def get(self, path: str) -> StoreResponse:
        resp = await self._request("GET", path)
        return self._response(resp)

    async def put(
        self,
        path: str,
        data: Any,
        *,
        content_type: str | None = None,
        if_match: int | str | None = None,
    ) -> StoreResponse:
        headers: dict[str, str] = {}
        if if_match is not None:
            headers["If-Match"] = str(if_match)
        resp = await self._request(
            "PUT", path, data=data, content_type=content_type, extra_headers=headers
        )
        return self._response(resp, decode=False)

    async def post(
        self,
        path: str,
        data: Any,
        *,
        content_type: str | None = None,
    ) -> StoreResponse:
        resp = await self._request("POST", path, data=data, content_type=content_type)
        return self._response(resp, decode=False)

    async def delete(self, path: str) -> StoreResponse:
        resp = await self._request("DELETE", path)
        return self._response(resp, decode=False)

    async def aclose(self) -> None:
        global _shared_async_client
        if self._client is _shared_async_client:
            _shared_async_client = None
        await self._client.aclose()
