"""Failure reporters notified when a job ends in error."""

from __future__ import annotations

from typing import Protocol

import httpx


class FailureReporter(Protocol):
    """Receives one call per failed job."""

    async def report(self, *, job_id: str, job_type: str, error: str) -> None:
        ...


class SlackReporter:
    """Posts a one-line failure message to a Slack incoming webhook."""

    def __init__(
        self,
        webhook_url: str,
        *,
        service_name: str = 'trellis-shares',
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        if not webhook_url:
            raise ValueError('webhook_url is required')
        self._url = webhook_url
        self._service = service_name
        self._client = http_client
        self._timeout = timeout_seconds

    def message(self, *, job_id: str, job_type: str, error: str) -> str:
        return f'{self._service}: job {job_id} ({job_type}) failed: {error}'

    async def report(self, *, job_id: str, job_type: str, error: str) -> None:
        payload = {'text': self.message(job_id=job_id, job_type=job_type, error=error)}
        if self._client is not None:
            resp = await self._client.post(self._url, json=payload, timeout=self._timeout)
            resp.raise_for_status()
            return
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            resp = await client.post(self._url, json=payload)
            resp.raise_for_status()

