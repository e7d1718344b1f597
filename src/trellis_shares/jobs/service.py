"""Minimal job runner over the store's service queue.

Jobs are resources linked under ``/bookmarks/services/<service>/jobs``::

    {"type": "share-user-link", "config": {...}}

For each pending job whose type has a handler, the service:
  1. Runs the handler under ``asyncio.wait_for`` with the registered timeout.
  2. Removes the job from the pending queue.
  3. Writes ``status`` and ``result`` (or ``error``) onto the job resource.
  4. Links it under ``jobs-success`` or ``jobs-error`` at ``day-index/<YYYY-MM-DD>``.
  5. On failure, calls every failure reporter.

Jobs run one at a time. Jobs of an unknown type stay in the queue untouched.
A job whose result cannot be recorded is logged and reported, never rerun.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from trellis_shares.observability import get_logger, job_id_ctx
from trellis_shares.protocols import ResourceStore
from trellis_shares.sharing.errors import UpstreamError, upstream
from trellis_shares.sharing.pointer import is_internal
from trellis_shares.sharing.resolver import ensure_linked
from trellis_shares.sharing.tree import SERVICE_TREE
from trellis_shares.store.errors import StoreError, StoreNotFoundError

from .reporters import FailureReporter

logger = get_logger(__name__)

JobHandler = Callable[[str, Any], Awaitable[Any]]

STATUS_SUCCESS = 'success'
STATUS_FAILURE = 'failure'


@dataclass(frozen=True, slots=True)
class RegisteredHandler:
    handler: JobHandler
    timeout_seconds: float


@dataclass(frozen=True, slots=True)
class JobOutcome:
    """Result of running one queued job."""

    job_id: str
    job_type: str
    success: bool
    result: Any = None
    error: str | None = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class JobService:
    """Polls one service queue and runs registered handlers."""

    store: ResourceStore
    service_name: str = 'trellis-shares'
    reporters: list[FailureReporter] = field(default_factory=list)
    clock: Callable[[], datetime] = _utcnow
    handlers: dict[str, RegisteredHandler] = field(default_factory=dict)

    @property
    def service_path(self) -> str:
        return f'/bookmarks/services/{self.service_name}'

    @property
    def queue_path(self) -> str:
        return f'{self.service_path}/jobs'

    def on(self, job_type: str, handler: JobHandler, *, timeout_seconds: float) -> None:
        """Register ``handler`` for jobs of ``job_type``."""
        if timeout_seconds <= 0:
            raise ValueError('timeout_seconds must be positive')
        self.handlers[job_type] = RegisteredHandler(handler, float(timeout_seconds))

    async def pending(self) -> dict[str, str]:
        """Queued jobs as ``{key: resource id}``; an absent queue is empty."""
        try:
            resp = await self.store.get(self.queue_path)
        except StoreNotFoundError:
            return {}
        except StoreError as exc:
            raise UpstreamError('list job queue', self.queue_path, exc) from exc
        queue = resp.data if isinstance(resp.data, dict) else {}
        return {
            key: str(value['_id'])
            for key, value in queue.items()
            if not is_internal(key) and isinstance(value, dict) and value.get('_id')
        }

    async def run_once(self) -> list[JobOutcome]:
        """Run every pending job that has a handler, one at a time."""
        outcomes: list[JobOutcome] = []
        for key, resource_id in (await self.pending()).items():
            outcome = await self.run_job(key, resource_id)
            if outcome is not None:
                outcomes.append(outcome)
        return outcomes

    async def run_forever(self, *, interval_seconds: float) -> None:
        logger.info('job_service_started', queue=self.queue_path, types=sorted(self.handlers))
        while True:
            try:
                await self.run_once()
            except UpstreamError as exc:
                logger.error('job_queue_poll_failed', error=str(exc))
            await asyncio.sleep(interval_seconds)

    async def run_job(self, key: str, resource_id: str) -> JobOutcome | None:
        with upstream('read job', resource_id):
            job = (await self.store.get(f'/{resource_id}')).data
        job = job if isinstance(job, dict) else {}
        job_type = str(job.get('type', ''))
        registered = self.handlers.get(job_type)
        if registered is None:
            logger.debug('job_skipped_unknown_type', job_key=key, job_type=job_type)
            return None

        token = job_id_ctx.set(key)
        finish_error: str | None = None
        try:
            outcome = await self._execute(key, job_type, job.get('config'), registered)
            try:
                await self._finish(key, resource_id, outcome)
            except UpstreamError as exc:
                finish_error = f'could not record job result: {exc}'
                logger.error('job_finish_failed', job_type=job_type, error=str(exc))
        finally:
            job_id_ctx.reset(token)

        if not outcome.success:
            await self._report(outcome)
        elif finish_error is not None:
            await self._report(JobOutcome(key, job_type, success=False, error=finish_error))
        return outcome

    async def _execute(
        self, key: str, job_type: str, config: Any, registered: RegisteredHandler,
    ) -> JobOutcome:
        logger.info('job_started', job_type=job_type)
        try:
            result = await asyncio.wait_for(
                registered.handler(key, config), timeout=registered.timeout_seconds,
            )
        except asyncio.TimeoutError:
            error = f'timed out after {registered.timeout_seconds:g}s'
            logger.error('job_failed', job_type=job_type, error=error)
            return JobOutcome(key, job_type, success=False, error=error)
        except Exception as exc:
            error = f'{type(exc).__name__}: {exc}'
            logger.exception('job_failed', job_type=job_type, error=error)
            return JobOutcome(key, job_type, success=False, error=error)
        logger.info('job_succeeded', job_type=job_type)
        return JobOutcome(key, job_type, success=True, result=result)

    async def _finish(self, key: str, resource_id: str, outcome: JobOutcome) -> None:
        # Dequeue first so a failed status write cannot rerun the job.
        queued = f'{self.queue_path}/{key}'
        with upstream('remove job from queue', queued):
            await self.store.delete(queued)

        now = self.clock()
        update: dict[str, Any] = {
            'status': STATUS_SUCCESS if outcome.success else STATUS_FAILURE,
            'updates': {
                f'{int(now.timestamp() * 1000)}': {
                    'status': STATUS_SUCCESS if outcome.success else STATUS_FAILURE,
                    'time': now.isoformat(),
                },
            },
        }
        if outcome.success:
            update['result'] = outcome.result
        else:
            update['result'] = {'error': outcome.error}
        with upstream('write job status', resource_id):
            await self.store.put(f'/{resource_id}', update)

        index = 'jobs-success' if outcome.success else 'jobs-error'
        await ensure_linked(
            self.store,
            path=f'{self.service_path}/{index}/day-index/{now:%Y-%m-%d}/{key}',
            link={'_id': resource_id},
            chroot='',
            tree=SERVICE_TREE,
        )

    async def _report(self, outcome: JobOutcome) -> None:
        for reporter in self.reporters:
            try:
                await reporter.report(
                    job_id=outcome.job_id,
                    job_type=outcome.job_type,
                    error=outcome.error or '',
                )
            except Exception:
                logger.exception('failure_reporter_error', reporter=type(reporter).__name__)
