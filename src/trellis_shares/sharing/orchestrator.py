"""``share-user-link`` job handler.

Sequence per job:
  1. validate the config (nothing is written for a malformed job)
  2. back-link the job under the source's ``_meta``
  3. link / copy / masked-copy the source (CopyEngine)
  4. place the link at ``chroot + dest`` (ensure_linked)
  5. bump the source's share count
  6. enqueue the notification email job, unless skipped

The job result is the config as received plus ``newid`` for copies.
"""

from __future__ import annotations

from typing import Any

from trellis_shares.observability import get_logger
from trellis_shares.observability.metrics import SHARE_JOBS_TOTAL
from trellis_shares.protocols import ResourceStore
from trellis_shares.store.errors import StoreError, StoreNotFoundError, StorePreconditionFailed

from .copy import CopyEngine
from .errors import UpstreamError, upstream
from .model import ShareJobConfig
from .notify import NotificationDispatcher
from .resolver import ensure_linked
from .tree import destination_path

logger = get_logger(__name__)

JOB_TYPE = 'share-user-link'
SERVICE_NAME = 'trellis-shares'
SHARE_COUNT_KEY = 'share-count'
SHARE_COUNT_ATTEMPTS = 3


class ShareJobHandler:
    """Runs one share job end to end."""

    def __init__(
        self,
        store: ResourceStore,
        *,
        copy_engine: CopyEngine,
        notifier: NotificationDispatcher,
    ) -> None:
        self._store = store
        self._copy = copy_engine
        self._notifier = notifier

    async def __call__(self, job_id: str, raw_config: Any) -> dict[str, Any]:
        return await self.handle(job_id, raw_config)

    async def handle(self, job_id: str, raw_config: Any) -> dict[str, Any]:
        config = ShareJobConfig.parse(raw_config)
        mode = config.plan.mode.value
        try:
            newid = await self._run(job_id, config)
        except Exception:
            SHARE_JOBS_TOTAL.labels(mode=mode, status='failure').inc()
            raise
        SHARE_JOBS_TOTAL.labels(mode=mode, status='success').inc()

        result = dict(raw_config)
        if newid:
            result['newid'] = newid
        return result

    async def _run(self, job_id: str, config: ShareJobConfig) -> str | None:
        await self._link_job(job_id, config.src)

        destpath, chroot = destination_path(config.dest, config.chroot)
        outcome = await self._copy.resolve_source_for_link(config)
        link: dict[str, Any] = {'_id': outcome.ref_id}
        if config.versioned:
            link['_rev'] = 0
        await ensure_linked(
            self._store,
            path=destpath,
            link=link,
            chroot=chroot,
            tree=config.schema_tree,
        )
        logger.info(
            'share_linked',
            mode=outcome.mode.value,
            ref_id=outcome.ref_id,
            dest=destpath,
            versioned=config.versioned,
        )

        count = await self.increment_share_count(config.src)
        logger.debug('share_count_updated', src=config.src, count=count)

        if config.skip_notify:
            logger.info('notification_skipped', src=config.src)
        else:
            email_job = await self._notifier.notify(config)
            logger.info('notification_enqueued', email_job=email_job, doctype=config.doctype)

        return outcome.new_id

    async def _link_job(self, job_id: str, src: str) -> None:
        path = f'{src}/_meta/services/{SERVICE_NAME}/jobs'
        with upstream('link job into source metadata', path):
            await self._store.put(path, {job_id: {'_ref': f'resources/{job_id}'}})

    async def increment_share_count(self, src: str) -> int:
        """Add one to the source's share count under a revision check.

        Retries on a revision mismatch; returns the new count.
        """
        meta_path = f'{src}/_meta'
        service_path = f'{meta_path}/services/{SERVICE_NAME}'
        for attempt in range(1, SHARE_COUNT_ATTEMPTS + 1):
            try:
                resp = await self._store.get(meta_path)
            except StoreNotFoundError:
                meta: dict[str, Any] = {}
            except StoreError as exc:
                raise UpstreamError('read share count', meta_path, exc) from exc
            else:
                meta = resp.data if isinstance(resp.data, dict) else {}

            count = _share_count(meta) + 1
            try:
                await self._store.put(
                    service_path, {SHARE_COUNT_KEY: count}, if_match=meta.get('_rev'),
                )
            except StorePreconditionFailed as exc:
                logger.warning('share_count_conflict', src=src, attempt=attempt)
                if attempt == SHARE_COUNT_ATTEMPTS:
                    raise UpstreamError('write share count', service_path, exc) from exc
                continue
            except StoreError as exc:
                raise UpstreamError('write share count', service_path, exc) from exc
            return count

        raise RuntimeError('share count retries exhausted')


def _share_count(meta: dict[str, Any]) -> int:
    services = meta.get('services')
    service = services.get(SERVICE_NAME) if isinstance(services, dict) else None
    count = service.get(SHARE_COUNT_KEY) if isinstance(service, dict) else None
    return count if isinstance(count, int) else 0
