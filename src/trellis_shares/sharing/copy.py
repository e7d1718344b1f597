"""Link vs. copy vs. masked copy: produce the resource to link at the destination.

Side effects per mode:
  - link: none.
  - plain copy: one new resource, then its ``_meta``.
  - masked copy: one new resource from the redactor, optionally one PDF
    resource, then the new resource's ``_meta``.

Every copy's ``_meta`` records ``copy.src._ref`` pointing at the original,
and is written last so the new id is known.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from trellis_shares.protocols import PdfRenderer, Redactor, ResourceStore
from trellis_shares.store.client import resource_id_from_location
from trellis_shares.store.errors import StoreError

from .errors import upstream
from .model import CopyPlan, LinkPlan, MaskedCopyPlan, ShareJobConfig, ShareMode
from .pointer import MASK_KEY, find_paths_to_mask, project, strip_internal

logger = logging.getLogger(__name__)

MASKED_FILENAME_PREFIX = 'MASKED-'


@dataclass(frozen=True, slots=True)
class CopyOutcome:
    """Which resource to link, and whether it is a fresh copy."""

    ref_id: str
    mode: ShareMode
    new_id: str | None = None


class CopyEngine:
    """Resolves the resource a share job should link at its destination."""

    def __init__(
        self,
        store: ResourceStore,
        *,
        redactor: Redactor | None = None,
        pdf_renderer: PdfRenderer | None = None,
    ) -> None:
        self._store = store
        self._redactor = redactor
        self._pdf_renderer = pdf_renderer

    async def resolve_source_for_link(self, config: ShareJobConfig) -> CopyOutcome:
        with upstream('read source', config.src):
            resp = await self._store.get(config.src)
        original = resp.data
        if not isinstance(original, dict) or not original.get('_id'):
            raise ValueError(f'source {config.src} is not a JSON resource with an _id')
        orig_id = original['_id']

        plan = config.plan
        if isinstance(plan, LinkPlan):
            logger.debug('Link mode: linking %s as-is', orig_id)
            return CopyOutcome(ref_id=orig_id, mode=plan.mode)

        with upstream('read source metadata', f'{config.src}/_meta'):
            meta_resp = await self._store.get(f'{config.src}/_meta')
        meta = strip_internal(project(meta_resp.data or {}, plan.meta))

        if isinstance(plan, MaskedCopyPlan):
            new_id = await self._masked_copy(config, plan, original, meta)
            meta['copy'] = {'src': {'_ref': orig_id}, 'masked': True}
        elif isinstance(plan, CopyPlan):
            new_id = await self._plain_copy(plan, original)
            meta['copy'] = {'src': {'_ref': orig_id}}
        else:
            raise TypeError(f'unhandled share plan {plan!r}')

        with upstream('write copy metadata', f'/{new_id}/_meta'):
            await self._store.put(f'/{new_id}/_meta', meta)
        logger.info('Created %s copy %s of %s', plan.mode.value, new_id, orig_id)
        return CopyOutcome(ref_id=new_id, mode=plan.mode, new_id=new_id)

    async def _plain_copy(self, plan: CopyPlan, original: dict[str, Any]) -> str:
        content_type = original.get('_type')
        data = project(strip_internal(original), plan.original)
        if content_type:
            data['_type'] = content_type
        with upstream('create copy resource', '/resources'):
            resp = await self._store.post('/resources', data, content_type=content_type)
        new_id = resource_id_from_location(resp.location)
        if not new_id:
            raise ValueError('store returned no location for the new copy')
        return new_id

    async def _salvage_pdf_filename(self, pdf_id: str) -> str | None:
        try:
            resp = await self._store.get(f'/{pdf_id}/_meta')
        except StoreError as exc:
            logger.warning('Could not read filename of unmasked PDF %s: %s', pdf_id, exc)
            return None
        filename = resp.data.get('filename') if isinstance(resp.data, dict) else None
        return f'{MASKED_FILENAME_PREFIX}{filename}' if filename else None

    async def _masked_copy(
        self,
        config: ShareJobConfig,
        plan: MaskedCopyPlan,
        original: dict[str, Any],
        meta: dict[str, Any],
    ) -> str:
        if self._redactor is None:
            raise RuntimeError('masked copy requested but no redactor is configured')

        # A masked copy must never point at the unmasked rendering, nor carry
        # the original's mask nonces.
        meta.pop(MASK_KEY, None)
        filename: str | None = None
        vdoc = meta.get('vdoc')
        if isinstance(vdoc, dict) and 'pdf' in vdoc:
            pdf_link = vdoc.pop('pdf')
            if isinstance(pdf_link, dict) and pdf_link.get('_id'):
                filename = await self._salvage_pdf_filename(pdf_link['_id'])

        orig_id = original['_id']
        paths = find_paths_to_mask(strip_internal(original), plan.keys_to_mask)
        logger.debug('Masking %d path(s) of %s', len(paths), orig_id)

        with upstream('mask and sign', orig_id):
            new_id = await self._redactor.mask_and_sign_as_new_resource(
                resource_id=orig_id, paths=paths,
            )

        if plan.generate_pdf:
            with upstream('read masked copy', f'/{new_id}'):
                masked = (await self._store.get(f'/{new_id}')).data
            if self._pdf_renderer is None:
                raise RuntimeError('PDF requested but no renderer is configured')
            pdf_id = await self._pdf_renderer.render_masked_document(
                masked=masked,
                resource_id=new_id,
                doctype=config.doctype,
                filename=filename,
            )
            if pdf_id:
                meta.setdefault('vdoc', {})['pdf'] = {'_id': pdf_id}
            else:
                logger.warning('PDF rendering skipped for %s', new_id)
        return new_id
