"""CopyEngine: link, plain copy and masked copy modes."""

from __future__ import annotations

from typing import Any

import pytest

from trellis_shares.masking import SigningRedactor
from trellis_shares.protocols import PdfRenderer, Redactor
from trellis_shares.sharing.copy import CopyEngine
from trellis_shares.sharing.errors import UpstreamError
from trellis_shares.sharing.model import ShareJobConfig, ShareMode
from trellis_shares.sharing.pointer import set_value, strip_internal

from conftest import COI_TYPE, make_job


class FakeRedactor:
    """Replaces each masked value with a marker and posts a new resource."""

    def __init__(self, store) -> None:
        self.store = store
        self.calls: list[tuple[str, list[str]]] = []

    async def mask_and_sign_as_new_resource(self, *, resource_id: str, paths: list[str]) -> str:
        self.calls.append((resource_id, list(paths)))
        doc = (await self.store.get(f'/{resource_id}')).data
        for path in paths:
            set_value(doc, path, {'trellis-mask': {'path': path}})
        resp = await self.store.post('/resources', strip_internal(doc), content_type=doc.get('_type'))
        return resp.resource_id


class FakeRenderer:
    def __init__(self, store, *, skip: bool = False) -> None:
        self.store = store
        self.skip = skip
        self.calls: list[dict[str, Any]] = []

    async def render_masked_document(self, *, masked, resource_id, doctype, filename=None):
        self.calls.append({
            'masked': masked, 'resource_id': resource_id, 'doctype': doctype, 'filename': filename,
        })
        if self.skip:
            return None
        resp = await self.store.post('/resources', b'%PDF-fake', content_type='application/pdf')
        return resp.resource_id


def _config(**overrides) -> ShareJobConfig:
    return ShareJobConfig.parse(make_job(**overrides))


def _masked(generate_pdf: bool = True) -> dict[str, Any]:
    return {'mask': {'keys_to_mask': ['location'], 'generate_pdf': generate_pdf}}


def test_fakes_satisfy_protocols(store):
    assert isinstance(FakeRedactor(store), Redactor)
    assert isinstance(FakeRenderer(store), PdfRenderer)


# ── Link mode ────────────────────────────────────────────────────────


class TestLinkMode:
    @pytest.mark.asyncio
    async def test_uses_source_id_without_writes(self, world):
        engine = CopyEngine(world)
        outcome = await engine.resolve_source_for_link(_config())

        assert outcome.ref_id == 'resources/coi1'
        assert outcome.mode is ShareMode.LINK
        assert outcome.new_id is None
        assert world.count('POST') == 0
        assert world.count('PUT') == 0

    @pytest.mark.asyncio
    async def test_missing_source_is_upstream_error(self, world):
        engine = CopyEngine(world)
        with pytest.raises(UpstreamError) as exc_info:
            await engine.resolve_source_for_link(_config(src='/bookmarks/trellisfw/cois/nope'))
        assert exc_info.value.status_code == 404
        assert exc_info.value.operation == 'read source'


# ── Plain copy ───────────────────────────────────────────────────────


class TestPlainCopy:
    @pytest.mark.asyncio
    async def test_copy_has_no_internal_fields_but_keeps_type(self, world):
        engine = CopyEngine(world)
        outcome = await engine.resolve_source_for_link(_config(copy={}))

        assert outcome.mode is ShareMode.COPY
        assert outcome.new_id == outcome.ref_id
        assert outcome.new_id != 'resources/coi1'
        created = world.resources[outcome.new_id]
        assert created['_type'] == COI_TYPE
        assert created['holder'] == {'name': 'Fresh Farms'}
        assert created['policies'][0]['number'] == 'P-100'

    @pytest.mark.asyncio
    async def test_original_projection_keeps_only_named_fields(self, world):
        engine = CopyEngine(world)
        outcome = await engine.resolve_source_for_link(
            _config(copy={'original': {'holder': {'name': True}, 'absent': True}}),
        )
        created = world.resources[outcome.new_id]
        assert strip_internal(created) == {'holder': {'name': 'Fresh Farms'}}
        assert created['_type'] == COI_TYPE

    @pytest.mark.asyncio
    async def test_meta_records_provenance_and_drops_internal_fields(self, world):
        world.resources['resources/coi1/_meta'].update({
            'vdoc': {'json': 'x'},
            'stats': {'views': 3},
        })
        engine = CopyEngine(world)
        outcome = await engine.resolve_source_for_link(
            _config(copy={'meta': {'stats': True}}),
        )

        meta = (await world.get(f'/{outcome.new_id}/_meta')).data
        assert meta['copy'] == {'src': {'_ref': 'resources/coi1'}}
        assert meta['stats'] == {'views': 3}
        assert 'vdoc' not in meta
        # The copy's own _meta keeps only store-managed internal keys.
        assert meta['_id'] == f'{outcome.new_id}/_meta'

    @pytest.mark.asyncio
    async def test_metadata_is_written_last(self, world):
        engine = CopyEngine(world)
        outcome = await engine.resolve_source_for_link(_config(copy={}))
        assert world.calls[-1] == ('PUT', f'/{outcome.new_id}/_meta')

    @pytest.mark.asyncio
    async def test_create_failure_is_upstream_error(self, world):
        world.fail('POST', '/resources', 500)
        engine = CopyEngine(world)
        with pytest.raises(UpstreamError, match='create copy resource'):
            await engine.resolve_source_for_link(_config(copy={}))


# ── Masked copy ──────────────────────────────────────────────────────


class TestMaskedCopy:
    @pytest.mark.asyncio
    async def test_redacts_every_matching_key(self, world):
        redactor = FakeRedactor(world)
        engine = CopyEngine(world, redactor=redactor)
        outcome = await engine.resolve_source_for_link(_config(copy=_masked(generate_pdf=False)))

        resource_id, paths = redactor.calls[0]
        assert resource_id == 'resources/coi1'
        assert sorted(paths) == ['/insured/location', '/producer/location']
        assert outcome.mode is ShareMode.MASKED_COPY

        meta = (await world.get(f'/{outcome.new_id}/_meta')).data
        assert meta['copy'] == {'src': {'_ref': 'resources/coi1'}, 'masked': True}

    @pytest.mark.asyncio
    async def test_attaches_rendered_pdf_and_salvages_filename(self, world):
        world.seed('resources/pdf0', b'%PDF-unmasked', 'application/pdf')
        world.resources['resources/pdf0/_meta']['filename'] = 'coi.pdf'
        world.resources['resources/coi1/_meta']['vdoc'] = {'pdf': {'_id': 'resources/pdf0'}}

        renderer = FakeRenderer(world)
        engine = CopyEngine(world, redactor=FakeRedactor(world), pdf_renderer=renderer)
        outcome = await engine.resolve_source_for_link(_config(copy=_masked()))

        call = renderer.calls[0]
        assert call['filename'] == 'MASKED-coi.pdf'
        assert call['resource_id'] == outcome.new_id
        assert call['doctype'] == 'cois'
        assert call['masked']['producer']['location'] == {
            'trellis-mask': {'path': '/producer/location'},
        }

        meta = (await world.get(f'/{outcome.new_id}/_meta')).data
        pdf_id = meta['vdoc']['pdf']['_id']
        assert pdf_id != 'resources/pdf0'
        assert world.resources[pdf_id] == b'%PDF-fake'

    @pytest.mark.asyncio
    async def test_unmasked_pdf_link_is_dropped_even_without_rendering(self, world):
        world.seed('resources/pdf0', b'%PDF-unmasked', 'application/pdf')
        world.resources['resources/coi1/_meta']['vdoc'] = {'pdf': {'_id': 'resources/pdf0'}}

        engine = CopyEngine(world, redactor=FakeRedactor(world))
        outcome = await engine.resolve_source_for_link(_config(copy=_masked(generate_pdf=False)))

        meta = (await world.get(f'/{outcome.new_id}/_meta')).data
        assert 'pdf' not in meta.get('vdoc', {})

    @pytest.mark.asyncio
    async def test_salvage_failure_is_not_fatal(self, world):
        world.resources['resources/coi1/_meta']['vdoc'] = {'pdf': {'_id': 'resources/gone'}}

        renderer = FakeRenderer(world)
        engine = CopyEngine(world, redactor=FakeRedactor(world), pdf_renderer=renderer)
        outcome = await engine.resolve_source_for_link(_config(copy=_masked()))

        assert renderer.calls[0]['filename'] is None
        assert outcome.new_id

    @pytest.mark.asyncio
    async def test_skipped_rendering_leaves_no_pdf_link(self, world):
        engine = CopyEngine(
            world, redactor=FakeRedactor(world), pdf_renderer=FakeRenderer(world, skip=True),
        )
        outcome = await engine.resolve_source_for_link(_config(copy=_masked()))

        meta = (await world.get(f'/{outcome.new_id}/_meta')).data
        assert 'pdf' not in meta.get('vdoc', {})
        assert meta['copy']['masked'] is True

    @pytest.mark.asyncio
    async def test_signing_redactor_leaves_no_cleartext(self, world, private_jwk):
        redactor = SigningRedactor(world, private_jwk=private_jwk, base_url='https://trellis.test')
        engine = CopyEngine(world, redactor=redactor)
        outcome = await engine.resolve_source_for_link(_config(copy=_masked(generate_pdf=False)))

        masked = world.resources[outcome.new_id]
        assert '1 Main St' not in repr(masked)
        assert '9 Field Rd' not in repr(masked)
        assert masked['holder'] == {'name': 'Fresh Farms'}

    @pytest.mark.asyncio
    async def test_copy_meta_never_carries_mask_nonces(self, world, private_jwk):
        redactor = SigningRedactor(world, private_jwk=private_jwk, base_url='https://trellis.test')
        engine = CopyEngine(world, redactor=redactor)
        config = _config(copy=_masked(generate_pdf=False))

        await engine.resolve_source_for_link(config)
        second = await engine.resolve_source_for_link(config)

        assert world.resources['resources/coi1/_meta']['trellis-mask']['nonces']
        meta = (await world.get(f'/{second.new_id}/_meta')).data
        assert 'trellis-mask' not in meta

    @pytest.mark.asyncio
    async def test_empty_keys_to_mask_still_signs(self, world, private_jwk):
        redactor = SigningRedactor(world, private_jwk=private_jwk, base_url='https://trellis.test')
        engine = CopyEngine(world, redactor=redactor)
        outcome = await engine.resolve_source_for_link(
            _config(copy={'mask': {'keys_to_mask': [], 'generate_pdf': False}}),
        )

        copied = world.resources[outcome.new_id]
        assert copied['producer']['location'] == world.resources['resources/coi1']['producer']['location']
        assert len(copied['signatures']) == 1
        meta = (await world.get(f'/{outcome.new_id}/_meta')).data
        assert meta['copy'] == {'src': {'_ref': 'resources/coi1'}, 'masked': True}

    @pytest.mark.asyncio
    async def test_masking_without_redactor_is_an_error(self, world):
        engine = CopyEngine(world)
        with pytest.raises(RuntimeError, match='no redactor'):
            await engine.resolve_source_for_link(_config(copy=_masked()))
