"""OadaClient tests: auth, body encoding, error mapping, retry policy."""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from trellis_shares.store.client import (
    OadaClient,
    _get_shared_async_client,
    _reset_shared_async_client_for_tests,
    normalize_path,
    resource_id_from_location,
)
from trellis_shares.store.errors import (
    StoreAuthError,
    StoreError,
    StoreNotFoundError,
    StorePreconditionFailed,
    StoreTimeoutError,
)


def _make_client(handler, **kwargs) -> tuple[httpx.AsyncClient, OadaClient]:
    transport = httpx.MockTransport(handler)
    http = httpx.AsyncClient(transport=transport)
    client = OadaClient(
        domain='trellis.test',
        token='secret-token',
        http_client=http,
        base_delay=0,
        max_delay=0,
        **kwargs,
    )
    return http, client


# ── Construction ─────────────────────────────────────────────────────


class TestConstruction:
    def test_requires_domain_and_token(self):
        with pytest.raises(ValueError):
            OadaClient(domain='', token='t', http_client=httpx.AsyncClient())
        with pytest.raises(ValueError):
            OadaClient(domain='d', token='', http_client=httpx.AsyncClient())

    def test_adds_https_scheme(self):
        client = OadaClient(domain='trellis.test/', token='t', http_client=httpx.AsyncClient())
        assert client.base_url == 'https://trellis.test'

    def test_keeps_explicit_scheme(self):
        client = OadaClient(domain='http://localhost:3000', token='t', http_client=httpx.AsyncClient())
        assert client.base_url == 'http://localhost:3000'

    def test_shared_client_is_reused(self):
        _reset_shared_async_client_for_tests()
        try:
            assert _get_shared_async_client() is _get_shared_async_client()
        finally:
            _reset_shared_async_client_for_tests()

    @pytest.mark.asyncio
    async def test_aclose_drops_shared_client(self):
        _reset_shared_async_client_for_tests()
        try:
            client = OadaClient(domain='trellis.test', token='t')
            shared = _get_shared_async_client()
            await client.aclose()
            assert shared.is_closed
            assert _get_shared_async_client() is not shared
        finally:
            _reset_shared_async_client_for_tests()


def test_path_helpers():
    assert normalize_path('bookmarks/a/') == '/bookmarks/a'
    assert resource_id_from_location('/resources/abc') == 'resources/abc'
    assert resource_id_from_location(None) is None


# ── Requests ─────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_get_sends_bearer_token_and_decodes_json():
    seen: dict[str, Any] = {}

    async def handler(request: httpx.Request) -> httpx.Response:
        seen['url'] = str(request.url)
        seen['auth'] = request.headers.get('authorization')
        return httpx.Response(200, json={'_id': 'resources/abc', 'a': 1})

    http, client = _make_client(handler)
    async with http:
        resp = await client.get('bookmarks/trellisfw')

    assert seen['url'] == 'https://trellis.test/bookmarks/trellisfw'
    assert seen['auth'] == 'Bearer secret-token'
    assert resp.status == 200
    assert resp.data == {'_id': 'resources/abc', 'a': 1}


@pytest.mark.asyncio
async def test_get_decodes_text_body():
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text='a@b.example', headers={'content-type': 'text/plain'})

    http, client = _make_client(handler)
    async with http:
        resp = await client.get('/bookmarks/x/coi-emails')

    assert resp.data == 'a@b.example'


@pytest.mark.asyncio
async def test_post_json_with_content_type_returns_location():
    seen: dict[str, Any] = {}

    async def handler(request: httpx.Request) -> httpx.Response:
        seen['ctype'] = request.headers.get('content-type')
        seen['body'] = json.loads(request.content.decode())
        return httpx.Response(201, headers={'content-location': '/resources/new1'})

    http, client = _make_client(handler)
    async with http:
        resp = await client.post('/resources', {}, content_type='application/vnd.trellis.1+json')

    assert seen['ctype'] == 'application/vnd.trellis.1+json'
    assert seen['body'] == {}
    assert resp.location == '/resources/new1'
    assert resp.resource_id == 'resources/new1'


@pytest.mark.asyncio
async def test_post_bytes_sends_raw_content():
    seen: dict[str, Any] = {}

    async def handler(request: httpx.Request) -> httpx.Response:
        seen['ctype'] = request.headers.get('content-type')
        seen['body'] = request.content
        return httpx.Response(201, headers={'content-location': '/resources/pdf1'})

    http, client = _make_client(handler)
    async with http:
        await client.post('/resources', b'%PDF-1.4', content_type='application/pdf')

    assert seen['ctype'] == 'application/pdf'
    assert seen['body'] == b'%PDF-1.4'


@pytest.mark.asyncio
async def test_put_sends_if_match():
    seen: dict[str, Any] = {}

    async def handler(request: httpx.Request) -> httpx.Response:
        seen['method'] = request.method
        seen['if_match'] = request.headers.get('if-match')
        return httpx.Response(204, headers={'content-location': '/resources/abc/_meta'})

    http, client = _make_client(handler)
    async with http:
        resp = await client.put('/resources/abc/_meta', {'share-count': 2}, if_match=7)

    assert seen == {'method': 'PUT', 'if_match': '7'}
    assert resp.location == '/resources/abc/_meta'


# ── Errors ───────────────────────────────────────────────────────────


class TestErrors:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        'status, exc_type',
        [
            (401, StoreAuthError),
            (403, StoreAuthError),
            (404, StoreNotFoundError),
            (412, StorePreconditionFailed),
            (400, StoreError),
        ],
    )
    async def test_status_maps_to_error_class(self, status, exc_type):
        async def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status, json={'message': 'nope'})

        http, client = _make_client(handler)
        async with http:
            with pytest.raises(exc_type) as exc_info:
                await client.get('/bookmarks/missing')

        assert exc_info.value.status_code == status
        assert exc_info.value.message == 'nope'
        assert exc_info.value.path == '/bookmarks/missing'

    @pytest.mark.asyncio
    async def test_error_text_never_contains_token(self):
        async def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(403, text='forbidden')

        http, client = _make_client(handler)
        async with http:
            with pytest.raises(StoreAuthError) as exc_info:
                await client.get('/bookmarks')

        assert 'secret-token' not in str(exc_info.value)


# ── Retries ──────────────────────────────────────────────────────────


class TestRetries:
    @pytest.mark.asyncio
    async def test_retries_transient_status_then_succeeds(self):
        attempts = {'n': 0}

        async def handler(request: httpx.Request) -> httpx.Response:
            attempts['n'] += 1
            if attempts['n'] < 3:
                return httpx.Response(503, text='busy')
            return httpx.Response(200, json={'ok': True})

        http, client = _make_client(handler)
        async with http:
            resp = await client.get('/bookmarks')

        assert attempts['n'] == 3
        assert resp.data == {'ok': True}

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        attempts = {'n': 0}

        async def handler(request: httpx.Request) -> httpx.Response:
            attempts['n'] += 1
            return httpx.Response(502, text='bad gateway')

        http, client = _make_client(handler, max_retries=2)
        async with http:
            with pytest.raises(StoreError) as exc_info:
                await client.get('/bookmarks')

        assert attempts['n'] == 3
        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_does_not_retry_client_errors(self):
        attempts = {'n': 0}

        async def handler(request: httpx.Request) -> httpx.Response:
            attempts['n'] += 1
            return httpx.Response(404, text='missing')

        http, client = _make_client(handler)
        async with http:
            with pytest.raises(StoreNotFoundError):
                await client.get('/bookmarks/missing')

        assert attempts['n'] == 1

    @pytest.mark.asyncio
    async def test_timeouts_are_retried_then_raised(self):
        attempts = {'n': 0}

        async def handler(request: httpx.Request) -> httpx.Response:
            attempts['n'] += 1
            raise httpx.ReadTimeout('slow', request=request)

        http, client = _make_client(handler, max_retries=1)
        async with http:
            with pytest.raises(StoreTimeoutError) as exc_info:
                await client.get('/bookmarks')

        assert attempts['n'] == 2
        assert exc_info.value.status_code == 0
