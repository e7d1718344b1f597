"""Field-level masking and signing of store resources.

A masked field's value is replaced by a mask object::

    {"trellis-mask": {
        "version": "1.0",
        "hashinfo": {"alg": "SHA256", "hash": "<hex>"},
        "nonceurl": "https://<domain>/resources/<orig>/_meta/trellis-mask/nonces/<hex>",
        "url": "https://<domain>/resources/<orig>",
        "path": "/location"}}

``hash`` covers the canonical JSON of ``{"nonce": ..., "value": ...}``. The
nonce is written under the original's ``_meta``, so only someone who can
read the original can recompute the hash and verify the masked value.

The masked document is then signed (RS256 JWS over the hash of the cleaned
document) and posted as a brand-new resource.
"""

from __future__ import annotations

import copy
import hashlib
import json
import logging
import time
import uuid
from pathlib import Path
from typing import Any

import jwt
from jwt.algorithms import RSAAlgorithm

from trellis_shares.protocols import ResourceStore
from trellis_shares.sharing.errors import ConfigurationError
from trellis_shares.sharing.pointer import MASK_KEY, get, is_internal, set_value
from trellis_shares.store.client import resource_id_from_location

logger = logging.getLogger(__name__)

MASK_VERSION = '1.0'
HASH_ALG = 'SHA256'
SIGNATURES_KEY = 'signatures'


def canonical_json(value: Any) -> bytes:
    return json.dumps(value, sort_keys=True, separators=(',', ':'), ensure_ascii=False).encode('utf-8')


def sha256_hex(value: Any) -> str:
    return hashlib.sha256(canonical_json(value)).hexdigest()


def is_mask(value: Any) -> bool:
    return isinstance(value, dict) and MASK_KEY in value


def find_all_mask_paths(document: Any, prefix: str = '') -> list[str]:
    """JSON pointers to every mask object in ``document``."""
    if is_mask(document):
        return [prefix]
    if isinstance(document, dict):
        items = ((k, v) for k, v in document.items())
    elif isinstance(document, list):
        items = ((str(i), v) for i, v in enumerate(document))
    else:
        return []
    found: list[str] = []
    for key, value in items:
        escaped = key.replace('~', '~0').replace('/', '~1')
        found.extend(find_all_mask_paths(value, f'{prefix}/{escaped}'))
    return found


def signable(document: dict[str, Any]) -> dict[str, Any]:
    """The part of a document covered by a signature."""
    return {
        k: copy.deepcopy(v)
        for k, v in document.items()
        if not is_internal(k) and k != SIGNATURES_KEY
    }


def load_private_jwk(path: str) -> dict[str, Any]:
    """Read the signer's private RSA JWK from disk."""
    jwk_path = Path(path)
    try:
        raw = json.loads(jwk_path.read_text(encoding='utf-8'))
    except FileNotFoundError as exc:
        raise ConfigurationError(f'Signing key not found at {jwk_path}') from exc
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f'Signing key at {jwk_path} is not valid JSON') from exc
    if not isinstance(raw, dict) or raw.get('kty') != 'RSA' or 'd' not in raw:
        raise ConfigurationError(f'Signing key at {jwk_path} is not a private RSA JWK')
    return raw


class SigningRedactor:
    """Masks fields of a resource and posts the signed result as a new resource."""

    def __init__(
        self,
        store: ResourceStore,
        *,
        private_jwk: dict[str, Any],
        base_url: str,
        signature_type: str = 'transcription',
        signer_name: str = 'Dev signer',
        signer_url: str = 'https://oatscenter.org',
    ) -> None:
        self._store = store
        self._key = RSAAlgorithm.from_jwk(private_jwk)
        public = RSAAlgorithm.to_jwk(self._key.public_key(), as_dict=True)
        self._header: dict[str, Any] = {'jwk': public}
        for name in ('kid', 'jku'):
            if private_jwk.get(name):
                self._header[name] = private_jwk[name]
        self._base_url = base_url.rstrip('/')
        self._signature_type = signature_type
        self._signer = {'name': signer_name, 'url': signer_url}

    def _mask(self, resource_id: str, pointer: str, value: Any) -> tuple[str, str, dict[str, Any]]:
        nonce = uuid.uuid4().hex
        digest = sha256_hex({'nonce': nonce, 'value': value})
        mask = {
            MASK_KEY: {
                'version': MASK_VERSION,
                'hashinfo': {'alg': HASH_ALG, 'hash': digest},
                'nonceurl': f'{self._base_url}/{resource_id}/_meta/{MASK_KEY}/nonces/{digest}',
                'url': f'{self._base_url}/{resource_id}',
                'path': pointer,
            },
        }
        return digest, nonce, mask

    def sign(self, document: dict[str, Any]) -> str:
        """RS256 JWS over the hash of the signable part of ``document``."""
        claims = {
            'type': self._signature_type,
            'signer': self._signer,
            'iat': int(time.time()),
            'hash': sha256_hex(signable(document)),
        }
        return jwt.encode(claims, self._key, algorithm='RS256', headers=self._header)

    async def mask_and_sign_as_new_resource(
        self, *, resource_id: str, paths: list[str]
    ) -> str:
        resource_id = resource_id.lstrip('/')
        resp = await self._store.get(f'/{resource_id}')
        original = resp.data
        if not isinstance(original, dict):
            raise ValueError(f'{resource_id} is not a JSON resource')

        document = copy.deepcopy(original)
        nonces: dict[str, str] = {}
        for pointer in paths:
            digest, nonce, mask = self._mask(resource_id, pointer, get(document, pointer))
            set_value(document, pointer, mask)
            nonces[digest] = nonce

        if nonces:
            await self._store.put(
                f'/{resource_id}/_meta', {MASK_KEY: {'nonces': nonces}},
            )

        masked = signable(document)
        signatures = list(document.get(SIGNATURES_KEY) or [])
        signatures.append(self.sign(masked))
        masked[SIGNATURES_KEY] = signatures

        content_type = original.get('_type')
        if content_type:
            masked['_type'] = content_type
        created = await self._store.post('/resources', masked, content_type=content_type)
        new_id = resource_id_from_location(created.location)
        if not new_id:
            raise ValueError(f'store returned no location for masked copy of {resource_id}')
        logger.info('Masked %d field(s) of %s into %s', len(paths), resource_id, new_id)
        return new_id
