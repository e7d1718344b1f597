"""Pytest configuration for trellis-shares tests."""
import sys
from pathlib import Path

# Add src/ to path for src-layout imports
_PROJECT_ROOT = Path(__file__).parent.parent
_SRC = _PROJECT_ROOT / 'src'
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

import copy

import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.algorithms import RSAAlgorithm

from trellis_shares.settings import ShareSettings
from trellis_shares.store import InMemoryStore
from trellis_shares.store.inmemory import BOOKMARKS_ID

CHROOT = '/bookmarks/trellisfw/trading-partners/T1/user/bookmarks'
PARTNER_ROOT = '/bookmarks/trellisfw/trading-partners/T1/user'
SRC = '/bookmarks/trellisfw/cois/coi1'
DEST = '/bookmarks/trellisfw/cois/coi1'

COI_TYPE = 'application/vnd.trellis.coi.1+json'

TREE = {
    'bookmarks': {
        '_type': 'application/vnd.oada.bookmarks.1+json',
        'trellisfw': {
            '_type': 'application/vnd.trellis.1+json',
            'cois': {
                '_type': 'application/vnd.trellis.cois.1+json',
                '*': {'_type': COI_TYPE},
            },
            'fsqa-audits': {
                '_type': 'application/vnd.trellis.fsqa-audits.1+json',
                '*': {'_type': 'application/vnd.trellis.fsqa-audit.1+json'},
            },
        },
    },
}

COI = {
    'producer': {'name': 'Acme Insurance', 'location': {'street': '1 Main St'}},
    'holder': {'name': 'Fresh Farms'},
    'insured': {'name': 'Grower Co', 'location': {'street': '9 Field Rd'}},
    'policies': [
        {'number': 'P-100', 'effective_date': '2024-01-01', 'expire_date': '2025-01-01'},
        {'number': 'P-bad', 'effective_date': 'soon', 'expire_date': 'later'},
    ],
}


def seed_world(store: InMemoryStore) -> InMemoryStore:
    """Source COI under the owner's bookmarks plus trading partner T1.

    T1's user bookmarks exist but are empty, so every share has to create
    ``trellisfw`` and ``cois`` below them.
    """
    store.seed('resources/coi1', copy.deepcopy(COI), COI_TYPE)
    store.seed('resources/cois', {'coi1': {'_id': 'resources/coi1'}})
    store.seed('resources/t1-bookmarks', {}, 'application/vnd.oada.bookmarks.1+json')
    store.seed('resources/tp1', {
        'name': 'T1',
        'coi-emails': 'Alice Smith <alice@t1.example>, bob@t1.example',
        'fsqa-emails': 'qa@t1.example',
        'user': {'bookmarks': {'_id': 'resources/t1-bookmarks'}},
    })
    store.seed('resources/trading-partners', {'T1': {'_id': 'resources/tp1'}})
    store.seed('resources/trellisfw', {
        'cois': {'_id': 'resources/cois'},
        'trading-partners': {'_id': 'resources/trading-partners'},
    })
    store.resources[BOOKMARKS_ID]['trellisfw'] = {'_id': 'resources/trellisfw'}
    return store


def make_job(**overrides):
    job = {
        'src': SRC,
        'dest': DEST,
        'chroot': CHROOT,
        'doctype': 'cois',
        'versioned': False,
        'tree': copy.deepcopy(TREE),
        'user': {'id': 'users/u1'},
    }
    job.update(overrides)
    return job


class InMemoryReporter:
    """Failure reporter that records every report."""

    def __init__(self, *, fails: bool = False) -> None:
        self.fails = fails
        self.reports: list[dict[str, str]] = []

    async def report(self, *, job_id: str, job_type: str, error: str) -> None:
        self.reports.append({'job_id': job_id, 'job_type': job_type, 'error': error})
        if self.fails:
            raise RuntimeError('reporter unavailable')


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def world(store):
    return seed_world(store)


@pytest.fixture(scope='session')
def private_jwk():
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    jwk = RSAAlgorithm.to_jwk(key, as_dict=True)
    jwk['kid'] = 'test-signer'
    return jwk


@pytest.fixture
def template_dir(tmp_path):
    root = tmp_path / 'email'
    (root / 'images').mkdir(parents=True)
    (root / 'index.html').write_text(
        '<html><body><img src="images/logo.png"><a href="{{link}}">open</a></body></html>',
        encoding='utf-8',
    )
    (root / 'images' / 'logo.png').write_bytes(b'\x89PNG fake')
    return root


@pytest.fixture
def settings(template_dir):
    return ShareSettings(
        domain='trellis.test',
        token='secret-token',
        email_template_dir=str(template_dir),
    )
