"""
Pytest fixtures for storefront tests.

Provides a temporary LocalStore, sample upstream payloads, and a fake
upstream client whose responses and failures can be scripted per test.
"""

import copy
import threading
from typing import Dict, List, Optional, Set, Tuple

import pytest

from storefront.local_store import LocalStore
from storefront.models import AuxRelease, Shop, SocialLink, Tenant
from storefront.upstream_client import UpstreamResponse


SAMPLE_ARTISTS = [
    {
        'id': 'artist-001',
        'name': 'The Rockers',
        'type': 'group',
        'website': 'rockers.com',
        'isActive': True,
        'productionPrice': 12.5,
        'logoDataUri': 'data:image/png;base64,AAAA',
        'bio': 'Loud band.',
    },
    {
        'id': 'artist-002',
        'name': 'Jane Doe',
        'type': 'individual',
        'website': 'https://www.janedoe.music/',
        'webmail': {'url': 'https://mail.janedoe.music', 'email': 'jane@janedoe.music', 'password': 'pw'},
        'logos': ['artists/jane/logo-1.png', 'artists/jane/logo-2.png'],
        'favicons': ['artists/jane/favicon.ico'],
    },
]

SAMPLE_SHOPS = {
    'artist-001': {
        'id': 'shop-001',
        'artistId': 'artist-001',
        'name': 'Rockers Merch',
        'website': 'rockers.com',
        'imageGallery': ['shops/rockers/hero image.png', 'shops/rockers/second.png'],
        'shopFeed': 'https://feeds.example.com/rockers.xml',
    },
    'artist-002': {
        'id': 'shop-002',
        'artistId': 'artist-002',
        'name': 'Jane Store',
        'website': 'janedoe.music',
        'imageDataUri': 'data:image/png;base64,BBBB',
        'shopFeed': 'https://feeds.example.com/jane.xml',
    },
}

SAMPLE_SOCIALS = {
    'artist-001': [
        {'id': 'social-001', 'name': 'instagram', 'description': 'Photos', 'url': 'https://instagram.com/rockers'},
        {'id': 'social-002', 'name': 'youtube', 'description': 'Videos', 'url': 'https://youtube.com/rockers'},
    ],
    'artist-002': [
        {'id': 'social-003', 'name': 'tiktok', 'description': '', 'url': 'https://tiktok.com/@jane'},
    ],
}

SAMPLE_RELEASES = {
    'artist-001': {
        'youtube': {
            'videoId': 'abc123',
            'title': 'Live in Berlin',
            'viewCount': 1500,
            'publishedAt': '2024-05-01T12:00:00Z',
            'thumbnailUrl': 'https://img.youtube.com/abc123.jpg',
        },
        'spotify': None,
    },
    'artist-002': {
        'youtube': None,
        'spotify': {
            'name': 'First Single',
            'spotifyUrl': 'https://open.spotify.com/track/xyz',
            'imageUrl': None,
        },
    },
}


def build_generation(
    artists: Optional[List[dict]] = None,
    shops: Optional[Dict[str, dict]] = None,
    socials: Optional[Dict[str, List[dict]]] = None,
    releases: Optional[Dict[str, dict]] = None,
) -> Tuple[List[Tenant], Dict[str, Shop], Dict[str, List[SocialLink]], Dict[str, AuxRelease]]:
    """Turn upstream-shaped payloads into replace_all arguments."""
    artists = SAMPLE_ARTISTS if artists is None else artists
    shops = SAMPLE_SHOPS if shops is None else shops
    socials = SAMPLE_SOCIALS if socials is None else socials
    releases = SAMPLE_RELEASES if releases is None else releases

    tenants = [Tenant.from_api(a) for a in artists]
    shop_models = {tid: Shop.from_api(s, tenant_id=tid) for tid, s in shops.items()}
    social_models = {
        tid: [SocialLink.from_api(s, tid) for s in items] for tid, items in socials.items()
    }
    release_models = {tid: AuxRelease.from_api(r, tid) for tid, r in releases.items()}
    return tenants, shop_models, social_models, release_models


class FakeUpstream:
    """
    Stand-in for UpstreamClient serving the sample payloads.

    Attributes:
        artists: Root collection body (set to None to fail the root fetch)
        failures: Set of (kind, tenant_id) sub-fetches that return HTTP 500
        gate: Optional event fetch_tenants waits on before answering
        barrier: Optional (tenant_id, Barrier) every sub-fetch of that tenant
            waits on before answering
    """

    base_url = 'https://api.test'

    def __init__(self):
        self.artists = copy.deepcopy(SAMPLE_ARTISTS)
        self.shops = copy.deepcopy(SAMPLE_SHOPS)
        self.socials = copy.deepcopy(SAMPLE_SOCIALS)
        self.releases = copy.deepcopy(SAMPLE_RELEASES)
        self.failures: Set[Tuple[str, str]] = set()
        self.root_status = 200
        self.gate: Optional[threading.Event] = None
        self.barrier: Optional[Tuple[str, threading.Barrier]] = None
        self.entered = threading.Event()
        self.calls: List[Tuple[str, Optional[str]]] = []
        self._lock = threading.Lock()

    def _record(self, kind: str, tenant_id: Optional[str] = None) -> None:
        with self._lock:
            self.calls.append((kind, tenant_id))

    def _sub(self, kind: str, tenant_id: str, source: dict, default):
        self._record(kind, tenant_id)
        if self.barrier is not None and self.barrier[0] == tenant_id:
            # Raises BrokenBarrierError unless all sub-fetches arrive together
            self.barrier[1].wait(timeout=2)
        if (kind, tenant_id) in self.failures:
            return UpstreamResponse(500, {'error': f'{kind} unavailable'})
        return UpstreamResponse(200, copy.deepcopy(source.get(tenant_id, default)))

    def fetch_tenants(self) -> UpstreamResponse:
        self._record('tenants')
        self.entered.set()
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.root_status != 200:
            return UpstreamResponse(self.root_status, {'error': 'connect ECONNREFUSED'})
        return UpstreamResponse(200, copy.deepcopy(self.artists))

    def fetch_shop(self, tenant_id: str) -> UpstreamResponse:
        return self._sub('shop', tenant_id, self.shops, {})

    def fetch_socials(self, tenant_id: str) -> UpstreamResponse:
        return self._sub('socials', tenant_id, self.socials, [])

    def fetch_latest_releases(self, tenant_id: str) -> UpstreamResponse:
        return self._sub('latest_releases', tenant_id, self.releases, {})

    def close(self) -> None:
        pass


@pytest.fixture
def store(tmp_path):
    """LocalStore on a temporary database file."""
    s = LocalStore(str(tmp_path / "db" / "storefront.db"))
    yield s
    s.close()


@pytest.fixture
def populated_store(store):
    """Store holding the sample generation."""
    store.replace_all(*build_generation())
    return store


@pytest.fixture
def upstream():
    """Scriptable fake upstream client."""
    return FakeUpstream()
