"""
Host Resolver - maps an inbound Host header to the tenant and shop that own it.

Request hosts are normalized (scheme, port, path, leading "www." stripped,
lower-cased) and compared against the website stored for each tenant.
Stored websites are kept exactly as the upstream sent them and are
normalized here, at lookup time.

Two matching modes:
- strict (default): the stored domain must equal the host or be a parent
  domain of it on a label boundary. "rock.com" never matches
  "prerock.com", and "a.platform.com" never matches "b.platform.com".
- substring: first stored website containing the host wins, in row order.

A miss is a None return, never an exception.
"""

import re
from dataclasses import dataclass
from typing import List, Optional

from .local_store import LocalStore
from .logger import setup_logger
from .models import Shop, Tenant

logger = setup_logger(__name__)

_SCHEME_RE = re.compile(r'^[a-z][a-z0-9+.\-]*://')
_PORT_RE = re.compile(r':\d+$')


def normalize_host(value: Optional[str]) -> str:
    """
    Normalize a host header or stored website to a bare lower-case domain.

    Example:
        >>> normalize_host('https://WWW.Artist.com:443/shop/')
        'artist.com'
    """
    host = (value or '').strip().lower()
    host = _SCHEME_RE.sub('', host)
    host = host.split('/', 1)[0]
    host = host.split('?', 1)[0]
    host = _PORT_RE.sub('', host)
    host = host.rstrip('.')
    if host.startswith('www.'):
        host = host[4:]
    return host


def registrable_domain(host: str) -> str:
    """
    Last two labels of a host, used to narrow candidate rows.

    Multi-part public suffixes (e.g. co.uk) are not special-cased, so this
    is never used on its own to decide a match.
    """
    labels = [label for label in host.split('.') if label]
    if len(labels) <= 2:
        return '.'.join(labels)
    return '.'.join(labels[-2:])


@dataclass
class Resolution:
    """A tenant and its shop, resolved from one host."""

    tenant: Tenant
    shop: Shop


class HostResolver:
    """Read-only host lookups against the LocalStore snapshot."""

    # Match scores, highest wins
    EXACT = 2
    SUBDOMAIN = 1

    def __init__(self, store: LocalStore, strict: bool = True):
        """
        Args:
            store: LocalStore to query
            strict: Use domain-aware matching instead of plain substring
        """
        self.store = store
        self.strict = strict

    def resolve(self, host_header: Optional[str]) -> Optional[Resolution]:
        """
        Resolve a Host header to (tenant, shop).

        Args:
            host_header: Raw Host header or URL

        Returns:
            Resolution, or None if no tenant matches or it has no shop
        """
        host = normalize_host(host_header)
        if not host:
            return None

        # One read transaction so tenant and shop come from the same generation
        with self.store.snapshot():
            tenant = self._match_tenant(host)
            if tenant is None:
                logger.warning("No shop found for host: %s", host)
                return None

            shop = self.store.find_shop_by_tenant(tenant.id)
            if shop is None:
                logger.warning("Artist %s has no shop (host: %s)", tenant.id, host)
                return None

        return Resolution(tenant=tenant, shop=shop)

    def resolve_shop(self, host_header: Optional[str]) -> Optional[Shop]:
        """Shop owning the host, or None."""
        resolution = self.resolve(host_header)
        return resolution.shop if resolution else None

    def _match_tenant(self, host: str) -> Optional[Tenant]:
        if not self.strict:
            return self.store.find_tenant_by_website(host)

        # Every parent domain of the host contains its last two labels
        candidates = self.store.find_tenants_by_website(registrable_domain(host))
        return self._best_match(host, candidates)

    def _best_match(self, host: str, candidates: List[Tenant]) -> Optional[Tenant]:
        best: Optional[Tenant] = None
        best_key = (0, 0)

        for tenant in candidates:
            domain = normalize_host(tenant.website)
            if not domain:
                continue

            if domain == host:
                score = self.EXACT
            elif host.endswith('.' + domain):
                score = self.SUBDOMAIN
            else:
                continue

            key = (score, len(domain))
            # Strictly greater keeps the first row on ties
            if key > best_key:
                best, best_key = tenant, key

        return best
