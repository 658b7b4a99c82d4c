"""
Upstream Client - authenticated access to the system of record.

This module provides the UpstreamClient class used by the sync engine to
pull artists, shops, social links and latest releases. It handles:
- Session pooling for connection reuse across the fan-out workers
- Bearer token authentication
- A bounded timeout on every call

The client never raises for transport problems. Timeouts, DNS errors and
refused connections come back as an UpstreamResponse with status 500 and an
{'error': ...} body, so callers treat them exactly like a non-2xx answer.
There is no retry here; a failed fetch waits for the next sync cycle.

The requests timeout bounds each socket read only. Bodies are therefore
streamed in small chunks and the whole call is abandoned once `timeout`
seconds have passed since it started, so a server trickling bytes cannot
hold a sync cycle open.

Example:
    from storefront.upstream_client import UpstreamClient

    with UpstreamClient('https://api.example.com', token='...') as client:
        response = client.fetch_tenants()
        if response.ok:
            artists = response.body
"""

import json
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from requests.exceptions import RequestException, Timeout

from .logger import setup_logger

logger = setup_logger(__name__)


DEFAULT_TIMEOUT = 10  # seconds
TRANSPORT_ERROR_STATUS = 500
CHUNK_SIZE = 8192  # bytes


def read_body(response: requests.Response, deadline: float, max_bytes: Optional[int] = None) -> bytes:
    """
    Read a streamed response body, bounded in time and optionally in size.

    Args:
        response: Response opened with stream=True
        deadline: time.monotonic() value after which reading is abandoned
        max_bytes: Stop after this many bytes (the rest is never downloaded)

    Returns:
        Body bytes, truncated to max_bytes if given

    Raises:
        Timeout: If the deadline passes before the body is read
    """
    chunks = []
    size = 0
    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
        if time.monotonic() > deadline:
            raise Timeout("Total request time exceeded")
        chunks.append(chunk)
        size += len(chunk)
        if max_bytes is not None and size >= max_bytes:
            break

    body = b''.join(chunks)
    return body[:max_bytes] if max_bytes is not None else body

DEFAULT_ENDPOINTS = {
    'tenants': '/artists',
    'shop': '/shops',
    'socials': '/socials',
    'latest_releases': '/latest-releases',
}


@dataclass
class UpstreamResponse:
    """Status code and decoded body of one upstream call."""

    status_code: int
    body: Any

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def error_message(self) -> str:
        """Best-effort error text from the body."""
        if isinstance(self.body, dict):
            return str(self.body.get('message') or self.body.get('error') or 'Unexpected error')
        return str(self.body or 'Unexpected error')


class UpstreamClient:
    """
    Client for the remote system of record.

    Attributes:
        base_url: API base URL
        timeout: Request timeout in seconds
        session: Requests session for connection pooling
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        endpoints: Optional[Dict[str, str]] = None,
        pool_size: int = 10,
    ):
        """
        Initialize the upstream client.

        Args:
            base_url: API base URL (e.g., 'https://api.example.com')
            token: Bearer token for the Authorization header
            timeout: Per-request timeout in seconds
            endpoints: Overrides for the named endpoint paths
            pool_size: Connection pool size, at least the fan-out worker count
        """
        if not base_url:
            raise ValueError("Base URL is required")

        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.endpoints = dict(DEFAULT_ENDPOINTS)
        if endpoints:
            self.endpoints.update(endpoints)

        self.session = requests.Session()

        # No retry strategy: failures are absorbed until the next cycle
        adapter = HTTPAdapter(
            max_retries=0,
            pool_connections=pool_size,
            pool_maxsize=pool_size,
        )
        self.session.mount('http://', adapter)
        self.session.mount('https://', adapter)

        self.session.headers.update({
            'Accept': 'application/json',
            'User-Agent': 'StorefrontEdge/1.0',
        })
        if token:
            self.session.headers['Authorization'] = f'Bearer {token}'

        logger.info("Upstream client initialized with base URL: %s", self.base_url)

    def _build_url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> UpstreamResponse:
        """
        Make an authenticated GET request.

        Args:
            path: Endpoint path
            params: Optional query parameters

        Returns:
            UpstreamResponse; status 500 with an error body on transport failure
        """
        url = self._build_url(path)
        deadline = time.monotonic() + self.timeout

        try:
            with self.session.get(url, params=params, timeout=self.timeout, stream=True) as response:
                raw = read_body(response, deadline)
                status_code = response.status_code
                content_type = response.headers.get('Content-Type', '')
                encoding = response.encoding or 'utf-8'
        except Timeout as e:
            logger.warning("Upstream timeout for %s: %s", path, e)
            return UpstreamResponse(TRANSPORT_ERROR_STATUS, {'error': f"Request timed out: {e}"})
        except RequestException as e:
            logger.warning("Upstream request failed for %s: %s", path, e)
            return UpstreamResponse(TRANSPORT_ERROR_STATUS, {'error': str(e) or 'Failed to fetch data'})

        text = raw.decode(encoding, errors='replace')
        body: Any = text
        if 'application/json' in content_type:
            try:
                body = json.loads(text)
            except ValueError:
                pass

        if not 200 <= status_code < 300:
            logger.debug("Upstream %s returned %d", path, status_code)

        return UpstreamResponse(status_code, body)

    # -------------------------------------------------------------------------
    # Named endpoints
    # -------------------------------------------------------------------------

    def fetch_tenants(self) -> UpstreamResponse:
        """Fetch the root artist collection."""
        return self.get(self.endpoints['tenants'])

    def fetch_shop(self, tenant_id: str) -> UpstreamResponse:
        """Fetch the shop of one artist."""
        return self.get(self.endpoints['shop'], params={'artistId': tenant_id})

    def fetch_socials(self, tenant_id: str) -> UpstreamResponse:
        """Fetch the social links of one artist."""
        return self.get(self.endpoints['socials'], params={'artistId': tenant_id})

    def fetch_latest_releases(self, tenant_id: str) -> UpstreamResponse:
        """Fetch latest YouTube/Spotify releases of one artist."""
        return self.get(self.endpoints['latest_releases'], params={'artistId': tenant_id})

    def close(self) -> None:
        """Close the session and release resources."""
        self.session.close()
        logger.info("Upstream client session closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
