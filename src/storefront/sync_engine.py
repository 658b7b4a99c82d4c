"""
Sync Engine for the storefront edge service.

Periodically pulls the full artist dataset from the system of record and
replaces the local snapshot in one transaction. Runs in a background thread;
the serving path keeps reading the last committed snapshot whether a cycle
is in flight or the upstream is down.

Cycle:
1. Fetch the root artist collection. A failed or empty fetch aborts the
   cycle without touching the store.
2. Fan out shop, socials and latest-releases fetches for every artist on a
   bounded worker pool. A failed sub-fetch leaves that field absent.
3. Replace all four tables in a single transaction and log the counts.
4. Wait sync_interval seconds from the end of the cycle, then repeat.

Only one cycle runs at a time; a trigger arriving while a cycle is in
progress is dropped, not queued.
"""

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from .exceptions import StoreWriteError, UpstreamDataEmpty, UpstreamError
from .local_store import LocalStore
from .logger import setup_logger
from .models import AuxRelease, Shop, SocialLink, Tenant
from .upstream_client import UpstreamClient, UpstreamResponse

logger = setup_logger(__name__)


class SyncState(Enum):
    """Whether a sync cycle is currently running."""
    IDLE = "idle"
    SYNCING = "syncing"


@dataclass
class SyncResult:
    """Outcome of one sync cycle."""

    success: bool
    started_at: datetime
    finished_at: Optional[datetime] = None
    tenants: int = 0
    shops: int = 0
    socials: int = 0
    releases: int = 0
    orphans_dropped: int = 0
    partial_failures: int = 0
    error: Optional[str] = None

    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'started_at': self.started_at.isoformat(),
            'finished_at': self.finished_at.isoformat() if self.finished_at else None,
            'duration_seconds': self.duration_seconds,
            'tenants': self.tenants,
            'shops': self.shops,
            'socials': self.socials,
            'releases': self.releases,
            'orphans_dropped': self.orphans_dropped,
            'partial_failures': self.partial_failures,
            'error': self.error,
        }


@dataclass
class _TenantDetails:
    shop: Optional[Shop] = None
    socials: List[SocialLink] = field(default_factory=list)
    release: Optional[AuxRelease] = None


class SyncEngine:
    """
    Keeps the LocalStore in step with the upstream system of record.
    Runs in background thread at configurable intervals (default 5 minutes).
    """

    # Default sync interval in seconds (5 minutes)
    DEFAULT_SYNC_INTERVAL = 300

    # Default number of concurrent sub-fetches
    DEFAULT_MAX_WORKERS = 8

    def __init__(
        self,
        client: UpstreamClient,
        store: LocalStore,
        sync_interval: float = DEFAULT_SYNC_INTERVAL,
        max_workers: int = DEFAULT_MAX_WORKERS,
        on_sync_complete: Optional[Callable[[SyncResult], None]] = None,
    ):
        """
        Initialize the sync engine.

        Args:
            client: UpstreamClient for the system of record
            store: LocalStore receiving each new generation
            sync_interval: Seconds between the end of a cycle and the next one
            max_workers: Size of the fan-out worker pool
            on_sync_complete: Callback after every attempted cycle
        """
        self.client = client
        self.store = store
        self.sync_interval = sync_interval
        self.max_workers = max(1, max_workers)
        self._on_sync_complete = on_sync_complete

        # Single-flight guard
        self._sync_lock = threading.Lock()
        self._state = SyncState.IDLE

        # Background thread state
        self._thread: Optional[threading.Thread] = None
        self._running = False
        self._stop_event = threading.Event()

        # Sync statistics
        self._last_result: Optional[SyncResult] = None
        self._last_success_time: Optional[datetime] = None
        self._consecutive_failures = 0
        self._total_syncs = 0
        self._total_failures = 0
        self._dropped_triggers = 0
        # Guards counters updated by threads that lose the single-flight race
        self._stats_lock = threading.Lock()

        logger.info(
            "SyncEngine initialized - interval: %ss, workers: %d",
            self.sync_interval,
            self.max_workers
        )

    # ─── Background loop ────────────────────────────────────────────

    def start(self) -> None:
        """Start the background sync thread (first cycle runs immediately)."""
        if self._running:
            logger.warning("Sync engine already running")
            return

        self._running = True
        self._stop_event.clear()

        self._thread = threading.Thread(
            target=self._sync_loop,
            name="SyncEngine",
            daemon=True
        )
        self._thread.start()

        logger.info("Sync engine started")

    def stop(self, timeout: float = 5) -> None:
        """Stop the background sync thread."""
        if not self._running:
            return

        logger.info("Stopping sync engine...")
        self._running = False
        self._stop_event.set()

        if self._thread and self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)

        logger.info("Sync engine stopped")

    def run_forever(self) -> None:
        """Run the sync loop in the calling thread until stop() or Ctrl+C."""
        self._running = True
        self._stop_event.clear()
        try:
            self._sync_loop()
        except KeyboardInterrupt:
            logger.info("Interrupted")
        finally:
            self._running = False

    def _sync_loop(self) -> None:
        """Sync loop: initial kick, then one cycle per interval."""
        logger.info("Sync loop started - interval: %ss", self.sync_interval)

        self.sync_now()

        while self._running:
            # Interval counts from the end of the previous cycle
            if self._stop_event.wait(timeout=self.sync_interval):
                break

            if self._running:
                self.sync_now()

        logger.info("Sync loop ended")

    # ─── Cycle ──────────────────────────────────────────────────────

    def sync_now(self) -> Optional[SyncResult]:
        """
        Run one sync cycle immediately.

        Returns:
            SyncResult of the cycle, or None if another cycle was already running
        """
        if not self._sync_lock.acquire(blocking=False):
            with self._stats_lock:
                self._dropped_triggers += 1
            logger.info("Sync already in progress - trigger dropped")
            return None

        try:
            self._state = SyncState.SYNCING
            result = self._run_cycle()
        finally:
            self._state = SyncState.IDLE
            self._sync_lock.release()

        if self._on_sync_complete:
            try:
                self._on_sync_complete(result)
            except Exception as e:
                logger.error("on_sync_complete callback failed: %s", e)

        return result

    def _run_cycle(self) -> SyncResult:
        """Fetch, fan out, replace. Never raises."""
        logger.info("Syncing with main API...")
        self._total_syncs += 1
        result = SyncResult(success=False, started_at=datetime.now())

        try:
            tenants = self._fetch_tenants()
            shops, socials, releases, partial_failures = self._fetch_details(tenants)
            result.partial_failures = partial_failures

            written = self.store.replace_all(tenants, shops, socials, releases)

            result.success = True
            result.tenants = written.tenants
            result.shops = written.shops
            result.socials = written.socials
            result.releases = written.releases
            result.orphans_dropped = written.orphans_dropped

        except UpstreamDataEmpty as e:
            result.error = str(e)
            logger.warning("No artists received from API - keeping current snapshot")
        except UpstreamError as e:
            result.error = str(e)
            logger.warning("Sync aborted, upstream unavailable: %s", e)
        except StoreWriteError as e:
            result.error = str(e)
            logger.error("Sync aborted, store write failed: %s", e)
        except Exception as e:
            result.error = str(e)
            logger.exception("Sync failed with unexpected error: %s", e)

        result.finished_at = datetime.now()

        if result.success:
            self._record_success(result)
            logger.info(
                "Synced %d artists, %d shops, %d socials, %d releases "
                "(%d partial failures, %d orphans dropped) in %.2fs",
                result.tenants,
                result.shops,
                result.socials,
                result.releases,
                result.partial_failures,
                result.orphans_dropped,
                result.duration_seconds
            )
        else:
            self._record_failure(result)

        return result

    def _fetch_tenants(self) -> List[Tenant]:
        """
        Fetch and parse the root artist collection.

        Raises:
            UpstreamError: If the fetch failed or the body is not a list
            UpstreamDataEmpty: If no usable artist was returned
        """
        response = self.client.fetch_tenants()
        if not response.ok:
            raise UpstreamError(
                f"Failed to fetch artists: {response.error_message}",
                status_code=response.status_code,
            )
        if not isinstance(response.body, list):
            raise UpstreamError(
                "Unexpected artists body",
                status_code=response.status_code,
                details={'type': type(response.body).__name__},
            )

        tenants: Dict[str, Tenant] = {}
        for item in response.body:
            try:
                tenant = Tenant.from_api(item)
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                logger.warning("Skipping malformed artist entry: %s", e)
                continue
            tenants[tenant.id] = tenant

        if not tenants:
            raise UpstreamDataEmpty("Artist collection is empty")

        return list(tenants.values())

    def _fetch_details(
        self,
        tenants: List[Tenant],
    ) -> Tuple[
        Dict[str, Optional[Shop]],
        Dict[str, List[SocialLink]],
        Dict[str, Optional[AuxRelease]],
        int,
    ]:
        """
        Fetch shop, socials and releases for every tenant concurrently.

        Returns:
            (shops, socials, releases, partial_failures) keyed by tenant id
        """
        details = {t.id: _TenantDetails() for t in tenants}
        partial_failures = 0

        fetchers = {
            'shop': self._fetch_shop,
            'socials': self._fetch_socials,
            'release': self._fetch_release,
        }

        with ThreadPoolExecutor(
            max_workers=self.max_workers,
            thread_name_prefix="sync-fetch"
        ) as pool:
            futures = {
                pool.submit(fetch, tenant.id): (tenant.id, kind)
                for tenant in tenants
                for kind, fetch in fetchers.items()
            }

            for future in as_completed(futures):
                tenant_id, kind = futures[future]
                try:
                    value = future.result()
                except Exception as e:
                    partial_failures += 1
                    logger.warning("Failed to fetch %s for artist %s: %s", kind, tenant_id, e)
                    continue
                setattr(details[tenant_id], kind, value)

        shops = {tid: d.shop for tid, d in details.items()}
        socials = {tid: d.socials for tid, d in details.items()}
        releases = {tid: d.release for tid, d in details.items()}
        return shops, socials, releases, partial_failures

    @staticmethod
    def _require_ok(response: UpstreamResponse, what: str, tenant_id: str) -> None:
        if not response.ok:
            raise UpstreamError(
                f"{what} fetch for {tenant_id} failed: {response.error_message}",
                status_code=response.status_code,
            )

    def _fetch_shop(self, tenant_id: str) -> Optional[Shop]:
        response = self.client.fetch_shop(tenant_id)
        self._require_ok(response, "Shop", tenant_id)

        body = response.body
        if isinstance(body, list):
            owned = [s for s in body if isinstance(s, dict) and str(s.get('artistId', tenant_id)) == tenant_id]
            body = owned[0] if owned else None
        if not isinstance(body, dict) or not body.get('id'):
            return None
        return Shop.from_api(body, tenant_id=tenant_id)

    def _fetch_socials(self, tenant_id: str) -> List[SocialLink]:
        response = self.client.fetch_socials(tenant_id)
        self._require_ok(response, "Socials", tenant_id)

        if not isinstance(response.body, list):
            return []
        return [SocialLink.from_api(s, tenant_id) for s in response.body if isinstance(s, dict)]

    def _fetch_release(self, tenant_id: str) -> Optional[AuxRelease]:
        response = self.client.fetch_latest_releases(tenant_id)
        self._require_ok(response, "Latest releases", tenant_id)

        if not isinstance(response.body, dict):
            return None
        release = AuxRelease.from_api(response.body, tenant_id)
        return None if release.is_empty else release

    # ─── Statistics ─────────────────────────────────────────────────

    def _record_success(self, result: SyncResult) -> None:
        self._last_result = result
        self._last_success_time = result.finished_at
        self._consecutive_failures = 0

    def _record_failure(self, result: SyncResult) -> None:
        self._last_result = result
        self._consecutive_failures += 1
        self._total_failures += 1

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def is_running(self) -> bool:
        """Check if the background loop is running."""
        return self._running

    @property
    def last_result(self) -> Optional[SyncResult]:
        return self._last_result

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def dropped_triggers(self) -> int:
        """Number of sync triggers ignored because a cycle was in progress."""
        return self._dropped_triggers

    def get_status(self) -> Dict[str, Any]:
        """
        Get sync engine status for reporting.

        Returns:
            Dictionary with sync status information
        """
        return {
            'running': self._running,
            'state': self._state.value,
            'last_success_time': self._last_success_time.isoformat() if self._last_success_time else None,
            'last_result': self._last_result.to_dict() if self._last_result else None,
            'consecutive_failures': self._consecutive_failures,
            'total_syncs': self._total_syncs,
            'total_failures': self._total_failures,
            'dropped_triggers': self._dropped_triggers,
            'sync_interval': self.sync_interval,
        }

    def __repr__(self) -> str:
        return f"SyncEngine(base_url={self.client.base_url}, interval={self.sync_interval}s)"
