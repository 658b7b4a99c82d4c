"""
Local SQLite store holding the latest synchronized storefront snapshot.

Tables:
- tenants: artists, with logos/favicons as JSON lists
- shops: one storefront per tenant
- socials: social links, many per tenant
- latest_releases: latest YouTube/Spotify release per tenant

The whole snapshot is replaced by one transaction per sync cycle. The
database runs in WAL mode, so readers keep seeing the previous generation
until the replace commits and never observe a mix of the two.

The store is constructed once at startup, shared by reference with the sync
engine and the request handlers, and closed at shutdown.
"""

import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Mapping, Optional

from .exceptions import StoreWriteError
from .logger import setup_logger
from .models import AuxRelease, Shop, SocialLink, Tenant

logger = setup_logger(__name__)

TABLES = ("tenants", "shops", "socials", "latest_releases")

SCHEMA = """
    CREATE TABLE IF NOT EXISTS tenants (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        category TEXT NOT NULL,
        website TEXT,
        webmail_url TEXT,
        webmail_email TEXT,
        webmail_password TEXT,
        logos TEXT NOT NULL DEFAULT '[]',
        favicons TEXT NOT NULL DEFAULT '[]',
        is_active INTEGER NOT NULL DEFAULT 1,
        production_price REAL,
        has_avatar INTEGER NOT NULL DEFAULT 0,
        has_logo INTEGER NOT NULL DEFAULT 0,
        has_favicon INTEGER NOT NULL DEFAULT 0,
        bio TEXT,
        archive_path TEXT
    );

    CREATE TABLE IF NOT EXISTS shops (
        id TEXT PRIMARY KEY,
        tenant_id TEXT NOT NULL,
        name TEXT NOT NULL,
        website TEXT NOT NULL,
        image_gallery TEXT NOT NULL DEFAULT '[]',
        has_image INTEGER NOT NULL DEFAULT 0,
        shop_feed TEXT
    );

    CREATE TABLE IF NOT EXISTS socials (
        id TEXT PRIMARY KEY,
        tenant_id TEXT NOT NULL,
        name TEXT NOT NULL,
        description TEXT,
        url TEXT
    );

    CREATE TABLE IF NOT EXISTS latest_releases (
        tenant_id TEXT PRIMARY KEY,
        youtube TEXT,
        spotify TEXT
    );

    CREATE INDEX IF NOT EXISTS idx_shops_tenant ON shops(tenant_id);
    CREATE INDEX IF NOT EXISTS idx_socials_tenant ON socials(tenant_id);
"""

UPSERT_TENANT = """
    INSERT INTO tenants (
        id, name, category, website, webmail_url, webmail_email, webmail_password,
        logos, favicons, is_active, production_price, has_avatar, has_logo,
        has_favicon, bio, archive_path
    ) VALUES (
        :id, :name, :category, :website, :webmail_url, :webmail_email, :webmail_password,
        :logos, :favicons, :is_active, :production_price, :has_avatar, :has_logo,
        :has_favicon, :bio, :archive_path
    )
    ON CONFLICT(id) DO UPDATE SET
        name=excluded.name,
        category=excluded.category,
        website=excluded.website,
        webmail_url=excluded.webmail_url,
        webmail_email=excluded.webmail_email,
        webmail_password=excluded.webmail_password,
        logos=excluded.logos,
        favicons=excluded.favicons,
        is_active=excluded.is_active,
        production_price=excluded.production_price,
        has_avatar=excluded.has_avatar,
        has_logo=excluded.has_logo,
        has_favicon=excluded.has_favicon,
        bio=excluded.bio,
        archive_path=excluded.archive_path
"""

UPSERT_SHOP = """
    INSERT INTO shops (id, tenant_id, name, website, image_gallery, has_image, shop_feed)
    VALUES (:id, :tenant_id, :name, :website, :image_gallery, :has_image, :shop_feed)
    ON CONFLICT(id) DO UPDATE SET
        tenant_id=excluded.tenant_id,
        name=excluded.name,
        website=excluded.website,
        image_gallery=excluded.image_gallery,
        has_image=excluded.has_image,
        shop_feed=excluded.shop_feed
"""

UPSERT_SOCIAL = """
    INSERT INTO socials (id, tenant_id, name, description, url)
    VALUES (:id, :tenant_id, :name, :description, :url)
    ON CONFLICT(id) DO UPDATE SET
        tenant_id=excluded.tenant_id,
        name=excluded.name,
        description=excluded.description,
        url=excluded.url
"""

UPSERT_RELEASE = """
    INSERT INTO latest_releases (tenant_id, youtube, spotify)
    VALUES (:tenant_id, :youtube, :spotify)
    ON CONFLICT(tenant_id) DO UPDATE SET
        youtube=excluded.youtube,
        spotify=excluded.spotify
"""


@dataclass
class ReplaceResult:
    """Row counts written by one replace_all call."""

    tenants: int = 0
    shops: int = 0
    socials: int = 0
    releases: int = 0
    orphans_dropped: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


def _escape_like(value: str) -> str:
    return value.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')


class LocalStore:
    """
    SQLite-backed snapshot store.

    Thread-safe: uses a connection per thread via thread-local storage.
    Connections run in autocommit mode and transactions are opened
    explicitly, so a replace is exactly one BEGIN IMMEDIATE ... COMMIT.
    """

    def __init__(self, db_path: str):
        """
        Open (or create) the store and its schema.

        Args:
            db_path: Path of the SQLite database file
        """
        self.db_file = Path(db_path)
        self.db_file.parent.mkdir(parents=True, exist_ok=True)

        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()
        self._closed = False

        self._init_schema()
        logger.info("LocalStore initialized: %s", self.db_file)

    def _get_conn(self) -> sqlite3.Connection:
        """Get a thread-local SQLite connection."""
        if self._closed:
            raise RuntimeError("LocalStore is closed")

        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = sqlite3.connect(
                str(self.db_file),
                timeout=10,
                isolation_level=None,
                check_same_thread=False,
            )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            self._local.conn = conn
            with self._connections_lock:
                self._connections.append(conn)
        return conn

    def _init_schema(self) -> None:
        """Create tables if they don't exist."""
        conn = self._get_conn()
        conn.executescript(SCHEMA)
        logger.debug("Store schema initialized")

    def close(self) -> None:
        """Close every connection opened by this store."""
        with self._connections_lock:
            for conn in self._connections:
                try:
                    conn.close()
                except sqlite3.Error as e:
                    logger.warning("Error closing connection: %s", e)
            self._connections.clear()
        self._closed = True
        self._local = threading.local()
        logger.info("LocalStore closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    # ─── Write ──────────────────────────────────────────────────────

    def replace_all(
        self,
        tenants: Iterable[Tenant],
        shops_by_tenant: Mapping[str, Optional[Shop]],
        socials_by_tenant: Mapping[str, List[SocialLink]],
        releases_by_tenant: Mapping[str, Optional[AuxRelease]],
    ) -> ReplaceResult:
        """
        Replace the whole snapshot with a new generation.

        Deletes every row of the four tables and inserts the new rows inside a
        single transaction. Shops, socials and releases whose tenant is not in
        `tenants` are dropped.

        Args:
            tenants: Tenants of the new generation
            shops_by_tenant: Shop per tenant id (None when absent)
            socials_by_tenant: Social links per tenant id
            releases_by_tenant: Latest releases per tenant id (None when absent)

        Returns:
            ReplaceResult with written row counts

        Raises:
            StoreWriteError: If anything fails; the previous generation is kept
        """
        tenants = list(tenants)
        tenant_ids = {t.id for t in tenants}
        result = ReplaceResult()

        conn = self._get_conn()
        try:
            conn.execute("BEGIN IMMEDIATE")
            for table in TABLES:
                conn.execute(f"DELETE FROM {table}")

            for tenant in tenants:
                conn.execute(UPSERT_TENANT, tenant.to_row())
            result.tenants = len(tenant_ids)

            for key, shop in shops_by_tenant.items():
                if shop is None:
                    continue
                if shop.tenant_id not in tenant_ids:
                    logger.warning(
                        "Dropping orphaned shop %s (tenant %s not in snapshot)",
                        shop.id, shop.tenant_id or key
                    )
                    result.orphans_dropped += 1
                    continue
                conn.execute(UPSERT_SHOP, shop.to_row())
                result.shops += 1

            for tenant_id, socials in socials_by_tenant.items():
                for social in socials or []:
                    if social.tenant_id not in tenant_ids:
                        result.orphans_dropped += 1
                        continue
                    conn.execute(UPSERT_SOCIAL, social.to_row())
                    result.socials += 1

            for tenant_id, release in releases_by_tenant.items():
                if release is None:
                    continue
                if release.tenant_id not in tenant_ids:
                    result.orphans_dropped += 1
                    continue
                conn.execute(UPSERT_RELEASE, release.to_row())
                result.releases += 1

            conn.execute("COMMIT")

        except Exception as e:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            logger.error("Snapshot replace failed, previous generation kept: %s", e)
            raise StoreWriteError(
                "Failed to replace snapshot",
                details={'error': str(e)},
            ) from e

        logger.debug("Snapshot replaced: %s", result.to_dict())
        return result

    # ─── Read ───────────────────────────────────────────────────────

    @contextmanager
    def snapshot(self) -> Iterator["LocalStore"]:
        """
        Run a group of reads against one committed generation.

        Nested use reuses the outer read transaction.

        Example:
            with store.snapshot():
                tenant = store.find_tenant_by_website(host)
                shop = store.find_shop_by_tenant(tenant.id)
        """
        conn = self._get_conn()
        if conn.in_transaction:
            yield self
            return

        conn.execute("BEGIN")
        try:
            yield self
        finally:
            if conn.in_transaction:
                conn.execute("COMMIT")

    def find_tenants_by_website(self, host_fragment: str) -> List[Tenant]:
        """
        All tenants whose website contains the fragment (case-insensitive).

        Args:
            host_fragment: Cleaned hostname or part of it

        Returns:
            Matching tenants in natural row order
        """
        fragment = (host_fragment or '').strip().lower()
        if not fragment:
            return []
        rows = self._get_conn().execute(
            "SELECT * FROM tenants WHERE lower(website) LIKE ? ESCAPE '\\' ORDER BY rowid",
            (f"%{_escape_like(fragment)}%",),
        ).fetchall()
        return [Tenant.from_row(r) for r in rows]

    def find_tenant_by_website(self, host_fragment: str) -> Optional[Tenant]:
        """First tenant whose website contains the fragment, or None."""
        matches = self.find_tenants_by_website(host_fragment)
        return matches[0] if matches else None

    def get_tenant(self, tenant_id: str) -> Optional[Tenant]:
        row = self._get_conn().execute(
            "SELECT * FROM tenants WHERE id = ?", (tenant_id,)
        ).fetchone()
        return Tenant.from_row(row) if row else None

    def find_shop_by_tenant(self, tenant_id: str) -> Optional[Shop]:
        row = self._get_conn().execute(
            "SELECT * FROM shops WHERE tenant_id = ? ORDER BY rowid LIMIT 1", (tenant_id,)
        ).fetchone()
        return Shop.from_row(row) if row else None

    def list_socials(self, tenant_id: str) -> List[SocialLink]:
        rows = self._get_conn().execute(
            "SELECT * FROM socials WHERE tenant_id = ? ORDER BY rowid", (tenant_id,)
        ).fetchall()
        return [SocialLink.from_row(r) for r in rows]

    def get_aux_release(self, tenant_id: str) -> Optional[AuxRelease]:
        row = self._get_conn().execute(
            "SELECT * FROM latest_releases WHERE tenant_id = ?", (tenant_id,)
        ).fetchone()
        return AuxRelease.from_row(row) if row else None

    def list_all_tenants(self) -> List[Tenant]:
        rows = self._get_conn().execute("SELECT * FROM tenants ORDER BY rowid").fetchall()
        return [Tenant.from_row(r) for r in rows]

    def list_all_shops(self) -> List[Shop]:
        rows = self._get_conn().execute("SELECT * FROM shops ORDER BY rowid").fetchall()
        return [Shop.from_row(r) for r in rows]

    def counts(self) -> Dict[str, int]:
        """Row count per table, read from one generation."""
        with self.snapshot():
            conn = self._get_conn()
            return {
                table: conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
                for table in TABLES
            }

    def __repr__(self) -> str:
        return f"LocalStore(path={self.db_file})"
