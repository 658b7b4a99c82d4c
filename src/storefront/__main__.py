"""
Entry point for: python -m storefront

Subcommands:
    run              initial sync, then keep syncing every interval
    sync             one sync cycle; exit status 1 on failure
    status           row counts of the local snapshot
    resolve HOST     print the tenant and shop owning HOST
    render HOST      print the rendered page for HOST [PATH]
"""

import argparse
import json
import sys
from typing import List, Optional

from .config import StorefrontConfig
from .exceptions import ConfigError
from .host_resolver import HostResolver
from .local_store import LocalStore
from .logger import configure_logging, setup_logger
from .seo_renderer import SeoRenderer
from .sync_engine import SyncEngine
from .upstream_client import UpstreamClient

logger = setup_logger(__name__)


def build_engine(config: StorefrontConfig, store: LocalStore) -> SyncEngine:
    """Wire an upstream client and sync engine around an open store."""
    client = UpstreamClient(
        config.api_base_url,
        token=config.api_token,
        timeout=config.api_timeout,
        endpoints=config.endpoints,
        pool_size=config.sync_max_workers,
    )
    return SyncEngine(
        client,
        store,
        sync_interval=config.sync_interval_seconds,
        max_workers=config.sync_max_workers,
    )


def _cmd_run(config: StorefrontConfig, store: LocalStore, args) -> int:
    engine = build_engine(config, store)
    try:
        engine.run_forever()
    finally:
        engine.client.close()
    return 0


def _cmd_sync(config: StorefrontConfig, store: LocalStore, args) -> int:
    engine = build_engine(config, store)
    try:
        result = engine.sync_now()
    finally:
        engine.client.close()
    print(json.dumps(result.to_dict() if result else None, indent=2))
    return 0 if result and result.success else 1


def _cmd_status(config: StorefrontConfig, store: LocalStore, args) -> int:
    print(json.dumps(store.counts(), indent=2))
    return 0


def _cmd_resolve(config: StorefrontConfig, store: LocalStore, args) -> int:
    resolver = HostResolver(store, strict=config.strict_host_matching)
    resolution = resolver.resolve(args.host)
    if resolution is None:
        print(f"No shop found for host: {args.host}", file=sys.stderr)
        return 1
    print(json.dumps({
        'tenant': {'id': resolution.tenant.id, 'name': resolution.tenant.name,
                   'website': resolution.tenant.website},
        'shop': {'id': resolution.shop.id, 'name': resolution.shop.name,
                 'website': resolution.shop.website, 'shopFeed': resolution.shop.shop_feed},
    }, indent=2))
    return 0


def _cmd_render(config: StorefrontConfig, store: LocalStore, args) -> int:
    resolver = HostResolver(store, strict=config.strict_host_matching)
    resolution = resolver.resolve(args.host)
    if resolution is None:
        print(f"No shop found for host: {args.host}", file=sys.stderr)
        return 1

    renderer = SeoRenderer(
        config.index_html_path,
        config.maintenance_html_path,
        s3_public_base_url=config.s3_public_base_url,
        maintenance_mode=config.maintenance_mode,
        image_timeout=config.image_timeout,
    )
    url = f"https://{args.host}{args.path}"
    print(renderer.render(resolution, args.path, url))
    return 0


COMMANDS = {
    'run': _cmd_run,
    'sync': _cmd_sync,
    'status': _cmd_status,
    'resolve': _cmd_resolve,
    'render': _cmd_render,
}

# Commands that talk to the upstream API
UPSTREAM_COMMANDS = ('run', 'sync')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="storefront", description="Storefront edge service")
    parser.add_argument('--config', help="Path to YAML config file")

    sub = parser.add_subparsers(dest='command', required=True)
    sub.add_parser('run', help="Sync now and then every interval")
    sub.add_parser('sync', help="Run a single sync cycle")
    sub.add_parser('status', help="Show snapshot row counts")

    resolve = sub.add_parser('resolve', help="Resolve a host to its shop")
    resolve.add_argument('host')

    render = sub.add_parser('render', help="Render the SEO page for a host")
    render.add_argument('host')
    render.add_argument('path', nargs='?', default='/')

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = StorefrontConfig(args.config)
        configure_logging(config.log_level)
        if args.command in UPSTREAM_COMMANDS:
            config.validate()
    except ConfigError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    with LocalStore(config.database_path) as store:
        return COMMANDS[args.command](config, store, args)


if __name__ == "__main__":
    sys.exit(main())
