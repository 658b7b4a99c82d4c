"""
Configuration management for the storefront edge service.
Loads settings from a YAML file and applies environment variable overrides.
"""

import copy
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import yaml

from .exceptions import ConfigError


# Default configuration path, relative to the project root
DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[2] / "config" / "default_config.yaml"

DEFAULT_CONFIG: Dict[str, Any] = {
    'api': {
        'base_url': '',
        'token': '',
        'timeout': 10,
        'endpoints': {
            'tenants': '/artists',
            'shop': '/shops',
            'socials': '/socials',
            'latest_releases': '/latest-releases',
        },
    },
    'database': {
        'path': 'data/storefront.db',
    },
    'sync': {
        'interval_seconds': 300,
        'max_workers': 8,
    },
    'resolver': {
        'strict': True,
    },
    'seo': {
        'index_html_path': 'templates/index.html',
        'maintenance_html_path': 'templates/maintenance.html',
        's3_public_base_url': '',
        'maintenance_mode': False,
        'image_timeout': 5,
    },
    'logging': {
        'level': 'INFO',
    },
}

REQUIRED_KEYS = ('api.base_url', 'api.token', 'database.path')


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _ms_to_seconds(value: str) -> float:
    return int(value) / 1000


# Environment variable -> (config key, converter)
ENV_OVERRIDES: Dict[str, Tuple[str, Callable[[str], Any]]] = {
    'API_URL': ('api.base_url', str),
    'API_AUTH_TOKEN': ('api.token', str),
    'API_TIMEOUT_SECONDS': ('api.timeout', float),
    'DATABASE_PATH': ('database.path', str),
    'DATABASE_SYNC_INTERVAL_MS': ('sync.interval_seconds', _ms_to_seconds),
    'SYNC_MAX_WORKERS': ('sync.max_workers', int),
    'INDEX_HTML_PATH': ('seo.index_html_path', str),
    'MAINTENANCE_HTML_PATH': ('seo.maintenance_html_path', str),
    'S3_PUBLIC_BASE_URL': ('seo.s3_public_base_url', str),
    'SERVER_MAINTENANCE_MODE': ('seo.maintenance_mode', _parse_bool),
    'STRICT_HOST_MATCHING': ('resolver.strict', _parse_bool),
    'LOG_LEVEL': ('logging.level', str),
}


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> None:
    """Merge override into base in place, recursing into nested dicts."""
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value


class StorefrontConfig:
    """Manages application configuration from a YAML file plus environment."""

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize configuration.

        Args:
            config_path: Path to config file. If None, uses config/default_config.yaml.
                A missing file is not an error; defaults and env vars still apply.
        """
        self.config_path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
        self._config: Dict[str, Any] = copy.deepcopy(DEFAULT_CONFIG)
        self._loaded = False
        self.load()

    def load(self) -> None:
        """Load configuration from YAML file and apply env overrides."""
        if self.config_path.exists():
            with open(self.config_path, 'r') as f:
                file_config = yaml.safe_load(f) or {}
            if not isinstance(file_config, dict):
                raise ConfigError(
                    "Config file must contain a mapping",
                    details={'path': str(self.config_path)},
                )
            _deep_merge(self._config, file_config)
            self._loaded = True

        self._apply_env_overrides()

    def _apply_env_overrides(self) -> None:
        """Override config values from environment variables."""
        for env_name, (key, convert) in ENV_OVERRIDES.items():
            raw = os.environ.get(env_name)
            if raw is None or raw == '':
                continue
            try:
                self.set(key, convert(raw))
            except ValueError as e:
                raise ConfigError(
                    f"Invalid value for {env_name}",
                    details={'value': raw, 'error': str(e)},
                )

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.

        Args:
            key: Configuration key (e.g., 'api.base_url')
            default: Default value if key not found

        Returns:
            Configuration value or default

        Example:
            >>> config = StorefrontConfig()
            >>> config.get('sync.interval_seconds')
            300
        """
        value: Any = self._config
        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def set(self, key: str, value: Any) -> None:
        """
        Set configuration value using dot notation.

        Args:
            key: Configuration key (e.g., 'api.token')
            value: Value to set
        """
        keys = key.split('.')
        config = self._config
        for k in keys[:-1]:
            if k not in config or not isinstance(config[k], dict):
                config[k] = {}
            config = config[k]
        config[keys[-1]] = value

    def save(self, path: Optional[str] = None) -> None:
        """
        Save configuration to YAML file.

        Args:
            path: Path to save to. If None, uses original config_path
        """
        save_path = Path(path) if path else self.config_path
        save_path.parent.mkdir(parents=True, exist_ok=True)
        with open(save_path, 'w') as f:
            yaml.safe_dump(self._config, f, default_flow_style=False, indent=2)

    def missing_keys(self) -> List[str]:
        """Return required keys that have no value."""
        return [key for key in REQUIRED_KEYS if not self.get(key)]

    def validate(self) -> None:
        """
        Check that all required settings are present.

        Raises:
            ConfigError: If any required key is missing
        """
        missing = self.missing_keys()
        if missing:
            raise ConfigError("Missing required configuration", details={'missing': missing})

    @property
    def api_base_url(self) -> str:
        """Get upstream API base URL."""
        return self.get('api.base_url', '')

    @property
    def api_token(self) -> str:
        """Get bearer token for the upstream API."""
        return self.get('api.token', '')

    @property
    def api_timeout(self) -> float:
        """Get per-request timeout in seconds."""
        return float(self.get('api.timeout', DEFAULT_CONFIG['api']['timeout']))

    @property
    def endpoints(self) -> Dict[str, str]:
        """Get upstream endpoint paths."""
        return dict(self.get('api.endpoints', DEFAULT_CONFIG['api']['endpoints']))

    @property
    def database_path(self) -> str:
        """Get SQLite database file path."""
        return self.get('database.path', DEFAULT_CONFIG['database']['path'])

    @property
    def sync_interval_seconds(self) -> float:
        """Get delay between the end of one sync cycle and the start of the next."""
        return float(self.get('sync.interval_seconds', DEFAULT_CONFIG['sync']['interval_seconds']))

    @property
    def sync_max_workers(self) -> int:
        """Get size of the fan-out worker pool."""
        return int(self.get('sync.max_workers', DEFAULT_CONFIG['sync']['max_workers']))

    @property
    def strict_host_matching(self) -> bool:
        """Whether host lookups require a domain/label-boundary match."""
        return bool(self.get('resolver.strict', True))

    @property
    def index_html_path(self) -> str:
        return self.get('seo.index_html_path', DEFAULT_CONFIG['seo']['index_html_path'])

    @property
    def maintenance_html_path(self) -> str:
        return self.get('seo.maintenance_html_path', DEFAULT_CONFIG['seo']['maintenance_html_path'])

    @property
    def s3_public_base_url(self) -> str:
        return self.get('seo.s3_public_base_url', '')

    @property
    def maintenance_mode(self) -> bool:
        return bool(self.get('seo.maintenance_mode', False))

    @property
    def image_timeout(self) -> float:
        return float(self.get('seo.image_timeout', DEFAULT_CONFIG['seo']['image_timeout']))

    @property
    def log_level(self) -> str:
        return self.get('logging.level', 'INFO')

    def __repr__(self) -> str:
        """String representation."""
        return f"StorefrontConfig(path={self.config_path}, loaded={self._loaded})"


# Global config instance, used by the command line entry point
_global_config: Optional[StorefrontConfig] = None


def get_config(config_path: Optional[str] = None) -> StorefrontConfig:
    """
    Get the global configuration instance.

    Args:
        config_path: Path to config file (only used on first call)

    Returns:
        StorefrontConfig instance
    """
    global _global_config

    if _global_config is None:
        _global_config = StorefrontConfig(config_path)

    return _global_config


def reset_config() -> None:
    """
    Reset the global config instance.

    Useful for testing when you need to reload configuration.
    """
    global _global_config
    _global_config = None
