"""
Loading and saving of the object store configuration.

Resolution order:
1. ``config.json`` in the config directory (credentials encrypted at rest)
2. ``MEDIAVAULT_*`` environment variables, including a ``.env`` file
"""

import json
import logging
import os
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from shared.constants import (
    CONFIG_FILENAME,
    DEFAULT_BUCKET,
    DEFAULT_CONFIG_DIR,
    DEFAULT_NETWORK_TIMEOUT,
    DEFAULT_REGION,
    DEFAULT_UPLOAD_CONCURRENCY,
    ENV_PREFIX,
    MAX_UPLOAD_CONCURRENCY,
)
from shared.errors import ConfigurationError
from shared.models import StorageProvider, StoreConfig

logger = logging.getLogger(__name__)


def config_path(config_dir: Optional[str] = None) -> Path:
    return Path(config_dir or DEFAULT_CONFIG_DIR).expanduser() / CONFIG_FILENAME


def _clamp_concurrency(value: int) -> int:
    return max(1, min(int(value), MAX_UPLOAD_CONCURRENCY))


def config_from_env(env: Optional[Mapping[str, str]] = None) -> Optional[StoreConfig]:
    """
    Build a config from ``MEDIAVAULT_*`` variables.

    Returns None when neither an endpoint nor a provider is set, i.e. the
    environment does not describe a store at all.
    """
    if env is None:
        load_dotenv()
        env = os.environ

    def get(name: str, default: Optional[str] = None) -> Optional[str]:
        return env.get(ENV_PREFIX + name, default)

    provider_name = get('PROVIDER')
    endpoint = get('ENDPOINT')
    if not provider_name and not endpoint:
        return None

    try:
        provider = StorageProvider(provider_name or StorageProvider.WASABI.value)
    except ValueError as e:
        raise ConfigurationError(f"Unknown storage provider: {provider_name}") from e

    region = get('REGION', DEFAULT_REGION)
    if not endpoint:
        from setup_tool.provider_factory import StorageProviderFactory
        endpoint = StorageProviderFactory.default_endpoint(provider, region)

    try:
        concurrency = _clamp_concurrency(get('UPLOAD_CONCURRENCY', str(DEFAULT_UPLOAD_CONCURRENCY)))
        timeout = float(get('REQUEST_TIMEOUT', str(DEFAULT_NETWORK_TIMEOUT)))
    except ValueError as e:
        raise ConfigurationError(f"Invalid numeric setting: {e}") from e

    config = StoreConfig(
        provider=provider,
        endpoint=endpoint,
        bucket=get('BUCKET', DEFAULT_BUCKET),
        access_key_id=get('ACCESS_KEY', ''),
        secret_access_key=get('SECRET_KEY', ''),
        region=region,
        upload_concurrency=concurrency,
        request_timeout=timeout,
        cache_path=get('CACHE_PATH'),
    )
    if not config.is_configured and provider is not StorageProvider.LOCAL:
        logger.warning("Object store credentials not set; requests will be unauthenticated")
    return config


def load_config(config_dir: Optional[str] = None,
                env: Optional[Mapping[str, str]] = None) -> Optional[StoreConfig]:
    """Load the store config from disk, falling back to the environment."""
    path = config_path(config_dir)
    if path.exists():
        try:
            data = json.loads(path.read_text())
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Corrupt config file {path}: {e}") from e

        config = StoreConfig.from_dict(data)

        # Plain-text credentials on disk are rewritten encrypted
        if not data.get('is_encrypted', False) and config.is_configured:
            logger.info("Migrating config to encrypted format")
            save_config(config, config_dir)
        return config

    return config_from_env(env)


def save_config(config: StoreConfig, config_dir: Optional[str] = None) -> Path:
    """Write the config with encrypted credentials; returns the file path."""
    path = config_path(config_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(config.to_json())
    try:
        os.chmod(path, 0o600)
    except OSError:
        logger.debug("Could not restrict permissions on %s", path)
    return path
