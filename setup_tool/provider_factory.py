"""
Factory for creating storage provider instances.

Simplifies provider selection and initialization.
"""

from typing import Optional

import requests

from shared.constants import (
    AWS_S3_ENDPOINT_TEMPLATE,
    BACKBLAZE_B2_ENDPOINT_TEMPLATE,
    CLOUDFLARE_R2_ENDPOINT_TEMPLATE,
    DEFAULT_DATA_DIR,
    WASABI_ENDPOINT_TEMPLATE,
)
from shared.errors import ConfigurationError
from shared.models import StorageProvider, StoreConfig
from .local_provider import LocalObjectStore
from .s3_client import SignedS3Client
from .storage_provider import ObjectStorageProvider


class StorageProviderFactory:
    """Factory for creating storage provider instances."""

    @staticmethod
    def create(config: StoreConfig, session: Optional[requests.Session] = None) -> ObjectStorageProvider:
        """
        Create a storage provider instance.

        Args:
            config: Store configuration
            session: HTTP session to reuse (tests pass a fake one)

        Returns:
            Storage provider instance

        Raises:
            ConfigurationError: If the configuration cannot produce a provider
        """
        if config.provider == StorageProvider.LOCAL:
            root = config.endpoint or DEFAULT_DATA_DIR
            return LocalObjectStore(root, config.bucket)

        endpoint = config.endpoint or StorageProviderFactory.default_endpoint(config.provider, config.region)
        return SignedS3Client(
            endpoint=endpoint,
            bucket=config.bucket,
            credential=config.credential,
            session=session,
            timeout=config.request_timeout,
        )

    @staticmethod
    def default_endpoint(provider_type: StorageProvider, region: str) -> str:
        """
        Endpoint URL a provider uses when none is configured.

        R2 endpoints contain the account id and B2 endpoints are per cluster,
        so for those ``region`` carries that value.
        """
        if provider_type == StorageProvider.WASABI:
            return WASABI_ENDPOINT_TEMPLATE.format(region=region)
        elif provider_type == StorageProvider.AWS_S3:
            return AWS_S3_ENDPOINT_TEMPLATE.format(region=region)
        elif provider_type == StorageProvider.CLOUDFLARE_R2:
            return CLOUDFLARE_R2_ENDPOINT_TEMPLATE.format(account_id=region)
        elif provider_type == StorageProvider.BACKBLAZE_B2:
            return BACKBLAZE_B2_ENDPOINT_TEMPLATE.format(region=region)
        elif provider_type == StorageProvider.LOCAL:
            return DEFAULT_DATA_DIR
        raise ConfigurationError(f"{StorageProviderFactory.get_provider_name(provider_type)} needs an explicit endpoint")

    @staticmethod
    def get_provider_name(provider_type: StorageProvider) -> str:
        """Get human-readable provider name."""
        names = {
            StorageProvider.WASABI: "Wasabi",
            StorageProvider.CLOUDFLARE_R2: "Cloudflare R2",
            StorageProvider.BACKBLAZE_B2: "Backblaze B2",
            StorageProvider.AWS_S3: "Amazon S3",
            StorageProvider.GENERIC_S3: "Generic S3-Compatible",
            StorageProvider.LOCAL: "Local Folder",
        }
        return names.get(provider_type, "Unknown")

    @staticmethod
    def get_provider_description(provider_type: StorageProvider) -> str:
        """Get detailed provider description."""
        descriptions = {
            StorageProvider.WASABI:
                "Wasabi - Flat-rate hot storage, no egress or API request fees",
            StorageProvider.CLOUDFLARE_R2:
                "Cloudflare R2 - Zero egress fees, 10GB free storage",
            StorageProvider.BACKBLAZE_B2:
                "Backblaze B2 - 10GB free storage, S3-compatible API",
            StorageProvider.AWS_S3:
                "Amazon S3 - Industry standard, pay-as-you-go pricing",
            StorageProvider.GENERIC_S3:
                "Generic S3-compatible storage (DigitalOcean Spaces, MinIO, etc.)",
            StorageProvider.LOCAL:
                "A directory on this machine or a mounted NAS",
        }
        return descriptions.get(provider_type, "Unknown provider")
