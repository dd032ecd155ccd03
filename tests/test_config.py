import json

import pytest

from setup_tool.local_provider import LocalObjectStore
from setup_tool.provider_factory import StorageProviderFactory
from setup_tool.s3_client import SignedS3Client
from shared.config import config_from_env, config_path, load_config, save_config
from shared.crypto import CredentialManager
from shared.errors import ConfigurationError
from shared.models import StorageProvider, StoreConfig


def test_env_without_store_settings_is_none():
    assert config_from_env({}) is None


def test_env_config_with_default_endpoint():
    config = config_from_env({
        "MEDIAVAULT_PROVIDER": "wasabi",
        "MEDIAVAULT_REGION": "eu-central-1",
        "MEDIAVAULT_BUCKET": "media",
        "MEDIAVAULT_ACCESS_KEY": "AK",
        "MEDIAVAULT_SECRET_KEY": "SK",
        "MEDIAVAULT_UPLOAD_CONCURRENCY": "20",
    })
    assert config.endpoint == "https://s3.eu-central-1.wasabisys.com"
    assert config.bucket == "media"
    assert config.is_configured
    assert config.upload_concurrency == 8


def test_env_config_rejects_bad_values():
    with pytest.raises(ConfigurationError):
        config_from_env({"MEDIAVAULT_PROVIDER": "ftp"})
    with pytest.raises(ConfigurationError):
        config_from_env({"MEDIAVAULT_ENDPOINT": "https://x", "MEDIAVAULT_REQUEST_TIMEOUT": "soon"})


def test_missing_credentials_are_logged_not_fatal(caplog):
    config = config_from_env({"MEDIAVAULT_ENDPOINT": "https://minio.local:9000"})
    assert config.provider is StorageProvider.WASABI
    assert not config.is_configured
    assert "credentials not set" in caplog.text


def test_saved_config_encrypts_credentials(tmp_path):
    config = StoreConfig(provider=StorageProvider.AWS_S3, endpoint="https://s3.us-east-1.amazonaws.com",
                         bucket="media", access_key_id="AKID", secret_access_key="SECRET")
    path = save_config(config, str(tmp_path))

    raw = json.loads(path.read_text())
    assert raw["is_encrypted"] is True
    assert raw["secret_access_key"] != "SECRET"

    loaded = load_config(str(tmp_path), env={})
    assert loaded.access_key_id == "AKID"
    assert loaded.secret_access_key == "SECRET"
    assert loaded.provider is StorageProvider.AWS_S3


def test_plaintext_config_is_rewritten_encrypted(tmp_path):
    path = config_path(str(tmp_path))
    path.write_text(json.dumps({
        "provider": "r2", "endpoint": "https://acc.r2.cloudflarestorage.com", "bucket": "media",
        "access_key_id": "AKID", "secret_access_key": "SECRET",
    }))

    loaded = load_config(str(tmp_path), env={})

    assert loaded.secret_access_key == "SECRET"
    assert json.loads(path.read_text())["is_encrypted"] is True


def test_load_falls_back_to_env(tmp_path):
    loaded = load_config(str(tmp_path), env={"MEDIAVAULT_PROVIDER": "local", "MEDIAVAULT_ENDPOINT": str(tmp_path)})
    assert loaded.provider is StorageProvider.LOCAL


def test_corrupt_config_file(tmp_path):
    config_path(str(tmp_path)).write_text("{not json")
    with pytest.raises(ConfigurationError):
        load_config(str(tmp_path), env={})


def test_decrypt_with_wrong_key_returns_none():
    token = CredentialManager.encrypt("secret", key=CredentialManager.generate_key_from_password("a", b"salt"))
    wrong = CredentialManager.generate_key_from_password("b", b"salt")
    assert CredentialManager.decrypt(token, key=wrong) is None


def test_factory_builds_providers(tmp_path):
    s3 = StorageProviderFactory.create(StoreConfig(provider=StorageProvider.AWS_S3, endpoint="", region="eu-west-1"))
    assert isinstance(s3, SignedS3Client)
    assert s3.endpoint_url == "https://s3.eu-west-1.amazonaws.com"

    local = StorageProviderFactory.create(StoreConfig(provider=StorageProvider.LOCAL, endpoint=str(tmp_path)))
    assert isinstance(local, LocalObjectStore)

    with pytest.raises(ConfigurationError):
        StorageProviderFactory.create(StoreConfig(provider=StorageProvider.GENERIC_S3, endpoint=""))
