"""
Storage provider factory and configuration loading.

Reads the [Storage] and [Proxy] sections from settings.ini (env vars
override) and returns the matching provider instance.
"""

import configparser
import dataclasses
import importlib
import logging
import os
from typing import Dict, Optional, Tuple

from cloudstash.config_validator import ConfigValidationError, default_settings_path
from cloudstash.proxy_config import proxy_from_settings
from cloudstash.storage.base import ProviderConfig, ProviderType

logger = logging.getLogger(__name__)

_INVALID = (None, "", "None")

# (module, class) per provider; modules are imported on first use so only the
# selected backend's SDK has to be installed
PROVIDER_CLASSES: Dict[ProviderType, Tuple[str, str]] = {
    ProviderType.S3: ("cloudstash.storage.s3_provider", "S3StorageProvider"),
    ProviderType.R2: ("cloudstash.storage.s3_provider", "R2StorageProvider"),
    ProviderType.JDCLOUD: ("cloudstash.storage.s3_provider", "JDCloudStorageProvider"),
    ProviderType.OSS: ("cloudstash.storage.oss_provider", "OSSStorageProvider"),
    ProviderType.COS: ("cloudstash.storage.cos_provider", "COSStorageProvider"),
    ProviderType.OBS: ("cloudstash.storage.obs_provider", "OBSStorageProvider"),
    ProviderType.QINIU: ("cloudstash.storage.qiniu_provider", "QiniuStorageProvider"),
    ProviderType.GCS: ("cloudstash.storage.gcs_provider", "GCSStorageProvider"),
    ProviderType.GITEE: ("cloudstash.storage.gitee_provider", "GiteeStorageProvider"),
    ProviderType.SMMS: ("cloudstash.storage.smms_provider", "SmmsStorageProvider"),
    ProviderType.LSKY: ("cloudstash.storage.lsky_provider", "LskyStorageProvider"),
}

_BOOL_FIELDS = ("is_private", "force_path_style")

_PROXY_KEYS = ("enabled", "url", "host", "port", "protocol", "username", "password")


def provider_class(provider: ProviderType):
    """Import and return the facade class for a provider type."""
    module_name, class_name = PROVIDER_CLASSES[provider]
    return getattr(importlib.import_module(module_name), class_name)


def parse_provider_type(value: Optional[str]) -> ProviderType:
    try:
        return ProviderType((value or "").strip().lower())
    except ValueError:
        raise ConfigValidationError(
            f"Invalid storage provider '{value}'",
            [f"Set provider to one of: {', '.join(p.value for p in ProviderType)}",
             "Or set the STORAGE_PROVIDER environment variable"]
        )


def _as_bool(value: Optional[str]) -> bool:
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def load_storage_config(path: Optional[str] = None, section: str = "Storage",
                        provider: Optional[str] = None) -> ProviderConfig:
    """
    Load a ProviderConfig from settings.ini with env var overrides.

    Every config field can be set as STORAGE_<FIELD> in the environment,
    which wins over the file. provider, when given, overrides both.
    """
    parser = configparser.ConfigParser()
    config_path = path or default_settings_path()
    if os.path.exists(config_path):
        parser.read(config_path)
    else:
        logger.debug(f"{config_path} not found, using environment variables only")

    def _get(sec: str, key: str, fallback: Optional[str] = None) -> Optional[str]:
        val = parser.get(sec, key, fallback=fallback)
        return val if val not in _INVALID else fallback

    def _setting(key: str) -> Optional[str]:
        return os.getenv(f"STORAGE_{key.upper()}") or _get(section, key)

    provider_type = parse_provider_type(provider or _setting("provider"))

    values = {}
    for f in dataclasses.fields(ProviderConfig):
        if f.name in ("provider", "proxy"):
            continue
        value = _setting(f.name)
        if value is None:
            continue
        values[f.name] = _as_bool(value) if f.name in _BOOL_FIELDS else value

    proxy_values = {key: os.getenv(f"PROXY_{key.upper()}") or _get("Proxy", key) for key in _PROXY_KEYS}
    proxy = proxy_from_settings(proxy_values)

    return ProviderConfig(provider=provider_type, proxy=proxy, **values)


def get_storage_provider(config: Optional[ProviderConfig] = None, client=None):
    """
    Factory: return the configured storage provider instance.

    The config is normalized and validated by the provider's constructor,
    so an invalid config raises ConfigValidationError here.
    """
    if config is None:
        config = load_storage_config()

    cls = provider_class(config.provider)
    logger.debug(f"Building {cls.__name__} for {config!r}")
    return cls(config, client=client)
