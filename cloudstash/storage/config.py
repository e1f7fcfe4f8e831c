"""
Provider configuration normalization.

Trims every string field, applies per-provider defaults and rejects configs
that are missing required fields. Providers call normalize_config() in their
constructor before any transport client exists, so an invalid config never
yields a half-built provider.
"""

import dataclasses
import logging
from typing import Dict, List, Optional, Tuple

from cloudstash.config_validator import ConfigValidationError
from cloudstash.constants import (
    DEFAULT_GITEE_BRANCH, DEFAULT_JDCLOUD_REGION, DEFAULT_QINIU_ZONE, QINIU_ZONES,
)
from cloudstash.storage.base import ProviderConfig, ProviderType

logger = logging.getLogger(__name__)

_INVALID = (None, "", "None")

# Fields a provider cannot work without. A tuple entry means "one of these".
REQUIRED_FIELDS: Dict[ProviderType, List] = {
    ProviderType.S3: ["access_key_id", "secret_access_key", "bucket"],
    ProviderType.R2: ["account_id", "access_key_id", "secret_access_key", "bucket"],
    ProviderType.JDCLOUD: ["access_key_id", "secret_access_key", "bucket"],
    ProviderType.OSS: ["access_key_id", "secret_access_key", "bucket", "region"],
    ProviderType.COS: ["access_key_id", "secret_access_key", "bucket", "region"],
    ProviderType.OBS: ["access_key_id", "secret_access_key", "bucket", "endpoint"],
    ProviderType.QINIU: ["access_key_id", "secret_access_key", "bucket"],
    ProviderType.GCS: ["bucket", ("credentials_json", "key_filename")],
    ProviderType.GITEE: ["access_token", "owner", "repo"],
    ProviderType.SMMS: ["access_token"],
    ProviderType.LSKY: ["access_token", "api_url"],
}

# Labels used in error messages, in the vocabulary each backend's console uses
_FIELD_LABELS: Dict[Tuple[ProviderType, str], str] = {
    (ProviderType.COS, "access_key_id"): "SecretId",
    (ProviderType.COS, "secret_access_key"): "SecretKey",
    (ProviderType.QINIU, "access_key_id"): "AccessKey",
    (ProviderType.QINIU, "secret_access_key"): "SecretKey",
    (ProviderType.OBS, "endpoint"): "server endpoint",
    (ProviderType.GITEE, "access_token"): "AccessToken",
    (ProviderType.SMMS, "access_token"): "API token",
    (ProviderType.LSKY, "access_token"): "API token",
    (ProviderType.LSKY, "api_url"): "server URL",
}

_STRING_FIELDS = [
    f.name for f in dataclasses.fields(ProviderConfig)
    if f.name not in ("provider", "is_private", "force_path_style", "proxy")
]


def _clean(value) -> Optional[str]:
    if value in _INVALID:
        return None
    value = str(value).strip()
    return value or None


def normalize_domain(domain: Optional[str]) -> Optional[str]:
    """Strip trailing slashes and add https:// when no scheme is given."""
    domain = _clean(domain)
    if not domain:
        return None
    domain = domain.rstrip("/")
    if not domain.startswith(("http://", "https://")):
        domain = f"https://{domain}"
    return domain


def _label(provider: ProviderType, name: str) -> str:
    return _FIELD_LABELS.get((provider, name), name)


def missing_fields(config: ProviderConfig) -> List[str]:
    """Return labels of required fields that are empty."""
    missing = []
    for requirement in REQUIRED_FIELDS[config.provider]:
        if isinstance(requirement, tuple):
            if not any(getattr(config, name) for name in requirement):
                missing.append(" or ".join(_label(config.provider, name) for name in requirement))
        elif not getattr(config, requirement):
            missing.append(_label(config.provider, requirement))
    return missing


def normalize_config(config: ProviderConfig) -> ProviderConfig:
    """
    Return a trimmed copy of the config with defaults applied.

    Raises:
        ConfigValidationError: if a required field is missing or a value is invalid
    """
    if not isinstance(config.provider, ProviderType):
        raise ConfigValidationError(
            f"Unknown provider type: {config.provider!r}",
            [f"Use one of: {', '.join(p.value for p in ProviderType)}"]
        )

    changes = {name: _clean(getattr(config, name)) for name in _STRING_FIELDS}
    changes["public_domain"] = normalize_domain(config.public_domain)
    provider = config.provider

    if provider == ProviderType.GITEE:
        changes["branch"] = changes["branch"] or DEFAULT_GITEE_BRANCH
    elif provider == ProviderType.JDCLOUD:
        changes["region"] = changes["region"] or DEFAULT_JDCLOUD_REGION
    elif provider == ProviderType.QINIU:
        changes["zone"] = changes["zone"] or DEFAULT_QINIU_ZONE
    elif provider == ProviderType.R2:
        changes["region"] = "auto"
    elif provider == ProviderType.LSKY and changes["api_url"]:
        changes["api_url"] = normalize_domain(changes["api_url"])

    if provider == ProviderType.OBS and changes["endpoint"]:
        # OBS takes a bare host or a URL; keep the URL form
        changes["endpoint"] = normalize_domain(changes["endpoint"])

    normalized = dataclasses.replace(config, **changes)

    missing = missing_fields(normalized)
    if missing:
        raise ConfigValidationError(
            f"{provider.value} configuration is missing required fields: {', '.join(missing)}",
            [f"Set {name} in the [Storage] section of settings.ini or via STORAGE_* environment variables"
             for name in missing]
        )

    if provider == ProviderType.QINIU and normalized.zone not in QINIU_ZONES:
        raise ConfigValidationError(
            f"Invalid Qiniu zone '{normalized.zone}'",
            [f"Use one of: {', '.join(sorted(QINIU_ZONES))}"]
        )

    if provider == ProviderType.QINIU and not normalized.public_domain:
        logger.warning("Qiniu has no default public endpoint; set public_domain to get shareable URLs")

    return normalized
