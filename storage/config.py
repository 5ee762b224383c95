"""Configuration settings for the storage layer."""

import os
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

from common.constants import TELEGRAM_API_BASE as DEFAULT_TELEGRAM_API_BASE
from common.exceptions import ConfigurationError
from common.types import ProviderType


STORAGE_HOST = os.environ.get("STORAGE_HOST", "0.0.0.0")

STORAGE_PORT = int(os.environ.get("STORAGE_PORT", "8000"))

TELEGRAM_API_BASE = os.environ.get("TELEGRAM_API_BASE", DEFAULT_TELEGRAM_API_BASE)

R2_ENV_KEYS = ("R2_ACCOUNT_ID", "R2_ACCESS_KEY_ID", "R2_SECRET_ACCESS_KEY", "R2_BUCKET_NAME")

B2_ENV_KEYS = ("B2_ACCOUNT_ID", "B2_APPLICATION_KEY_ID", "B2_APPLICATION_KEY", "B2_BUCKET_NAME")

_TRUE_VALUES = {"1", "true", "yes", "on"}


def parse_provider_type(value: str) -> ProviderType:
    """
    Parse a provider name such as "telegram" or "cloudflare_r2".

    Raises:
        ConfigurationError: If the name is not a known provider
    """
    try:
        return ProviderType(value.strip().lower())
    except ValueError:
        known = ", ".join(p.value for p in ProviderType)
        raise ConfigurationError(f"Unknown storage provider '{value}' (expected one of: {known})")


@dataclass(frozen=True)
class StorageConfig:
    """
    Primary provider and ordered fallbacks.

    ``replication_enabled`` is reserved for dual writes and has no effect.
    """
    primary: ProviderType = ProviderType.TELEGRAM
    fallback: Tuple[ProviderType, ...] = ()
    replication_enabled: bool = False

    def __post_init__(self):
        seen = {self.primary}
        cleaned = []
        for provider_type in self.fallback:
            if provider_type not in seen:
                seen.add(provider_type)
                cleaned.append(provider_type)
        object.__setattr__(self, "fallback", tuple(cleaned))

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "StorageConfig":
        """
        Read STORAGE_PRIMARY, STORAGE_FALLBACK (comma separated) and
        STORAGE_REPLICATION_ENABLED.
        """
        if env is None:
            env = os.environ

        primary = parse_provider_type(env.get("STORAGE_PRIMARY") or ProviderType.TELEGRAM.value)
        fallback = tuple(
            parse_provider_type(name)
            for name in (env.get("STORAGE_FALLBACK") or "").split(",")
            if name.strip()
        )
        replication_enabled = (env.get("STORAGE_REPLICATION_ENABLED") or "").strip().lower() in _TRUE_VALUES

        return cls(primary=primary, fallback=fallback, replication_enabled=replication_enabled)


DEFAULT_STORAGE_CONFIG = StorageConfig()


def read_env_values(keys: Tuple[str, ...], env: Optional[Mapping[str, str]] = None) -> dict:
    """Values for the given keys, with blanks normalised to None."""
    if env is None:
        env = os.environ
    return {key: (env.get(key) or "").strip() or None for key in keys}
