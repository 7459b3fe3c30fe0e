"""Environment-driven settings for the download cache.

Values are read from ``PROVISION_CACHE_*`` environment variables. The
``remote_downloads`` switch is deliberately kept as a raw string: it is
validated by :class:`~ProvisionKit.DownloadCache.availability.AvailabilityService`
right before the first network decision so an invalid value fails the
retrieval with :class:`~ProvisionKit.DownloadCache.errors.ConfigurationError`.
"""

from __future__ import annotations

import tempfile
import threading
from pathlib import Path
from typing import Any, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = ["DownloadCacheSettings", "get_settings", "reset_settings"]


class DownloadCacheSettings(BaseSettings):
    """Resolved configuration for :class:`~ProvisionKit.DownloadCache.DownloadCache`."""

    model_config = SettingsConfigDict(
        env_prefix="PROVISION_CACHE_",
        case_sensitive=False,
        extra="ignore",
    )

    cache_root: Path = Field(
        default_factory=lambda: Path(tempfile.gettempdir()),
        description="Directory holding cached artifacts, lock and validator files",
    )
    look_aside_root: Optional[Path] = Field(
        None, description="Read-only directory of pre-populated '<key>.cached' files"
    )
    remote_downloads: str = Field(
        "enabled", description="Either 'enabled' or 'disabled'; anything else is fatal"
    )
    detection_retry_limit: int = Field(
        5, ge=1, description="Attempts per request while network availability is unknown"
    )
    download_retry_limit: int = Field(
        3, ge=1, description="Attempts per request once network availability is known"
    )
    timeout_seconds: float = Field(
        10.0, gt=0, description="Connect/read/write/pool timeout for each HTTP attempt"
    )
    retry_backoff_seconds: float = Field(
        0.25, ge=0, description="Exponential backoff multiplier between attempts"
    )
    retry_backoff_max_seconds: float = Field(
        2.0, ge=0, description="Upper bound for the wait between attempts"
    )
    max_delivery_attempts: int = Field(
        10, ge=1, description="Shared/exclusive rounds before giving up on one URI"
    )
    follow_redirects: bool = Field(False, description="Follow HTTP redirects transparently")
    trust_env: bool = Field(True, description="Honor HTTP(S)_PROXY and NO_PROXY")

    @field_validator("cache_root", "look_aside_root", mode="before")
    @classmethod
    def expand_paths(cls, v: Any) -> Any:
        """Expand user home and make absolute."""
        if v is None or v == "":
            return None
        if isinstance(v, (str, Path)):
            return Path(v).expanduser().resolve()
        return v


_settings_lock = threading.Lock()
_settings: Optional[DownloadCacheSettings] = None


def get_settings() -> DownloadCacheSettings:
    """Return the process-wide settings, loading them from the environment once."""

    global _settings
    with _settings_lock:
        if _settings is None:
            _settings = DownloadCacheSettings()
        return _settings


def reset_settings() -> None:
    """Forget cached settings so the next :func:`get_settings` re-reads the environment."""

    global _settings
    with _settings_lock:
        _settings = None
