"""Artifact download cache shared by concurrent provisioning processes.

Public API:
- :class:`DownloadCache` with ``get(uri)`` and ``evict(uri)``
- :class:`AvailabilityService` and the process-wide accessor
- :class:`FileCache` for direct entry access under shared/exclusive locks
- the exception hierarchy from :mod:`.errors`

Example:
    >>> from ProvisionKit.DownloadCache import DownloadCache
    >>> with DownloadCache("/tmp/provision-cache") as cache:
    ...     with cache.get("https://repo.example.org/openjdk-17.tar.gz") as artifact:
    ...         header = artifact.read(512)
"""

from .availability import (
    AvailabilityService,
    AvailabilityState,
    get_availability_service,
    reset_availability_service,
)
from .download_cache import DownloadCache
from .errors import (
    BadResponseStatus,
    CacheDidNotConverge,
    CacheInconsistency,
    ConfigurationError,
    DownloadCacheError,
    DownloadFailure,
    FallbackExhausted,
    TransportFault,
)
from .file_cache import FileCache, ImmutableFileCache, MutableFileCache
from .keys import cache_key
from .look_aside import LookAsideCache
from .settings import DownloadCacheSettings, get_settings, reset_settings

__all__ = [
    "DownloadCache",
    "AvailabilityService",
    "AvailabilityState",
    "get_availability_service",
    "reset_availability_service",
    "FileCache",
    "ImmutableFileCache",
    "MutableFileCache",
    "LookAsideCache",
    "cache_key",
    "DownloadCacheSettings",
    "get_settings",
    "reset_settings",
    "DownloadCacheError",
    "ConfigurationError",
    "DownloadFailure",
    "TransportFault",
    "BadResponseStatus",
    "CacheInconsistency",
    "FallbackExhausted",
    "CacheDidNotConverge",
]
