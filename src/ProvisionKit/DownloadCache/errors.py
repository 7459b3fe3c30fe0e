"""Exception hierarchy shared across the download cache.

Retrieval spans configuration checks, HTTP revalidation, full downloads and
the look-aside fallback. Callers usually only care whether a ``get`` failed
(:class:`DownloadCacheError`), but the subclasses let provisioning code tell a
misconfigured build apart from an outage or an incomplete offline cache.
"""

from __future__ import annotations

from typing import Optional, Sequence

__all__ = [
    "DownloadCacheError",
    "ConfigurationError",
    "DownloadFailure",
    "TransportFault",
    "BadResponseStatus",
    "CacheInconsistency",
    "FallbackExhausted",
    "CacheDidNotConverge",
]


class DownloadCacheError(RuntimeError):
    """Base exception for download cache failures."""


class ConfigurationError(DownloadCacheError):
    """Raised when the resolved ``remote_downloads`` value is not recognised."""


class DownloadFailure(DownloadCacheError):
    """Raised when an HTTP call sequence fails after exhausting its budget."""

    def __init__(
        self,
        message: str,
        *,
        uri: Optional[str] = None,
        status_code: Optional[int] = None,
        attempts: int = 0,
    ) -> None:
        super().__init__(message)
        self.uri = uri
        self.status_code = status_code
        self.attempts = attempts


class TransportFault(DownloadFailure):
    """Timeouts, resets, refused connections, DNS and protocol errors."""


class BadResponseStatus(DownloadFailure):
    """HTTP status outside ``{200, 304}``."""


class CacheInconsistency(DownloadCacheError):
    """Raised when a full GET is answered with a non-200 status such as 304."""

    def __init__(self, message: str, *, uri: Optional[str] = None, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.uri = uri
        self.status_code = status_code


class FallbackExhausted(DownloadCacheError):
    """Raised when the look-aside cache does not hold the requested artifact."""

    def __init__(
        self,
        message: str,
        *,
        uri: Optional[str] = None,
        contents: Optional[Sequence[str]] = None,
    ) -> None:
        super().__init__(message)
        self.uri = uri
        self.contents = tuple(contents or ())


class CacheDidNotConverge(DownloadCacheError):
    """Raised when revalidation and download keep disagreeing for one URI."""

    def __init__(self, message: str, *, uri: Optional[str] = None, attempts: int = 0) -> None:
        super().__init__(message)
        self.uri = uri
        self.attempts = attempts
