"""HTTPX client factory for the download cache.

Builds an :class:`httpx.Client` with per-phase timeouts, bounded connection
pooling and a certifi-backed TLS context. Unlike a general purpose client it
adds no HTTP caching layer: the download cache is the cache, and it performs
its own conditional revalidation.

Example:
    >>> from ProvisionKit.DownloadCache.network import create_http_client
    >>> client = create_http_client()
    >>> client.close()
"""

import logging
import ssl
from typing import Optional

import certifi
import httpx

from ProvisionKit.DownloadCache.network.policy import (
    KEEPALIVE_EXPIRY,
    MAX_CONNECTIONS,
    MAX_KEEPALIVE_CONNECTIONS,
    TLS_VERIFY_ENABLED,
    USER_AGENT,
)
from ProvisionKit.DownloadCache.settings import DownloadCacheSettings, get_settings

logger = logging.getLogger(__name__)


def create_http_client(
    settings: Optional[DownloadCacheSettings] = None,
    *,
    transport: Optional[httpx.BaseTransport] = None,
) -> httpx.Client:
    """Create the HTTPX client used for revalidation and downloads.

    Args:
        settings: Resolved settings; defaults to :func:`get_settings`.
        transport: Optional transport override (tests pass
            :class:`httpx.MockTransport`).

    Returns:
        Configured httpx.Client. The caller owns it and must close it.
    """
    settings = settings or get_settings()
    timeout = settings.timeout_seconds
    ssl_ctx = _create_ssl_context()

    client = httpx.Client(
        transport=transport,
        timeout=httpx.Timeout(connect=timeout, read=timeout, write=timeout, pool=timeout),
        limits=httpx.Limits(
            max_connections=MAX_CONNECTIONS,
            max_keepalive_connections=MAX_KEEPALIVE_CONNECTIONS,
            keepalive_expiry=KEEPALIVE_EXPIRY,
        ),
        follow_redirects=settings.follow_redirects,
        trust_env=settings.trust_env,
        headers={"User-Agent": USER_AGENT},
        verify=ssl_ctx,
    )

    logger.debug(
        "HTTPX client created",
        extra={
            "timeout_seconds": timeout,
            "follow_redirects": settings.follow_redirects,
            "max_connections": MAX_CONNECTIONS,
        },
    )
    return client


def _create_ssl_context() -> ssl.SSLContext:
    """Create SSL context verifying against the certifi bundle."""
    if not TLS_VERIFY_ENABLED:
        ctx = ssl.create_default_context()
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
        logger.warning("TLS verification DISABLED (development only!)")
        return ctx

    ctx = ssl.create_default_context(cafile=certifi.where())
    ctx.check_hostname = True
    ctx.verify_mode = ssl.CERT_REQUIRED
    return ctx


__all__ = ["create_http_client"]
