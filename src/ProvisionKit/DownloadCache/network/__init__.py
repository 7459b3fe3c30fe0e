"""Network subsystem: HTTP client factory and availability-aware retries.

This package provides the HTTP stack of the download cache, based on:
- HTTPX: HTTP/1.1 client with connection pooling and per-phase timeouts
- Tenacity: bounded retry loop over classified attempt outcomes

Modules:
- client: HTTPX client factory
- policy: pooling constants and recognised status codes
- retry: attempt classification and the retry driver
"""

from ProvisionKit.DownloadCache.network.client import create_http_client
from ProvisionKit.DownloadCache.network.policy import (
    HTTP_NOT_MODIFIED,
    HTTP_OK,
    RECOGNIZED_STATUSES,
)
from ProvisionKit.DownloadCache.network.retry import (
    TRANSPORT_ERRORS,
    AttemptOutcome,
    OutcomeKind,
    RequestResult,
    issue_request,
)

__all__ = [
    "create_http_client",
    "HTTP_OK",
    "HTTP_NOT_MODIFIED",
    "RECOGNIZED_STATUSES",
    "TRANSPORT_ERRORS",
    "AttemptOutcome",
    "OutcomeKind",
    "RequestResult",
    "issue_request",
]
