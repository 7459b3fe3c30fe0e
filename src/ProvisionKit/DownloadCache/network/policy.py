"""HTTP policy constants and defaults.

Connection pooling parameters for the httpx client used by the download
cache, plus the status codes the retrieval protocol recognises.
"""

# ============================================================================
# Connection Pooling
# ============================================================================

#: Maximum concurrent connections (total across all hosts)
MAX_CONNECTIONS = 20

#: Maximum idle connections kept for reuse
MAX_KEEPALIVE_CONNECTIONS = 10

#: How long to keep idle connections alive (seconds)
KEEPALIVE_EXPIRY = 5.0


# ============================================================================
# Protocol
# ============================================================================

HTTP_OK = 200
HTTP_NOT_MODIFIED = 304

#: Statuses that settle an attempt; everything else is a bad status
RECOGNIZED_STATUSES = frozenset({HTTP_OK, HTTP_NOT_MODIFIED})

USER_AGENT = "ProvisionKit-DownloadCache/0.1.0"

#: Require TLS verification for all HTTPS connections
TLS_VERIFY_ENABLED = True


__all__ = [
    "MAX_CONNECTIONS",
    "MAX_KEEPALIVE_CONNECTIONS",
    "KEEPALIVE_EXPIRY",
    "HTTP_OK",
    "HTTP_NOT_MODIFIED",
    "RECOGNIZED_STATUSES",
    "USER_AGENT",
    "TLS_VERIFY_ENABLED",
]
