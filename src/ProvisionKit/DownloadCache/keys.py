"""Filesystem keys derived from artifact URIs."""

from __future__ import annotations

import hashlib
from urllib.parse import quote

__all__ = ["CACHED_SUFFIX", "MAX_KEY_LENGTH", "cache_key", "cached_file_name"]

#: Suffix of data files in both the primary and the look-aside cache.
CACHED_SUFFIX = ".cached"

#: Longest key kept verbatim. Leaves room for the longest entry suffix
#: (``.last_modified``) under the common 255-byte file name limit.
MAX_KEY_LENGTH = 200

_DIGEST_LENGTH = 64


def cache_key(uri: str) -> str:
    """Return the filesystem-safe key for ``uri``.

    Every character outside the unreserved set is percent-escaped, including
    ``/`` and ``%`` itself, so two distinct URIs never share a key. Escaped
    keys longer than :data:`MAX_KEY_LENGTH` are cut short and completed with
    the SHA-256 digest of the full URI.

    Examples:
        >>> cache_key("https://example.org/a.jar")
        'https%3A%2F%2Fexample.org%2Fa.jar'
        >>> len(cache_key("https://example.org/" + "a" * 500))
        200
    """

    escaped = quote(uri, safe="")
    if len(escaped) <= MAX_KEY_LENGTH:
        return escaped
    digest = hashlib.sha256(uri.encode("utf-8")).hexdigest()
    prefix = escaped[: MAX_KEY_LENGTH - _DIGEST_LENGTH - 1]
    return f"{prefix}-{digest}"


def cached_file_name(uri: str) -> str:
    """Return the data file name used for ``uri`` in any cache directory."""

    return f"{cache_key(uri)}{CACHED_SUFFIX}"
