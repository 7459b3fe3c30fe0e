"""RFC 7232 validators (ETag and Last-Modified) for cache revalidation.

Responsibilities
----------------
- Read ETag and Last-Modified from GET responses, keeping "header absent"
  (``None``) apart from "header present but empty" (``""``).
- Turn stored validators into ``If-None-Match`` / ``If-Modified-Since``
  headers for the revalidation HEAD.

Design Notes
------------
- Validator values are stored and replayed verbatim; weak ``W/`` prefixes are
  preserved and dates are not re-formatted.
- Empty validators are stored but never sent. An entry with nothing to send
  cannot be revalidated and is served as is.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

from .file_cache import ImmutableFileCache

__all__ = [
    "EntityValidator",
    "parse_entity_validator",
    "validator_from_cache",
    "build_conditional_headers",
]


@dataclass(frozen=True)
class EntityValidator:
    """Immutable pair of cache validators.

    Attributes:
        etag: Entity tag including any weak indicator; ``None`` when absent
        last_modified: Last-Modified HTTP date string; ``None`` when absent
    """

    etag: Optional[str] = None
    last_modified: Optional[str] = None

    @property
    def empty(self) -> bool:
        """True when neither validator is recorded."""
        return self.etag is None and self.last_modified is None


def _find_header(headers: Mapping[str, str], name: str) -> Optional[str]:
    for key, value in headers.items():
        if key.lower() == name:
            return value.strip()
    return None


def parse_entity_validator(headers: Mapping[str, str]) -> EntityValidator:
    """Extract ETag and Last-Modified validators from response headers.

    Examples:
        >>> parse_entity_validator({"ETag": '"abc123"'})
        EntityValidator(etag='"abc123"', last_modified=None)
        >>> parse_entity_validator({"ETag": ""}).etag
        ''
    """

    return EntityValidator(
        etag=_find_header(headers, "etag"),
        last_modified=_find_header(headers, "last-modified"),
    )


def validator_from_cache(view: ImmutableFileCache) -> EntityValidator:
    """Read the validators stored alongside a cache entry."""

    return EntityValidator(etag=view.etag, last_modified=view.last_modified)


def build_conditional_headers(validator: EntityValidator) -> dict[str, str]:
    """Build If-None-Match and If-Modified-Since headers for a revalidation.

    Examples:
        >>> build_conditional_headers(EntityValidator(etag='"v1"'))
        {'If-None-Match': '"v1"'}
        >>> build_conditional_headers(EntityValidator(etag="", last_modified=None))
        {}
    """

    headers: dict[str, str] = {}
    if validator.etag:
        headers["If-None-Match"] = validator.etag
    if validator.last_modified:
        headers["If-Modified-Since"] = validator.last_modified
    return headers
