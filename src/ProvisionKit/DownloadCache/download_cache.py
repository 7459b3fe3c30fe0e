# === NAVMAP v1 ===
# {
#   "module": "ProvisionKit.DownloadCache.download_cache",
#   "purpose": "Filesystem-backed download cache with conditional revalidation and look-aside fallback",
#   "sections": [
#     {"id": "downloadcache", "name": "DownloadCache", "anchor": "class-downloadcache", "kind": "class"},
#     {"id": "get", "name": "DownloadCache.get", "anchor": "function-get", "kind": "function"},
#     {"id": "evict", "name": "DownloadCache.evict", "anchor": "function-evict", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Filesystem-backed cache for downloaded artifacts.

Several provisioning processes may share one cache directory. Mutation of an
entry is serialised across processes with an exclusive file lock; reads happen
concurrently under shared locks, so read performance is not impacted.

Retrieval algorithm (:meth:`DownloadCache.get`):

1. Under a shared lock, check whether the entry can be delivered: an entry
   with no non-empty validator is always fresh; otherwise a conditional HEAD
   must be answered with 304. If so, the data is yielded while the lock is held.
2. Otherwise, under the exclusive lock, download the artifact with a GET, or
   copy it from the look-aside cache when the network cannot be used.
3. Repeat until the data is yielded, an error is raised, or the round limit
   is reached.

References:
    * https://en.wikipedia.org/wiki/HTTP_ETag
    * https://www.rfc-editor.org/rfc/rfc7232
"""

from __future__ import annotations

import contextlib
import logging
import threading
import time
from pathlib import Path
from typing import IO, Callable, Iterator, Optional, Union

import httpx

from .availability import AvailabilityService, get_availability_service
from .conditional import build_conditional_headers, parse_entity_validator, validator_from_cache
from .errors import CacheDidNotConverge, CacheInconsistency
from .file_cache import FileCache, ImmutableFileCache, MutableFileCache
from .logging_utils import get_logger
from .look_aside import LookAsideCache
from .network import HTTP_NOT_MODIFIED, HTTP_OK, AttemptOutcome, create_http_client, issue_request
from .settings import DownloadCacheSettings, get_settings

__all__ = ["DownloadCache"]


class DownloadCache:
    """A cache for downloaded files backed by a shared filesystem directory.

    Args:
        cache_root: Directory for cached entries; defaults to the configured
            ``cache_root`` (the platform temp directory).
        look_aside_root: Read-only fallback directory; defaults to the
            configured ``look_aside_root``.
        availability: Network circuit breaker. Defaults to the process-wide
            service, or to a service private to this cache built from
            ``settings`` when those are passed explicitly.
        client: HTTPX client to use. When omitted the cache creates one lazily
            and closes it in :meth:`close`.
        settings: Resolved settings; defaults to :func:`get_settings`.
        logger: Logger receiving debug and error messages.
        sleep: Sleep function used between retry attempts.

    Examples:
        >>> cache = DownloadCache("/var/cache/provision")
        >>> with cache.get("https://repo.example.org/tomcat-9.0.tar.gz") as artifact:
        ...     payload = artifact.read()
    """

    def __init__(
        self,
        cache_root: Optional[Union[str, Path]] = None,
        *,
        look_aside_root: Optional[Union[str, Path]] = None,
        availability: Optional[AvailabilityService] = None,
        client: Optional[httpx.Client] = None,
        settings: Optional[DownloadCacheSettings] = None,
        logger: Optional[logging.Logger] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._settings = settings or get_settings()
        self.cache_root = Path(cache_root) if cache_root is not None else self._settings.cache_root
        self._logger = logger or get_logger()
        if availability is None:
            availability = (
                get_availability_service()
                if settings is None
                else AvailabilityService(
                    settings.remote_downloads,
                    detection_retry_limit=settings.detection_retry_limit,
                    download_retry_limit=settings.download_retry_limit,
                )
            )
        self._availability = availability
        self._look_aside = LookAsideCache(
            look_aside_root if look_aside_root is not None else self._settings.look_aside_root,
            logger=self._logger,
        )
        self._client = client
        self._owns_client = client is None
        self._client_lock = threading.Lock()
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @contextlib.contextmanager
    def get(self, uri: str) -> Iterator[IO[bytes]]:
        """Yield a binary handle on an up-to-date copy of ``uri``.

        The handle is only valid inside the ``with`` block, during which the
        entry is held under a shared lock and cannot be changed or deleted by
        another cooperating process.

        Raises:
            ConfigurationError: Invalid ``remote_downloads`` value.
            TransportFault: Repeated transport faults on a network known to be up.
            BadResponseStatus: Repeated bad statuses on a network known to be up.
            CacheInconsistency: A full GET was answered with a non-200 status.
            FallbackExhausted: The network is unusable and the look-aside
                cache lacks the artifact.
            CacheDidNotConverge: Delivery kept failing after fresh downloads.
        """

        file_cache = FileCache(self.cache_root, uri)
        max_rounds = self._settings.max_delivery_attempts

        for round_number in range(1, max_rounds + 1):
            with file_cache.lock_shared() as immutable_file_cache:
                if self._deliverable(uri, immutable_file_cache):
                    with immutable_file_cache.data() as file_data:
                        yield file_data
                    return

            self._logger.debug(
                "Cached copy of %s unavailable or stale (round %d of %d)",
                uri,
                round_number,
                max_rounds,
            )
            with file_cache.lock_exclusive() as mutable_file_cache:
                self._download(uri, mutable_file_cache)

        message = f"Cache entry for {uri} did not converge after {max_rounds} rounds"
        self._logger.error(message)
        raise CacheDidNotConverge(message, uri=uri, attempts=max_rounds)

    def evict(self, uri: str) -> None:
        """Remove the cached entry for ``uri``."""

        FileCache(self.cache_root, uri).destroy()
        self._logger.debug("Evicted %s from %s", uri, self.cache_root)

    def close(self) -> None:
        """Close the HTTP client if this cache created it."""

        with self._client_lock:
            if self._owns_client and self._client is not None:
                self._client.close()
                self._client = None

    def __enter__(self) -> "DownloadCache":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _http_client(self) -> httpx.Client:
        with self._client_lock:
            if self._client is None:
                self._client = create_http_client(self._settings)
            return self._client

    def _issue(self, method: str, uri: str, handler, headers=None):
        return issue_request(
            self._http_client(),
            method,
            uri,
            availability=self._availability,
            handler=handler,
            headers=headers,
            log=self._logger,
            backoff_seconds=self._settings.retry_backoff_seconds,
            backoff_max_seconds=self._settings.retry_backoff_max_seconds,
            sleep=self._sleep,
        )

    def _deliverable(self, uri: str, immutable_file_cache: ImmutableFileCache) -> bool:
        if not immutable_file_cache.cached:
            return False

        validator = validator_from_cache(immutable_file_cache)
        headers = build_conditional_headers(validator)
        if not headers:
            # Nothing to send: no validators, or only empty ones
            return True
        if not self._availability.use_network():
            return False

        def _on_response(response: httpx.Response) -> AttemptOutcome:
            return AttemptOutcome.success(
                response.status_code == HTTP_NOT_MODIFIED, status_code=response.status_code
            )

        result = self._issue("HEAD", uri, _on_response, headers)
        fresh = result.succeeded and bool(result.value)
        self._logger.debug(
            "Revalidated %s: %s",
            uri,
            "not modified" if fresh else "stale",
            extra={"uri": uri, "status_code": result.outcome.status_code},
        )
        return fresh

    def _download(self, uri: str, mutable_file_cache: MutableFileCache) -> None:
        if self._availability.use_network():

            def _on_response(response: httpx.Response) -> AttemptOutcome:
                if response.status_code != HTTP_OK:
                    # A GET without validators must never be answered with 304
                    return AttemptOutcome.fatal(
                        CacheInconsistency(
                            f"Unexpected HTTP response code: {response.status_code}",
                            uri=uri,
                            status_code=response.status_code,
                        )
                    )
                self._write_response(mutable_file_cache, response)
                return AttemptOutcome.success(status_code=response.status_code)

            result = self._issue("GET", uri, _on_response)
            if result.succeeded:
                self._logger.debug("Downloaded %s into %s", uri, mutable_file_cache.data_path)
                return

        self._look_aside.populate(uri, mutable_file_cache)

    @staticmethod
    def _write_response(mutable_file_cache: MutableFileCache, response: httpx.Response) -> None:
        with mutable_file_cache.persist_data() as cached_file:
            for chunk in response.iter_bytes():
                cached_file.write(chunk)

        validator = parse_entity_validator(response.headers)
        mutable_file_cache.persist_etag(validator.etag)
        mutable_file_cache.persist_last_modified(validator.last_modified)
