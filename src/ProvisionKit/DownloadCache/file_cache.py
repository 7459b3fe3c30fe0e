# === NAVMAP v1 ===
# {
#   "module": "ProvisionKit.DownloadCache.file_cache",
#   "purpose": "On-disk cache entry for one URI guarded by a readers/writer lock",
#   "sections": [
#     {"id": "immutablefilecache", "name": "ImmutableFileCache", "anchor": "class-immutablefilecache", "kind": "class"},
#     {"id": "mutablefilecache", "name": "MutableFileCache", "anchor": "class-mutablefilecache", "kind": "class"},
#     {"id": "filecache", "name": "FileCache", "anchor": "class-filecache", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""On-disk cache entry for one artifact URI.

An entry is a set of sibling files under the cache root, all named after
:func:`~ProvisionKit.DownloadCache.keys.cache_key`:

``<key>.cached``
    the artifact bytes
``<key>.lock``
    the advisory lock file, never deleted while the entry is in use
``<key>.etag`` / ``<key>.last_modified``
    HTTP validators, present only when they describe the stored bytes

New bytes are staged in ``<key>.cached.part`` and renamed into place.

Readers go through :meth:`FileCache.lock_shared` and writers through
:meth:`FileCache.lock_exclusive`. Because the exclusive lock excludes every
shared holder, a reader never sees an entry between two writer steps. The
staging file keeps an interrupted writer from leaving partial bytes behind.
"""

from __future__ import annotations

import contextlib
import os
import shutil
from pathlib import Path
from typing import IO, Iterator, Optional, Union

from .keys import CACHED_SUFFIX, cache_key
from .locks import exclusive_lock, shared_lock

__all__ = ["FileCache", "ImmutableFileCache", "MutableFileCache"]


class ImmutableFileCache:
    """Read-only view of an entry, valid only while its lock is held."""

    def __init__(self, entry: "FileCache") -> None:
        self._entry = entry
        self._active = True

    def _check_active(self) -> None:
        if not self._active:
            raise RuntimeError(f"Lock on cache entry for {self._entry.uri} has been released")

    def _close(self) -> None:
        self._active = False

    @property
    def uri(self) -> str:
        return self._entry.uri

    @property
    def data_path(self) -> Path:
        return self._entry.data_path

    @property
    def cached(self) -> bool:
        """True when the artifact bytes are present."""
        self._check_active()
        return self._entry.data_path.exists()

    @property
    def has_etag(self) -> bool:
        self._check_active()
        return self._entry.etag_path.exists()

    @property
    def has_last_modified(self) -> bool:
        self._check_active()
        return self._entry.last_modified_path.exists()

    @property
    def etag(self) -> Optional[str]:
        """Stored ETag; ``""`` when the server sent an empty header, ``None`` when absent."""
        self._check_active()
        return _read_optional(self._entry.etag_path)

    @property
    def last_modified(self) -> Optional[str]:
        self._check_active()
        return _read_optional(self._entry.last_modified_path)

    @contextlib.contextmanager
    def data(self) -> Iterator[IO[bytes]]:
        """Yield a binary handle on the cached artifact."""

        self._check_active()
        with self._entry.data_path.open("rb") as handle:
            yield handle


class MutableFileCache(ImmutableFileCache):
    """Read/write view of an entry, handed out under the exclusive lock."""

    @contextlib.contextmanager
    def persist_data(self) -> Iterator[IO[bytes]]:
        """Yield a handle that replaces the artifact bytes.

        The previous bytes and validators are dropped first. The new bytes are
        staged in ``<key>.cached.part`` and renamed into place when the block
        completes; if it raises, nothing of the entry remains. Validators for
        the new bytes are persisted afterwards by the caller.
        """

        self._check_active()
        entry = self._entry
        entry.cache_root.mkdir(parents=True, exist_ok=True)
        self._remove_validators()
        entry.data_path.unlink(missing_ok=True)
        try:
            with entry.partial_path.open("wb") as handle:
                yield handle
            os.replace(entry.partial_path, entry.data_path)
        except BaseException:
            entry.partial_path.unlink(missing_ok=True)
            raise

    def persist_etag(self, value: Optional[str]) -> None:
        """Store ``value`` as the ETag; ``None`` removes any stored ETag."""

        self._check_active()
        _write_optional(self._entry.etag_path, value)

    def persist_last_modified(self, value: Optional[str]) -> None:
        """Store ``value`` as Last-Modified; ``None`` removes it."""

        self._check_active()
        _write_optional(self._entry.last_modified_path, value)

    def persist_file(self, source: Union[str, Path]) -> None:
        """Copy ``source`` into the entry and drop validators.

        The copy did not come from an HTTP response, so it carries no
        validators and is treated as permanently fresh.
        """

        with self.persist_data() as handle, open(source, "rb") as stashed:
            shutil.copyfileobj(stashed, handle)

    def _remove_validators(self) -> None:
        self._entry.etag_path.unlink(missing_ok=True)
        self._entry.last_modified_path.unlink(missing_ok=True)


class FileCache:
    """Filesystem identity of one cached URI."""

    def __init__(self, cache_root: Union[str, Path], uri: str) -> None:
        self.cache_root = Path(cache_root)
        self.uri = uri
        key = cache_key(uri)
        self.data_path = self.cache_root / f"{key}{CACHED_SUFFIX}"
        self.partial_path = self.cache_root / f"{key}{CACHED_SUFFIX}.part"
        self.lock_path = self.cache_root / f"{key}.lock"
        self.etag_path = self.cache_root / f"{key}.etag"
        self.last_modified_path = self.cache_root / f"{key}.last_modified"

    def __repr__(self) -> str:
        return f"FileCache(cache_root={str(self.cache_root)!r}, uri={self.uri!r})"

    @contextlib.contextmanager
    def lock_shared(self) -> Iterator[ImmutableFileCache]:
        """Hold a shared lock and yield a read-only view of the entry."""

        with shared_lock(self.lock_path):
            view = ImmutableFileCache(self)
            try:
                yield view
            finally:
                view._close()

    @contextlib.contextmanager
    def lock_exclusive(self) -> Iterator[MutableFileCache]:
        """Hold the exclusive lock and yield a mutable view of the entry."""

        with exclusive_lock(self.lock_path):
            view = MutableFileCache(self)
            try:
                yield view
            finally:
                view._close()

    def destroy(self) -> None:
        """Remove every file of the entry.

        No lock is taken; a concurrent holder in another process is not
        protected against the removal.
        """

        for path in (
            self.data_path,
            self.partial_path,
            self.etag_path,
            self.last_modified_path,
            self.lock_path,
        ):
            path.unlink(missing_ok=True)


def _read_optional(path: Path) -> Optional[str]:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None


def _write_optional(path: Path, value: Optional[str]) -> None:
    if value is None:
        path.unlink(missing_ok=True)
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(value, encoding="utf-8")
