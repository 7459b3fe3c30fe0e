"""Read-only fallback cache consulted when the network cannot be used.

Offline builds ship a pre-populated directory of artifacts named
``<cache_key(uri)>.cached``. When remote downloads are disabled, or the
network has been latched as unavailable, the download cache copies the
matching file into its own entry. Copies carry no HTTP validators, so later
reads treat them as permanently fresh.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Optional, Union

from .errors import FallbackExhausted
from .file_cache import MutableFileCache
from .keys import cached_file_name

__all__ = ["LookAsideCache", "list_contents"]


def list_contents(root: Path) -> List[str]:
    """Return ``relative/path size`` lines for every file below ``root``."""

    lines: List[str] = []
    if not root.is_dir():
        return lines
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for name in sorted(filenames):
            path = Path(dirpath) / name
            try:
                size = path.stat().st_size
            except OSError:
                size = -1
            lines.append(f"{path.relative_to(root)} {size}")
    return lines


class LookAsideCache:
    """Lookup of pre-populated artifacts under ``root``."""

    def __init__(self, root: Optional[Union[str, Path]], *, logger: Optional[logging.Logger] = None) -> None:
        self.root = Path(root) if root is not None else None
        self._logger = logger or logging.getLogger(__name__)

    def find(self, uri: str) -> Optional[Path]:
        """Return the stashed copy of ``uri`` or ``None``."""

        if self.root is None:
            return None
        candidate = self.root / cached_file_name(uri)
        return candidate if candidate.is_file() else None

    def populate(self, uri: str, mutable_file_cache: MutableFileCache) -> Path:
        """Copy the stashed artifact for ``uri`` into ``mutable_file_cache``.

        Raises:
            FallbackExhausted: If no look-aside root is configured or it has
                no copy of ``uri``.
        """

        logger = self._logger
        logger.debug("Unable to download from %s. Looking in look-aside cache.", uri)
        stashed = self.find(uri)
        if stashed is not None:
            mutable_file_cache.persist_file(stashed)
            logger.debug("Using copy of %s from look-aside cache %s", uri, stashed)
            return stashed

        if self.root is None:
            message = f"No look-aside cache is configured and {uri} cannot be downloaded."
            logger.error(message)
            raise FallbackExhausted(message, uri=uri)

        message = f"Look-aside cache does not contain {uri}. Failing the download."
        logger.error(message, extra={"look_aside_root": str(self.root)})
        contents = list_contents(self.root)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "Look-aside cache contents of %s:\n%s",
                self.root,
                "\n".join(contents) or "(empty)",
            )
        raise FallbackExhausted(message, uri=uri, contents=contents)
