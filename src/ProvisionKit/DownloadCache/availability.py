"""Process-wide decision on whether the network can be used at all.

The first fully resolved HTTP call sequence of a process settles the question:
a recognised response latches :attr:`AvailabilityState.KNOWN_UP`, an exhausted
retry budget latches :attr:`AvailabilityState.KNOWN_DOWN`. After that the state
never changes on its own. While the state is unknown, requests get a larger
retry budget because those attempts double as reachability diagnostics.

Example:
    >>> service = AvailabilityService("enabled", detection_retry_limit=5, download_retry_limit=3)
    >>> service.retry_limit()
    5
    >>> service.record(up=True)
    <AvailabilityState.KNOWN_UP: 'known_up'>
    >>> service.retry_limit()
    3
"""

from __future__ import annotations

import enum
import logging
import threading
from typing import Callable, Optional, Union

from .errors import ConfigurationError
from .settings import get_settings

__all__ = [
    "AvailabilityState",
    "AvailabilityService",
    "REMOTE_DOWNLOADS_ENABLED",
    "REMOTE_DOWNLOADS_DISABLED",
    "get_availability_service",
    "reset_availability_service",
]

logger = logging.getLogger(__name__)

REMOTE_DOWNLOADS_ENABLED = "enabled"
REMOTE_DOWNLOADS_DISABLED = "disabled"

INTERNET_DETECTION_RETRY_LIMIT = 5
DOWNLOAD_RETRY_LIMIT = 3


class AvailabilityState(str, enum.Enum):
    UNCHECKED = "unchecked"
    KNOWN_UP = "known_up"
    KNOWN_DOWN = "known_down"


RemoteDownloads = Union[str, Callable[[], str]]


class AvailabilityService:
    """Latched network-availability circuit breaker.

    Args:
        remote_downloads: Resolved configuration value, or a callable returning
            it. It is only consulted while the state is unchecked.
        detection_retry_limit: Attempts per request while unchecked.
        download_retry_limit: Attempts per request once the state is known.
    """

    def __init__(
        self,
        remote_downloads: RemoteDownloads = REMOTE_DOWNLOADS_ENABLED,
        *,
        detection_retry_limit: int = INTERNET_DETECTION_RETRY_LIMIT,
        download_retry_limit: int = DOWNLOAD_RETRY_LIMIT,
    ) -> None:
        if detection_retry_limit < 1 or download_retry_limit < 1:
            raise ValueError("retry limits must be at least 1")
        self._remote_downloads = remote_downloads
        self.detection_retry_limit = detection_retry_limit
        self.download_retry_limit = download_retry_limit
        self._lock = threading.RLock()
        self._state = AvailabilityState.UNCHECKED

    @property
    def state(self) -> AvailabilityState:
        with self._lock:
            return self._state

    def _configuration(self) -> str:
        raw = self._remote_downloads() if callable(self._remote_downloads) else self._remote_downloads
        return str(raw).strip().lower() if raw is not None else ""

    def use_network(self) -> bool:
        """Return whether a network attempt may be made.

        Raises:
            ConfigurationError: If the state is unchecked and the configured
                value is neither ``enabled`` nor ``disabled``.
        """

        with self._lock:
            if self._state is not AvailabilityState.UNCHECKED:
                return self._state is AvailabilityState.KNOWN_UP

            value = self._configuration()
            if value == REMOTE_DOWNLOADS_DISABLED:
                logger.debug("Remote downloads disabled by configuration")
                self.record(up=False)
                return False
            if value == REMOTE_DOWNLOADS_ENABLED:
                return True
            raise ConfigurationError(f"Invalid remote_downloads configuration: {value!r}")

    def retry_limit(self) -> int:
        """Attempt budget for a request sequence starting now."""

        with self._lock:
            if self._state is AvailabilityState.UNCHECKED:
                return self.detection_retry_limit
            return self.download_retry_limit

    def record(self, *, up: bool) -> AvailabilityState:
        """Latch the state if it is still unchecked and return the current state."""

        with self._lock:
            if self._state is AvailabilityState.UNCHECKED:
                self._state = AvailabilityState.KNOWN_UP if up else AvailabilityState.KNOWN_DOWN
                logger.debug(
                    "Network availability latched",
                    extra={"availability": self._state.value},
                )
            return self._state

    def reset(self) -> None:
        """Return to the unchecked state. Intended for tests only."""

        with self._lock:
            self._state = AvailabilityState.UNCHECKED


_service_lock = threading.Lock()
_service: Optional[AvailabilityService] = None


def get_availability_service() -> AvailabilityService:
    """Return the process-wide availability service, built from settings on first use."""

    global _service
    with _service_lock:
        if _service is None:
            settings = get_settings()
            _service = AvailabilityService(
                lambda: get_settings().remote_downloads,
                detection_retry_limit=settings.detection_retry_limit,
                download_retry_limit=settings.download_retry_limit,
            )
        return _service


def reset_availability_service() -> None:
    """Drop the process-wide service (primarily for testing)."""

    global _service
    with _service_lock:
        _service = None
