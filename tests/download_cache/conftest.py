"""Shared fixtures for the download_cache test suite."""

from __future__ import annotations

from collections import Counter
from pathlib import Path
from typing import Callable, Dict, List, Tuple, Union

import httpx
import pytest

from ProvisionKit.DownloadCache import (
    AvailabilityService,
    DownloadCache,
    DownloadCacheSettings,
    reset_availability_service,
    reset_settings,
)

Route = Union[httpx.Response, Callable[[httpx.Request], httpx.Response], BaseException]


class RecordingServer:
    """In-memory HTTP origin backed by :class:`httpx.MockTransport`.

    Routes map ``(method, url)`` to a response, a callable building one, an
    exception to raise, or a list of those consumed in order (the last entry
    repeats). Every request is recorded.
    """

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str], Union[Route, List[Route]]] = {}
        self.requests: List[httpx.Request] = []

    def route(self, method: str, url: str, *responses: Route) -> None:
        self.routes[(method, url)] = list(responses) if len(responses) > 1 else responses[0]

    def calls(self, method: str | None = None) -> int:
        if method is None:
            return len(self.requests)
        return Counter(request.method for request in self.requests)[method]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, str(request.url))
        if key not in self.routes:
            return httpx.Response(404)
        route = self.routes[key]
        if isinstance(route, list):
            route = route.pop(0) if len(route) > 1 else route[0]
        if isinstance(route, BaseException):
            raise route
        if callable(route) and not isinstance(route, httpx.Response):
            return route(request)
        return httpx.Response(route.status_code, headers=route.headers, content=route.content)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))


@pytest.fixture(autouse=True)
def _isolate_process_state(monkeypatch: pytest.MonkeyPatch):
    """Keep environment and process-wide singletons out of individual tests."""

    for name in (
        "PROVISION_CACHE_CACHE_ROOT",
        "PROVISION_CACHE_LOOK_ASIDE_ROOT",
        "PROVISION_CACHE_REMOTE_DOWNLOADS",
        "PROVISION_CACHE_DETECTION_RETRY_LIMIT",
        "PROVISION_CACHE_DOWNLOAD_RETRY_LIMIT",
        "PROVISION_CACHE_TIMEOUT_SECONDS",
        "PROVISION_CACHE_RETRY_BACKOFF_SECONDS",
        "PROVISION_CACHE_RETRY_BACKOFF_MAX_SECONDS",
        "PROVISION_CACHE_MAX_DELIVERY_ATTEMPTS",
        "PROVISION_CACHE_FOLLOW_REDIRECTS",
        "PROVISION_CACHE_TRUST_ENV",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    reset_availability_service()
    yield
    reset_settings()
    reset_availability_service()


@pytest.fixture
def cache_root(tmp_path: Path) -> Path:
    return tmp_path / "cache"


@pytest.fixture
def look_aside_root(tmp_path: Path) -> Path:
    root = tmp_path / "look-aside"
    root.mkdir()
    return root


@pytest.fixture
def settings(cache_root: Path, look_aside_root: Path) -> DownloadCacheSettings:
    return DownloadCacheSettings(
        cache_root=cache_root,
        look_aside_root=look_aside_root,
        retry_backoff_seconds=0,
        retry_backoff_max_seconds=0,
        max_delivery_attempts=4,
        trust_env=False,
    )


@pytest.fixture
def availability() -> AvailabilityService:
    return AvailabilityService("enabled", detection_retry_limit=5, download_retry_limit=3)


@pytest.fixture
def server() -> RecordingServer:
    return RecordingServer()


@pytest.fixture
def make_cache(settings: DownloadCacheSettings, availability: AvailabilityService, server: RecordingServer):
    """Build a :class:`DownloadCache` wired to the recording server."""

    clients: List[httpx.Client] = []

    def _make(**overrides) -> DownloadCache:
        client = server.client()
        clients.append(client)
        options = {
            "availability": availability,
            "client": client,
            "settings": settings,
            "sleep": lambda _delay: None,
        }
        options.update(overrides)
        return DownloadCache(**options)

    yield _make
    for client in clients:
        client.close()
