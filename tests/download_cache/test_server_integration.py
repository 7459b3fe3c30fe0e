"""Integration tests running the download cache against a local HTTP server."""

from __future__ import annotations

import socket
import threading
from dataclasses import dataclass, field
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Dict, List

import pytest

from ProvisionKit.DownloadCache import AvailabilityState, DownloadCache, FileCache


@dataclass
class _ServerState:
    etag: str = '"artifact-1"'
    payload: bytes = b"artifact-bytes" * 512
    lock: threading.Lock = field(default_factory=threading.Lock)
    requests: List[str] = field(default_factory=list)

    def record(self, method: str) -> None:
        with self.lock:
            self.requests.append(method)


class _StatefulServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self, address, handler, state: _ServerState):
        super().__init__(address, handler)
        self.state = state


class _Handler(BaseHTTPRequestHandler):
    server: _StatefulServer  # type: ignore[assignment]

    def log_message(self, format: str, *args):  # noqa: D401 - silence server logs
        """Suppress default HTTP server logging."""

    def _write(self, status: int, headers: Dict[str, str], body: bytes = b"") -> None:
        self.send_response(status)
        for key, value in headers.items():
            self.send_header(key, value)
        self.end_headers()
        if body:
            self.wfile.write(body)

    def do_HEAD(self) -> None:  # noqa: D401
        state = self.server.state
        state.record("HEAD")
        if self.headers.get("If-None-Match") == state.etag:
            self._write(304, {"ETag": state.etag})
            return
        self._write(200, {"ETag": state.etag, "Content-Length": str(len(state.payload))})

    def do_GET(self) -> None:  # noqa: D401
        state = self.server.state
        state.record("GET")
        headers = {
            "ETag": state.etag,
            "Content-Type": "application/java-archive",
            "Content-Length": str(len(state.payload)),
        }
        self._write(200, headers, state.payload)


@pytest.fixture
def http_server():
    state = _ServerState()
    server = _StatefulServer(("127.0.0.1", 0), _Handler, state)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield server
    finally:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5)


def _url(server: _StatefulServer, path: str = "/tools/artifact.jar") -> str:
    host, port = server.server_address[:2]
    return f"http://{host}:{port}{path}"


def _unused_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def test_cache_hit_uses_304(http_server, settings, availability) -> None:
    url = _url(http_server)
    state = http_server.state

    with DownloadCache(settings=settings, availability=availability) as cache:
        for _ in range(3):
            with cache.get(url) as artifact:
                assert artifact.read() == state.payload

    assert state.requests.count("GET") == 1
    assert state.requests.count("HEAD") == 3
    assert availability.state is AvailabilityState.KNOWN_UP


def test_etag_change_triggers_download(http_server, settings, availability, cache_root: Path) -> None:
    url = _url(http_server)
    state = http_server.state

    with DownloadCache(settings=settings, availability=availability) as cache:
        with cache.get(url):
            pass
        state.etag = '"artifact-2"'
        state.payload = b"rebuilt"
        with cache.get(url) as artifact:
            assert artifact.read() == b"rebuilt"

    assert state.requests.count("GET") == 2
    assert FileCache(cache_root, url).etag_path.read_text() == '"artifact-2"'


def test_concurrent_readers_share_warm_entry(http_server, settings, availability) -> None:
    url = _url(http_server)
    state = http_server.state
    results: List[bytes] = []
    errors: List[BaseException] = []

    with DownloadCache(settings=settings, availability=availability) as cache:
        with cache.get(url):
            pass

        def _reader() -> None:
            try:
                with cache.get(url) as artifact:
                    data = artifact.read()
                with state.lock:
                    results.append(data)
            except BaseException as exc:  # pragma: no cover - reported below
                errors.append(exc)

        workers = [threading.Thread(target=_reader) for _ in range(6)]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join(30)

    assert errors == []
    assert results == [state.payload] * 6
    assert state.requests.count("GET") == 1


def test_concurrent_cold_readers_see_complete_artifact(http_server, settings, availability) -> None:
    url = _url(http_server)
    state = http_server.state
    results: List[bytes] = []

    with DownloadCache(settings=settings, availability=availability) as cache:

        def _reader() -> None:
            with cache.get(url) as artifact:
                data = artifact.read()
            with state.lock:
                results.append(data)

        workers = [threading.Thread(target=_reader) for _ in range(4)]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join(30)

    assert results == [state.payload] * 4
    assert 1 <= state.requests.count("GET") <= 4


def test_refused_connection_falls_back_to_look_aside(settings, availability, look_aside_root: Path) -> None:
    url = f"http://127.0.0.1:{_unused_port()}/tools/artifact.jar"
    (look_aside_root / FileCache(look_aside_root, url).data_path.name).write_bytes(b"offline")

    with DownloadCache(settings=settings, availability=availability) as cache:
        with cache.get(url) as artifact:
            assert artifact.read() == b"offline"

    assert availability.state is AvailabilityState.KNOWN_DOWN
