from __future__ import annotations

import hashlib

import pytest

from ProvisionKit.DownloadCache.keys import CACHED_SUFFIX, MAX_KEY_LENGTH, cache_key, cached_file_name


def test_cache_key_escapes_reserved_characters() -> None:
    assert cache_key("https://h/a.jar") == "https%3A%2F%2Fh%2Fa.jar"


def test_cache_key_has_no_path_separators() -> None:
    key = cache_key("https://repo.example.org/a/b/c?x=1&y=2#frag")
    assert "/" not in key
    assert "?" not in key
    assert "#" not in key


@pytest.mark.parametrize(
    "first, second",
    [
        ("https://h/a%2Fb", "https://h/a/b"),
        ("https://h/a b", "https://h/a+b"),
        ("https://h/a.jar", "https://h/a.jar/"),
    ],
)
def test_cache_key_is_collision_free(first: str, second: str) -> None:
    assert cache_key(first) != cache_key(second)


def test_cached_file_name_appends_suffix() -> None:
    assert CACHED_SUFFIX == ".cached"
    assert cached_file_name("https://h/a.jar") == "https%3A%2F%2Fh%2Fa.jar.cached"


def test_long_uri_key_is_bounded_and_stable() -> None:
    uri = "https://h/" + "a" * 250 + ".jar?signature=" + "%" * 40
    key = cache_key(uri)

    assert len(key) == MAX_KEY_LENGTH
    assert key == cache_key(uri)
    assert key.endswith(hashlib.sha256(uri.encode("utf-8")).hexdigest())
    assert key.startswith("https%3A%2F%2Fh%2Faaa")


def test_long_uris_sharing_a_prefix_get_distinct_keys() -> None:
    base = "https://h/" + "a" * 300
    assert cache_key(base + "/one.jar") != cache_key(base + "/two.jar")


def test_key_at_limit_is_kept_verbatim() -> None:
    uri = "a" * MAX_KEY_LENGTH
    assert cache_key(uri) == uri
