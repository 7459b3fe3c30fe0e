from __future__ import annotations

import tempfile
from pathlib import Path

import pytest
from pydantic import ValidationError

from ProvisionKit.DownloadCache import DownloadCacheSettings, get_settings, reset_settings


def test_defaults() -> None:
    settings = DownloadCacheSettings()
    assert settings.cache_root == Path(tempfile.gettempdir())
    assert settings.look_aside_root is None
    assert settings.remote_downloads == "enabled"
    assert settings.detection_retry_limit == 5
    assert settings.download_retry_limit == 3
    assert settings.timeout_seconds == 10.0
    assert settings.max_delivery_attempts == 10
    assert settings.follow_redirects is False


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("PROVISION_CACHE_CACHE_ROOT", str(tmp_path / "cache"))
    monkeypatch.setenv("PROVISION_CACHE_LOOK_ASIDE_ROOT", str(tmp_path / "stash"))
    monkeypatch.setenv("PROVISION_CACHE_REMOTE_DOWNLOADS", "Disabled")
    monkeypatch.setenv("PROVISION_CACHE_DOWNLOAD_RETRY_LIMIT", "4")

    settings = DownloadCacheSettings()

    assert settings.cache_root == (tmp_path / "cache").resolve()
    assert settings.look_aside_root == (tmp_path / "stash").resolve()
    assert settings.remote_downloads == "Disabled"
    assert settings.download_retry_limit == 4


def test_paths_expand_user_home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("HOME", str(tmp_path))
    settings = DownloadCacheSettings(cache_root="~/provision-cache")
    assert settings.cache_root == (tmp_path / "provision-cache").resolve()


def test_empty_look_aside_root_means_none() -> None:
    assert DownloadCacheSettings(look_aside_root="").look_aside_root is None


@pytest.mark.parametrize(
    "field, value",
    [("detection_retry_limit", 0), ("download_retry_limit", -1), ("timeout_seconds", 0), ("max_delivery_attempts", 0)],
)
def test_invalid_values_are_rejected(field: str, value) -> None:
    with pytest.raises(ValidationError):
        DownloadCacheSettings(**{field: value})


def test_get_settings_is_cached_until_reset(monkeypatch: pytest.MonkeyPatch) -> None:
    first = get_settings()
    assert get_settings() is first

    monkeypatch.setenv("PROVISION_CACHE_TIMEOUT_SECONDS", "2.5")
    assert get_settings().timeout_seconds == first.timeout_seconds

    reset_settings()
    assert get_settings().timeout_seconds == 2.5
