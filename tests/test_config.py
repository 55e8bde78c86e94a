# tests/test_config.py

from __future__ import annotations

import json
from pathlib import Path

import pytest

from desk_agent.config import ProviderConfig, Settings


def _write(path: Path, data) -> Path:
    path.write_text(json.dumps(data), "utf-8")
    return path


def test_settings_defaults() -> None:
    s = Settings.from_env()
    assert s.app_name == "desk-agent"
    assert s.request_retries == 3
    assert s.request_timeout_seconds == 30.0
    assert s.fire_missed_on_startup is False
    assert s.tasks_path == s.data_dir / "tasks.json"
    assert s.sync_server_url == ""


def test_settings_from_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("DESK_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("DESK_REQUEST_RETRIES", "0")
    monkeypatch.setenv("DESK_RETRY_BACKOFF_SECONDS", "not-a-number")
    monkeypatch.setenv("DESK_FIRE_MISSED_ON_STARTUP", "yes")
    monkeypatch.setenv("DESK_SYNC_SERVER_URL", " https://sync.test/ ")

    s = Settings.from_env()

    assert s.data_dir == tmp_path
    assert s.log_dir == tmp_path / "logs"
    assert s.provider_config_path == tmp_path / "config.json"
    # at least one attempt is always made
    assert s.request_retries == 1
    assert s.retry_backoff_seconds == 1.0
    assert s.fire_missed_on_startup is True
    assert s.sync_server_url == "https://sync.test"


def test_provider_config_missing_file(tmp_path: Path) -> None:
    cfg = ProviderConfig(tmp_path / "config.json")
    assert cfg.get_active_provider() is None
    assert cfg.get_active_model() == ""


def test_provider_config_reads_active_provider(tmp_path: Path) -> None:
    cfg = ProviderConfig(
        _write(
            tmp_path / "config.json",
            {
                "activeProvider": "work",
                "providers": {
                    "home": {"baseUrl": "https://home.test/v1", "apiKey": "k1", "models": ["a"]},
                    "work": {"name": "Work", "baseUrl": "https://work.test/v1/", "apiKey": " k2 ", "models": ["b", "c"]},
                },
            },
        )
    )

    provider = cfg.get_active_provider()
    assert provider is not None
    assert provider.name == "Work"
    assert provider.base_url == "https://work.test/v1"
    assert provider.api_key == "k2"
    # no activeModel: first model of the provider
    assert cfg.get_active_model() == "b"


def test_provider_without_key_is_not_configured(tmp_path: Path) -> None:
    cfg = ProviderConfig(
        _write(tmp_path / "config.json", {"providers": {"default": {"baseUrl": "https://x.test/v1", "apiKey": ""}}})
    )
    assert cfg.get_active_provider() is None


def test_env_overrides_file(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    cfg = ProviderConfig(
        _write(
            tmp_path / "config.json",
            {"activeModel": "file-model", "providers": {"default": {"baseUrl": "https://x.test/v1", "apiKey": "file"}}},
        )
    )
    assert cfg.get_active_model() == "file-model"

    monkeypatch.setenv("DESK_API_KEY", "env-key")
    monkeypatch.setenv("DESK_MODEL", "env-model")

    provider = cfg.get_active_provider()
    assert provider is not None and provider.api_key == "env-key"
    assert cfg.get_active_model() == "env-model"


def test_config_edits_are_picked_up_without_restart(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    cfg = ProviderConfig(path)
    assert cfg.get_active_provider() is None

    _write(path, {"providers": {"default": {"baseUrl": "https://x.test/v1", "apiKey": "k"}}})
    assert cfg.get_active_provider() is not None


def test_corrupt_config_is_treated_as_empty(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text("{", "utf-8")
    assert ProviderConfig(path).get_active_provider() is None
