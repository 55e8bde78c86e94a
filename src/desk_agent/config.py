# src/desk_agent/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Two layers:
- Settings: process-wide knobs (paths, timeouts, retry policy), read once.
- ProviderConfig: the user's provider list in <data_dir>/config.json, read on every call
  so edits made while the app is running are picked up by the next task execution.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

ENV_PREFIX = "DESK"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv_if_available() -> None:
    """Load .env locally if python-dotenv is installed. Safe no-op otherwise."""
    try:
        from dotenv import load_dotenv
    except ImportError:
        return
    load_dotenv(override=False)


_load_dotenv_if_available()


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str
    log_keep_days: int

    # ---- Switches ----
    console_enabled: bool
    save_history: bool
    fire_missed_on_startup: bool

    # ---- Local data paths ----
    data_dir: Path
    log_dir: Path
    tasks_path: Path
    provider_config_path: Path
    dialog_history_path: Path

    # ---- LLM requests ----
    request_timeout_seconds: float
    request_retries: int
    retry_backoff_seconds: float
    task_max_tokens: int
    chat_max_tokens: int
    notify_preview_chars: int

    # ---- Companion sync server ----
    sync_server_url: str
    sync_token: str

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "desk-agent")
        log_level = _env(_k("LOG_LEVEL"), "INFO")
        log_keep_days = _env_int(_k("LOG_KEEP_DAYS"), 7)

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)
        save_history = _env_bool(_k("SAVE_HISTORY"), True)
        fire_missed_on_startup = _env_bool(_k("FIRE_MISSED_ON_STARTUP"), False)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/desk-agent"))
        log_dir = _env_path(_k("LOG_DIR"), data_dir / "logs")
        tasks_path = _env_path(_k("TASKS_PATH"), data_dir / "tasks.json")
        provider_config_path = _env_path(_k("PROVIDER_CONFIG_PATH"), data_dir / "config.json")
        dialog_history_path = _env_path(_k("DIALOG_HISTORY_PATH"), data_dir / "dialog_histories.json")

        request_timeout_seconds = _env_float(_k("REQUEST_TIMEOUT_SECONDS"), 30.0)
        request_retries = max(1, _env_int(_k("REQUEST_RETRIES"), 3))
        retry_backoff_seconds = max(0.0, _env_float(_k("RETRY_BACKOFF_SECONDS"), 1.0))
        task_max_tokens = _env_int(_k("TASK_MAX_TOKENS"), 2048)
        chat_max_tokens = _env_int(_k("CHAT_MAX_TOKENS"), 4096)
        notify_preview_chars = _env_int(_k("NOTIFY_PREVIEW_CHARS"), 100)

        sync_server_url = (_first_env(_k("SYNC_SERVER_URL"), default="") or "").strip().rstrip("/")
        sync_token = (_first_env(_k("SYNC_TOKEN"), default="") or "").strip()

        return Settings(
            app_name=app_name,
            log_level=log_level,
            log_keep_days=log_keep_days,
            console_enabled=console_enabled,
            save_history=save_history,
            fire_missed_on_startup=fire_missed_on_startup,
            data_dir=data_dir,
            log_dir=log_dir,
            tasks_path=tasks_path,
            provider_config_path=provider_config_path,
            dialog_history_path=dialog_history_path,
            request_timeout_seconds=request_timeout_seconds,
            request_retries=request_retries,
            retry_backoff_seconds=retry_backoff_seconds,
            task_max_tokens=task_max_tokens,
            chat_max_tokens=chat_max_tokens,
            notify_preview_chars=notify_preview_chars,
            sync_server_url=sync_server_url,
            sync_token=sync_token,
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS


# --------------------------------------------------------------------------------------
# Provider configuration (config.json)
# --------------------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Provider:
    name: str
    base_url: str
    api_key: str
    models: list[str] = field(default_factory=list)


class ProviderConfig:
    """
    Active provider/model lookup backed by config.json.

    File shape:
        {
          "activeProvider": "default",
          "activeModel": "gpt-4o",
          "providers": {"default": {"name": "...", "baseUrl": "...", "apiKey": "...", "models": [...]}}
        }

    DESK_API_KEY / DESK_BASE_URL / DESK_MODEL override the file.
    A missing key is a recoverable condition: get_active_provider() returns None.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text("utf-8"))
        except (OSError, ValueError):
            logger.exception("Failed to read provider config %s", self._path)
            return {}
        return data if isinstance(data, dict) else {}

    def get_active_provider(self) -> Provider | None:
        data = self._read()
        providers = data.get("providers")
        active = str(data.get("activeProvider") or "default")

        raw: dict[str, Any] = {}
        if isinstance(providers, dict) and isinstance(providers.get(active), dict):
            raw = providers[active]

        base_url = _first_env(_k("BASE_URL"), default=None) or str(raw.get("baseUrl") or "")
        api_key = _first_env(_k("API_KEY"), default=None) or str(raw.get("apiKey") or "")
        models = raw.get("models")

        if not api_key.strip() or not base_url.strip():
            return None

        return Provider(
            name=str(raw.get("name") or active),
            base_url=base_url.strip().rstrip("/"),
            api_key=api_key.strip(),
            models=[str(m) for m in models] if isinstance(models, list) else [],
        )

    def get_active_model(self) -> str:
        env_model = _first_env(_k("MODEL"), default=None)
        if env_model:
            return env_model.strip()

        data = self._read()
        model = str(data.get("activeModel") or "").strip()
        if model:
            return model

        provider = self.get_active_provider()
        if provider is not None and provider.models:
            return provider.models[0]
        return ""
