# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file)
and from <data_dir>/config.json for providers. Do NOT commit real secrets.
"""

ENV_VARS = {
    # App / logging
    "DESK_APP_NAME": "App display name (default: desk-agent).",
    "DESK_LOG_LEVEL": "Console logging level (default: INFO).",
    "DESK_LOG_DIR": "Log directory (default: <data_dir>/logs).",
    "DESK_LOG_KEEP_DAYS": "Delete daily log files older than this (default: 7).",
    # Switches
    "DESK_CONSOLE_ENABLED": "Run the console REPL (true/false, default: true).",
    "DESK_SAVE_HISTORY": "Persist chat history (true/false, default: true).",
    "DESK_FIRE_MISSED_ON_STARTUP": (
        "Fire past-due one-shot tasks that never ran once at startup (default: false)."
    ),
    # Paths (gitignored)
    "DESK_DATA_DIR": "Local data directory (default: .local/desk-agent).",
    "DESK_TASKS_PATH": "Task list JSON (default: <data_dir>/tasks.json).",
    "DESK_PROVIDER_CONFIG_PATH": "Provider config JSON (default: <data_dir>/config.json).",
    "DESK_DIALOG_HISTORY_PATH": "Chat history JSON (default: <data_dir>/dialog_histories.json).",
    # Provider overrides (take precedence over config.json)
    "DESK_API_KEY": "API key of the active provider.",
    "DESK_BASE_URL": "Base URL of the active provider (e.g. https://api.openai.com/v1).",
    "DESK_MODEL": "Active model name.",
    # Requests
    "DESK_REQUEST_TIMEOUT_SECONDS": "Per-attempt timeout (default: 30).",
    "DESK_REQUEST_RETRIES": "Attempts on network errors (default: 3).",
    "DESK_RETRY_BACKOFF_SECONDS": "Linear backoff step between attempts (default: 1).",
    "DESK_TASK_MAX_TOKENS": "max_tokens for task prompts (default: 2048).",
    "DESK_CHAT_MAX_TOKENS": "max_tokens for chat (default: 4096).",
    "DESK_NOTIFY_PREVIEW_CHARS": "Result preview length in notifications (default: 100).",
    # Companion sync server
    "DESK_SYNC_SERVER_URL": "Sync server base URL (enables /task sync).",
    "DESK_SYNC_TOKEN": "Bearer token for the sync server.",
}

EXAMPLE_PROVIDER_CONFIG = {
    "activeProvider": "default",
    "activeModel": "gpt-4o-mini",
    "providers": {
        "default": {
            "name": "OpenAI",
            "baseUrl": "https://api.openai.com/v1",
            "apiKey": "",
            "models": ["gpt-4o-mini", "gpt-4o"],
        }
    },
}
