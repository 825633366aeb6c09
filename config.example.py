# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Do NOT commit real tokens. Put them in .env (local, gitignored).

This file exists to make the repo self-documenting even without opening .env.example.
"""

ENV_VARS = {
    # App / logging
    "TASKSYNC_APP_NAME": "App display name (default: tasksync).",
    "TASKSYNC_LOG_LEVEL": "Console logging level (default: INFO).",
    "TASKSYNC_DATA_DIR": "Local data directory for logs (default: .local/tasksync).",
    # Tasks API
    "TASKSYNC_API_BASE_URL": "Tasks API base URL; empty => offline in-memory backend. Backend_Url is accepted too.",
    "TASKSYNC_API_TOKEN": "Bearer token sent as Authorization header (optional).",
    "TASKSYNC_REQUEST_TIMEOUT_SECONDS": "HTTP timeout per request (default: 15).",
    # Validation
    "TASKSYNC_TITLE_MAX_LENGTH": "Max task title length (default: 100).",
    "TASKSYNC_DESCRIPTION_MAX_LENGTH": "Max task description length (default: 500).",
    # Engine
    "TASKSYNC_HISTORY_LIMIT": "How many settled mutations /history keeps (default: 50).",
    "TASKSYNC_OFFLINE_LATENCY_SECONDS": "Artificial delay of the offline backend, for demos (default: 0).",
}
