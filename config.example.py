# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
The bearer token is never configured here: it lives in the session file written by /login.

This file exists to make the repo self-documenting even without opening .env.example.
"""

ENV_VARS = {
    # App / logging
    "FLOWDESK_APP_NAME": "App display name (default: flowdesk).",
    "FLOWDESK_LOG_LEVEL": "Console logging level (default: INFO). The log file always gets DEBUG.",
    # Persistence service
    "FLOWDESK_API_BASE_URL": "Tracker service base URL (default: http://localhost:5000/api).",
    "FLOWDESK_CONNECT_TIMEOUT_SECONDS": "HTTP connect timeout (default: 5).",
    "FLOWDESK_READ_TIMEOUT_SECONDS": "HTTP read timeout (default: 15).",
    # Paths (gitignored)
    "FLOWDESK_DATA_DIR": "Local data directory, also holds flowdesk.log (default: .local/flowdesk).",
    "FLOWDESK_SESSION_PATH": "Saved session JSON (default: <data_dir>/session.json).",
    # UX
    "FLOWDESK_CONFIRM_DESTRUCTIVE": "Ask before deleting projects/tasks (true/false, default: true).",
}
