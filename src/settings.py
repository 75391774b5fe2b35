"""Static configuration for telerelay.

All user-editable settings (client identity, polling, recovery, storage,
logging) live in a single JSON file for quick edits without touching Python.
Secrets (API_ID, API_HASH, PHONE, 2FA) stay in the environment / .env.
"""

import json
import os

from core.config import RecoveryConfig, RelayConfig

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

CONFIG_PATH = os.environ.get("TELERELAY_CONFIG", os.path.join(PROJECT_ROOT, "config.json"))


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _optional_int(value) -> "int | None":
    if value in (None, ""):
        return None
    return int(value)


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Where to store the SQLite database, relative paths resolve from the project root.
_storage = _CONFIG.get("storage", {})
DB_PATH = _storage.get("db_path", "telerelay.db")
if not os.path.isabs(DB_PATH):
    DB_PATH = os.path.join(PROJECT_ROOT, DB_PATH)

# Device identity reported to Telegram when the session is created.
CLIENT = _CONFIG.get("client", {})

# Polling, selection and forwarding behavior of the relay.
_relay = _CONFIG.get("relay", {})
RPC_TIMEOUT = float(_relay.get("rpc_timeout", 30))
RELAY = RelayConfig(
    poll_interval=float(_relay.get("poll_interval", 1.0)),
    page_size=int(_relay.get("page_size", 100)),
    history_limit=int(_relay.get("history_limit", 100)),
    dialog_limit=int(_relay.get("dialog_limit", 100)),
    max_selection_prompts=int(_relay.get("max_selection_prompts", 10)),
    max_forward_attempts=int(_relay.get("max_forward_attempts", 3)),
    source_id=_optional_int(_relay.get("source_id")),
    target_id=_optional_int(_relay.get("target_id")),
)

# Backoff for failed calls. max_attempts = 0 retries forever.
_recovery = _CONFIG.get("recovery", {})
RECOVERY = RecoveryConfig(
    base_delay=float(_recovery.get("base_delay", 5)),
    backoff_factor=float(_recovery.get("backoff_factor", 2)),
    max_delay=float(_recovery.get("max_delay", 300)),
    max_attempts=int(_recovery.get("max_attempts", 10)),
)

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
