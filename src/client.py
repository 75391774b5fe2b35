"""Telegram client factory for telerelay.

We explicitly manage the client's lifecycle (connect/disconnect) so it is
obvious when the session is created and when it ends.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from dotenv import load_dotenv
from telethon import TelegramClient


def build_client(client_config: Optional[dict] = None) -> TelegramClient:
    """Create a Telethon client from environment variables.

    We read API_ID/API_HASH via python-dotenv to keep secrets out of the repo.
    The session name defaults to "telerelay" to create a local .session file.
    """

    load_dotenv()

    api_id = os.getenv("API_ID")
    api_hash = os.getenv("API_HASH")
    session_name = os.getenv("SESSION_NAME", "telerelay")

    # Fail fast on missing credentials to avoid an ambiguous login prompt.
    if not api_id or not api_hash:
        raise RuntimeError("Missing API_ID or API_HASH in environment")

    identity = {
        key: value
        for key, value in (client_config or {}).items()
        if key in {"device_model", "system_version", "app_version", "lang_code", "system_lang_code"}
    }

    logging.getLogger(__name__).info("Initializing Telegram client")

    return TelegramClient(session_name, int(api_id), api_hash, **identity)
