from __future__ import annotations

import logging

from app import _build_formatter


def _record(message: str, *args) -> logging.LogRecord:
    return logging.LogRecord("telethon.client", logging.INFO, __file__, 1, message, args, None)


def test_env_credentials_and_prompted_phone_numbers_are_masked(monkeypatch) -> None:
    monkeypatch.setenv("API_HASH", "0123456789abcdef")
    monkeypatch.delenv("PHONE", raising=False)
    formatter = _build_formatter({"redact": {"enabled": True, "patterns": ["API_HASH", "PHONE"], "phone_numbers": True}})

    line = formatter.format(_record("hash=%s phone=%s msg=%s", "0123456789abcdef", "+15550001111", 501))

    assert "0123456789abcdef" not in line
    assert "+15550001111" not in line
    assert line.endswith("hash=*** phone=+*** msg=501")


def test_phone_masking_can_be_switched_off(monkeypatch) -> None:
    monkeypatch.setenv("API_HASH", "0123456789abcdef")
    formatter = _build_formatter({"redact": {"enabled": True, "patterns": ["API_HASH"]}})

    assert formatter.format(_record("phone=%s", "+15550001111")).endswith("phone=+15550001111")


def test_disabled_redaction_leaves_messages_alone(monkeypatch) -> None:
    monkeypatch.setenv("API_HASH", "0123456789abcdef")
    formatter = _build_formatter({"redact": {"enabled": False, "patterns": ["API_HASH"]}})

    assert formatter.format(_record("hash=%s", "0123456789abcdef")).endswith("hash=0123456789abcdef")
