"""Application entry point for the telerelay forwarder."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import re
import sys
from logging.handlers import RotatingFileHandler
from typing import Awaitable, Callable, Optional

from art import tprint
from dotenv import load_dotenv
from telethon import TelegramClient

import settings
from adapters.console_prompter import ConsolePrompter
from adapters.sqlite_storage import SQLiteStorage
from adapters.telethon_rpc import TelethonRpcClient
from client import build_client
from core.auth import AuthSession
from core.errors import NoGroupsFound, RetryExhausted
from core.groups import GroupSelector
from core.recovery import RecoveryPolicy
from core.relay import RelayLoop
from core.watermark import ForwardWatermark

NAME = "TELERELAY"
FONT = "tarty-1"
PHONE_NUMBER = re.compile(r"\+\d{7,15}\b")

LOGGER = logging.getLogger(__name__)


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    """Masks credentials from `.env` and, optionally, any phone number.

    A phone number typed at the login prompt never reaches the environment,
    so it can only be caught by its shape.
    """

    def __init__(
        self,
        secrets: list[str],
        fmt: str,
        datefmt: Optional[str] = None,
        mask_phone_numbers: bool = False,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]
        self._mask_phone_numbers = mask_phone_numbers

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        if self._mask_phone_numbers:
            message = PHONE_NUMBER.sub("+***", message)
        return message


def _collect_redaction_values(redact_cfg: dict) -> list[str]:
    values = {os.getenv(name) for name in redact_cfg.get("patterns", [])}
    return sorted((value for value in values if value), key=len, reverse=True)


def _build_formatter(config: dict) -> logging.Formatter:
    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    redact_cfg = config.get("redact", {})
    if not redact_cfg.get("enabled", False):
        return logging.Formatter(fmt=fmt, datefmt=datefmt)
    return _RedactingFormatter(
        _collect_redaction_values(redact_cfg),
        fmt=fmt,
        datefmt=datefmt,
        mask_phone_numbers=bool(redact_cfg.get("phone_numbers", False)),
    )


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", False):
        return

    load_dotenv()
    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)
    formatter = _build_formatter(config)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/telerelay.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        file_handler = RotatingFileHandler(
            path,
            maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
            backupCount=int(file_cfg.get("backup_count", 5)),
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)
    # e.g. telethon logs every reconnect at INFO.
    for name, library_level in config.get("libraries", {}).items():
        logging.getLogger(name).setLevel(str(library_level).upper())


async def _with_client(work: Callable[[TelegramClient], Awaitable[None]]) -> None:
    client = build_client(settings.CLIENT)
    await client.connect()
    try:
        await work(client)
    finally:
        await client.disconnect()


async def _login(rpc: TelethonRpcClient, prompter: ConsolePrompter, recovery: RecoveryPolicy) -> None:
    session = AuthSession(
        rpc,
        prompter,
        recovery,
        phone=os.getenv("PHONE"),
        password=os.getenv("2FA"),
    )
    await session.login()


def _run() -> int:
    _print_banner()
    _configure_logging()
    LOGGER.info("Starting telerelay")

    storage = SQLiteStorage(settings.DB_PATH)
    storage.init_db()
    prompter = ConsolePrompter()

    async def _relay(client: TelegramClient) -> None:
        rpc = TelethonRpcClient(client, timeout=settings.RPC_TIMEOUT)
        recovery = RecoveryPolicy(settings.RECOVERY)
        await _login(rpc, prompter, recovery)

        selector = GroupSelector(rpc, prompter, recovery, settings.RELAY)
        route = await selector.select_route()

        watermark = ForwardWatermark(rpc, storage, history_limit=settings.RELAY.history_limit)
        prompter.tell("\nLoading initial history...")
        last_id = await watermark.initialize(route)
        LOGGER.info(
            "Starting after message %s (%s messages recorded for this route)",
            last_id,
            storage.count_relayed(route.source.id, route.target.id),
        )

        relay = RelayLoop(rpc, storage, watermark, recovery, route, settings.RELAY)
        await relay.run()

    try:
        asyncio.run(_with_client(_relay))
    except KeyboardInterrupt:
        print("\nShutting down...")
        return 0
    except RetryExhausted as exc:
        LOGGER.error("Stopping: %s", exc)
        return 1
    finally:
        storage.close()
    return 0


def _login_only() -> int:
    _print_banner()
    _configure_logging()
    prompter = ConsolePrompter()

    async def _authorize(client: TelegramClient) -> None:
        rpc = TelethonRpcClient(client, timeout=settings.RPC_TIMEOUT)
        await _login(rpc, prompter, RecoveryPolicy(settings.RECOVERY))
        me = await client.get_me()
        LOGGER.info("Logged in as: %s", me.first_name)

    try:
        asyncio.run(_with_client(_authorize))
    except KeyboardInterrupt:
        return 0
    except RetryExhausted as exc:
        LOGGER.error("Stopping: %s", exc)
        return 1
    return 0


def _list_groups() -> int:
    _print_banner()
    _configure_logging()
    prompter = ConsolePrompter()

    async def _print_groups(client: TelegramClient) -> None:
        rpc = TelethonRpcClient(client, timeout=settings.RPC_TIMEOUT)
        recovery = RecoveryPolicy(settings.RECOVERY)
        await _login(rpc, prompter, recovery)
        selector = GroupSelector(rpc, prompter, recovery, settings.RELAY)
        try:
            groups = await selector.list_groups()
        except NoGroupsFound:
            print("No groups found!")
            return
        # Ids are printed so they can be copied into relay.source_id/target_id.
        for index, group in enumerate(groups, start=1):
            print(f"{index}. {group.kind.label} | {group.title} | {group.id}")

    try:
        asyncio.run(_with_client(_print_groups))
    except KeyboardInterrupt:
        return 0
    except RetryExhausted as exc:
        LOGGER.error("Stopping: %s", exc)
        return 1
    return 0


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="telerelay")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Log in, pick source/target and start relaying")
    subparsers.add_parser("login", help="Log in and store the session, then exit")
    subparsers.add_parser("groups", help="List the groups and channels that can be relayed")

    args = parser.parse_args(argv)
    if args.command == "login":
        sys.exit(_login_only())
    if args.command == "groups":
        sys.exit(_list_groups())
    sys.exit(_run())


if __name__ == "__main__":
    main()
