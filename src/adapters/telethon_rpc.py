"""Telethon RPC adapter.

Implements the core RpcClientPort on top of a Telethon client: method names
map to Telethon request objects, results come back as plain dicts and
Telethon errors are translated into the core error taxonomy.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

from telethon import TelegramClient, errors, functions, types

from core.errors import RpcError, TransientNetworkError
from core.models import PeerRef

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


def input_peer(peer: PeerRef):
    """Channel-style addressing for channels/supergroups, chat-style otherwise."""

    if peer.addressing == "channel":
        return types.InputPeerChannel(channel_id=peer.id, access_hash=peer.access_hash)
    return types.InputPeerChat(chat_id=peer.id)


def translate_error(exc: errors.RPCError) -> RpcError:
    """Rebuild the wire-level code/message pair from a Telethon error."""

    # Telethon parses the numeric suffix out of the message; put it back.
    if isinstance(exc, errors.FloodWaitError):
        return RpcError.from_platform(420, f"FLOOD_WAIT_{exc.seconds}")
    if isinstance(exc, errors.PhoneMigrateError):
        return RpcError.from_platform(303, f"PHONE_MIGRATE_{exc.new_dc}")
    if isinstance(exc, errors.SessionPasswordNeededError):
        return RpcError.from_platform(401, "SESSION_PASSWORD_NEEDED")
    return RpcError.from_platform(int(exc.code or 0), str(exc.message))


def _send_code(client: TelegramClient, params: dict):
    settings = params.get("settings") or {}
    return functions.auth.SendCodeRequest(
        phone_number=params["phone_number"],
        api_id=client.api_id,
        api_hash=client.api_hash,
        settings=types.CodeSettings(**settings),
    )


def _sign_in(client: TelegramClient, params: dict):
    return functions.auth.SignInRequest(
        phone_number=params["phone_number"],
        phone_code_hash=params["phone_code_hash"],
        phone_code=params["phone_code"],
    )


def _get_password(client: TelegramClient, params: dict):
    return functions.account.GetPasswordRequest()


def _check_password(client: TelegramClient, params: dict):
    password = params["password"]
    return functions.auth.CheckPasswordRequest(
        password=types.InputCheckPasswordSRP(
            srp_id=password["srp_id"], A=password["A"], M1=password["M1"]
        )
    )


def _get_dialogs(client: TelegramClient, params: dict):
    return functions.messages.GetDialogsRequest(
        offset_date=None,
        offset_id=params.get("offset_id", 0),
        offset_peer=types.InputPeerEmpty(),
        limit=params.get("limit", 100),
        hash=0,
    )


def _get_history(client: TelegramClient, params: dict):
    return functions.messages.GetHistoryRequest(
        peer=input_peer(params["peer"]),
        offset_id=params.get("offset_id", 0),
        offset_date=None,
        add_offset=params.get("add_offset", 0),
        limit=params.get("limit", 100),
        max_id=params.get("max_id", 0),
        min_id=params.get("min_id", 0),
        hash=params.get("hash", 0),
    )


def _forward_messages(client: TelegramClient, params: dict):
    return functions.messages.ForwardMessagesRequest(
        from_peer=input_peer(params["from_peer"]),
        id=list(params["id"]),
        to_peer=input_peer(params["to_peer"]),
        random_id=list(params["random_id"]),
    )


def _get_channels(client: TelegramClient, params: dict):
    return functions.channels.GetChannelsRequest(
        id=[
            types.InputChannel(channel_id=item["channel_id"], access_hash=item.get("access_hash", 0))
            for item in params["id"]
        ]
    )


REQUEST_BUILDERS: dict[str, Callable[[TelegramClient, dict], Any]] = {
    "auth.sendCode": _send_code,
    "auth.signIn": _sign_in,
    "account.getPassword": _get_password,
    "auth.checkPassword": _check_password,
    "messages.getDialogs": _get_dialogs,
    "messages.getHistory": _get_history,
    "messages.forwardMessages": _forward_messages,
    "channels.getChannels": _get_channels,
}


class TelethonRpcClient:
    """RpcClientPort backed by a connected Telethon client."""

    def __init__(self, client: TelegramClient, timeout: float = DEFAULT_TIMEOUT) -> None:
        self._client = client
        self._timeout = timeout

    def build_request(self, method: str, params: Optional[dict] = None):
        try:
            builder = REQUEST_BUILDERS[method]
        except KeyError:
            raise ValueError(f"Unsupported method: {method}") from None
        return builder(self._client, params or {})

    async def _invoke(self, awaitable):
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except errors.RPCError as exc:
            raise translate_error(exc) from exc
        except (ConnectionError, OSError, asyncio.TimeoutError) as exc:
            raise TransientNetworkError(repr(exc)) from exc

    async def call(self, method: str, params: Optional[dict] = None) -> dict[str, Any]:
        request = self.build_request(method, params)
        LOGGER.debug("Calling %s", method)
        result = await self._invoke(self._client(request))
        if result is None:
            return {}
        return result.to_dict()

    async def set_default_dc(self, dc_id: int) -> None:
        # Telethon keeps no public API for switching the home datacenter.
        await self._invoke(self._client._switch_dc(dc_id))

    async def is_authorized(self) -> bool:
        return bool(await self._invoke(self._client.is_user_authorized()))
