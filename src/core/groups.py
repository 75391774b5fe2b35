"""Group discovery and operator selection."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import List, Optional

from core.config import RelayConfig
from core.errors import NoGroupsFound, RelayError, RetryExhausted, SelectionInvalid
from core.models import PeerRef, Route, is_group_chat
from core.ports import PrompterPort, RpcClientPort
from core.recovery import RecoveryPolicy

LOGGER = logging.getLogger(__name__)


def bare_chat_id(chat_id: int) -> int:
    """Strip the sign and the Bot API ``-100`` channel prefix from a chat id."""

    if chat_id < 0:
        raw_text = str(chat_id)
        if raw_text.startswith("-100") and raw_text[4:].isdigit():
            # Channel/supergroup peer id: -100<channel_id>
            return int(raw_text[4:])
        return abs(chat_id)
    return chat_id


class GroupSelector:
    """List channels/groups and resolve an operator choice into a PeerRef."""

    def __init__(
        self,
        rpc: RpcClientPort,
        prompter: PrompterPort,
        recovery: RecoveryPolicy,
        config: RelayConfig,
    ) -> None:
        self._rpc = rpc
        self._prompter = prompter
        self._recovery = recovery
        self._config = config

    async def list_groups(self) -> List[PeerRef]:
        """Return channels, supergroups and groups from the recent dialogs."""

        dialogs = await self._rpc.call(
            "messages.getDialogs",
            {"offset_id": 0, "limit": self._config.dialog_limit},
        )
        groups = [PeerRef.from_chat(chat) for chat in dialogs.get("chats", []) if is_group_chat(chat)]
        if not groups:
            raise NoGroupsFound("No groups or channels found")
        return groups

    @staticmethod
    def pick(groups: List[PeerRef], answer: str) -> PeerRef:
        """Resolve a 1-based index typed by the operator."""

        try:
            index = int(answer.strip()) - 1
        except ValueError:
            raise SelectionInvalid(f"Not a number: {answer!r}") from None
        if not 0 <= index < len(groups):
            raise SelectionInvalid(f"Out of range: {answer!r}")
        return groups[index]

    def _show(self, groups: List[PeerRef]) -> None:
        lines = ["", "Available groups:", "------------------"]
        for index, group in enumerate(groups, start=1):
            lines.append(f"{index}. {group.title} ({group.kind.label})")
        lines.append("------------------")
        self._prompter.tell("\n".join(lines))

    async def select(self, prompt: str) -> PeerRef:
        groups = await self.list_groups()
        self._show(groups)
        for _ in range(self._config.max_selection_prompts):
            answer = await self._prompter.ask(f"\n{prompt} (enter the number): ")
            try:
                group = self.pick(groups, answer)
            except SelectionInvalid:
                self._prompter.tell("Invalid selection!")
                continue
            self._prompter.tell(f"Selected: {group.title}")
            return await self.resolve_access_hash(group)
        raise SelectionInvalid(f"No valid selection after {self._config.max_selection_prompts} tries")

    async def find(self, group_id: int) -> PeerRef:
        """Resolve a configured group id against the dialog list."""

        wanted = bare_chat_id(group_id)
        for group in await self.list_groups():
            if group.id == wanted:
                return await self.resolve_access_hash(group)
        raise SelectionInvalid(f"Group {group_id} is not among the recent dialogs")

    async def resolve_access_hash(self, peer: PeerRef) -> PeerRef:
        """Fill in a missing access hash for channel-addressed peers."""

        if peer.addressing != "channel" or peer.access_hash:
            return peer
        result = await self._rpc.call(
            "channels.getChannels",
            {"id": [{"channel_id": peer.id, "access_hash": 0}]},
        )
        chats = result.get("chats", [])
        if not chats:
            raise SelectionInvalid(f"Channel {peer.id} not found")
        return replace(peer, access_hash=int(chats[0].get("access_hash") or 0))

    async def _choose(self, prompt: str, configured_id: Optional[int]) -> PeerRef:
        if configured_id is not None:
            return await self.find(configured_id)
        return await self.select(prompt)

    async def select_route(self) -> Route:
        """Pick source and target, re-entering selection on failures."""

        while True:
            try:
                self._prompter.tell("\nLet's select the groups to relay between.")
                source = await self._choose(
                    "Select the SOURCE group of the messages", self._config.source_id
                )
                target = await self._choose(
                    "Select the TARGET group of the messages", self._config.target_id
                )
            except RetryExhausted:
                raise
            except (NoGroupsFound, SelectionInvalid) as exc:
                self._prompter.tell(f"{exc}. Trying again...")
                await self._recovery.recover(exc)
                continue
            except RelayError as exc:
                LOGGER.error("Group selection failed: %s", exc)
                await self._recovery.recover(exc)
                continue

            self._recovery.reset()
            self._prompter.tell(
                f"\nConfiguration complete:\nSource: {source.title}\nTarget: {target.title}"
            )
            return Route(source=source, target=target)
