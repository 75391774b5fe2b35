"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any integration-specific types. Raw platform objects arrive as
plain dicts (the shape Telethon's ``to_dict()`` produces) and are parsed here.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional

GROUP_CHAT_TYPES = {"channel", "chat"}
UNRELAYABLE_MESSAGE_TYPES = {"messageservice", "messageempty"}


class PeerKind(str, Enum):
    CHANNEL = "channel"
    SUPERGROUP = "supergroup"
    BASIC_GROUP = "group"

    @property
    def label(self) -> str:
        return {
            PeerKind.CHANNEL: "Channel",
            PeerKind.SUPERGROUP: "Supergroup",
            PeerKind.BASIC_GROUP: "Group",
        }[self]


def _object_type(raw: Mapping[str, Any]) -> str:
    return str(raw.get("_", "")).lower()


def is_group_chat(raw: Mapping[str, Any]) -> bool:
    """True for channels (incl. supergroups) and basic groups."""

    return _object_type(raw) in GROUP_CHAT_TYPES


@dataclass(frozen=True)
class PeerRef:
    """A resolved chat endpoint; immutable once selected."""

    id: int
    access_hash: int
    title: str
    kind: PeerKind

    @property
    def addressing(self) -> str:
        """Peer variant used in platform calls: ``channel`` or ``chat``."""

        if self.kind is PeerKind.BASIC_GROUP:
            return "chat"
        return "channel"

    @property
    def key(self) -> str:
        return f"{self.addressing}:{self.id}"

    @classmethod
    def from_chat(cls, raw: Mapping[str, Any]) -> "PeerRef":
        object_type = _object_type(raw)
        if object_type == "channel":
            kind = PeerKind.SUPERGROUP if raw.get("megagroup") else PeerKind.CHANNEL
        elif object_type == "chat":
            kind = PeerKind.BASIC_GROUP
        else:
            raise ValueError(f"Not a group chat: {raw.get('_')!r}")
        return cls(
            id=int(raw["id"]),
            access_hash=int(raw.get("access_hash") or 0),
            title=str(raw.get("title") or raw["id"]),
            kind=kind,
        )


@dataclass(frozen=True)
class Route:
    """Where messages come from and where they go."""

    source: PeerRef
    target: PeerRef


def _parse_date(value: Any) -> datetime:
    # Telethon hands out datetimes, the raw API uses unix seconds.
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return datetime.fromtimestamp(int(value or 0), tz=timezone.utc)


@dataclass(frozen=True)
class SourceMessage:
    """Minimal view of a message read from the source peer."""

    id: int
    text: Optional[str]
    media_type: Optional[str]
    date: datetime
    relayable: bool = True

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> "SourceMessage":
        media = raw.get("media")
        media_type = None
        if isinstance(media, Mapping):
            media_type = media.get("_")
        elif media:
            media_type = str(media)
        relayable = _object_type(raw) not in UNRELAYABLE_MESSAGE_TYPES
        if not relayable and media_type is None:
            # Service messages are recorded by what happened (join, pin, ...).
            action = raw.get("action")
            media_type = action.get("_") if isinstance(action, Mapping) else raw.get("_")
        return cls(
            id=int(raw["id"]),
            text=raw.get("message") or None,
            media_type=media_type,
            date=_parse_date(raw.get("date")),
            relayable=relayable,
        )


@dataclass(frozen=True)
class RelayRecord:
    """Persisted representation of a relayed message.

    Unique on (message_id, source_group_id, target_group_id).
    """

    message_id: int
    source_group_id: int
    source_group_name: str
    target_group_id: int
    target_group_name: str
    content: Optional[str]
    media_type: Optional[str]
    created_at: datetime

    @classmethod
    def for_message(cls, message: SourceMessage, route: Route) -> "RelayRecord":
        return cls(
            message_id=message.id,
            source_group_id=route.source.id,
            source_group_name=route.source.title,
            target_group_id=route.target.id,
            target_group_name=route.target.title,
            content=message.text,
            media_type=message.media_type,
            created_at=message.date,
        )
