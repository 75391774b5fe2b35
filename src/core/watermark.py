"""Per-source high-water mark of processed message ids.

Telegram message ids are monotonically increasing per chat, so a single
integer per source is enough to skip anything already handled.
"""

from __future__ import annotations

import logging

from core.errors import PersistenceConflict, PersistenceError
from core.models import PeerRef, RelayRecord, Route, SourceMessage
from core.ports import MessageStorePort, RpcClientPort

LOGGER = logging.getLogger(__name__)


def history_params(peer: PeerRef, limit: int, min_id: int = 0, offset_id: int = 0, add_offset: int = 0) -> dict:
    """Parameters for a single newest-first ``messages.getHistory`` page."""

    return {
        "peer": peer,
        "offset_id": offset_id,
        "add_offset": add_offset,
        "limit": limit,
        "max_id": 0,
        "min_id": min_id,
        "hash": 0,
    }


def page_after(peer: PeerRef, last_id: int, limit: int) -> dict:
    """The ``limit`` oldest messages newer than ``last_id``.

    A negative ``add_offset`` anchors the page at ``offset_id`` and walks it
    towards newer messages, so a backlog is drained from the bottom up.
    """

    return history_params(peer, limit, min_id=last_id, offset_id=last_id + 1, add_offset=-limit)


def store_record(store: MessageStorePort, record: RelayRecord) -> bool:
    """Append a record, treating duplicates as success. Returns False on failure."""

    try:
        store.append(record)
    except PersistenceConflict:
        return True
    except PersistenceError:
        LOGGER.exception("Failed to save message %s", record.message_id)
        return False
    return True


class ForwardWatermark:
    def __init__(self, rpc: RpcClientPort, store: MessageStorePort, history_limit: int = 100) -> None:
        self._rpc = rpc
        self._store = store
        self._history_limit = history_limit
        self._last_ids: dict[str, int] = {}

    def get(self, peer: PeerRef) -> int:
        return self._last_ids.get(peer.key, 0)

    def advance(self, peer: PeerRef, message_id: int) -> bool:
        """Move the watermark forward; lower or equal ids are ignored."""

        if message_id <= self.get(peer):
            return False
        self._last_ids[peer.key] = message_id
        return True

    async def initialize(self, route: Route) -> int:
        """Record the latest history page of the source and start after it.

        Best effort: any failure leaves the watermark where it was.
        """

        source = route.source
        try:
            result = await self._rpc.call(
                "messages.getHistory", history_params(source, self._history_limit)
            )
            messages = [SourceMessage.from_raw(raw) for raw in result.get("messages", [])]
            LOGGER.info("Loading %s messages from history", len(messages))
            # History arrives newest first; store oldest first.
            for message in reversed(messages):
                store_record(self._store, RelayRecord.for_message(message, route))
            if messages:
                self.advance(source, max(message.id for message in messages))
        except Exception:
            LOGGER.exception("Failed to load initial history for %s", source.title)
        return self.get(source)
