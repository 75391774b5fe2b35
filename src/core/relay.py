"""Steady-state relay loop.

Each cycle:
1) Fetch the oldest page of source messages newer than the watermark
2) Skip service messages, advancing past them
3) Forward each message to the target with a random nonce
4) Persist a RelayRecord (duplicates are fine)
5) Advance the watermark

A message whose forward keeps failing is parked as a dead letter after
``max_forward_attempts`` so one bad message cannot stall the source.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Callable, List, Optional

from core.config import RelayConfig
from core.errors import PersistenceError, RateLimitedError, RelayError, RetryExhausted
from core.models import RelayRecord, Route, SourceMessage
from core.ports import MessageStorePort, RpcClientPort
from core.recovery import RecoveryPolicy, Sleep
from core.watermark import ForwardWatermark, history_params, page_after, store_record

LOGGER = logging.getLogger(__name__)


def random_nonce() -> int:
    return random.getrandbits(63)


class RelayLoop:
    """Forward new messages from ``route.source`` to ``route.target``."""

    def __init__(
        self,
        rpc: RpcClientPort,
        store: MessageStorePort,
        watermark: ForwardWatermark,
        recovery: RecoveryPolicy,
        route: Route,
        config: Optional[RelayConfig] = None,
        sleep: Sleep = asyncio.sleep,
        nonce_factory: Callable[[], int] = random_nonce,
    ) -> None:
        self._rpc = rpc
        self._store = store
        self._watermark = watermark
        self._recovery = recovery
        self._route = route
        self._config = config or RelayConfig()
        self._sleep = sleep
        self._nonce_factory = nonce_factory
        self._forward_failures: dict[int, int] = {}

    async def fetch_new(self) -> List[SourceMessage]:
        """Return unseen source messages, oldest first."""

        source = self._route.source
        last_id = self._watermark.get(source)
        if last_id:
            params = page_after(source, last_id, self._config.page_size)
        else:
            # No watermark yet (empty or unreadable history): only the newest
            # message counts as new, older ones were there before we started.
            params = history_params(source, 1)
        result = await self._rpc.call("messages.getHistory", params)
        messages = [SourceMessage.from_raw(raw) for raw in result.get("messages", [])]
        unseen = sorted((message for message in messages if message.id > last_id), key=lambda m: m.id)
        return unseen if last_id else unseen[-1:]

    async def forward(self, message: SourceMessage) -> None:
        await self._rpc.call(
            "messages.forwardMessages",
            {
                "from_peer": self._route.source,
                "to_peer": self._route.target,
                "id": [message.id],
                "random_id": [self._nonce_factory()],
            },
        )

    def _park_if_exhausted(self, message: SourceMessage, error: RelayError) -> bool:
        """Count a failed forward; park the message once it ran out of attempts."""

        if isinstance(error, RateLimitedError):
            return False
        attempts = self._forward_failures.get(message.id, 0) + 1
        self._forward_failures[message.id] = attempts
        if attempts < self._config.max_forward_attempts:
            return False

        record = RelayRecord.for_message(message, self._route)
        try:
            self._store.park(record, reason=repr(error), attempts=attempts)
        except PersistenceError:
            LOGGER.exception("Failed to park message %s", message.id)
        LOGGER.error(
            "Giving up on message %s after %s attempts: %s", message.id, attempts, error
        )
        self._forward_failures.pop(message.id, None)
        self._watermark.advance(self._route.source, message.id)
        return True

    async def poll_once(self) -> int:
        """Run one poll cycle and return how many messages were forwarded."""

        source, target = self._route.source, self._route.target
        forwarded = 0
        for message in await self.fetch_new():
            if not message.relayable:
                self._watermark.advance(source, message.id)
                continue
            try:
                await self.forward(message)
            except RelayError as exc:
                if self._park_if_exhausted(message, exc):
                    continue
                raise

            self._forward_failures.pop(message.id, None)
            store_record(self._store, RelayRecord.for_message(message, self._route))
            self._watermark.advance(source, message.id)
            forwarded += 1
            LOGGER.info('Message forwarded from "%s" to "%s"', source.title, target.title)
        return forwarded

    async def run(self) -> None:
        """Poll forever; only RetryExhausted (or cancellation) ends the loop."""

        LOGGER.info("Monitoring new messages in %s", self._route.source.title)
        while True:
            try:
                await self.poll_once()
            except RetryExhausted:
                raise
            except Exception as exc:
                LOGGER.exception("Error while monitoring messages")
                await self._recovery.recover(exc)
                continue
            self._recovery.reset()
            await self._sleep(self._config.poll_interval)
