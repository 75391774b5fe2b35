"""Ports (interfaces) used by the core relay.

Ports define the minimal contracts for the platform client, storage and the
operator prompt so that the core can be reused with different backends.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol

from core.models import RelayRecord


class RpcClientPort(Protocol):
    """Remote procedure calls against the messaging platform.

    Failures are raised as ``core.errors.RpcError`` subclasses or
    ``TransientNetworkError``.
    """

    async def call(self, method: str, params: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        ...

    async def set_default_dc(self, dc_id: int) -> None:
        ...

    async def is_authorized(self) -> bool:
        ...


class MessageStorePort(Protocol):
    """Storage operations required by the relay."""

    def append(self, record: RelayRecord) -> None:
        """Insert a record; raise PersistenceConflict if it already exists."""
        ...

    def park(self, record: RelayRecord, reason: str, attempts: int) -> None:
        ...


class PrompterPort(Protocol):
    """Line-based operator interaction."""

    async def ask(self, question: str) -> str:
        ...

    async def ask_secret(self, question: str) -> str:
        ...

    def tell(self, text: str) -> None:
        ...
