"""SQLite storage adapter.

Implements the core MessageStorePort using a simple SQLite database.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from typing import Optional

from core.errors import PersistenceConflict, PersistenceError
from core.models import RelayRecord


class SQLiteStorage:
    """Thin SQLite wrapper that satisfies the MessageStorePort contract."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None

    def _connect(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(self._db_path)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - relayed_messages: append-only log of relayed messages
        - dead_letters: messages given up on after repeated forward failures
        """

        with self._connect() as conn:
            # relayed_messages is unique per (message, source, target) so a
            # message relayed twice (e.g. crash between forward and watermark)
            # still yields a single row.
            # Fields:
            # - message_id: message id within the source chat
            # - source_group_id / source_group_name: where it came from
            # - target_group_id / target_group_name: where it was forwarded
            # - content: message text, NULL for media without caption
            # - media_type: Telegram media constructor name, NULL for text
            # - created_at: original message timestamp from Telegram
            # - relayed_at: when the row was written
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS relayed_messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    message_id INTEGER NOT NULL,
                    source_group_id INTEGER NOT NULL,
                    source_group_name TEXT,
                    target_group_id INTEGER NOT NULL,
                    target_group_name TEXT,
                    content TEXT,
                    media_type TEXT,
                    created_at TIMESTAMP NOT NULL,
                    relayed_at TIMESTAMP NOT NULL,
                    UNIQUE (message_id, source_group_id, target_group_id)
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS dead_letters (
                    message_id INTEGER NOT NULL,
                    source_group_id INTEGER NOT NULL,
                    target_group_id INTEGER NOT NULL,
                    content TEXT,
                    media_type TEXT,
                    reason TEXT,
                    attempts INTEGER NOT NULL,
                    parked_at TIMESTAMP NOT NULL,
                    PRIMARY KEY (message_id, source_group_id, target_group_id)
                )
                """
            )

    def append(self, record: RelayRecord) -> None:
        """Insert a relayed message; duplicates raise PersistenceConflict."""

        relayed_at = datetime.now(timezone.utc)
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO relayed_messages (
                        message_id,
                        source_group_id,
                        source_group_name,
                        target_group_id,
                        target_group_name,
                        content,
                        media_type,
                        created_at,
                        relayed_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record.message_id,
                        record.source_group_id,
                        record.source_group_name,
                        record.target_group_id,
                        record.target_group_name,
                        record.content,
                        record.media_type,
                        record.created_at.isoformat(),
                        relayed_at.isoformat(),
                    ),
                )
        except sqlite3.IntegrityError as exc:
            raise PersistenceConflict(str(exc)) from exc
        except sqlite3.Error as exc:
            raise PersistenceError(str(exc)) from exc

    def park(self, record: RelayRecord, reason: str, attempts: int) -> None:
        """Upsert a dead letter for a message that could not be forwarded."""

        parked_at = datetime.now(timezone.utc)
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO dead_letters (
                        message_id,
                        source_group_id,
                        target_group_id,
                        content,
                        media_type,
                        reason,
                        attempts,
                        parked_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(message_id, source_group_id, target_group_id) DO UPDATE SET
                        reason = excluded.reason,
                        attempts = dead_letters.attempts + excluded.attempts,
                        parked_at = excluded.parked_at
                    """,
                    (
                        record.message_id,
                        record.source_group_id,
                        record.target_group_id,
                        record.content,
                        record.media_type,
                        reason,
                        attempts,
                        parked_at.isoformat(),
                    ),
                )
        except sqlite3.Error as exc:
            raise PersistenceError(str(exc)) from exc

    def count_relayed(self, source_group_id: int, target_group_id: int) -> int:
        """Return how many messages were recorded for a source/target pair."""

        row = self._connect().execute(
            """
            SELECT COUNT(*) AS total FROM relayed_messages
            WHERE source_group_id = ? AND target_group_id = ?
            """,
            (source_group_id, target_group_id),
        ).fetchone()
        return int(row["total"])
