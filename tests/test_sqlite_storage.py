from __future__ import annotations

import sqlite3
from dataclasses import replace
from datetime import datetime, timezone

import pytest

from adapters.sqlite_storage import SQLiteStorage
from core.errors import PersistenceConflict
from core.models import RelayRecord


def _record(message_id: int = 501, target_id: int = 2) -> RelayRecord:
    return RelayRecord(
        message_id=message_id,
        source_group_id=1,
        source_group_name="Source",
        target_group_id=target_id,
        target_group_name="Target",
        content="hello",
        media_type=None,
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


@pytest.fixture
def storage(tmp_path):
    store = SQLiteStorage(str(tmp_path / "relay.db"))
    store.init_db()
    yield store
    store.close()


def test_duplicate_append_keeps_single_row(storage: SQLiteStorage) -> None:
    storage.append(_record())
    with pytest.raises(PersistenceConflict):
        storage.append(_record())

    assert storage.count_relayed(1, 2) == 1


def test_same_message_to_other_target_is_a_new_row(storage: SQLiteStorage) -> None:
    storage.append(_record(target_id=2))
    storage.append(_record(target_id=3))
    storage.append(replace(_record(), message_id=502))

    assert storage.count_relayed(1, 2) == 2
    assert storage.count_relayed(1, 3) == 1


def test_init_db_is_idempotent(tmp_path) -> None:
    path = str(tmp_path / "relay.db")
    first = SQLiteStorage(path)
    first.init_db()
    first.append(_record())
    first.close()

    second = SQLiteStorage(path)
    second.init_db()
    assert second.count_relayed(1, 2) == 1
    second.close()


def test_park_accumulates_attempts(tmp_path) -> None:
    path = str(tmp_path / "relay.db")
    storage = SQLiteStorage(path)
    storage.init_db()
    storage.park(_record(), reason="MESSAGE_ID_INVALID", attempts=3)
    storage.park(_record(), reason="CHAT_WRITE_FORBIDDEN", attempts=3)
    storage.close()

    with sqlite3.connect(path) as conn:
        rows = conn.execute("SELECT message_id, reason, attempts FROM dead_letters").fetchall()
    assert rows == [(501, "CHAT_WRITE_FORBIDDEN", 6)]
