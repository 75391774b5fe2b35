from __future__ import annotations

import asyncio

from core.errors import TransientNetworkError
from core.models import RelayRecord, SourceMessage
from core.watermark import ForwardWatermark
from fakes import FakeRpc, FakeStore, history, make_peer, make_route, raw_message


def test_advance_never_regresses() -> None:
    watermark = ForwardWatermark(FakeRpc(), FakeStore())
    peer = make_peer(1, "Source")

    assert watermark.get(peer) == 0
    assert watermark.advance(peer, 5)
    assert not watermark.advance(peer, 3)
    assert not watermark.advance(peer, 5)
    assert watermark.get(peer) == 5
    assert watermark.advance(peer, 7)
    assert watermark.get(peer) == 7


def test_watermark_is_tracked_per_source() -> None:
    watermark = ForwardWatermark(FakeRpc(), FakeStore())
    first, second = make_peer(1, "A"), make_peer(2, "B")

    watermark.advance(first, 10)

    assert watermark.get(first) == 10
    assert watermark.get(second) == 0


def test_initialize_stores_history_oldest_first() -> None:
    rpc = FakeRpc({"messages.getHistory": [history(1, 2, 3)]})
    store = FakeStore()
    route = make_route()
    watermark = ForwardWatermark(rpc, store)

    last_id = asyncio.run(watermark.initialize(route))

    assert last_id == 3
    assert watermark.get(route.source) == 3
    assert [key[0] for key in store.records] == [1, 2, 3]
    assert rpc.calls_to("messages.getHistory")[0]["limit"] == 100


def test_initialize_with_empty_history_starts_at_zero() -> None:
    rpc = FakeRpc({"messages.getHistory": [{"messages": []}]})
    watermark = ForwardWatermark(rpc, FakeStore())

    assert asyncio.run(watermark.initialize(make_route())) == 0


def test_initialize_failure_is_swallowed() -> None:
    rpc = FakeRpc({"messages.getHistory": [TransientNetworkError("timeout")]})
    store = FakeStore()

    assert asyncio.run(ForwardWatermark(rpc, store).initialize(make_route())) == 0
    assert store.records == {}


def test_initialize_ignores_already_stored_messages() -> None:
    route = make_route()
    store = FakeStore()
    store.append(RelayRecord.for_message(SourceMessage.from_raw(raw_message(2)), route))
    rpc = FakeRpc({"messages.getHistory": [history(1, 2)]})

    assert asyncio.run(ForwardWatermark(rpc, store).initialize(route)) == 2
    assert len(store.records) == 2
    assert store.conflicts == 1


def test_initialize_records_service_messages_by_action() -> None:
    route = make_route()
    store = FakeStore()
    joined = raw_message(9, text=None, kind="MessageService")
    joined["action"] = {"_": "MessageActionChatAddUser", "users": [77]}
    page = {"messages": [{"_": "MessageEmpty", "id": 10}, joined, raw_message(8)]}
    rpc = FakeRpc({"messages.getHistory": [page]})

    assert asyncio.run(ForwardWatermark(rpc, store).initialize(route)) == 10
    assert [key[0] for key in store.records] == [8, 9, 10]
    assert store.records[(8, 1, 2)].media_type is None
    assert store.records[(9, 1, 2)].media_type == "MessageActionChatAddUser"
    assert store.records[(10, 1, 2)].media_type == "MessageEmpty"
