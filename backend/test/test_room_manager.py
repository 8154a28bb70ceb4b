"""룸 테이블 테스트 (입장/정원/퇴장/동시성)."""
import asyncio

import pytest

from modules.webrtc import CapacityError, ConnectionRegistry, RoomManager, RoutingMiss
from conftest import FakeChannel


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest.fixture
def rooms(registry):
    return RoomManager(registry)


def register(registry, connection_id):
    channel = FakeChannel()
    registry.register(connection_id, channel)
    return channel


async def test_first_join_is_admitted_without_ready(registry, rooms):
    x = register(registry, "x")

    others = await rooms.join("x", "r1")

    assert others == []
    assert x.types() == ["joined"]
    assert x.sent[0]["data"] == {"roomId": "r1", "peers": []}
    assert rooms.get_room_count("r1") == 1
    assert registry.get("x").room_id == "r1"


async def test_second_join_sends_peer_joined_and_ready_to_both(registry, rooms):
    x = register(registry, "x")
    y = register(registry, "y")

    await rooms.join("x", "r1")
    await rooms.join("y", "r1")

    assert x.types() == ["joined", "peer-joined", "ready"]
    assert x.of_type("peer-joined")[0]["data"] == {"peerConnectionId": "y"}
    assert y.types() == ["joined", "ready"]
    assert y.of_type("joined")[0]["data"]["peers"] == ["x"]


async def test_third_join_gets_room_full_and_occupants_are_not_notified(registry, rooms):
    x = register(registry, "x")
    y = register(registry, "y")
    z = register(registry, "z")
    await rooms.join("x", "r1")
    await rooms.join("y", "r1")
    x.clear()
    y.clear()

    with pytest.raises(CapacityError) as exc_info:
        await rooms.join("z", "r1")

    assert exc_info.value.room_id == "r1"
    assert exc_info.value.to_message() == {"type": "room-full", "data": {"roomId": "r1"}}
    assert z.sent == []
    assert x.sent == []
    assert y.sent == []
    assert rooms.get_peer_room("z") is None
    assert rooms.get_room_count("r1") == 2


async def test_joins_keep_failing_until_an_occupant_leaves(registry, rooms):
    for cid in ("a", "b", "c", "d"):
        register(registry, cid)
    await rooms.join("a", "r1")
    await rooms.join("b", "r1")

    for cid in ("c", "d"):
        with pytest.raises(CapacityError):
            await rooms.join(cid, "r1")

    await rooms.leave("a")

    assert await rooms.join("c", "r1") == ["b"]
    with pytest.raises(CapacityError):
        await rooms.join("d", "r1")
    assert rooms.get_room_peers("r1") == ["b", "c"]


async def test_concurrent_joins_admit_exactly_two(registry, rooms):
    ids = [f"c{i}" for i in range(6)]
    for cid in ids:
        register(registry, cid)

    outcomes = await asyncio.gather(*(rooms.join(cid, "race") for cid in ids), return_exceptions=True)

    rejected = [o for o in outcomes if isinstance(o, CapacityError)]
    assert len(rejected) == 4
    assert len(outcomes) - len(rejected) == 2
    assert rooms.get_room_count("race") == 2


async def test_concurrent_joins_on_different_rooms_do_not_interfere(registry, rooms):
    ids = [f"c{i}" for i in range(8)]
    for cid in ids:
        register(registry, cid)

    outcomes = await asyncio.gather(*(rooms.join(cid, f"room-{i // 2}") for i, cid in enumerate(ids)))

    assert all(isinstance(outcome, list) for outcome in outcomes)
    assert sorted(rooms.rooms) == ["room-0", "room-1", "room-2", "room-3"]


async def test_leave_notifies_remaining_occupant(registry, rooms):
    x = register(registry, "x")
    register(registry, "y")
    await rooms.join("x", "r1")
    await rooms.join("y", "r1")
    x.clear()

    left_room = await rooms.leave("y")

    assert left_room == "r1"
    assert x.sent == [{"type": "peer-left", "data": {"peerConnectionId": "y"}}]
    assert rooms.get_room_count("r1") == 1
    assert registry.get("y").room_id is None


async def test_leave_is_idempotent(registry, rooms):
    x = register(registry, "x")

    assert await rooms.leave("x") is None

    await rooms.join("x", "r1")
    assert await rooms.leave("x") == "r1"
    assert await rooms.leave("x") is None
    assert x.types() == ["joined"]


async def test_join_then_leave_twice_restores_empty_table(registry, rooms):
    register(registry, "x")
    register(registry, "y")
    await rooms.join("x", "r1")
    await rooms.join("y", "r1")

    await rooms.leave("x")
    await rooms.leave("y")

    assert rooms.rooms == {}
    assert rooms.peer_to_room == {}
    assert rooms.get_room_list() == []


async def test_rejected_join_does_not_create_room(registry, rooms):
    for cid in ("a", "b", "c"):
        register(registry, cid)
    await rooms.join("a", "r1")
    await rooms.join("b", "r1")
    with pytest.raises(CapacityError):
        await rooms.join("c", "r1")

    assert list(rooms.rooms) == ["r1"]


async def test_joining_another_room_leaves_the_current_one(registry, rooms):
    register(registry, "x")
    y = register(registry, "y")
    await rooms.join("x", "r1")
    await rooms.join("y", "r1")
    y.clear()

    await rooms.join("x", "r2")

    assert rooms.get_peer_room("x") == "r2"
    assert rooms.get_room_peers("r1") == ["y"]
    assert y.types() == ["peer-left"]


async def test_rejoining_same_room_is_a_no_op(registry, rooms):
    x = register(registry, "x")
    await rooms.join("x", "r1")

    assert await rooms.join("x", "r1") == []
    assert rooms.get_room_count("r1") == 1
    assert x.types() == ["joined", "joined"]


async def test_join_requires_live_connection(rooms):
    with pytest.raises(RoutingMiss):
        await rooms.join("ghost", "r1")


async def test_room_list_reports_counts(registry, rooms):
    register(registry, "x")
    register(registry, "y")
    await rooms.join("x", "r1")
    await rooms.join("y", "r2")

    assert sorted(rooms.get_room_list(), key=lambda r: r["room_id"]) == [
        {"room_id": "r1", "peer_count": 1},
        {"room_id": "r2", "peer_count": 1},
    ]
