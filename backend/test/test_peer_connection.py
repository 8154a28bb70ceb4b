"""aiortc 피어 연결 어댑터 테스트.

두 개의 실제 ``AiortcPeerConnection`` 을 같은 프로세스에서 연결합니다 (STUN 없이 호스트 candidate만 사용).
"""
import asyncio

import pytest

from modules.webrtc import NegotiationCoordinator, NegotiationState, messages
from modules.webrtc.config import IceConfig
from modules.webrtc.peer_connection import AiortcPeerConnection, ice_ufrag

CONNECT_TIMEOUT = 20.0


class Endpoint:
    """코디네이터 + aiortc 피어 연결 한 쌍과 송신 큐."""

    def __init__(self, name: str):
        self.name = name
        self.pc = AiortcPeerConnection(IceConfig(stun_servers=[]))
        self.outbox: asyncio.Queue = asyncio.Queue()
        self.states = []
        self.connected = asyncio.Event()
        self.coordinator = NegotiationCoordinator(name, self.pc, self.send)
        self.pc.on_connection_state = self.on_connection_state

    async def send(self, message_type, data):
        await self.outbox.put((message_type, data))

    async def on_connection_state(self, state: str) -> None:
        self.states.append(state)
        if state == "connected":
            self.connected.set()
        await self.coordinator.handle_connection_state(state)


async def relay(source: Endpoint, target: Endpoint) -> None:
    while True:
        message_type, data = await source.outbox.get()
        if message_type == messages.OFFER:
            await target.coordinator.handle_offer(source.name, data["sdp"])
        elif message_type == messages.ANSWER:
            await target.coordinator.handle_answer(source.name, data["sdp"])
        elif message_type == messages.ICE_CANDIDATE:
            await target.coordinator.handle_candidate(source.name, data["candidate"])


async def wait_until(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
async def endpoints():
    a, b = Endpoint("aaa"), Endpoint("bbb")
    tasks = [asyncio.create_task(relay(a, b)), asyncio.create_task(relay(b, a))]
    yield a, b
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
    await a.coordinator.close()
    await b.coordinator.close()


async def wait_connected(*endpoints_: Endpoint) -> None:
    await asyncio.wait_for(
        asyncio.gather(*(endpoint.connected.wait() for endpoint in endpoints_)),
        timeout=CONNECT_TIMEOUT
    )


def test_ice_ufrag():
    sdp = "v=0\r\no=- 1 1 IN IP4 0.0.0.0\r\na=ice-ufrag:abcd\r\na=ice-pwd:secret\r\n"

    assert ice_ufrag(sdp) == "abcd"
    assert ice_ufrag("v=0\r\n") is None
    assert ice_ufrag(None) is None


async def test_ice_restart_recovers_between_two_endpoints(endpoints):
    a, b = endpoints
    await a.coordinator.on_peer_joined("bbb")
    try:
        await wait_connected(a, b)
    except asyncio.TimeoutError:
        pytest.skip("사용 가능한 호스트 네트워크 인터페이스 없음")
    first_remote = b.pc.pc.remoteDescription.sdp
    a.connected.clear()
    b.connected.clear()

    await a.coordinator.handle_connection_state("failed")
    await wait_connected(a, b)

    assert ice_ufrag(b.pc.pc.remoteDescription.sdp) != ice_ufrag(first_remote)
    await wait_until(lambda: a.coordinator.state is NegotiationState.STABLE
                     and b.coordinator.state is NegotiationState.STABLE)
    assert a.coordinator.failure is None
    assert b.coordinator.failure is None


async def test_restart_offer_is_applied_on_new_transport():
    a = AiortcPeerConnection(IceConfig(stun_servers=[]))
    b = AiortcPeerConnection(IceConfig(stun_servers=[]))
    try:
        await b.set_remote_description(await a.create_offer())
        await a.set_remote_description(await b.create_answer())
        original = b.pc

        restart_offer = await a.create_offer(ice_restart=True)
        await b.set_remote_description(restart_offer)
        answer = await b.create_answer()

        assert b.pc is not original
        assert original.signalingState == "closed"
        assert answer["type"] == "answer"
        assert ice_ufrag(b.pc.remoteDescription.sdp) == ice_ufrag(restart_offer["sdp"])
    finally:
        await a.close()
        await b.close()


async def test_renegotiation_keeps_transport():
    a = AiortcPeerConnection(IceConfig(stun_servers=[]))
    b = AiortcPeerConnection(IceConfig(stun_servers=[]))
    try:
        await b.set_remote_description(await a.create_offer())
        await a.set_remote_description(await b.create_answer())
        original = b.pc

        await b.set_remote_description(await a.create_offer())

        assert b.pc is original
    finally:
        await a.close()
        await b.close()


async def test_connection_closed_by_remote_is_reported_as_disconnected():
    adapter = AiortcPeerConnection(IceConfig(stun_servers=[]))
    states = []

    async def on_state(state):
        states.append(state)

    adapter.on_connection_state = on_state
    stale = adapter.pc
    try:
        await stale.close()
        await wait_until(lambda: states)

        assert states == ["disconnected"]

        offer = await adapter.create_offer()

        assert adapter.pc is not stale
        assert offer["type"] == "offer"
    finally:
        await adapter.close()
