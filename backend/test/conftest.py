"""시그널링 테스트 공용 픽스처."""
import asyncio
from typing import Any, Dict, List, Optional, Tuple

import pytest

from modules.webrtc import SignalingHub


class FakeChannel:
    """send_json을 기록하는 가짜 WebSocket 채널."""

    def __init__(self, fail: bool = False):
        self.sent: List[Dict[str, Any]] = []
        self.fail = fail
        self.closed_with: Optional[int] = None

    async def send_json(self, message: Dict[str, Any]) -> None:
        # 다른 태스크에 양보해 실제 소켓처럼 중간에 끼어들 수 있게 함
        await asyncio.sleep(0)
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(message)

    async def close(self, code: int = 1000) -> None:
        self.closed_with = code

    def types(self) -> List[str]:
        return [m["type"] for m in self.sent]

    def of_type(self, message_type: str) -> List[Dict[str, Any]]:
        return [m for m in self.sent if m["type"] == message_type]

    def clear(self) -> None:
        self.sent.clear()


class FakeTrack:
    def __init__(self, kind: str, name: str = ""):
        self.kind = kind
        self.name = name
        self.stopped = False

    def stop(self) -> None:
        self.stopped = True


class FakePeerConnection:
    """NegotiationCoordinator 테스트용 인메모리 피어 연결."""

    def __init__(self, name: str = "pc"):
        self.name = name
        self.calls: List[Tuple[str, Any]] = []
        self.remote_description: Optional[Dict[str, Any]] = None
        self.local_description: Optional[Dict[str, Any]] = None
        self.candidates: List[Any] = []
        self.tracks: Dict[str, FakeTrack] = {}
        self.offer_count = 0
        self.close_count = 0
        self.fail_candidates = False
        self.reject_sdp: Optional[str] = None

    async def create_offer(self, ice_restart: bool = False) -> Dict[str, Any]:
        self.offer_count += 1
        self.calls.append(("create_offer", ice_restart))
        suffix = "-restart" if ice_restart else ""
        self.local_description = {"type": "offer", "sdp": f"{self.name}-offer-{self.offer_count}{suffix}"}
        return self.local_description

    async def create_answer(self) -> Dict[str, Any]:
        self.calls.append(("create_answer", None))
        self.local_description = {"type": "answer", "sdp": f"{self.name}-answer"}
        return self.local_description

    async def set_remote_description(self, description: Dict[str, Any]) -> None:
        if self.reject_sdp is not None and description.get("sdp") == self.reject_sdp:
            raise ValueError("unparseable session description")
        self.calls.append(("set_remote_description", description))
        self.remote_description = description

    async def add_ice_candidate(self, candidate: Any) -> None:
        if self.fail_candidates:
            raise ValueError("bad candidate")
        self.calls.append(("add_ice_candidate", candidate))
        self.candidates.append(candidate)

    async def rollback(self) -> None:
        self.calls.append(("rollback", None))
        self.local_description = None

    async def reset(self) -> None:
        self.calls.append(("reset", None))
        self.remote_description = None
        self.local_description = None

    async def replace_track(self, track: FakeTrack) -> Optional[FakeTrack]:
        self.calls.append(("replace_track", track.kind))
        previous = self.tracks.get(track.kind)
        self.tracks[track.kind] = track
        return previous

    async def close(self) -> None:
        self.close_count += 1
        for track in self.tracks.values():
            track.stop()

    def call_names(self) -> List[str]:
        return [name for name, _ in self.calls]


class Outbox:
    """코디네이터 send 콜백을 기록합니다."""

    def __init__(self):
        self.messages: List[Tuple[str, Dict[str, Any]]] = []

    async def __call__(self, message_type: str, data: Dict[str, Any]) -> None:
        self.messages.append((message_type, data))

    def of_type(self, message_type: str) -> List[Dict[str, Any]]:
        return [data for t, data in self.messages if t == message_type]

    def pop_all(self) -> List[Tuple[str, Dict[str, Any]]]:
        messages, self.messages = self.messages, []
        return messages


class StatusRecorder:
    def __init__(self):
        self.statuses: List[str] = []

    async def __call__(self, status: str) -> None:
        self.statuses.append(status)


@pytest.fixture
def hub() -> SignalingHub:
    return SignalingHub()


@pytest.fixture
def connect(hub):
    """허브에 가짜 채널을 등록하는 팩토리."""

    async def _connect(connection_id: str, fail: bool = False) -> FakeChannel:
        channel = FakeChannel(fail=fail)
        await hub.connect(connection_id, channel)
        return channel

    return _connect


def join_raw(room_id: str) -> str:
    return '{"type": "join", "data": {"roomId": "%s"}}' % room_id
