"""시그널링 클라이언트.

Python 엔드포인트가 시그널링 서버(``/ws``)에 접속해 1:1 통화에 참여하도록 합니다.
수신 메시지를 협상 코디네이터로 전달하고, 마이크/카메라/화면공유 상태를
signal 메시지로 상대에게 알립니다.

Workflow:
    1. ``GET /ice`` 로 ICE 설정 조회 (실패 시 STUN 기본값)
    2. WebSocket 접속 → ``connected`` 로 자신의 연결 ID 수신
    3. ``join`` → 상대가 들어오면 ``peer-joined`` 를 받은 쪽이 offer 시작
    4. offer/answer/ice-candidate 교환 후 미디어는 피어 간 직접 전송

Examples:
    >>> client = SignalingClient("http://localhost:8080", local_tracks=[audio_track])
    >>> await client.connect()
    >>> await client.join("room-1")
    >>> await client.run()
"""
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

import websockets
from aiortc import MediaStreamTrack

from . import messages
from .config import IceConfig, fetch_ice_config
from .negotiation import NegotiationCoordinator, PeerConnection, TrackChange
from .peer_connection import AiortcPeerConnection

logger = logging.getLogger(__name__)

SignalHandler = Callable[[Dict[str, Any]], Awaitable[None]]
StatusHandler = Callable[[str], Awaitable[None]]
PeerConnectionFactory = Callable[[IceConfig, List[MediaStreamTrack]], PeerConnection]


def websocket_url(server_url: str) -> str:
    """``http(s)://host`` 주소를 ``ws(s)://host/ws`` 로 변환합니다."""
    base = server_url.rstrip("/")
    if base.startswith("https://"):
        base = "wss://" + base[len("https://"):]
    elif base.startswith("http://"):
        base = "ws://" + base[len("http://"):]
    return f"{base}/ws"


class SignalingClient:
    """시그널링 서버와 협상 코디네이터를 연결하는 클라이언트.

    Attributes:
        server_url (str): 서버 주소 (``http://host:port``)
        connection_id (Optional[str]): 서버가 부여한 자신의 연결 ID
        room_id (Optional[str]): 참가 중인 룸
        peer_connection (Optional[PeerConnection]): 현재 통화의 피어 연결. 통화마다 새로 생성됨
        peer_connection_factory: ``(ice_config, local_tracks)`` 로 피어 연결 생성 (기본: aiortc 어댑터)
        coordinator (Optional[NegotiationCoordinator]): 현재 통화의 협상 코디네이터. leave 후 None
        screen_sharing (bool): 화면공유 중 여부
    """

    def __init__(
        self,
        server_url: str,
        local_tracks: Optional[List[MediaStreamTrack]] = None,
        peer_connection_factory: Optional[PeerConnectionFactory] = None,
        on_signal: Optional[SignalHandler] = None,
        on_status: Optional[StatusHandler] = None
    ):
        self.server_url = server_url
        self.local_tracks = list(local_tracks or [])
        self.peer_connection_factory = peer_connection_factory or AiortcPeerConnection
        self.on_signal = on_signal
        self.on_status = on_status

        self.websocket = None
        self.peer_connection: Optional[PeerConnection] = None
        self.connection_id: Optional[str] = None
        self.room_id: Optional[str] = None
        self.coordinator: Optional[NegotiationCoordinator] = None
        self.ice_config: Optional[IceConfig] = None

        self.microphone_enabled = True
        self.camera_enabled = True
        self.screen_sharing = False
        self._camera_track: Optional[MediaStreamTrack] = None

    # ------------------------------------------------------------------
    # 연결
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        self.ice_config = await fetch_ice_config(self.server_url)

        self.websocket = await websockets.connect(websocket_url(self.server_url))
        logger.info(f"시그널링 서버 연결: {self.server_url}")

        # 첫 메시지는 connected
        await self.dispatch(json.loads(await self.websocket.recv()))

    async def run(self) -> None:
        """연결이 닫힐 때까지 수신 메시지를 처리합니다."""
        try:
            async for raw in self.websocket:
                try:
                    message = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning(f"잘못된 메시지 무시: {raw!r}")
                    continue
                await self.dispatch(message)
        except websockets.ConnectionClosed:
            logger.info("시그널링 연결 종료됨")
        await self._set_status("offline")

    async def send(self, message_type: str, data: Optional[Dict[str, Any]] = None) -> None:
        if self.websocket is None:
            logger.warning(f"연결 전 {message_type} 전송 시도 무시")
            return
        await self.websocket.send(json.dumps(messages.envelope(message_type, data)))

    def _ensure_coordinator(self) -> NegotiationCoordinator:
        if self.coordinator is None:
            self.peer_connection = self.peer_connection_factory(self.ice_config or IceConfig(), self.local_tracks)
            self.coordinator = NegotiationCoordinator(
                self.connection_id,
                self.peer_connection,
                self.send,
                on_status=self._set_status
            )
            if isinstance(self.peer_connection, AiortcPeerConnection):
                self.peer_connection.on_connection_state = self.coordinator.handle_connection_state
        return self.coordinator

    async def _set_status(self, status: str) -> None:
        logger.info(f"상태: {status}")
        if self.on_status:
            await self.on_status(status)

    # ------------------------------------------------------------------
    # 룸
    # ------------------------------------------------------------------

    async def join(self, room_id: str, local_tracks: Optional[List[MediaStreamTrack]] = None) -> None:
        """룸 입장을 요청합니다.

        Args:
            room_id: 참가할 룸 이름
            local_tracks: 이번 통화에서 보낼 로컬 트랙. leave가 이전 트랙을 정지시키므로
                다시 입장할 때는 새 트랙을 넘겨야 함
        """
        if local_tracks is not None:
            self.local_tracks = list(local_tracks)
        self._ensure_coordinator()
        self.room_id = room_id
        await self.send(messages.JOIN, {"roomId": room_id})

    async def leave(self) -> None:
        """룸에서 나가고 피어 연결과 로컬 미디어를 해제합니다.

        다음 join은 새 피어 연결과 코디네이터로 시작합니다.
        """
        if self.room_id is not None:
            await self.send(messages.LEAVE)
            self.room_id = None
        if self.coordinator is not None:
            await self.coordinator.close()
        elif self.peer_connection is not None:
            await self.peer_connection.close()
        self.coordinator = None
        self.peer_connection = None
        self.local_tracks = []
        self.screen_sharing = False
        self._camera_track = None
        await self._set_status("left")

    async def close(self) -> None:
        await self.leave()
        if self.websocket is not None:
            await self.websocket.close()
            self.websocket = None

    # ------------------------------------------------------------------
    # 수신 메시지 처리
    # ------------------------------------------------------------------

    async def dispatch(self, message: Dict[str, Any]) -> None:
        message_type = message.get("type")
        data = message.get("data") or {}

        try:
            if message_type == messages.CONNECTED:
                self.connection_id = data.get("connectionId")
                self._ensure_coordinator().local_id = self.connection_id
                logger.info(f"연결 ID: {self.connection_id}")

            elif message_type == messages.JOINED:
                await self._set_status("joined")

            elif message_type == messages.ROOM_FULL:
                logger.warning(f"룸 '{data.get('roomId')}' 정원 초과")
                await self._set_status("room-full")
                await self.leave()

            elif message_type == messages.PEER_JOINED:
                await self._ensure_coordinator().on_peer_joined(data["peerConnectionId"])

            elif message_type == messages.READY:
                await self._ensure_coordinator().on_ready()

            elif message_type == messages.OFFER:
                await self._ensure_coordinator().handle_offer(data["from"], data["sdp"])

            elif message_type == messages.ANSWER:
                await self._ensure_coordinator().handle_answer(data["from"], data["sdp"])

            elif message_type == messages.ICE_CANDIDATE:
                await self._ensure_coordinator().handle_candidate(data["from"], data.get("candidate"))

            elif message_type == messages.PEER_LEFT:
                await self._ensure_coordinator().on_peer_left(data["peerConnectionId"])

            elif message_type == messages.SIGNAL:
                logger.info(f"Signal: {data}")
                if self.on_signal:
                    await self.on_signal(data)

            elif message_type == messages.ERROR:
                logger.warning(f"서버 오류 [{data.get('code')}]: {data.get('message')}")

            else:
                logger.debug(f"알 수 없는 메시지 타입: {message_type}")

        except KeyError as e:
            logger.warning(f"{message_type} 메시지에 필드 누락: {e}")
        except Exception as e:
            logger.error(f"{message_type} 처리 중 오류: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # 미디어 상태
    # ------------------------------------------------------------------

    async def set_microphone_enabled(self, enabled: bool) -> None:
        self.microphone_enabled = enabled
        await self.send(messages.SIGNAL, {"type": "mic", "enabled": enabled})

    async def set_camera_enabled(self, enabled: bool) -> None:
        self.camera_enabled = enabled
        await self.send(messages.SIGNAL, {"type": "cam", "enabled": enabled})

    async def start_screen_share(self, screen_track: MediaStreamTrack) -> None:
        """비디오 송신 트랙을 화면 트랙으로 교체하고 재협상합니다."""
        if self.screen_sharing:
            return
        coordinator = self._ensure_coordinator()
        self._camera_track = await self.peer_connection.replace_track(screen_track)
        self.screen_sharing = True
        await coordinator.on_track_change(TrackChange.SCREEN_SHARE_START)
        await self.send(messages.SIGNAL, {"type": "screenshare", "active": True})

    async def stop_screen_share(self) -> None:
        """카메라 트랙으로 되돌리고 재협상합니다."""
        if not self.screen_sharing:
            return
        self.screen_sharing = False
        coordinator = self._ensure_coordinator()
        if self._camera_track is not None:
            screen_track = await self.peer_connection.replace_track(self._camera_track)
            if screen_track is not None:
                screen_track.stop()
            self._camera_track = None
        await coordinator.on_track_change(TrackChange.SCREEN_SHARE_STOP)
        await self.send(messages.SIGNAL, {"type": "screenshare", "active": False})

    async def switch_camera(self, camera_track: MediaStreamTrack) -> None:
        """같은 sender에서 카메라 트랙만 교체합니다 (재협상 없음)."""
        if self.screen_sharing:
            # 화면공유 종료 시 새 카메라로 복귀
            if self._camera_track is not None:
                self._camera_track.stop()
            self._camera_track = camera_track
            return
        coordinator = self._ensure_coordinator()
        previous = await self.peer_connection.replace_track(camera_track)
        if previous is not None:
            previous.stop()
        await coordinator.on_track_change(TrackChange.CAMERA_SWITCH)
        logger.info("카메라 전환 완료")
