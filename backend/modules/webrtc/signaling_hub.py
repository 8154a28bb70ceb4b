"""시그널링 허브.

연결 레지스트리, 룸 테이블, 릴레이 라우터를 하나로 묶어 소유하는 객체입니다.
WebSocket 라우터는 허브 하나를 받아 연결별 수신 루프에서 ``handle_raw`` 만 호출합니다.

처리하는 메시지 타입:
    - join: 룸 입장 (roomId 필요)
    - offer / answer / ice-candidate: 지정 피어에게 직접 릴레이
    - signal: 같은 룸의 상대에게 릴레이 (마이크/카메라/화면공유 상태)
    - leave: 현재 룸에서 퇴장
"""
import logging
from typing import Any, Dict, Optional, Union

from . import messages
from .errors import ProtocolError, SignalingError
from .registry import ConnectionRegistry
from .relay import SignalRelay
from .room_manager import ROOM_CAPACITY, RoomManager

logger = logging.getLogger(__name__)


class SignalingHub:
    """연결 수명주기와 메시지 디스패치를 담당합니다.

    Attributes:
        registry (ConnectionRegistry): 연결 레지스트리
        room_manager (RoomManager): 룸 테이블 (교차 연결 공유 자원은 이것뿐)
        relay (SignalRelay): 릴레이 라우터

    Examples:
        >>> hub = SignalingHub()
        >>> await hub.connect("conn-a", websocket)
        >>> await hub.handle_raw("conn-a", '{"type": "join", "data": {"roomId": "r1"}}')
        >>> await hub.disconnect("conn-a")
    """

    def __init__(
        self,
        registry: Optional[ConnectionRegistry] = None,
        capacity: int = ROOM_CAPACITY,
        lock_shards: int = 64
    ):
        self.registry = registry or ConnectionRegistry()
        self.room_manager = RoomManager(self.registry, capacity=capacity, lock_shards=lock_shards)
        self.relay = SignalRelay(self.registry, self.room_manager)

    async def connect(self, connection_id: str, channel: Any) -> None:
        """채널을 등록하고 클라이언트에 자신의 연결 ID를 알려줍니다."""
        self.registry.register(connection_id, channel)
        await self.registry.send(connection_id, messages.connected_message(connection_id))

    async def disconnect(self, connection_id: str) -> None:
        """채널 종료 처리.

        먼저 레지스트리에서 제거해 이 연결로 향하는 전송을 즉시 차단한 뒤,
        룸에서 퇴장시켜 남은 참가자에게 peer-left를 보냅니다. 여러 번 호출해도 안전합니다.
        """
        self.registry.unregister(connection_id)
        await self.room_manager.leave(connection_id)

    async def handle_raw(self, connection_id: str, raw: Union[str, bytes]) -> None:
        """수신 프레임 하나를 검증하고 처리합니다.

        SignalingError는 송신자에게만 보고되며 (CapacityError는 room-full, 나머지는 error)
        룸 상태에는 영향을 주지 않습니다.
        """
        try:
            message = messages.parse_client_message(raw)
            await self.dispatch(connection_id, message)
        except SignalingError as e:
            logger.warning(f"연결 {connection_id} 메시지 처리 오류 [{e.code}]: {e.message}")
            await self.registry.send(connection_id, e.to_message())

    async def dispatch(self, connection_id: str, message: messages.ClientMessage) -> None:
        message_type = message.type

        if message_type == messages.JOIN:
            await self.room_manager.join(connection_id, message.data.room_id)

        elif message_type == messages.LEAVE:
            await self.room_manager.leave(connection_id)

        elif message_type in messages.DIRECT_RELAY_TYPES:
            self._require_room(connection_id)
            data = message.data.model_dump()
            await self.relay.relay_direct(connection_id, message.data.to, message_type, data)

        elif message_type == messages.SIGNAL:
            self._require_room(connection_id)
            await self.relay.relay_room(connection_id, message_type, message.data)

    def _require_room(self, connection_id: str) -> str:
        room_id = self.room_manager.get_peer_room(connection_id)
        if room_id is None:
            raise ProtocolError("Not in a room", code="not_in_room")
        return room_id

    async def close_all(self) -> None:
        """서버 종료 시 모든 연결을 닫고 룸 테이블을 비웁니다."""
        for connection in self.registry.live_connections():
            close = getattr(connection.channel, "close", None)
            if close is not None:
                try:
                    await close(code=1001)
                except Exception as e:
                    logger.debug(f"연결 {connection.connection_id} 종료 중 오류: {e}")
            self.registry.unregister(connection.connection_id)
        self.room_manager.clear()
        logger.info("모든 시그널링 연결 정리 완료")

    def stats(self) -> Dict[str, int]:
        return {
            "connections": len(self.registry),
            "rooms": len(self.room_manager.rooms),
        }
