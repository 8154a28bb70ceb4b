"""릴레이 라우터.

수신한 시그널링 메시지를 목적지 연결(지정 피어 또는 같은 룸의 다른 참가자)로
전달합니다. 라우터는 전달만 하며 본문(sdp, candidate, signal 내용)은 검사하지 않습니다.
"""
import logging
from typing import Any, Dict

from . import messages
from .errors import RoutingMiss
from .registry import ConnectionRegistry
from .room_manager import RoomManager

logger = logging.getLogger(__name__)


class SignalRelay:
    """offer/answer/ice-candidate/signal 메시지를 전달하는 라우터.

    Attributes:
        registry (ConnectionRegistry): 목적지 생존 확인 및 전송
        room_manager (RoomManager): 송신자의 현재 룸 조회
    """

    def __init__(self, registry: ConnectionRegistry, room_manager: RoomManager):
        self.registry = registry
        self.room_manager = room_manager

    async def relay_direct(
        self,
        from_connection_id: str,
        to_connection_id: str,
        message_type: str,
        data: Dict[str, Any]
    ) -> bool:
        """지정된 연결에게 메시지를 ``from`` 을 붙여 전달합니다.

        Args:
            from_connection_id: 송신 연결 ID
            to_connection_id: 목적지 연결 ID
            message_type: offer / answer / ice-candidate
            data: 원본 data (``to`` 필드는 제거됨)

        Returns:
            bool: 전달 여부. 목적지가 이미 떠났으면 False (오류 아님)
        """
        payload = {k: v for k, v in data.items() if k != "to"}
        payload["from"] = from_connection_id

        delivered = await self.registry.send(
            to_connection_id, messages.envelope(message_type, payload)
        )
        if not delivered:
            miss = RoutingMiss(to_connection_id)
            logger.debug(f"{message_type} 드롭 ({from_connection_id} -> {to_connection_id}): {miss.message}")
        return delivered

    async def relay_room(
        self,
        from_connection_id: str,
        message_type: str,
        data: Dict[str, Any]
    ) -> int:
        """송신자의 룸에 있는 다른 모든 참가자에게 메시지를 전달합니다.

        Returns:
            int: 실제로 전달된 연결 수 (룸 정원상 최대 1)
        """
        room_id = self.room_manager.get_peer_room(from_connection_id)
        if room_id is None:
            return 0

        # from은 항상 실제 송신자
        payload = dict(data)
        payload["from"] = from_connection_id

        delivered = 0
        for other_id in self.room_manager.get_other_peers(room_id, from_connection_id):
            if await self.registry.send(other_id, messages.envelope(message_type, payload)):
                delivered += 1
            else:
                logger.debug(f"{message_type} 드롭 ({from_connection_id} -> {other_id}): 연결 없음")
        return delivered
