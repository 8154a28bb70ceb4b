"""룸 테이블 모듈.

이 모듈은 1:1 통화 룸(방)과 참가 연결을 관리합니다.
룸 이름 → 참가자 집합(최대 2명)을 추적하며, 입장/퇴장 시 상대에게 알림을 보냅니다.

주요 기능:
    - 룸 자동 생성 (첫 입장 시) / 자동 삭제 (비었을 때)
    - 정원 초과 시 room-full 응답 (기존 참가자에게는 알리지 않음)
    - 두 번째 참가자 입장 시 peer-joined / ready 알림
    - 퇴장 시 남은 참가자에게 peer-left 알림

Architecture:
    - rooms: Dict[str, Set[str]] - 룸 이름 → 참가 연결 ID 집합
    - peer_to_room: Dict[str, str] - 연결 ID → 룸 이름 (빠른 조회용)
    - 룸 단위 직렬화: 룸 이름을 해시해 고른 샤드 락(asyncio.Lock) 하나를 잡고
      입장/퇴장을 처리하므로, 서로 다른 룸은 거의 경합하지 않음

Invariants:
    - 룸 하나에는 최대 2개의 연결
    - 연결 하나는 최대 1개의 룸에 소속
    - 룸이 테이블에 존재 ⇔ 참가자 수 > 0

Examples:
    기본 사용법:
        >>> registry = ConnectionRegistry()
        >>> manager = RoomManager(registry)
        >>> await manager.join("conn-a", "r1")
        []
        >>> manager.get_room_count("r1")
        1
"""
import asyncio
import logging
import zlib
from typing import Dict, List, Optional, Set

from . import messages
from .errors import CapacityError, RoutingMiss
from .registry import ConnectionRegistry

logger = logging.getLogger(__name__)

ROOM_CAPACITY = 2


class RoomManager:
    """룸과 참가 연결을 관리하는 핵심 클래스.

    Attributes:
        registry (ConnectionRegistry): 연결 ID 유효성 확인 및 알림 전송에 사용
        rooms (Dict[str, Set[str]]): 룸 이름 → 참가 연결 ID 집합
        peer_to_room (Dict[str, str]): 연결 ID → 룸 이름 역 매핑
        capacity (int): 룸 정원 (2)

    Thread Safety:
        - asyncio 단일 스레드 환경을 전제로 함
        - 같은 룸에 대한 join/leave는 샤드 락으로 직렬화되므로,
          두 번째 자리를 두고 동시에 들어온 join 중 정확히 하나만 성공
    """

    def __init__(self, registry: ConnectionRegistry, capacity: int = ROOM_CAPACITY, lock_shards: int = 64):
        self.registry = registry
        self.capacity = capacity

        # room_id -> {connection_id}
        self.rooms: Dict[str, Set[str]] = {}

        # connection_id -> room_id (for quick lookup)
        self.peer_to_room: Dict[str, str] = {}

        self._locks = [asyncio.Lock() for _ in range(lock_shards)]

    def _lock_for(self, room_id: str) -> asyncio.Lock:
        return self._locks[zlib.crc32(room_id.encode("utf-8")) % len(self._locks)]

    async def join(self, connection_id: str, room_id: str) -> List[str]:
        """연결을 지정된 룸에 추가합니다.

        룸이 없으면 생성하고, 정원이 차 있으면 CapacityError를 발생시킵니다.
        참가자가 1명에서 2명이 되는 순간 기존 참가자에게 peer-joined를,
        두 참가자 모두에게 ready를 보냅니다.

        Args:
            connection_id (str): 입장하는 연결 ID
            room_id (str): 참가할 룸 이름

        Returns:
            List[str]: 입장 시점에 이미 있던 다른 참가자 (정렬됨)

        Raises:
            CapacityError: 룸 정원 초과. 룸 상태는 바뀌지 않음
            RoutingMiss: 등록되지 않았거나 이미 닫힌 연결인 경우

        Note:
            - 이미 다른 룸에 있으면 먼저 그 룸에서 퇴장 처리됨
            - 같은 룸에 다시 join하면 상태 변화 없이 joined만 재전송
            - 거절된 join은 빈 룸을 만들지 않음
        """
        if not self.registry.is_live(connection_id):
            raise RoutingMiss(connection_id)

        current = self.peer_to_room.get(connection_id)
        if current is not None and current != room_id:
            await self.leave(connection_id)

        async with self._lock_for(room_id):
            occupants = self.rooms.get(room_id, set())

            if connection_id in occupants:
                others = sorted(occupants - {connection_id})
                await self.registry.send(connection_id, messages.joined_message(room_id, others))
                return others

            if len(occupants) >= self.capacity:
                logger.info(f"연결 {connection_id}의 룸 '{room_id}' 입장 거절 (정원 초과)")
                raise CapacityError(room_id)

            if room_id not in self.rooms:
                logger.info(f"Room '{room_id}' created")
            occupants.add(connection_id)
            self.rooms[room_id] = occupants
            self.peer_to_room[connection_id] = room_id
            self.registry.set_room(connection_id, room_id)

            logger.info(f"연결 {connection_id}가 룸 '{room_id}'에 입장함. "
                        f"Room has {len(occupants)} peers")

            others = sorted(occupants - {connection_id})
            await self.registry.send(connection_id, messages.joined_message(room_id, others))

            for other_id in others:
                await self.registry.send(other_id, messages.peer_joined_message(connection_id))

            if len(occupants) == self.capacity:
                for occupant_id in sorted(occupants):
                    await self.registry.send(occupant_id, messages.ready_message())
                logger.info(f"룸 '{room_id}' 준비 완료 (ready 전송)")

        return others

    async def leave(self, connection_id: str) -> Optional[str]:
        """연결을 현재 룸에서 제거합니다.

        룸이 비면 삭제하고, 남은 참가자가 있으면 peer-left를 보냅니다.
        룸에 없는 연결이나 두 번째 호출은 아무 일도 하지 않습니다.

        Args:
            connection_id (str): 퇴장할 연결 ID

        Returns:
            Optional[str]: 연결이 속해 있던 룸 이름. 룸에 없었으면 None
        """
        room_id = self.peer_to_room.get(connection_id)
        if room_id is None:
            return None

        async with self._lock_for(room_id):
            # 락 대기 중 이미 처리된 경우
            if self.peer_to_room.get(connection_id) != room_id:
                return None

            occupants = self.rooms.get(room_id, set())
            occupants.discard(connection_id)
            del self.peer_to_room[connection_id]
            self.registry.set_room(connection_id, None)

            if not occupants:
                self.rooms.pop(room_id, None)
                logger.info(f"Room '{room_id}' deleted (empty)")
            else:
                logger.info(f"연결 {connection_id}가 룸 '{room_id}'에서 퇴장함. "
                            f"Room has {len(occupants)} peers")
                for other_id in sorted(occupants):
                    await self.registry.send(other_id, messages.peer_left_message(connection_id))

        return room_id

    def get_room_peers(self, room_id: str) -> List[str]:
        return sorted(self.rooms.get(room_id, set()))

    def get_other_peers(self, room_id: str, exclude_connection_id: str) -> List[str]:
        """특정 연결을 제외한 룸의 다른 참가자를 반환합니다."""
        return [c for c in self.get_room_peers(room_id) if c != exclude_connection_id]

    def get_peer_room(self, connection_id: str) -> Optional[str]:
        return self.peer_to_room.get(connection_id)

    def get_room_count(self, room_id: str) -> int:
        return len(self.rooms.get(room_id, set()))

    def get_room_list(self) -> List[dict]:
        """모든 룸의 이름과 참가자 수를 반환합니다."""
        return [
            {"room_id": room_id, "peer_count": len(occupants)}
            for room_id, occupants in self.rooms.items()
        ]

    def clear(self) -> None:
        self.rooms.clear()
        self.peer_to_room.clear()
