"""연결 레지스트리 모듈.

연결 ID → 살아있는 시그널링 채널(WebSocket)과 현재 룸을 매핑합니다.
다른 컴포넌트에 의존하지 않는 말단 컴포넌트입니다.

채널은 ``send_json(dict)`` 코루틴을 제공하는 객체면 무엇이든 됩니다
(FastAPI ``WebSocket``, 테스트용 가짜 채널 등).
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class Connection:
    """활성 시그널링 채널 하나를 나타내는 데이터 클래스.

    Attributes:
        connection_id (str): 채널별 고유 식별자 (UUID)
        channel (Any): ``send_json`` 을 제공하는 채널 객체
        room_id (Optional[str]): 현재 참가 중인 룸 (없으면 None)
        alive (bool): 채널 생존 여부. 닫힌 뒤에는 False
    """
    connection_id: str
    channel: Any
    room_id: Optional[str] = None
    alive: bool = True


class ConnectionRegistry:
    """연결 ID로 채널을 조회하고 메시지를 전송하는 레지스트리.

    채널이 열릴 때 ``register``, 닫힐 때 ``unregister`` 됩니다.
    ``unregister`` 는 await 없이 즉시 완료되므로, 그 이후 같은 연결을 향하는
    전송은 모두 버려집니다 (큐에 쌓이지 않음).
    """

    def __init__(self):
        # connection_id -> Connection
        self.connections: Dict[str, Connection] = {}

    def register(self, connection_id: str, channel: Any) -> Connection:
        connection = Connection(connection_id=connection_id, channel=channel)
        self.connections[connection_id] = connection
        logger.info(f"연결 {connection_id} 등록됨 (총 {len(self.connections)}개)")
        return connection

    def unregister(self, connection_id: str) -> Optional[Connection]:
        """연결을 제거하고 생존 플래그를 내립니다.

        Returns:
            Optional[Connection]: 제거된 연결. 등록되지 않은 ID면 None
        """
        connection = self.connections.pop(connection_id, None)
        if connection is None:
            return None
        connection.alive = False
        logger.info(f"연결 {connection_id} 해제됨 (총 {len(self.connections)}개)")
        return connection

    def get(self, connection_id: str) -> Optional[Connection]:
        connection = self.connections.get(connection_id)
        if connection and connection.alive:
            return connection
        return None

    def is_live(self, connection_id: str) -> bool:
        return self.get(connection_id) is not None

    def set_room(self, connection_id: str, room_id: Optional[str]) -> None:
        connection = self.connections.get(connection_id)
        if connection:
            connection.room_id = room_id

    def live_connections(self) -> List[Connection]:
        return [c for c in self.connections.values() if c.alive]

    async def send(self, connection_id: str, message: dict) -> bool:
        """살아있는 연결에 메시지를 전송합니다.

        Args:
            connection_id: 목적지 연결 ID
            message: 전송할 엔벨로프

        Returns:
            bool: 전송 성공 여부. 목적지가 없거나 전송 중 오류가 나면 False

        Note:
            - 전송 실패 시 연결을 죽은 것으로 표시하고, 정리는 해당 연결의
              수신 루프가 종료될 때 수행됨
        """
        connection = self.get(connection_id)
        if connection is None:
            return False
        try:
            await connection.channel.send_json(message)
            return True
        except Exception as e:
            logger.error(f"연결 {connection_id}에 전송 중 오류: {e}")
            connection.alive = False
            return False

    def __len__(self) -> int:
        return len(self.connections)
