"""시그널링 오류 정의.

모든 오류는 단일 연결 또는 단일 룸 범위로 한정되며 프로세스를 종료시키지 않습니다.

Classes:
    SignalingError: 기본 예외 (오류 코드 포함)
    ProtocolError: 잘못된 형식 또는 필수 필드 누락 (송신자에게만 보고)
    CapacityError: 룸 정원 초과 (입장 요청자에게만 room-full로 보고)
    RoutingMiss: 목적지 연결이 이미 사라짐 (DEBUG 로그 후 무시)
    NegotiationFailure: ICE 재시작 후에도 연결 실패 (사용자 계층에 상태로 전달)
"""
from typing import Any, Dict, Optional


class SignalingError(Exception):
    """시그널링 계층 기본 예외."""

    code = "signaling_error"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_message(self) -> Dict[str, Any]:
        """송신자에게 돌려줄 error 메시지로 변환합니다."""
        return {
            "type": "error",
            "data": {"code": self.code, "message": self.message}
        }


class ProtocolError(SignalingError):
    code = "protocol_error"


class CapacityError(SignalingError):
    """룸이 가득 찬 경우."""

    code = "room_full"

    def __init__(self, room_id: str):
        super().__init__(f"Room '{room_id}' is full", code=self.code)
        self.room_id = room_id

    def to_message(self) -> Dict[str, Any]:
        """입장 요청자에게만 보내는 room-full 메시지."""
        return {"type": "room-full", "data": {"roomId": self.room_id}}


# room-full 메시지 이름과 맞춘 별칭
RoomFull = CapacityError


class RoutingMiss(SignalingError):
    """목적지 연결이 더 이상 살아있지 않은 경우."""

    code = "routing_miss"

    def __init__(self, connection_id: str):
        super().__init__(f"Connection '{connection_id}' is not live", code=self.code)
        self.connection_id = connection_id


class NegotiationFailure(SignalingError):
    code = "negotiation_failed"
