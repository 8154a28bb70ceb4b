"""시그널링 메시지 엔벨로프.

모든 WebSocket 프레임은 ``{"type": <종류>, "data": {...}}`` 형태의 JSON 객체입니다.
수신 메시지는 ``type`` 기준 판별 유니온(pydantic)으로 검증된 뒤에만
릴레이 라우터에 전달됩니다. SDP와 ICE candidate 본문은 불투명 값으로 취급하며
내용을 검사하지 않습니다.

수신 메시지 (client → server):
    - join: {roomId}
    - offer / answer: {sdp, to}
    - ice-candidate: {candidate, to}
    - signal: 임의 객체 (마이크/카메라/화면공유 상태)
    - leave: {}

송신 메시지 (server → client):
    - connected, joined, ready, room-full, peer-joined, peer-left, error
    - offer / answer / ice-candidate / signal (``from`` 필드가 추가되어 릴레이됨)
"""
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from .errors import ProtocolError

# 메시지 종류
JOIN = "join"
LEAVE = "leave"
OFFER = "offer"
ANSWER = "answer"
ICE_CANDIDATE = "ice-candidate"
SIGNAL = "signal"
CONNECTED = "connected"
JOINED = "joined"
READY = "ready"
ROOM_FULL = "room-full"
PEER_JOINED = "peer-joined"
PEER_LEFT = "peer-left"
ERROR = "error"

# 특정 피어에게 직접 전달되는 메시지
DIRECT_RELAY_TYPES = frozenset({OFFER, ANSWER, ICE_CANDIDATE})


class JoinData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    room_id: str = Field(alias="roomId")

    @field_validator("room_id")
    @classmethod
    def validate_room_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("roomId required")
        return v


class SessionDescriptionData(BaseModel):
    """offer/answer 본문. sdp는 그대로 전달됩니다."""
    model_config = ConfigDict(extra="allow")

    sdp: Any
    to: str = Field(min_length=1)


class IceCandidateData(BaseModel):
    model_config = ConfigDict(extra="allow")

    candidate: Any
    to: str = Field(min_length=1)


class JoinMessage(BaseModel):
    type: Literal["join"]
    data: JoinData


class OfferMessage(BaseModel):
    type: Literal["offer"]
    data: SessionDescriptionData


class AnswerMessage(BaseModel):
    type: Literal["answer"]
    data: SessionDescriptionData


class IceCandidateMessage(BaseModel):
    type: Literal["ice-candidate"]
    data: IceCandidateData


class SignalMessage(BaseModel):
    type: Literal["signal"]
    data: Dict[str, Any] = Field(default_factory=dict)


class LeaveMessage(BaseModel):
    type: Literal["leave"]
    data: Optional[Dict[str, Any]] = None


ClientMessage = Annotated[
    Union[JoinMessage, OfferMessage, AnswerMessage, IceCandidateMessage, SignalMessage, LeaveMessage],
    Field(discriminator="type"),
]

_client_message_adapter = TypeAdapter(ClientMessage)


def parse_client_message(raw: Union[str, bytes]) -> ClientMessage:
    """수신 프레임을 검증하여 타입이 지정된 메시지로 변환합니다.

    Args:
        raw: WebSocket으로 받은 JSON 텍스트

    Returns:
        ClientMessage: 종류별 pydantic 모델

    Raises:
        ProtocolError: JSON이 아니거나, 알 수 없는 type이거나, 필수 필드가 누락된 경우

    Examples:
        >>> msg = parse_client_message('{"type": "join", "data": {"roomId": "r1"}}')
        >>> msg.data.room_id
        'r1'
    """
    try:
        return _client_message_adapter.validate_json(raw)
    except ValidationError as e:
        errors = e.errors(include_url=False)
        first = errors[0] if errors else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        detail = first.get("msg", "invalid message")
        raise ProtocolError(f"{location}: {detail}" if location else detail) from e


def envelope(message_type: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """송신 메시지 엔벨로프를 만듭니다."""
    return {"type": message_type, "data": data or {}}


def connected_message(connection_id: str) -> Dict[str, Any]:
    return envelope(CONNECTED, {"connectionId": connection_id})


def joined_message(room_id: str, peers: List[str]) -> Dict[str, Any]:
    return envelope(JOINED, {"roomId": room_id, "peers": peers})


def ready_message() -> Dict[str, Any]:
    return envelope(READY)


def peer_joined_message(peer_connection_id: str) -> Dict[str, Any]:
    return envelope(PEER_JOINED, {"peerConnectionId": peer_connection_id})


def peer_left_message(peer_connection_id: str) -> Dict[str, Any]:
    return envelope(PEER_LEFT, {"peerConnectionId": peer_connection_id})
