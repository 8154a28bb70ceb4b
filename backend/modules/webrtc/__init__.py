"""WebRTC 시그널링 모듈.

룸 관리, 메시지 릴레이, 피어 연결 협상 기능을 제공합니다.

Classes:
    ConnectionRegistry: 연결 ID → 시그널링 채널 매핑
    RoomManager: 1:1 룸 테이블
    SignalRelay: offer/answer/candidate/signal 릴레이
    SignalingHub: 위 세 컴포넌트를 소유하는 서버 측 진입점
    NegotiationCoordinator: 엔드포인트 측 offer/answer 상태 머신
    AiortcPeerConnection: aiortc 피어 연결 어댑터
    SignalingClient: Python 엔드포인트용 시그널링 클라이언트

Config:
    IceConfigProvider: STUN/TURN 서버 설정 제공
"""

from .errors import (
    SignalingError,
    ProtocolError,
    CapacityError,
    RoomFull,
    RoutingMiss,
    NegotiationFailure,
)
from .registry import Connection, ConnectionRegistry
from .room_manager import RoomManager
from .relay import SignalRelay
from .signaling_hub import SignalingHub
from .config import IceConfig, IceConfigProvider, TurnServer, fetch_ice_config
from .negotiation import NegotiationCoordinator, NegotiationState, TrackChange
from .peer_connection import AiortcPeerConnection
from .client import SignalingClient

__all__ = [
    # Errors
    "SignalingError",
    "ProtocolError",
    "CapacityError",
    "RoomFull",
    "RoutingMiss",
    "NegotiationFailure",
    # Server
    "Connection",
    "ConnectionRegistry",
    "RoomManager",
    "SignalRelay",
    "SignalingHub",
    # Config
    "IceConfig",
    "IceConfigProvider",
    "TurnServer",
    "fetch_ice_config",
    # Endpoint
    "NegotiationCoordinator",
    "NegotiationState",
    "TrackChange",
    "AiortcPeerConnection",
    "SignalingClient",
]
