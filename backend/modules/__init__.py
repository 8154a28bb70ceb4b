"""Backend modules package.

이 패키지는 1:1 WebRTC 통화 시그널링 서버의 핵심 모듈을 포함합니다.

Modules:
    webrtc: 룸 관리, 시그널링 릴레이, 피어 연결 협상
    config: 환경 변수 기반 설정
    logging_config: 로깅 설정
"""

from .config import Settings, get_settings
from .logging_config import setup_logging
from .webrtc import (
    ConnectionRegistry,
    RoomManager,
    SignalRelay,
    SignalingHub,
    IceConfigProvider,
    NegotiationCoordinator,
    SignalingClient,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    "setup_logging",
    # WebRTC
    "ConnectionRegistry",
    "RoomManager",
    "SignalRelay",
    "SignalingHub",
    "IceConfigProvider",
    "NegotiationCoordinator",
    "SignalingClient",
]
