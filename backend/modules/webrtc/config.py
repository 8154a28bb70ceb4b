"""ICE 서버 설정 제공 모듈.

STUN/TURN 서버 디스크립터를 설정에서 읽어 제공합니다. 상태가 없는 조회 전용 컴포넌트입니다.
STUN은 항상 포함되며, TURN은 URL/사용자명/비밀번호가 모두 설정된 경우에만 포함됩니다.

클라이언트 측 ``fetch_ice_config`` 는 서버의 ``GET /ice`` 를 조회하며,
서버에 닿지 않으면 오류 대신 STUN 전용 기본값을 사용합니다.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import aiohttp
from aiortc import RTCConfiguration, RTCIceServer

from ..config import DEFAULT_STUN_SERVERS, Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TurnServer:
    urls: List[str]
    username: str
    credential: str


@dataclass(frozen=True)
class IceConfig:
    """ICE 서버 설정 값.

    Attributes:
        stun_servers (List[str]): STUN 서버 URL 목록
        turn_servers (List[TurnServer]): TURN 서버 목록 (미설정 시 빈 리스트)
    """
    stun_servers: List[str] = field(default_factory=lambda: list(DEFAULT_STUN_SERVERS))
    turn_servers: List[TurnServer] = field(default_factory=list)

    def to_rtc_configuration(self) -> Dict[str, Any]:
        """브라우저 ``RTCPeerConnection`` 설정 형태로 변환합니다.

        Examples:
            >>> IceConfig(stun_servers=["stun:stun.l.google.com:19302"]).to_rtc_configuration()
            {'iceServers': [{'urls': ['stun:stun.l.google.com:19302']}]}
        """
        ice_servers: List[Dict[str, Any]] = []
        if self.stun_servers:
            ice_servers.append({"urls": list(self.stun_servers)})
        for turn in self.turn_servers:
            ice_servers.append({
                "urls": list(turn.urls),
                "username": turn.username,
                "credential": turn.credential
            })
        return {"iceServers": ice_servers}

    def to_aiortc(self) -> RTCConfiguration:
        """aiortc ``RTCConfiguration`` 으로 변환합니다."""
        ice_servers = [RTCIceServer(urls=list(self.stun_servers))] if self.stun_servers else []
        for turn in self.turn_servers:
            ice_servers.append(RTCIceServer(
                urls=list(turn.urls),
                username=turn.username,
                credential=turn.credential
            ))
        return RTCConfiguration(iceServers=ice_servers)

    @classmethod
    def from_rtc_configuration(cls, payload: Dict[str, Any]) -> "IceConfig":
        """``{"iceServers": [...]}`` 응답을 IceConfig로 변환합니다.

        Raises:
            ValueError: 형식이 맞지 않는 경우
        """
        servers = payload.get("iceServers")
        if not isinstance(servers, list):
            raise ValueError("iceServers must be a list")

        stun_servers: List[str] = []
        turn_servers: List[TurnServer] = []
        for server in servers:
            urls = server.get("urls")
            if isinstance(urls, str):
                urls = [urls]
            if not urls:
                continue
            if server.get("username") and server.get("credential"):
                turn_servers.append(TurnServer(
                    urls=urls, username=server["username"], credential=server["credential"]
                ))
            else:
                stun_servers.extend(urls)
        return cls(stun_servers=stun_servers, turn_servers=turn_servers)


class IceConfigProvider:
    """설정 기반 ICE 서버 제공자."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def get_ice_config(self) -> IceConfig:
        settings = self.settings
        turn_servers = []
        if settings.has_turn_server:
            turn_servers.append(TurnServer(
                urls=[settings.TURN_SERVER_URL],
                username=settings.TURN_USERNAME,
                credential=settings.TURN_CREDENTIAL
            ))
            logger.debug("ICE 서버 제공: STUN + TURN")
        else:
            logger.debug("ICE 서버 제공: STUN만 (TURN 미설정)")
        return IceConfig(stun_servers=list(settings.STUN_SERVER_URLS), turn_servers=turn_servers)


async def fetch_ice_config(base_url: str, timeout: float = 5.0) -> IceConfig:
    """시그널링 서버에서 ICE 설정을 받아옵니다.

    Args:
        base_url: 서버 주소 (예: ``http://localhost:8080``)
        timeout: 요청 타임아웃 (초)

    Returns:
        IceConfig: 서버 응답. 서버에 닿지 않거나 응답이 잘못되면 STUN 전용 기본값
    """
    url = f"{base_url.rstrip('/')}/ice"
    try:
        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout)) as session:
            async with session.get(url) as response:
                response.raise_for_status()
                payload = await response.json()
        config = IceConfig.from_rtc_configuration(payload)
        logger.info(f"ICE 설정 로드 완료: STUN {len(config.stun_servers)}개, TURN {len(config.turn_servers)}개")
        return config
    except (aiohttp.ClientError, asyncio.TimeoutError, ValueError, AttributeError) as e:
        logger.warning(f"ICE 설정 조회 실패, STUN 기본값 사용: {e}")
        return IceConfig()
