"""FastAPI WebRTC Signaling Server (1:1 rooms).

이 모듈은 브라우저 간 1:1 음성/영상 통화를 위한 시그널링 서버를 제공합니다.
서버는 session description과 ICE candidate를 중계할 뿐이며,
미디어는 협상이 끝난 뒤 피어 간에 직접 흐릅니다.

주요 기능:
    - 룸 입장 관리 (룸당 정확히 2명)
    - offer/answer/ice-candidate 릴레이
    - 보조 signal 릴레이 (마이크/카메라/화면공유 상태)
    - 퇴장/연결 끊김 시 상대에게 peer-left 알림
    - ICE 서버 설정 제공 (GET /ice)

Architecture:
    - SignalingHub: 연결 레지스트리 + 룸 테이블 + 릴레이 라우터 (app.state.hub)
    - IceConfigProvider: STUN/TURN 설정 (app.state.ice_provider)
    - WebSocket: 실시간 시그널링 메시지 전송
"""
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from modules import IceConfigProvider, Settings, SignalingHub, get_settings, setup_logging
from routes import health_router, ice_router, signaling_router

# 환경변수 로드 (config/.env)
load_dotenv(Path(__file__).parent / "config" / ".env")

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI 앱의 생명주기를 관리하는 컨텍스트 매니저.

    종료 시 모든 시그널링 연결을 닫고 룸 테이블을 비웁니다.
    """
    settings = app.state.settings
    setup_logging(level=settings.LOG_LEVEL, log_file=settings.LOG_FILE_PATH)
    logger.info("WebRTC 시그널링 서버 시작 중...")

    yield

    logger.info("서버 종료 중...")
    await app.state.hub.close_all()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """시그널링 서버 애플리케이션을 생성합니다.

    Args:
        settings: 설정 객체 (기본: 환경 변수에서 로딩)

    Returns:
        FastAPI: 라우터와 SignalingHub가 연결된 애플리케이션
    """
    settings = settings or get_settings()

    app = FastAPI(title="WebRTC 1:1 Signaling Server", lifespan=lifespan)
    app.state.settings = settings
    app.state.hub = SignalingHub(
        capacity=settings.ROOM_CAPACITY,
        lock_shards=settings.ROOM_LOCK_SHARDS
    )
    app.state.ice_provider = IceConfigProvider(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(ice_router)
    app.include_router(signaling_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_level=settings.LOG_LEVEL.lower())
