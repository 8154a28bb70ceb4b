"""Health Check API 라우터.

서비스 상태 확인을 위한 엔드포인트들을 제공합니다.
"""

from fastapi import APIRouter, Request

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health_check():
    """서버 생존 여부 (liveness)."""
    return {"ok": True}


@router.get("/rooms")
async def rooms_health_check(request: Request):
    """현재 활성 연결 수와 룸 수를 반환합니다.

    Returns:
        dict: ``{"ok": True, "connections": int, "rooms": int}``
    """
    hub = request.app.state.hub
    return {"ok": True, **hub.stats()}
