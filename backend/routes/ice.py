"""ICE 서버 설정 API 라우터.

클라이언트가 STUN/TURN 설정을 하드코딩하지 않고 서버에서 받아가도록 합니다.
"""

from fastapi import APIRouter, Request

router = APIRouter(tags=["ice"])


@router.get("/ice")
async def get_ice_servers(request: Request):
    """ICE 서버 설정을 반환합니다.

    Returns:
        dict: ``{"iceServers": [...]}``. STUN은 항상, TURN은 설정된 경우에만 포함

    Examples:
        TURN 설정 시:
            {
                "iceServers": [
                    {"urls": ["stun:stun.l.google.com:19302", "stun:global.stun.twilio.com:3478"]},
                    {"urls": ["turn:turn.example.com:3478"], "username": "user", "credential": "pass"}
                ]
            }
    """
    provider = request.app.state.ice_provider
    return provider.get_ice_config().to_rtc_configuration()
