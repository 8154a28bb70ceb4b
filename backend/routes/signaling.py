"""WebRTC 시그널링 WebSocket 라우터.

연결마다 수신 루프 하나를 돌리며, 모든 처리는 ``app.state.hub`` 의 SignalingHub에 위임합니다.
연결이 끊기면(명시적 leave가 없더라도) 룸 정리와 상대 알림이 즉시 수행됩니다.
"""

import logging
import uuid

from fastapi import APIRouter, WebSocket

from modules.webrtc import SignalingHub

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """WebRTC 시그널링을 위한 WebSocket 엔드포인트.

    처리하는 메시지 타입:
        - join: 룸 입장 (roomId)
        - offer / answer / ice-candidate: 지정 피어에게 릴레이 (to)
        - signal: 같은 룸의 상대에게 릴레이
        - leave: 현재 룸에서 퇴장

    Args:
        websocket: FastAPI WebSocket 연결 객체
    """
    hub: SignalingHub = websocket.app.state.hub

    await websocket.accept()

    connection_id = str(uuid.uuid4())
    logger.info(f"연결 {connection_id} 수락됨")

    await hub.connect(connection_id, websocket)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.info(f"연결 {connection_id} 종료됨")
                break

            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes") or b""
            await hub.handle_raw(connection_id, raw)

    except Exception as e:
        logger.error(f"연결 {connection_id} 처리 중 오류: {e}", exc_info=True)

    finally:
        await hub.disconnect(connection_id)
