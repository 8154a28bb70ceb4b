"""aiortc 기반 피어 연결 어댑터.

``NegotiationCoordinator`` 가 구동하는 ``PeerConnection`` 인터페이스를
aiortc ``RTCPeerConnection`` 위에 구현합니다.

Note:
    - aiortc는 ICE candidate를 trickle하지 않고 로컬 SDP 안에 모두 포함시킴
      (setLocalDescription이 gathering 완료까지 대기)
    - aiortc에는 SDP rollback과 ICE 자격증명 재발급(restartIce)이 없으므로,
      rollback / ICE 재시작 / reset 시 같은 로컬 트랙으로 RTCPeerConnection을 새로 만듦
    - 상대가 ICE 재시작으로 새 연결을 만들면 offer의 ice-ufrag가 바뀌므로,
      ufrag가 바뀐 offer나 닫힌 연결로 받은 offer도 새 RTCPeerConnection에 적용
    - 로컬에서 닫지 않은 연결의 closed 보고는 disconnected로 전달 (다음 offer에서 재생성)
    - 원격(브라우저) candidate는 ``candidate_from_sdp`` 로 변환해 추가

See Also:
    negotiation.py: 협상 상태 머신
    aiortc Documentation: https://aiortc.readthedocs.io/
"""
import logging
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional

from aiortc import MediaStreamTrack, RTCPeerConnection, RTCSessionDescription
from aiortc.sdp import candidate_from_sdp

from .config import IceConfig

logger = logging.getLogger(__name__)

MEDIA_KINDS = ("audio", "video")

ICE_UFRAG_PATTERN = re.compile(r"^a=ice-ufrag:(\S+)", re.MULTILINE)


def ice_ufrag(sdp: Optional[str]) -> Optional[str]:
    """SDP의 첫 번째 ice-ufrag 값 (없으면 None)."""
    match = ICE_UFRAG_PATTERN.search(sdp or "")
    return match.group(1) if match else None


class AiortcPeerConnection:
    """aiortc RTCPeerConnection 래퍼.

    Attributes:
        ice_config (IceConfig): STUN/TURN 설정
        local_tracks (List[MediaStreamTrack]): 송신 중인 로컬 트랙
        pc (RTCPeerConnection): 현재 사용 중인 aiortc 연결
        on_connection_state: 연결 상태 변경 콜백 (현재 pc의 이벤트만 전달)
        on_track: 원격 트랙 수신 콜백

    Examples:
        >>> pc = AiortcPeerConnection(ice_config, local_tracks=[audio_track])
        >>> offer = await pc.create_offer()
        >>> await pc.set_remote_description(answer)
        >>> await pc.close()
    """

    def __init__(self, ice_config: Optional[IceConfig] = None, local_tracks: Optional[List[MediaStreamTrack]] = None):
        self.ice_config = ice_config or IceConfig()
        self.local_tracks: List[MediaStreamTrack] = list(local_tracks or [])
        self.on_connection_state: Optional[Callable[[str], Awaitable[None]]] = None
        self.on_track: Optional[Callable[[MediaStreamTrack], None]] = None
        self._closed = False
        self.pc = self._create_peer_connection()

    def _create_peer_connection(self) -> RTCPeerConnection:
        pc = RTCPeerConnection(configuration=self.ice_config.to_aiortc())

        for track in self.local_tracks:
            pc.addTrack(track)

        # 보낼 트랙이 없는 종류도 수신은 가능하도록
        sending_kinds = {track.kind for track in self.local_tracks}
        for kind in MEDIA_KINDS:
            if kind not in sending_kinds:
                pc.addTransceiver(kind, direction="recvonly")

        @pc.on("connectionstatechange")
        async def on_connection_state_change():
            state = pc.connectionState
            logger.info(f"[WebRTC] 연결 상태: {state}")
            if pc is not self.pc or not self.on_connection_state:
                return
            if state == "closed" and not self._closed:
                logger.warning("[WebRTC] 상대 측에서 연결 종료됨")
                state = "disconnected"
            await self.on_connection_state(state)

        @pc.on("track")
        def on_track(track: MediaStreamTrack):
            logger.info(f"[WebRTC] 원격 {track.kind} 트랙 수신")
            if pc is self.pc and self.on_track:
                self.on_track(track)

        return pc

    async def _recreate(self) -> None:
        old = self.pc
        self.pc = self._create_peer_connection()
        await old.close()
        logger.info("[WebRTC] RTCPeerConnection 재생성")

    @staticmethod
    def _description_dict(description: RTCSessionDescription) -> Dict[str, Any]:
        return {"type": description.type, "sdp": description.sdp}

    def _is_stale(self) -> bool:
        return self.pc.connectionState == "closed" or self.pc.signalingState == "closed"

    async def create_offer(self, ice_restart: bool = False) -> Dict[str, Any]:
        if ice_restart or self._is_stale():
            await self._recreate()
        offer = await self.pc.createOffer()
        await self.pc.setLocalDescription(offer)
        return self._description_dict(self.pc.localDescription)

    async def create_answer(self) -> Dict[str, Any]:
        answer = await self.pc.createAnswer()
        await self.pc.setLocalDescription(answer)
        return self._description_dict(self.pc.localDescription)

    async def set_remote_description(self, description: Dict[str, Any]) -> None:
        """원격 description을 적용합니다.

        상대가 ICE 재시작으로 보낸 offer(ice-ufrag 변경)는 기존 전송 계층에 적용할 수 없으므로
        새 RTCPeerConnection을 만든 뒤 적용합니다.
        """
        if description["type"] == "offer" and self._needs_new_transport(description["sdp"]):
            await self._recreate()
        await self.pc.setRemoteDescription(
            RTCSessionDescription(sdp=description["sdp"], type=description["type"])
        )

    def _needs_new_transport(self, offer_sdp: str) -> bool:
        if self._is_stale():
            return True
        current = self.pc.remoteDescription
        if current is None:
            return False
        return ice_ufrag(current.sdp) != ice_ufrag(offer_sdp)

    async def add_ice_candidate(self, candidate: Any) -> None:
        """브라우저 형식 candidate를 추가합니다.

        Args:
            candidate: ``{"candidate": "candidate:...", "sdpMid": "0", "sdpMLineIndex": 0}``
                또는 candidate 문자열
        """
        if isinstance(candidate, dict):
            candidate_str = candidate.get("candidate", "")
            sdp_mid = candidate.get("sdpMid")
            sdp_mline_index = candidate.get("sdpMLineIndex")
        else:
            candidate_str = str(candidate)
            sdp_mid = None
            sdp_mline_index = None

        # end-of-candidates
        if not candidate_str:
            return

        if candidate_str.startswith("candidate:"):
            candidate_str = candidate_str[10:]

        ice_candidate = candidate_from_sdp(candidate_str)
        ice_candidate.sdpMid = sdp_mid
        ice_candidate.sdpMLineIndex = sdp_mline_index
        await self.pc.addIceCandidate(ice_candidate)

    async def rollback(self) -> None:
        await self._recreate()

    async def reset(self) -> None:
        await self._recreate()

    async def replace_track(self, track: MediaStreamTrack) -> Optional[MediaStreamTrack]:
        """같은 종류의 송신 트랙을 교체합니다.

        Returns:
            Optional[MediaStreamTrack]: 교체되어 빠진 이전 트랙 (없으면 None).
                이전 트랙 정지는 호출자가 결정함
        """
        previous = next((t for t in self.local_tracks if t.kind == track.kind), None)
        if previous is not None:
            self.local_tracks[self.local_tracks.index(previous)] = track
        else:
            self.local_tracks.append(track)

        for sender in self.pc.getSenders():
            if sender.track is not None and sender.track.kind == track.kind:
                sender.replaceTrack(track)
                break
        else:
            self.pc.addTrack(track)

        logger.info(f"[WebRTC] {track.kind} 송신 트랙 교체")
        return previous

    async def close(self) -> None:
        """연결을 닫고 모든 로컬 트랙을 정지합니다."""
        if self._closed:
            return
        self._closed = True
        await self.pc.close()
        for track in self.local_tracks:
            track.stop()
        self.local_tracks = []
        logger.info("[WebRTC] 피어 연결 종료 및 로컬 트랙 해제")
