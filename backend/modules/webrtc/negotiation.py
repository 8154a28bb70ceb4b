"""협상 코디네이터 (엔드포인트 측 상태 머신).

양쪽 엔드포인트가 각자 하나씩 가지며, offer/answer 교환을 언제 (재)시작할지 결정하고
동시에 두 개의 offer가 진행되지 않도록 직렬화합니다.

상태:
    Idle → OfferPending → Stable          (상대 입장 / 화면공유 전환 / ICE 재시작)
    Idle|OfferPending → AnswerPending → Stable   (상대 offer 수신)
    AnswerPending → Idle                  (offer 적용 또는 answer 생성 실패)
    any → Failed                          (전송 계층이 연결 실패 보고)
    any → Closed                          (퇴장/정리, 종단 상태)

Collision rule:
    OfferPending 상태에서 상대 offer를 받으면, 자신의 연결 ID가 더 작을 때만
    자신의 offer를 롤백하고 answer를 보냅니다. 더 크면 상대 offer를 무시하고
    자신의 answer를 기다립니다. 양쪽이 같은 규칙을 적용하므로 정확히 한쪽만 answerer가 됩니다.

Failure policy:
    연결 실패가 보고되면 ICE 재시작을 정확히 한 번 시도합니다. 재시도까지 실패하면
    Failed에 머물며 상태 콜백으로 사용자 계층에 알립니다. ``connected`` 가 보고되면
    재시작 기회가 다시 한 번 생깁니다.

Candidate buffering:
    원격 description이 적용되기 전에 도착한 ICE candidate는 버퍼에 보관했다가
    description 적용 직후 순서대로 적용합니다. Failed/Closed 전환 시 버퍼는 비워집니다.
"""
import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

from . import messages
from .errors import NegotiationFailure

logger = logging.getLogger(__name__)

SendFunc = Callable[[str, Dict[str, Any]], Awaitable[None]]
StatusFunc = Callable[[str], Awaitable[None]]

MAX_ICE_RESTARTS = 1


class NegotiationState(str, Enum):
    IDLE = "idle"
    OFFER_PENDING = "offer-pending"
    ANSWER_PENDING = "answer-pending"
    STABLE = "stable"
    FAILED = "failed"
    CLOSED = "closed"


class TrackChange(str, Enum):
    """로컬 미디어 트랙 변경 종류."""
    CAMERA_SWITCH = "camera-switch"
    SCREEN_SHARE_START = "screen-share-start"
    SCREEN_SHARE_STOP = "screen-share-stop"


# 카메라 전환은 같은 sender에서 트랙만 교체하므로 재협상하지 않음
RENEGOTIATING_CHANGES = frozenset({TrackChange.SCREEN_SHARE_START, TrackChange.SCREEN_SHARE_STOP})


class PeerConnection(Protocol):
    """코디네이터가 구동하는 피어 연결 인터페이스.

    description은 ``{"type": "offer"|"answer", "sdp": str}`` 형태의 dict입니다.
    """

    async def create_offer(self, ice_restart: bool = False) -> Dict[str, Any]:
        """offer를 만들어 로컬 description으로 적용한 뒤 반환합니다."""

    async def create_answer(self) -> Dict[str, Any]:
        """answer를 만들어 로컬 description으로 적용한 뒤 반환합니다."""

    async def set_remote_description(self, description: Dict[str, Any]) -> None: ...

    async def add_ice_candidate(self, candidate: Any) -> None: ...

    async def rollback(self) -> None:
        """적용된 로컬 offer를 취소합니다."""

    async def reset(self) -> None:
        """다음 상대를 위해 전송 계층을 새로 만듭니다."""

    async def replace_track(self, track: Any) -> Optional[Any]:
        """같은 종류의 송신 트랙을 교체하고 이전 트랙을 반환합니다."""

    async def close(self) -> None: ...


class NegotiationCoordinator:
    """피어 한 쌍에 대한 offer/answer 협상 상태 머신.

    모든 전환은 ``asyncio.Lock`` 하나로 직렬화됩니다.

    Attributes:
        local_id (Optional[str]): 자신의 연결 ID (충돌 규칙에 사용)
        peer_id (Optional[str]): 현재 상대 연결 ID
        state (NegotiationState): 현재 협상 상태
        role (Optional[str]): 마지막 협상에서의 역할 ("offerer" / "answerer")
        failure (Optional[NegotiationFailure]): 종단 실패 시 원인

    Examples:
        >>> coordinator = NegotiationCoordinator("conn-a", pc, send)
        >>> await coordinator.on_peer_joined("conn-b")   # offer 전송
        >>> coordinator.state
        <NegotiationState.OFFER_PENDING: 'offer-pending'>
        >>> await coordinator.handle_answer("conn-b", answer_sdp)
        >>> coordinator.state
        <NegotiationState.STABLE: 'stable'>
    """

    def __init__(
        self,
        local_id: Optional[str],
        peer_connection: PeerConnection,
        send: SendFunc,
        on_status: Optional[StatusFunc] = None,
        max_ice_restarts: int = MAX_ICE_RESTARTS
    ):
        self.local_id = local_id
        self.peer_id: Optional[str] = None
        self.pc = peer_connection
        self.send = send
        self.on_status = on_status
        self.max_ice_restarts = max_ice_restarts

        self.state = NegotiationState.IDLE
        self.role: Optional[str] = None
        self.failure: Optional[NegotiationFailure] = None

        self._lock = asyncio.Lock()
        self._pending_candidates: List[Any] = []
        self._remote_description_set = False
        self._renegotiation_requested = False
        self._restart_requested = False
        self._restart_attempts = 0

    # ------------------------------------------------------------------
    # 상태 전환
    # ------------------------------------------------------------------

    def _set_state(self, new_state: NegotiationState) -> bool:
        if self.state is NegotiationState.CLOSED:
            return False
        if self.state is not new_state:
            logger.info(f"[협상] {self.local_id} 상태: {self.state.value} -> {new_state.value}")
            self.state = new_state
        return True

    @property
    def closed(self) -> bool:
        return self.state is NegotiationState.CLOSED

    @property
    def pending_candidate_count(self) -> int:
        return len(self._pending_candidates)

    async def _notify(self, status: str) -> None:
        if self.on_status:
            await self.on_status(status)

    def _is_answerer_on_collision(self) -> bool:
        """offer 충돌 시 자신이 answer 쪽인지 여부 (연결 ID가 더 작은 쪽)."""
        if self.local_id is None or self.peer_id is None:
            return True
        return self.local_id < self.peer_id

    # ------------------------------------------------------------------
    # offer 측
    # ------------------------------------------------------------------

    async def _request_offer(self, ice_restart: bool = False) -> bool:
        if self.closed or self.peer_id is None:
            return False

        if self.state in (NegotiationState.OFFER_PENDING, NegotiationState.ANSWER_PENDING):
            # 진행 중인 offer가 끝난 뒤 다시 시도
            self._renegotiation_requested = True
            self._restart_requested = self._restart_requested or ice_restart
            logger.debug(f"[협상] {self.local_id} offer 진행 중, 재협상 요청 보류")
            return False

        if ice_restart:
            self._remote_description_set = False

        description = await self.pc.create_offer(ice_restart=ice_restart)
        if not self._set_state(NegotiationState.OFFER_PENDING):
            return False
        self.role = "offerer"
        await self.send(messages.OFFER, {"sdp": description, "to": self.peer_id})
        logger.info(f"[협상] {self.local_id} -> {self.peer_id} offer 전송 (ice_restart={ice_restart})")
        return True

    async def _replay_deferred(self) -> None:
        if not self._renegotiation_requested:
            return
        ice_restart = self._restart_requested
        self._renegotiation_requested = False
        self._restart_requested = False
        await self._request_offer(ice_restart=ice_restart)

    async def negotiate(self, ice_restart: bool = False) -> bool:
        """offer/answer 교환을 시작합니다.

        이미 offer가 진행 중이면 요청을 보류했다가 answer 적용 후 다시 시작합니다.

        Returns:
            bool: offer를 실제로 전송했는지 여부
        """
        async with self._lock:
            return await self._request_offer(ice_restart=ice_restart)

    async def on_peer_joined(self, peer_id: str) -> None:
        """상대 입장 알림. 알림을 받은 쪽(기존 참가자)이 offer를 시작합니다."""
        async with self._lock:
            if self.closed:
                return
            self.peer_id = peer_id
            logger.info(f"[협상] {self.local_id} 상대 입장: {peer_id}")
            await self._request_offer()

    async def on_ready(self) -> None:
        logger.info(f"[협상] {self.local_id} 룸 준비 완료")

    async def on_track_change(self, change: TrackChange) -> bool:
        """로컬 트랙 교체 후 호출됩니다. 화면공유 시작/종료만 재협상합니다."""
        if change not in RENEGOTIATING_CHANGES:
            logger.debug(f"[협상] {self.local_id} {change.value}: 재협상 불필요")
            return False
        return await self.negotiate()

    async def handle_answer(self, from_id: str, description: Dict[str, Any]) -> None:
        async with self._lock:
            if self.state is not NegotiationState.OFFER_PENDING or from_id != self.peer_id:
                logger.debug(f"[협상] {self.local_id} 예상하지 않은 answer 무시 (from={from_id}, state={self.state.value})")
                return

            await self.pc.set_remote_description(description)
            self._remote_description_set = True
            await self._flush_candidates()
            if not self._set_state(NegotiationState.STABLE):
                return
            self.role = "offerer"
            logger.info(f"[협상] {self.local_id} answer 적용 완료 (from={from_id})")
            await self._replay_deferred()

    # ------------------------------------------------------------------
    # answer 측
    # ------------------------------------------------------------------

    async def handle_offer(self, from_id: str, description: Dict[str, Any]) -> None:
        async with self._lock:
            if self.closed:
                return

            if self.peer_id is None:
                self.peer_id = from_id
            elif from_id != self.peer_id:
                logger.warning(f"[협상] {self.local_id} 상대 변경: {self.peer_id} -> {from_id}")
                self.peer_id = from_id

            if self.state is NegotiationState.OFFER_PENDING:
                if not self._is_answerer_on_collision():
                    logger.info(f"[협상] {self.local_id} offer 충돌: 상대 offer 무시, 자신의 answer 대기")
                    return
                logger.info(f"[협상] {self.local_id} offer 충돌: 자신의 offer 롤백 후 answer")
                await self.pc.rollback()

            self._set_state(NegotiationState.ANSWER_PENDING)
            try:
                await self.pc.set_remote_description(description)
                self._remote_description_set = True
                await self._flush_candidates()
                answer = await self.pc.create_answer()
            except Exception:
                await self._abort_answer(from_id)
                raise

            if self.closed:
                return
            await self.send(messages.ANSWER, {"sdp": answer, "to": from_id})
            self._set_state(NegotiationState.STABLE)
            self.role = "answerer"
            logger.info(f"[협상] {self.local_id} -> {from_id} answer 전송")
            await self._replay_deferred()

    async def _abort_answer(self, from_id: str) -> None:
        """offer 적용/answer 생성 실패 시 Idle로 되돌려 다음 협상이 가능하게 합니다."""
        logger.error(f"[협상] {self.local_id} {from_id}의 offer 처리 실패, idle로 복귀")
        self._remote_description_set = False
        self._pending_candidates = []
        self._renegotiation_requested = False
        self._restart_requested = False
        try:
            await self.pc.rollback()
        except Exception as e:
            logger.error(f"[협상] {self.local_id} 롤백 실패: {e}")
        self._set_state(NegotiationState.IDLE)

    # ------------------------------------------------------------------
    # ICE candidate
    # ------------------------------------------------------------------

    async def handle_candidate(self, from_id: str, candidate: Any) -> None:
        async with self._lock:
            if self.state in (NegotiationState.CLOSED, NegotiationState.FAILED):
                logger.debug(f"[협상] {self.local_id} {self.state.value} 상태, candidate 드롭")
                return
            if candidate is None:
                return
            if not self._remote_description_set:
                self._pending_candidates.append(candidate)
                logger.debug(f"[협상] {self.local_id} candidate 보류 ({len(self._pending_candidates)}개)")
                return
            await self._apply_candidate(candidate)

    async def _apply_candidate(self, candidate: Any) -> None:
        try:
            await self.pc.add_ice_candidate(candidate)
        except Exception as e:
            logger.error(f"[협상] {self.local_id} ICE candidate 추가 실패: {e}")

    async def _flush_candidates(self) -> None:
        pending, self._pending_candidates = self._pending_candidates, []
        for candidate in pending:
            await self._apply_candidate(candidate)
        if pending:
            logger.debug(f"[협상] {self.local_id} 보류된 candidate {len(pending)}개 적용")

    # ------------------------------------------------------------------
    # 연결 상태 / 실패 복구
    # ------------------------------------------------------------------

    async def handle_connection_state(self, connection_state: str) -> None:
        """전송 계층의 연결 상태 변경을 처리합니다.

        Args:
            connection_state: new / connecting / connected / disconnected / failed / closed
        """
        async with self._lock:
            if self.closed:
                return

            if connection_state == "connected":
                self._restart_attempts = 0
                self.failure = None
                if self.state is NegotiationState.FAILED:
                    self._set_state(NegotiationState.STABLE)
                await self._notify("connected")

            elif connection_state == "failed":
                await self._on_failure()

            else:
                await self._notify(connection_state)

    async def _on_failure(self) -> None:
        dropped = len(self._pending_candidates)
        self._pending_candidates = []
        self._renegotiation_requested = False
        self._restart_requested = False
        self._set_state(NegotiationState.FAILED)
        if dropped:
            logger.debug(f"[협상] {self.local_id} 실패 전환으로 candidate {dropped}개 폐기")

        if self._restart_attempts < self.max_ice_restarts and self.peer_id is not None:
            self._restart_attempts += 1
            logger.warning(f"[협상] {self.local_id} 연결 실패 -> ICE 재시작 시도 "
                           f"({self._restart_attempts}/{self.max_ice_restarts})")
            await self._notify("restarting")
            await self._request_offer(ice_restart=True)
            return

        self.failure = NegotiationFailure(f"Connection to {self.peer_id} failed after ICE restart")
        logger.error(f"[협상] {self.local_id} 연결 실패 (재시도 소진)")
        await self._notify("failed")

    # ------------------------------------------------------------------
    # 상대 퇴장 / 종료
    # ------------------------------------------------------------------

    async def on_peer_left(self, peer_id: str) -> None:
        """상대 퇴장. Idle로 돌아가 다음 상대를 기다립니다."""
        async with self._lock:
            if self.closed:
                return
            if self.peer_id is not None and peer_id != self.peer_id:
                return
            self.peer_id = None
            self.role = None
            self.failure = None
            self._pending_candidates = []
            self._remote_description_set = False
            self._renegotiation_requested = False
            self._restart_requested = False
            self._restart_attempts = 0
            await self.pc.reset()
            self._set_state(NegotiationState.IDLE)
            logger.info(f"[협상] {self.local_id} 상대 퇴장 ({peer_id}), 대기 중")
            await self._notify("waiting")

    async def close(self) -> None:
        """종단 상태로 전환하고 피어 연결과 로컬 트랙을 해제합니다. 여러 번 호출해도 안전합니다."""
        if self.closed:
            return
        logger.info(f"[협상] {self.local_id} 상태: {self.state.value} -> closed")
        self.state = NegotiationState.CLOSED
        self._pending_candidates = []
        self._renegotiation_requested = False
        await self.pc.close()
        await self._notify("closed")
