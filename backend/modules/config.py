"""
===========================================
환경 변수 및 설정 관리 모듈
===========================================

시그널링 서버의 모든 설정을 중앙에서 관리합니다.
- .env 파일 / 환경 변수에서 값 로딩
- 설정값 유효성 검증
- 기본값 제공

사용 예시:
    from modules.config import get_settings
    settings = get_settings()
    print(settings.PORT)
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# 공개 STUN 서버 (TURN 미설정 시에도 항상 제공)
DEFAULT_STUN_SERVERS = [
    "stun:stun.l.google.com:19302",
    "stun:global.stun.twilio.com:3478",
]


class Settings(BaseSettings):
    """
    애플리케이션 설정 클래스

    환경 변수를 Python 객체로 매핑하고 유효성을 검증합니다.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================
    # 서버 설정
    # ==========================================
    HOST: str = Field(default="0.0.0.0", description="서버 호스트")
    PORT: int = Field(default=8080, description="서버 포트")
    CORS_ORIGINS: List[str] = Field(
        default_factory=lambda: ["*"],
        description="CORS 허용 origin 목록"
    )

    # ==========================================
    # ICE 서버 설정
    # ==========================================
    STUN_SERVER_URLS: List[str] = Field(
        default_factory=lambda: list(DEFAULT_STUN_SERVERS),
        description="STUN 서버 URL 목록"
    )
    TURN_SERVER_URL: Optional[str] = Field(default=None, description="TURN 서버 URL")
    TURN_USERNAME: Optional[str] = Field(default=None, description="TURN 사용자명")
    TURN_CREDENTIAL: Optional[str] = Field(default=None, description="TURN 비밀번호")

    # ==========================================
    # 룸 설정
    # ==========================================
    ROOM_CAPACITY: int = Field(default=2, description="룸 최대 인원 (1:1 통화 고정)")
    ROOM_LOCK_SHARDS: int = Field(default=64, description="룸 락 샤드 수")

    # ==========================================
    # 로깅 설정
    # ==========================================
    LOG_LEVEL: str = Field(default="INFO", description="로그 레벨")
    LOG_FILE_PATH: Optional[str] = Field(default=None, description="로그 파일 경로")

    @property
    def has_turn_server(self) -> bool:
        """TURN 서버 설정 완료 여부."""
        return all([self.TURN_SERVER_URL, self.TURN_USERNAME, self.TURN_CREDENTIAL])

    @field_validator('LOG_LEVEL')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """로그 레벨 유효성 검증"""
        allowed = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in allowed:
            raise ValueError(f"LOG_LEVEL은 {allowed} 중 하나여야 합니다.")
        return v.upper()

    @field_validator('ROOM_CAPACITY')
    @classmethod
    def validate_room_capacity(cls, v: int) -> int:
        """1:1 통화만 지원하므로 룸 정원은 2로 고정"""
        if v != 2:
            raise ValueError("ROOM_CAPACITY는 2만 지원합니다.")
        return v

    @field_validator('STUN_SERVER_URLS')
    @classmethod
    def validate_stun_servers(cls, v: List[str]) -> List[str]:
        """STUN은 항상 제공되어야 하므로 비어 있으면 기본 공개 서버 사용"""
        urls = [url.strip() for url in v if url and url.strip()]
        return urls or list(DEFAULT_STUN_SERVERS)

    @field_validator('ROOM_LOCK_SHARDS')
    @classmethod
    def validate_lock_shards(cls, v: int) -> int:
        if v < 1:
            raise ValueError("ROOM_LOCK_SHARDS는 1 이상이어야 합니다.")
        return v


@lru_cache()
def get_settings() -> Settings:
    """
    설정 싱글톤 인스턴스 반환

    설정 재로딩이 필요하면 get_settings.cache_clear()를 호출하세요.
    """
    return Settings()
