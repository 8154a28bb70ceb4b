"""
===========================================
로깅 설정 모듈
===========================================

시그널링 서버의 로깅 설정을 관리합니다.
- 콘솔 출력 포맷
- 파일 출력 설정 (로테이팅)
- 외부 라이브러리 로그 레벨 조정

사용 예시:
    from modules.logging_config import setup_logging

    # 애플리케이션 시작 시 호출
    setup_logging()
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from .config import get_settings

LOG_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)-25s | %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_logging(
    level: Optional[str] = None,
    log_file: Optional[str] = None
) -> None:
    """
    로깅 설정 초기화

    Args:
        level: 로그 레벨 (기본: settings.LOG_LEVEL)
        log_file: 로그 파일 경로 (기본: settings.LOG_FILE_PATH)

    Note:
        이 함수는 애플리케이션 시작 시 한 번만 호출해야 합니다.
    """
    settings = get_settings()
    level = level or settings.LOG_LEVEL
    log_file = log_file or settings.LOG_FILE_PATH

    log_level = getattr(logging, level.upper(), logging.INFO)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    # -----------------------------------------
    # 콘솔 핸들러
    # -----------------------------------------
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # -----------------------------------------
    # 파일 핸들러 (설정된 경우)
    # -----------------------------------------
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        # 10MB마다 새 파일, 최대 5개 백업 유지
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # -----------------------------------------
    # 외부 라이브러리 로그 레벨 조정
    # -----------------------------------------
    logging.getLogger("aioice").setLevel(logging.WARNING)
    logging.getLogger("aiortc").setLevel(logging.WARNING)
    logging.getLogger("websockets").setLevel(logging.WARNING)
    logging.getLogger("uvicorn").setLevel(log_level)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    logging.info(f"로깅 설정 완료: level={level}, file={log_file or 'None'}")
