"""
로거 어댑터

Core 레이어의 LoggerPort 를 구현하는 Python 표준 로깅 어댑터입니다.
키워드 인자로 넘긴 문맥 값은 메시지 뒤에 key=value 형태로 붙습니다.
"""

import logging
import sys
from typing import Any, Dict, Optional

from dataport.core.domain.ports import LoggerPort


DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class LoggerAdapter(LoggerPort):
    """Python 표준 로깅을 사용하는 로거 어댑터"""

    def __init__(
        self,
        name: str = "dataport",
        level: str = "INFO",
        format_string: Optional[str] = None,
    ):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))

        # 핸들러가 없으면 콘솔 핸들러 추가
        if not self.logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(logging.Formatter(format_string or DEFAULT_FORMAT))
            self.logger.addHandler(handler)

    @staticmethod
    def _with_context(message: str, context: Dict[str, Any]) -> str:
        if not context:
            return message
        rendered = " ".join(f"{key}={value}" for key, value in context.items())
        return f"{message} | {rendered}"

    def info(self, message: str, **kwargs) -> None:
        """정보 로그"""
        self.logger.info(self._with_context(message, kwargs))

    def warning(self, message: str, **kwargs) -> None:
        """경고 로그"""
        self.logger.warning(self._with_context(message, kwargs))

    def error(self, message: str, **kwargs) -> None:
        """오류 로그"""
        self.logger.error(self._with_context(message, kwargs))

    def debug(self, message: str, **kwargs) -> None:
        """디버그 로그"""
        self.logger.debug(self._with_context(message, kwargs))
