"""
설정 어댑터

pydantic-settings 기반으로 환경 변수와 .env 파일에서 SDK 설정을 읽습니다.
ENVIRONMENT 값에 따라 환경별 설정 클래스를 선택합니다.
"""

import os
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from dataport.core.domain.ports import ConfigPort


DEFAULT_BASE_URL = "https://api.digi.me/v1.7/"
DEFAULT_ONBOARD_URL = "https://api.digi.me/apps/saas/"


class BaseConfig(BaseSettings, ConfigPort):
    """기본 설정 클래스"""

    model_config = SettingsConfigDict(
        env_prefix="DATAPORT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # 환경 설정
    environment: str = Field(default="development")
    debug: bool = Field(default=False)

    # 플랫폼 설정
    base_url: str = Field(default=DEFAULT_BASE_URL)
    onboard_url: str = Field(default=DEFAULT_ONBOARD_URL)
    http_timeout: float = Field(default=30.0)

    # 계약 설정
    application_id: Optional[str] = Field(default=None)
    contract_id: Optional[str] = Field(default=None)
    private_key_path: Optional[str] = Field(default=None)
    redirect_uri: Optional[str] = Field(default=None)

    # 동기화 설정
    poll_interval: float = Field(default=3.0)
    token_refresh_margin: int = Field(default=10)

    # 재시도 설정
    retry_limit: int = Field(default=2)
    retry_methods: List[str] = Field(
        default_factory=lambda: ["GET", "PUT", "HEAD", "DELETE", "OPTIONS", "TRACE"]
    )
    retry_status_codes: List[int] = Field(
        default_factory=lambda: [408, 413, 429, 500, 502, 503, 504, 521, 522, 524]
    )
    retry_error_codes: List[str] = Field(
        default_factory=lambda: ["ConnectError", "ConnectTimeout", "ReadTimeout", "RemoteProtocolError"]
    )
    retry_backoff_base: float = Field(default=1.0)
    retry_max_delay: float = Field(default=30.0)
    retry_max_retry_after: Optional[float] = Field(default=None)

    # 로깅 설정
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    @field_validator("base_url", "onboard_url")
    @classmethod
    def ensure_trailing_slash(cls, v):
        """상대 경로 결합을 위해 URL 끝에 / 를 붙임"""
        return v if v.endswith("/") else f"{v}/"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """로그 레벨 검증"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"로그 레벨은 {valid_levels} 중 하나여야 합니다")
        return v.upper()

    # ConfigPort 인터페이스 구현
    def get_environment(self) -> str:
        return self.environment

    def is_debug(self) -> bool:
        return self.debug

    def get_base_url(self) -> str:
        return self.base_url

    def get_onboard_url(self) -> str:
        return self.onboard_url

    def get_http_timeout(self) -> float:
        return self.http_timeout

    def get_application_id(self) -> Optional[str]:
        return self.application_id

    def get_contract_id(self) -> Optional[str]:
        return self.contract_id

    def get_private_key_path(self) -> Optional[str]:
        return self.private_key_path

    def get_redirect_uri(self) -> Optional[str]:
        return self.redirect_uri

    def get_poll_interval(self) -> float:
        return self.poll_interval

    def get_token_refresh_margin(self) -> int:
        return self.token_refresh_margin

    def get_retry_config(self) -> dict:
        """재시도 설정 조회"""
        return {
            "limit": self.retry_limit,
            "methods": self.retry_methods,
            "status_codes": self.retry_status_codes,
            "error_codes": self.retry_error_codes,
            "backoff_base": self.retry_backoff_base,
            "max_delay": self.retry_max_delay,
            "max_retry_after": self.retry_max_retry_after,
        }

    def get_log_level(self) -> str:
        return self.log_level

    def get_log_format(self) -> str:
        return self.log_format

    def get_log_config(self) -> dict:
        """로그 설정 조회"""
        return {
            "level": self.log_level,
            "format": self.log_format,
        }


class DevelopmentConfig(BaseConfig):
    """개발 환경 설정"""

    environment: str = "development"
    debug: bool = True
    log_level: str = "DEBUG"


class ProductionConfig(BaseConfig):
    """운영 환경 설정"""

    environment: str = "production"
    debug: bool = False
    log_level: str = "INFO"

    @field_validator("base_url", "onboard_url")
    @classmethod
    def validate_https(cls, v):
        """운영 환경에서는 HTTPS 만 허용"""
        if not v.startswith("https://"):
            raise ValueError("운영 환경에서는 HTTPS URL 이 필요합니다")
        return v if v.endswith("/") else f"{v}/"


class TestingConfig(BaseConfig):
    """테스트 환경 설정"""

    environment: str = "testing"
    debug: bool = True
    log_level: str = "WARNING"

    base_url: str = "https://api.test.local/v1/"
    onboard_url: str = "https://onboard.test.local/"
    poll_interval: float = 0.01
    retry_limit: int = 0


class ConfigAdapter:
    """설정 어댑터 팩토리"""

    @staticmethod
    def create_config() -> BaseConfig:
        """환경에 따른 설정 객체를 생성합니다."""
        environment = os.getenv("ENVIRONMENT", "development").lower()

        if environment == "production":
            return ProductionConfig()
        elif environment == "testing":
            return TestingConfig()
        else:
            return DevelopmentConfig()


# 전역 설정 인스턴스
_config: Optional[BaseConfig] = None


def get_config() -> BaseConfig:
    """전역 설정 인스턴스를 반환합니다."""
    global _config
    if _config is None:
        _config = ConfigAdapter.create_config()
    return _config


def initialize_config() -> BaseConfig:
    """설정을 초기화합니다."""
    global _config
    _config = ConfigAdapter.create_config()
    return _config
