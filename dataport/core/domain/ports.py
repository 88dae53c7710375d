"""
포트 인터페이스 정의

클린 아키텍처의 핵심으로, Core 레이어와 외부 어댑터 간의 계약을 정의합니다.
모든 포트는 추상 기본 클래스(ABC)로 정의되어 구현을 강제합니다.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional, Tuple


class PlatformApiClientPort(ABC):
    """플랫폼 API 클라이언트 포트

    모든 메서드는 재시도 정책을 적용하고, 인식 가능한 API 오류를 ServerError 로 변환합니다.
    """

    @abstractmethod
    async def post_json(
        self,
        path: str,
        bearer_token: str,
        json_body: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """JSON 요청을 POST 하고 JSON 응답을 반환"""
        pass

    @abstractmethod
    async def get_json(
        self,
        path: str,
        bearer_token: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """GET 요청 후 JSON 응답을 반환 (path 는 절대 URL 도 허용)"""
        pass

    @abstractmethod
    async def delete_json(
        self,
        path: str,
        bearer_token: str,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """DELETE 요청 후 JSON 응답을 반환"""
        pass

    @abstractmethod
    async def get_bytes(
        self,
        path: str,
        bearer_token: str,
    ) -> Tuple[bytes, Mapping[str, str]]:
        """GET 요청 후 (본문, 헤더) 를 반환"""
        pass

    @abstractmethod
    async def post_bytes(
        self,
        path: str,
        content: bytes,
        headers: Dict[str, str],
        bearer_token: Optional[str] = None,
    ) -> Any:
        """바이너리 본문을 POST"""
        pass

    @abstractmethod
    async def post_multipart(
        self,
        path: str,
        files: Dict[str, Tuple[str, bytes, str]],
        headers: Dict[str, str],
    ) -> Any:
        """multipart/form-data 요청을 POST"""
        pass


class KeySetFetcherPort(ABC):
    """JWKS 조회 포트"""

    @abstractmethod
    async def fetch(self, jku: str) -> Any:
        """jku URL 의 키 셋 원본 응답을 반환"""
        pass


class CryptoServicePort(ABC):
    """하이브리드 암호화 서비스 포트"""

    @abstractmethod
    def rsa_key_size_bytes(self, private_key_pem: str) -> int:
        """RSA 키 크기(바이트) 조회"""
        pass

    @abstractmethod
    def rsa_decrypt(self, private_key_pem: str, data: bytes) -> bytes:
        """RSA 개인 키로 복호화"""
        pass

    @abstractmethod
    def rsa_encrypt(self, public_key_pem: str, data: bytes) -> bytes:
        """RSA 공개 키로 암호화"""
        pass

    @abstractmethod
    def aes_decrypt(self, key: bytes, iv: bytes, data: bytes) -> bytes:
        """AES-256-CBC 복호화"""
        pass

    @abstractmethod
    def aes_encrypt(self, key: bytes, iv: bytes, data: bytes) -> bytes:
        """AES-256-CBC 암호화"""
        pass


class LoggerPort(ABC):
    """로거 포트"""

    @abstractmethod
    def info(self, message: str, **kwargs) -> None:
        """정보 로그"""
        pass

    @abstractmethod
    def warning(self, message: str, **kwargs) -> None:
        """경고 로그"""
        pass

    @abstractmethod
    def error(self, message: str, **kwargs) -> None:
        """오류 로그"""
        pass

    @abstractmethod
    def debug(self, message: str, **kwargs) -> None:
        """디버그 로그"""
        pass


class ConfigPort(ABC):
    """설정 포트"""

    # 환경 설정
    @abstractmethod
    def get_environment(self) -> str:
        """환경 조회 (development, production, testing)"""
        pass

    @abstractmethod
    def is_debug(self) -> bool:
        """디버그 모드 여부"""
        pass

    # 플랫폼 설정
    @abstractmethod
    def get_base_url(self) -> str:
        """API 베이스 URL 조회"""
        pass

    @abstractmethod
    def get_onboard_url(self) -> str:
        """온보딩 URL 조회"""
        pass

    @abstractmethod
    def get_http_timeout(self) -> float:
        """HTTP 타임아웃(초) 조회"""
        pass

    # 계약 설정
    @abstractmethod
    def get_application_id(self) -> Optional[str]:
        """애플리케이션 ID 조회"""
        pass

    @abstractmethod
    def get_contract_id(self) -> Optional[str]:
        """계약 ID 조회"""
        pass

    @abstractmethod
    def get_private_key_path(self) -> Optional[str]:
        """계약 개인 키 경로 조회"""
        pass

    @abstractmethod
    def get_redirect_uri(self) -> Optional[str]:
        """리다이렉트 URI 조회"""
        pass

    # 동기화 설정
    @abstractmethod
    def get_poll_interval(self) -> float:
        """파일 목록 폴링 간격(초) 조회"""
        pass

    @abstractmethod
    def get_token_refresh_margin(self) -> int:
        """토큰 만료 안전 여유(초) 조회"""
        pass

    # 재시도 설정
    @abstractmethod
    def get_retry_config(self) -> dict:
        """재시도 정책 설정 조회"""
        pass

    # 로깅 설정
    @abstractmethod
    def get_log_level(self) -> str:
        """로그 레벨 조회"""
        pass

    @abstractmethod
    def get_log_format(self) -> str:
        """로그 포맷 조회"""
        pass
