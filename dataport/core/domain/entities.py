"""
도메인 엔티티 정의

데이터 이동 플랫폼과 주고받는 핵심 개념을 나타내는 엔티티들을 정의합니다.
모든 엔티티는 Pydantic 모델을 기반으로 하여 타입 안정성을 보장합니다.
와이어 포맷의 camelCase 필드는 alias 로 매핑됩니다.
"""

import time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class SyncState(str, Enum):
    """세션 동기화 상태"""
    PENDING = "pending"
    RUNNING = "running"
    PARTIAL = "partial"
    COMPLETED = "completed"


class Compression(str, Enum):
    """파일 압축 방식"""
    GZIP = "gzip"
    BROTLI = "brotli"


class EngineState(str, Enum):
    """동기화 엔진 상태"""
    IDLE = "idle"
    POLLING = "polling"
    DISPATCHING_FILES = "dispatching_files"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Token(BaseModel):
    """액세스/리프레시 토큰 값"""

    model_config = ConfigDict(frozen=True)

    value: str = Field(..., description="토큰 값")
    expires_on: int = Field(..., description="만료 시각 (epoch 초)")

    def is_valid(self, margin: int = 0, now: Optional[float] = None) -> bool:
        """만료 시각이 margin 초 이후인지 확인"""
        current = time.time() if now is None else now
        return self.expires_on > current + margin


class TokenPair(BaseModel):
    """액세스 토큰과 리프레시 토큰 쌍"""

    model_config = ConfigDict(frozen=True)

    access_token: Token = Field(..., description="액세스 토큰")
    refresh_token: Token = Field(..., description="리프레시 토큰")

    def is_usable(self, margin: int = 0) -> bool:
        """액세스 토큰을 그대로 사용할 수 있는지 확인"""
        return self.access_token.is_valid(margin)

    def is_refreshable(self, margin: int = 0) -> bool:
        """리프레시 토큰으로 갱신 가능한지 확인"""
        return self.refresh_token.is_valid(margin)


class UserAuthorizationPayload(BaseModel):
    """oauth/token 응답 토큰의 검증된 페이로드"""

    model_config = ConfigDict(extra="allow")

    access_token: Token
    refresh_token: Token
    sub: Optional[str] = None


class PreauthorizationPayload(BaseModel):
    """oauth/authorize 응답 토큰의 검증된 페이로드"""

    model_config = ConfigDict(extra="allow")

    preauthorization_code: str


class ReferencePayload(BaseModel):
    """oauth/token/reference 응답 토큰의 검증된 페이로드"""

    model_config = ConfigDict(extra="allow")

    reference_code: str


class Session(BaseModel):
    """데이터 공유/동기화 세션"""

    model_config = ConfigDict(frozen=True)

    key: str = Field(..., description="세션 키")
    expiry: int = Field(..., description="만료 시각 (epoch 밀리초)")


class FileListEntry(BaseModel):
    """파일 목록 항목"""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    name: str = Field(..., description="파일 이름")
    updated_date: int = Field(..., alias="updatedDate", description="마지막 갱신 시각")


class AccountSyncState(BaseModel):
    """계정별 동기화 상태"""

    model_config = ConfigDict(extra="allow")

    state: SyncState
    error: Optional[Dict[str, Any]] = None


class SyncStatus(BaseModel):
    """세션 전체 동기화 상태"""

    model_config = ConfigDict(extra="allow")

    state: SyncState
    details: Optional[Dict[str, AccountSyncState]] = None


class FileListResponse(BaseModel):
    """permission-access/query/{sessionKey} 응답"""

    model_config = ConfigDict(populate_by_name=True)

    status: SyncStatus
    file_list: List[FileListEntry] = Field(default_factory=list, alias="fileList")

    @field_validator("file_list", mode="before")
    @classmethod
    def default_file_list(cls, v):
        """fileList 가 null 이면 빈 목록으로 처리"""
        return v or []


class FileHeaderMetadata(BaseModel):
    """x-metadata 헤더로 전달되는 파일 메타데이터"""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    metadata: Dict[str, Any] = Field(
        ...,
        validation_alias=AliasChoices("metadata", "fileMetadata"),
        description="파일 메타데이터",
    )
    compression: Optional[Compression] = Field(None, description="압축 방식")
    length: Optional[Any] = Field(None, description="복호화된 데이터 길이")
    hash: Optional[Any] = Field(None, description="복호화된 데이터 해시 (hex)")
    hash_algorithm: str = Field("sha512", alias="hashAlgorithm", description="해시 알고리즘")


class ContractDetails(BaseModel):
    """애플리케이션 계약 정보"""

    application_id: str = Field(..., min_length=1, description="애플리케이션 ID")
    contract_id: str = Field(..., min_length=1, description="계약 ID")
    private_key: str = Field(..., min_length=1, description="계약 개인 키 (PEM)")
    redirect_uri: Optional[str] = Field(None, description="리다이렉트 URI")

    @property
    def client_id(self) -> str:
        return f"{self.application_id}_{self.contract_id}"


class AuthorizeResult(BaseModel):
    """get_authorize_url 결과"""

    url: str
    code_verifier: str
    session: Session


class AccountUrlResult(BaseModel):
    """재인증 또는 서비스 온보딩 URL 결과"""

    url: str
    session: Optional[Session] = None


class FileReadResult(BaseModel):
    """복호화 완료된 파일"""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    file_data: bytes
    file_name: str
    file_metadata: Dict[str, Any] = Field(default_factory=dict)
    file_list: Optional[List[FileListEntry]] = None


class FileErrorEvent(BaseModel):
    """파일 처리 실패 이벤트"""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    error: BaseException
    file_name: str
    file_list: List[FileListEntry] = Field(default_factory=list)


class TokenPairRefreshedEvent(BaseModel):
    """토큰 갱신 이벤트"""

    outdated_token_pair: TokenPair
    new_token_pair: TokenPair


class PushedFile(BaseModel):
    """업로드할 파일"""

    file_name: str = Field(..., min_length=1)
    file_data: bytes
    file_descriptor: Dict[str, Any] = Field(..., description="mimeType, accounts, reference, tags 등")


class RetryPolicy(BaseModel):
    """네트워크 호출 재시도 정책

    limit 은 최초 시도 이후의 재시도 횟수입니다.
    calculate_delay 를 주입하면 기본 지수 백오프 대신 사용합니다.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    limit: int = Field(default=2, ge=0, description="최대 재시도 횟수")
    methods: List[str] = Field(
        default_factory=lambda: ["GET", "PUT", "HEAD", "DELETE", "OPTIONS", "TRACE"],
        description="재시도 대상 HTTP 메서드",
    )
    status_codes: List[int] = Field(
        default_factory=lambda: [408, 413, 429, 500, 502, 503, 504, 521, 522, 524],
        description="재시도 대상 상태 코드",
    )
    error_codes: List[str] = Field(
        default_factory=lambda: ["ConnectError", "ConnectTimeout", "ReadTimeout", "RemoteProtocolError"],
        description="재시도 대상 전송 오류 이름",
    )
    backoff_base: float = Field(default=1.0, ge=0, description="지수 백오프 기준(초)")
    max_delay: float = Field(default=30.0, ge=0, description="최대 대기 시간(초)")
    max_retry_after: Optional[float] = Field(None, description="Retry-After 허용 상한(초)")
    calculate_delay: Optional[Callable[[int, Optional[float]], float]] = None

    @field_validator("methods")
    @classmethod
    def normalize_methods(cls, v):
        """메서드 이름을 대문자로 정규화"""
        return [method.upper() for method in v]

    def allows_method(self, method: str) -> bool:
        return method.upper() in self.methods

    def delay_for(self, attempt: int, retry_after: Optional[float] = None) -> float:
        """attempt 번째 재시도 전 대기 시간(초)을 계산합니다."""
        if self.calculate_delay is not None:
            return self.calculate_delay(attempt, retry_after)

        if retry_after is not None:
            return max(0.0, retry_after)

        return min(self.max_delay, self.backoff_base * (2 ** (attempt - 1)))


FileDataHandler = Callable[[FileReadResult], Any]
FileErrorHandler = Callable[[FileErrorEvent], Any]
TokenPairRefreshedHandler = Callable[[TokenPairRefreshedEvent], Any]
