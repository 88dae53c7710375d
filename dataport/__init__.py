"""
데이터 이동 플랫폼 SDK

세션 동기화, 파일 복호화, 서명 요청/응답 검증을 제공하는 비동기 클라이언트입니다.
"""

from dataport.adapters.factory import AdapterFactory, get_adapter_factory, initialize_adapter_factory
from dataport.core.domain.entities import (
    ContractDetails,
    FileErrorEvent,
    FileReadResult,
    PushedFile,
    RetryPolicy,
    Session,
    Token,
    TokenPair,
    TokenPairRefreshedEvent,
)
from dataport.core.domain.errors import (
    DataportError,
    FileDecryptionError,
    JWTVerificationError,
    OAuthError,
    SDKInvalidError,
    SDKVersionInvalidError,
    ServerError,
    TokenExpiredError,
    TypeValidationError,
)
from dataport.version import __version__

__all__ = [
    "AdapterFactory",
    "ContractDetails",
    "DataportError",
    "FileDecryptionError",
    "FileErrorEvent",
    "FileReadResult",
    "JWTVerificationError",
    "OAuthError",
    "PushedFile",
    "RetryPolicy",
    "SDKInvalidError",
    "SDKVersionInvalidError",
    "ServerError",
    "Session",
    "Token",
    "TokenExpiredError",
    "TokenPair",
    "TokenPairRefreshedEvent",
    "TypeValidationError",
    "__version__",
    "get_adapter_factory",
    "initialize_adapter_factory",
]
