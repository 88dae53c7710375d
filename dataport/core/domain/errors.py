"""
도메인 오류 정의

SDK가 발생시키는 모든 예외 타입을 정의합니다.
호출자는 DataportError 하나로 SDK 오류 전체를 잡을 수 있습니다.
"""

from typing import Optional


class DataportError(Exception):
    """SDK 기본 오류"""


class TypeValidationError(DataportError):
    """입력 값이 기대한 형태가 아님"""


class JWTVerificationError(DataportError):
    """서명 토큰 검증 또는 키 탐색 실패"""


class FileDecryptionError(DataportError):
    """복호화 이후 무결성(길이/해시) 검증 실패"""


class TokenExpiredError(DataportError):
    """액세스 토큰과 리프레시 토큰이 모두 만료됨"""


class OAuthError(DataportError):
    """토큰 엔드포인트가 OAuth 오류 코드를 반환함"""


class ServerError(DataportError):
    """구조화된 API 오류 응답"""

    def __init__(
        self,
        message: str,
        code: str,
        reference: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.reference = reference
        self.status_code = status_code

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class SDKInvalidError(ServerError):
    """서버가 클라이언트 식별 정보를 거부함"""


class SDKVersionInvalidError(ServerError):
    """서버가 클라이언트 버전을 거부함"""


# 재발급 후 재시도가 필요한 API 오류 코드
AUTHORIZATION_ERROR_CODES = {"InvalidToken"}

# 토큰 엔드포인트에서 OAuthError 로 변환되는 코드
OAUTH_ERROR_CODES = {
    "InvalidJWT",
    "InvalidRequest",
    "InvalidRedirectUri",
    "InvalidGrant",
    "InvalidToken",
    "InvalidTokenType",
}


def server_error_from_payload(
    code: str,
    message: str,
    reference: Optional[str] = None,
    status_code: Optional[int] = None,
) -> ServerError:
    """API 오류 코드에 맞는 ServerError 하위 타입을 생성합니다."""
    if code == "SDKInvalid":
        return SDKInvalidError(message, code, reference, status_code)
    if code == "SDKVersionInvalid":
        return SDKVersionInvalidError(message, code, reference, status_code)
    return ServerError(message, code, reference, status_code)
