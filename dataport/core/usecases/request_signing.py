"""
요청 서명 유즈케이스

모든 인증 요청에 붙는 PS512 서명 토큰을 생성합니다.
- 클레임에 client_id, nonce, timestamp 추가
- PKCE 코드 검증자/챌린지 생성
"""

import base64
import hashlib
import secrets
import string
import time
from typing import Any, Dict

import jwt

from ..domain.entities import ContractDetails
from ..domain.errors import TypeValidationError
from ..domain.ports import LoggerPort


SIGNING_ALGORITHM = "PS512"
NONCE_ALPHABET = string.ascii_letters + string.digits
NONCE_LENGTH = 32


def create_nonce(length: int = NONCE_LENGTH) -> str:
    """영숫자 난수 문자열을 생성합니다."""
    return "".join(secrets.choice(NONCE_ALPHABET) for _ in range(length))


def create_code_verifier() -> str:
    """PKCE 코드 검증자를 생성합니다."""
    return secrets.token_urlsafe(32)


def code_challenge(code_verifier: str) -> str:
    """S256 코드 챌린지를 계산합니다."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def bearer_header(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


class RequestSigner:
    """서명 요청 생성기"""

    def __init__(self, logger: LoggerPort):
        self.logger = logger

    def sign(self, claims: Dict[str, Any], contract: ContractDetails) -> str:
        """
        클레임에 서명하여 compact JWT 를 생성합니다.

        timestamp 는 페이로드에 밀리초로 명시하므로 iat 는 넣지 않습니다.

        Args:
            claims: 요청별 클레임
            contract: 서명에 사용할 계약 정보

        Returns:
            PS512 로 서명된 토큰 문자열

        Raises:
            TypeValidationError: claims 가 dict 가 아닌 경우
        """
        if not isinstance(claims, dict):
            raise TypeValidationError(f"클레임은 dict 여야 합니다: {type(claims).__name__}")

        payload = dict(claims)
        payload.setdefault("client_id", contract.client_id)
        payload["nonce"] = create_nonce()
        payload["timestamp"] = int(time.time() * 1000)

        token = jwt.encode(
            payload,
            contract.private_key,
            algorithm=SIGNING_ALGORITHM,
            headers={"typ": "JWT"},
        )

        self.logger.debug(f"요청 서명 완료: client_id={payload['client_id']}")
        return token
