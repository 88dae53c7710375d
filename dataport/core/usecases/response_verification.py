"""
응답 검증 유즈케이스

서버가 돌려준 서명 토큰을 동적 키 탐색(jku/kid)으로 검증합니다.
서명 키는 응답마다 jku 에서 가져오므로 서버 측 키 교체를 클라이언트 변경 없이 따라갑니다.
jku 는 신뢰 목록에 등록된 키 셋 URL 만 허용합니다.
"""

from typing import Any, Dict, Iterable, List, Optional, Type, Union

import jwt
from jwt.algorithms import RSAAlgorithm
from pydantic import BaseModel, ValidationError

from ..domain.errors import JWTVerificationError
from ..domain.ports import KeySetFetcherPort, LoggerPort


VERIFICATION_ALGORITHM = "PS512"
DEFAULT_JWKS_PATH = "jwks/oauth"


class ResponseVerifier:
    """응답 토큰 검증기"""

    def __init__(
        self,
        key_set_fetcher: KeySetFetcherPort,
        logger: LoggerPort,
        trusted_jwks: Optional[Iterable[str]] = None,
    ):
        self.key_set_fetcher = key_set_fetcher
        self.logger = logger
        self._trusted_jwks = set(trusted_jwks or ())
        self._key_sets: Dict[str, List[Dict[str, Any]]] = {}

    def add_trusted_jwks(self, url: str) -> None:
        """키 셋 URL 을 신뢰 목록에 추가합니다."""
        if not isinstance(url, str) or not url.startswith(("https://", "http://")):
            raise JWTVerificationError(f"키 셋 URL 형식이 올바르지 않습니다: {url}")
        self._trusted_jwks.add(url)

    def is_trusted(self, url: str) -> bool:
        return url in self._trusted_jwks

    def _read_header(self, token: str) -> Dict[str, Any]:
        if not isinstance(token, str):
            raise JWTVerificationError("검증할 토큰이 문자열이 아닙니다")

        try:
            header = jwt.get_unverified_header(token)
        except jwt.PyJWTError as e:
            raise JWTVerificationError(f"토큰 헤더를 해석할 수 없습니다: {str(e)}") from e

        if not isinstance(header.get("jku"), str) or not isinstance(header.get("kid"), str):
            raise JWTVerificationError("토큰 헤더에 jku 또는 kid 가 없습니다")

        return header

    async def _fetch_keys(self, jku: str) -> List[Dict[str, Any]]:
        try:
            key_set = await self.key_set_fetcher.fetch(jku)
        except ValueError as e:
            raise JWTVerificationError(f"키 셋 응답을 해석할 수 없습니다: {jku}") from e

        keys = key_set.get("keys") if isinstance(key_set, dict) else None
        if not isinstance(keys, list) or not all(isinstance(key, dict) for key in keys):
            raise JWTVerificationError(f"올바른 키 셋이 아닙니다: {jku}")

        self._key_sets[jku] = keys
        return keys

    async def _find_key(self, jku: str, kid: str) -> Any:
        if not self.is_trusted(jku):
            self.logger.warning(f"신뢰하지 않는 키 셋 URL: {jku}")
            raise JWTVerificationError(f"신뢰하지 않는 키 셋 URL 입니다: {jku}")

        keys = self._key_sets.get(jku)
        match = None
        if keys is not None:
            match = next((key for key in keys if key.get("kid") == kid), None)

        # 캐시에 없는 kid 는 키 교체로 보고 다시 조회
        if match is None:
            keys = await self._fetch_keys(jku)
            match = next((key for key in keys if key.get("kid") == kid), None)

        if match is None:
            raise JWTVerificationError(f"kid 에 해당하는 키가 없습니다: {kid}")

        if isinstance(match.get("pem"), str):
            return match["pem"]

        try:
            return RSAAlgorithm.from_jwk(match)
        except (jwt.PyJWTError, ValueError, KeyError) as e:
            raise JWTVerificationError(f"키를 읽을 수 없습니다: {kid}") from e

    async def verify(
        self,
        token: str,
        expected: Optional[Type[BaseModel]] = None,
    ) -> Union[Dict[str, Any], BaseModel]:
        """
        서명 토큰을 검증하고 페이로드를 반환합니다.

        Args:
            token: 서버가 돌려준 compact JWT
            expected: 페이로드가 따라야 하는 Pydantic 모델 (선택)

        Returns:
            expected 가 없으면 페이로드 dict, 있으면 검증된 모델 인스턴스

        Raises:
            JWTVerificationError: 헤더, 신뢰 목록, 키 탐색, 서명, 페이로드 형태 중 하나라도 실패한 경우
        """
        header = self._read_header(token)
        key = await self._find_key(header["jku"], header["kid"])

        try:
            payload = jwt.decode(
                token,
                key,
                algorithms=[VERIFICATION_ALGORITHM],
                options={"verify_aud": False},
            )
        except (jwt.PyJWTError, ValueError) as e:
            self.logger.warning(f"응답 토큰 서명 검증 실패: kid={header['kid']}, {str(e)}")
            raise JWTVerificationError(f"토큰 서명 검증 실패: {str(e)}") from e

        self.logger.debug(f"응답 토큰 검증 완료: kid={header['kid']}")

        if expected is None:
            return payload

        try:
            return expected.model_validate(payload)
        except ValidationError as e:
            raise JWTVerificationError(f"토큰 페이로드 형식이 올바르지 않습니다: {expected.__name__}") from e
