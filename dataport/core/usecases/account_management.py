"""
계정 관리 유즈케이스

사용자와 연결된 서비스 계정을 관리합니다.
- 사용자 라이브러리 삭제, 개별 계정 연결 삭제
- 계정 재인증, 권한 철회, 서비스 온보딩 URL 생성
"""

from typing import Any, Dict, Optional
from urllib.parse import urlencode

from pydantic import ValidationError

from ..domain.entities import AccountUrlResult, ContractDetails, ReferencePayload, Session, TokenPair
from ..domain.errors import JWTVerificationError, TypeValidationError
from ..domain.ports import LoggerPort, PlatformApiClientPort
from .authentication import TokenLifecycleManager, sdk_agent
from .request_signing import RequestSigner
from .response_verification import ResponseVerifier


USER_PATH = "user"
TOKEN_REFERENCE_PATH = "oauth/token/reference"
REFERENCE_PATH = "reference"

# 계정 ID 는 경로가 아니라 accountId 헤더로 전달
SERVICE_ACCOUNT_PATH = "permission-access/service/h:accountId"
REVOKE_ACCOUNT_PATH = "permission-access/revoke/h:accountId"


def _require_text(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value:
        raise TypeValidationError(f"{name} 는 비어 있지 않은 문자열이어야 합니다")
    return value


class AccountManagementUseCase:
    """계정 관리 유즈케이스"""

    def __init__(
        self,
        token_manager: TokenLifecycleManager,
        api_client: PlatformApiClientPort,
        signer: RequestSigner,
        verifier: ResponseVerifier,
        contract: ContractDetails,
        onboard_url: str,
        logger: LoggerPort,
    ):
        self.token_manager = token_manager
        self.api_client = api_client
        self.signer = signer
        self.verifier = verifier
        self.contract = contract
        self.onboard_url = onboard_url if onboard_url.endswith("/") else f"{onboard_url}/"
        self.logger = logger

    def _sign_access(self, token_pair: TokenPair, **claims) -> str:
        return self.signer.sign({"access_token": token_pair.access_token.value, **claims}, self.contract)

    async def delete_user(self) -> bool:
        """
        사용자 라이브러리와 모든 연결을 삭제합니다.

        Returns:
            삭제 성공 시 True
        """
        self.logger.info("사용자 삭제 요청")

        claims: Dict[str, Any] = {}
        if self.contract.redirect_uri:
            claims["redirect_uri"] = self.contract.redirect_uri

        async def _delete(token_pair: TokenPair):
            return await self.api_client.delete_json(USER_PATH, self._sign_access(token_pair, **claims))

        await self.token_manager.call_with_token_retry(_delete)

        self.logger.info("사용자 삭제 완료")
        return True

    async def delete_account(self, account_id: str) -> bool:
        """서비스 계정 연결 하나를 삭제합니다."""
        _require_text(account_id, "account_id")
        self.logger.info(f"계정 삭제 요청: {account_id}")

        async def _delete(token_pair: TokenPair):
            return await self.api_client.delete_json(
                SERVICE_ACCOUNT_PATH,
                self._sign_access(token_pair),
                headers={"accountId": account_id},
            )

        await self.token_manager.call_with_token_retry(_delete)

        self.logger.info(f"계정 삭제 완료: {account_id}")
        return True

    async def get_revoke_account_permission_url(self, account_id: str, redirect_uri: str) -> str:
        """
        계정 권한 철회 페이지 URL 을 조회합니다.

        Args:
            account_id: 권한을 철회할 계정 ID
            redirect_uri: 철회 완료 후 돌아올 URL

        Returns:
            철회 페이지 URL (location)

        Raises:
            TypeValidationError: 인자가 비었거나 응답에 location 이 없는 경우
        """
        _require_text(account_id, "account_id")
        _require_text(redirect_uri, "redirect_uri")

        async def _revoke(token_pair: TokenPair):
            return await self.api_client.get_json(
                REVOKE_ACCOUNT_PATH,
                self._sign_access(token_pair),
                headers={"accountId": account_id, "redirectUri": redirect_uri},
            )

        response = await self.token_manager.call_with_token_retry(_revoke)

        if not isinstance(response, dict) or not isinstance(response.get("location"), str):
            raise TypeValidationError("권한 철회 응답에 location 이 없습니다")

        return response["location"]

    async def _reference_code(self, token_pair: TokenPair, redirect_uri: Optional[str], body: Dict[str, Any]):
        claims: Dict[str, Any] = {}
        if redirect_uri:
            claims["redirect_uri"] = redirect_uri

        response = await self.api_client.post_json(
            TOKEN_REFERENCE_PATH, self._sign_access(token_pair, **claims), body
        )
        if not isinstance(response, dict):
            raise JWTVerificationError("참조 응답에 token 이 없습니다")

        payload = await self.verifier.verify(response.get("token"), ReferencePayload)

        session = None
        if response.get("session") is not None:
            try:
                session = Session.model_validate(response["session"])
            except ValidationError as e:
                raise TypeValidationError(f"세션 응답 형식이 올바르지 않습니다: {str(e)}") from e

        return payload.reference_code, session

    async def _account_reference(self, account_id: str) -> str:
        token = self.signer.sign({}, self.contract)
        response = await self.api_client.post_json(
            REFERENCE_PATH, token, {"type": "accountId", "value": account_id}
        )

        if not isinstance(response, dict) or not isinstance(response.get("id"), str):
            raise TypeValidationError("계정 참조 응답에 id 가 없습니다")
        return response["id"]

    async def get_reauthorize_account_url(self, account_id: str, callback_url: str) -> AccountUrlResult:
        """
        만료된 계정을 다시 인증하는 URL 을 생성합니다.

        Raises:
            TypeValidationError: 인자가 비었거나 응답 형식이 올바르지 않은 경우
            JWTVerificationError: 참조 토큰 검증 실패
        """
        _require_text(account_id, "account_id")
        _require_text(callback_url, "callback_url")
        self.logger.info(f"계정 재인증 URL 생성: {account_id}")

        async def _reference(token_pair: TokenPair):
            return await self._reference_code(token_pair, callback_url, {"agent": sdk_agent()})

        code, session = await self.token_manager.call_with_token_retry(_reference)
        account_ref = await self._account_reference(account_id)

        url = f"{self.onboard_url}reauthorize?{urlencode({'code': code, 'accountRef': account_ref})}"
        return AccountUrlResult(url=url, session=session)

    async def get_onboard_service_url(
        self,
        service_id: int,
        success_callback: str,
        error_callback: str,
    ) -> AccountUrlResult:
        """
        기존 사용자에게 새 서비스를 연결하는 온보딩 URL 을 생성합니다.

        Raises:
            TypeValidationError: 인자가 올바르지 않거나 응답 형식이 올바르지 않은 경우
            JWTVerificationError: 참조 토큰 검증 실패
        """
        if not isinstance(service_id, int) or isinstance(service_id, bool):
            raise TypeValidationError("service_id 는 정수여야 합니다")
        _require_text(success_callback, "success_callback")
        _require_text(error_callback, "error_callback")
        self.logger.info(f"서비스 온보딩 URL 생성: service={service_id}")

        async def _reference(token_pair: TokenPair):
            return await self._reference_code(token_pair, self.contract.redirect_uri, {})

        code, session = await self.token_manager.call_with_token_retry(_reference)

        params = {
            "code": code,
            "successCallback": success_callback,
            "errorCallback": error_callback,
            "service": str(service_id),
        }
        url = f"{self.onboard_url}onboard?{urlencode(params)}"
        return AccountUrlResult(url=url, session=session)
