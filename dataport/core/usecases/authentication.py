"""
인증 유즈케이스

데이터 이동 플랫폼의 토큰 수명 주기와 OAuth 흐름을 구현합니다.
- 토큰 유효성 판단 및 단일 비행(single-flight) 갱신
- 인증 오류 시 1회 갱신 후 재시도
- Authorization Code + PKCE 흐름
"""

import asyncio
import inspect
import platform
from typing import Any, Awaitable, Callable, Dict, Optional, Set, TypeVar
from urllib.parse import urlencode

from pydantic import ValidationError

from dataport.version import SDK_NAME, __version__

from ..domain.entities import (
    AuthorizeResult,
    ContractDetails,
    PreauthorizationPayload,
    Session,
    TokenPair,
    TokenPairRefreshedEvent,
    TokenPairRefreshedHandler,
    UserAuthorizationPayload,
)
from ..domain.errors import (
    AUTHORIZATION_ERROR_CODES,
    OAUTH_ERROR_CODES,
    JWTVerificationError,
    OAuthError,
    ServerError,
    TokenExpiredError,
    TypeValidationError,
)
from ..domain.ports import LoggerPort, PlatformApiClientPort
from .request_signing import RequestSigner, code_challenge, create_code_verifier
from .response_verification import ResponseVerifier


T = TypeVar("T")

TOKEN_PATH = "oauth/token"
AUTHORIZE_PATH = "oauth/authorize"


def sdk_agent() -> Dict[str, Any]:
    """요청 본문에 싣는 SDK 식별 정보"""
    return {
        "sdk": {
            "name": SDK_NAME,
            "version": __version__,
            "meta": {"python": platform.python_version()},
        },
    }


def is_authorization_error(error: BaseException) -> bool:
    """토큰 갱신 후 재시도해야 하는 오류인지 판단합니다."""
    if isinstance(error, ServerError):
        return error.code in AUTHORIZATION_ERROR_CODES or error.status_code == 401

    response = getattr(error, "response", None)
    return getattr(response, "status_code", None) == 401


class TokenLifecycleManager:
    """토큰 수명 주기 관리자

    현재 토큰 쌍을 소유하고, 동시에 들어온 갱신 요청은 하나의 진행 중인 갱신 작업을 공유합니다.
    """

    def __init__(
        self,
        api_client: PlatformApiClientPort,
        signer: RequestSigner,
        verifier: ResponseVerifier,
        contract: ContractDetails,
        logger: LoggerPort,
        token_pair: Optional[TokenPair] = None,
        safety_margin: int = 10,
        on_token_pair_refreshed: Optional[TokenPairRefreshedHandler] = None,
    ):
        self.api_client = api_client
        self.signer = signer
        self.verifier = verifier
        self.contract = contract
        self.logger = logger
        self.safety_margin = safety_margin
        self.on_token_pair_refreshed = on_token_pair_refreshed
        self._token_pair = token_pair
        self._refresh_task: Optional[asyncio.Task] = None
        self._hook_tasks: Set[asyncio.Future] = set()

    @property
    def token_pair(self) -> Optional[TokenPair]:
        return self._token_pair

    def set_token_pair(self, token_pair: Optional[TokenPair]) -> None:
        """토큰 쌍을 설치합니다 (코드 교환 직후 또는 저장소에서 복원)."""
        self._token_pair = token_pair

    def _require_token_pair(self) -> TokenPair:
        if self._token_pair is None:
            raise TypeValidationError("인증된 토큰 쌍이 없습니다. 먼저 코드 교환을 완료하세요")
        return self._token_pair

    async def ensure_valid(self) -> TokenPair:
        """
        사용 가능한 토큰 쌍을 반환합니다.

        Returns:
            현재 또는 갱신된 토큰 쌍

        Raises:
            TokenExpiredError: 액세스/리프레시 토큰이 모두 만료된 경우 (네트워크 호출 없음)
        """
        token_pair = self._require_token_pair()

        if token_pair.is_usable(self.safety_margin):
            return token_pair

        self.logger.info("액세스 토큰이 만료되어 갱신합니다")
        return await self.refresh()

    async def refresh(self) -> TokenPair:
        """토큰 쌍을 갱신합니다. 진행 중인 갱신이 있으면 그 결과를 공유합니다."""
        if self._refresh_task is None:
            token_pair = self._require_token_pair()
            if not token_pair.is_refreshable(self.safety_margin):
                self.logger.warning("리프레시 토큰도 만료되었습니다")
                raise TokenExpiredError("액세스 토큰과 리프레시 토큰이 모두 만료되었습니다")

            task = asyncio.ensure_future(self._refresh(token_pair))
            task.add_done_callback(self._clear_refresh_task)
            self._refresh_task = task
        else:
            self.logger.debug("진행 중인 토큰 갱신을 기다립니다")

        return await asyncio.shield(self._refresh_task)

    def _clear_refresh_task(self, task: asyncio.Task) -> None:
        if self._refresh_task is task:
            self._refresh_task = None

    async def _refresh(self, outdated: TokenPair) -> TokenPair:
        claims: Dict[str, Any] = {
            "grant_type": "refresh_token",
            "refresh_token": outdated.refresh_token.value,
        }
        if self.contract.redirect_uri:
            claims["redirect_uri"] = self.contract.redirect_uri

        new_pair = await self.request_token_pair(claims)
        self._token_pair = new_pair
        self.logger.info("토큰 갱신 완료")

        self._notify_refreshed(outdated, new_pair)
        return new_pair

    def _notify_refreshed(self, outdated: TokenPair, new_pair: TokenPair) -> None:
        """갱신 콜백을 호출합니다. 코루틴 콜백은 기다리지 않고 백그라운드로 실행합니다."""
        if self.on_token_pair_refreshed is None:
            return

        event = TokenPairRefreshedEvent(outdated_token_pair=outdated, new_token_pair=new_pair)
        try:
            result = self.on_token_pair_refreshed(event)
        except Exception as e:
            self.logger.error(f"토큰 갱신 콜백 실패: {str(e)}")
            return

        if inspect.isawaitable(result):
            hook_task = asyncio.ensure_future(result)
            self._hook_tasks.add(hook_task)
            hook_task.add_done_callback(self._finish_hook_task)

    def _finish_hook_task(self, task: asyncio.Future) -> None:
        self._hook_tasks.discard(task)
        if task.cancelled():
            return

        error = task.exception()
        if error is not None:
            self.logger.error(f"토큰 갱신 콜백 실패: {str(error)}")

    async def request_token_pair(self, claims: Dict[str, Any]) -> TokenPair:
        """
        서명된 클레임으로 토큰 엔드포인트를 호출하고 검증된 토큰 쌍을 반환합니다.

        Raises:
            OAuthError: 토큰 엔드포인트가 OAuth 오류 코드를 반환한 경우
            JWTVerificationError: 응답 토큰 검증 실패
        """
        token = self.signer.sign(claims, self.contract)

        try:
            response = await self.api_client.post_json(TOKEN_PATH, token)
        except ServerError as e:
            if e.code in OAUTH_ERROR_CODES:
                self.logger.error(f"토큰 요청 실패: {str(e)}")
                raise OAuthError(str(e)) from e
            raise

        if not isinstance(response, dict):
            raise JWTVerificationError("토큰 응답에 token 이 없습니다")

        payload = await self.verifier.verify(response.get("token"), UserAuthorizationPayload)
        return TokenPair(access_token=payload.access_token, refresh_token=payload.refresh_token)

    async def call_with_token_retry(self, operation: Callable[[TokenPair], Awaitable[T]]) -> T:
        """
        유효한 토큰으로 작업을 실행하고, 인증 오류가 나면 한 번만 갱신 후 재시도합니다.

        Args:
            operation: 토큰 쌍을 받아 네트워크 호출을 수행하는 코루틴 함수

        Returns:
            operation 의 결과

        Raises:
            재시도 후에도 실패하면 해당 오류를 그대로 전파합니다.
        """
        token_pair = await self.ensure_valid()

        try:
            return await operation(token_pair)
        except Exception as e:
            if not is_authorization_error(e):
                raise
            self.logger.warning(f"인증 오류로 토큰을 갱신한 뒤 재시도합니다: {str(e)}")

        token_pair = await self.refresh()
        return await operation(token_pair)


class AuthenticationUseCase:
    """인증 유즈케이스"""

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

    async def get_authorize_url(
        self,
        callback_url: str,
        state: str = "",
        service_id: Optional[int] = None,
        session_options: Optional[Dict[str, Any]] = None,
        source_type: str = "pull",
        preferred_locale: Optional[str] = None,
    ) -> AuthorizeResult:
        """
        사용자 인증 URL 을 생성합니다.

        Args:
            callback_url: 인증 완료 후 호출될 URL
            state: 콜백으로 되돌려 받을 상태 문자열
            service_id: 바로 온보딩할 서비스 ID
            session_options: 세션 옵션 (actions 로 전달)
            source_type: pull 또는 push
            preferred_locale: 인증 화면 언어

        Returns:
            인증 URL, 코드 검증자, 세션

        Raises:
            JWTVerificationError: 응답 토큰 검증 실패
            TypeValidationError: 세션 응답 형식이 올바르지 않은 경우
        """
        self.logger.info(f"인증 URL 생성 시작: client_id={self.contract.client_id}")

        code_verifier = create_code_verifier()
        claims: Dict[str, Any] = {
            "code_challenge": code_challenge(code_verifier),
            "code_challenge_method": "S256",
            "redirect_uri": callback_url,
            "response_mode": "query",
            "response_type": "code",
            "state": state,
        }

        token_pair = self.token_manager.token_pair
        if token_pair is not None:
            claims["access_token"] = token_pair.access_token.value

        token = self.signer.sign(claims, self.contract)
        body = {"agent": sdk_agent(), "actions": session_options}

        response = await self.api_client.post_json(AUTHORIZE_PATH, token, body)
        if not isinstance(response, dict):
            raise JWTVerificationError("인증 응답에 token 이 없습니다")

        payload = await self.verifier.verify(response.get("token"), PreauthorizationPayload)
        try:
            session = Session.model_validate(response.get("session"))
        except ValidationError as e:
            raise TypeValidationError(f"세션 응답 형식이 올바르지 않습니다: {str(e)}") from e

        params = {"code": payload.preauthorization_code, "sourceType": source_type}
        if service_id is not None:
            params["service"] = str(service_id)
        if preferred_locale:
            params["lng"] = preferred_locale

        url = f"{self.onboard_url}authorize?{urlencode(params)}"

        self.logger.info(f"인증 URL 생성 완료: session={session.key}")
        return AuthorizeResult(url=url, code_verifier=code_verifier, session=session)

    async def exchange_code_for_token(self, code_verifier: str, authorization_code: str) -> TokenPair:
        """
        인증 코드를 토큰 쌍으로 교환하고 관리자에 설치합니다.

        Raises:
            OAuthError: 토큰 엔드포인트가 OAuth 오류 코드를 반환한 경우
            JWTVerificationError: 응답 토큰 검증 실패
        """
        self.logger.info("인증 코드 교환 시작")

        claims: Dict[str, Any] = {
            "grant_type": "authorization_code",
            "code": authorization_code,
            "code_verifier": code_verifier,
        }
        if self.contract.redirect_uri:
            claims["redirect_uri"] = self.contract.redirect_uri

        token_pair = await self.token_manager.request_token_pair(claims)
        self.token_manager.set_token_pair(token_pair)

        self.logger.info("인증 코드 교환 완료")
        return token_pair
