"""
어댑터 팩토리

모든 어댑터와 유즈케이스를 생성하고 의존성을 주입하는 팩토리 클래스입니다.
클린 아키텍처의 의존성 역전 원칙을 구현합니다.
"""

from pathlib import Path
from typing import Optional

import httpx

from dataport.config.adapters import get_config
from dataport.core.domain.entities import ContractDetails, RetryPolicy, TokenPair, TokenPairRefreshedHandler
from dataport.core.domain.errors import TypeValidationError
from dataport.core.domain.ports import (
    ConfigPort,
    CryptoServicePort,
    KeySetFetcherPort,
    LoggerPort,
    PlatformApiClientPort,
)
from dataport.core.usecases.account_management import AccountManagementUseCase
from dataport.core.usecases.authentication import AuthenticationUseCase, TokenLifecycleManager
from dataport.core.usecases.data_push import DataPushUseCase
from dataport.core.usecases.file_decryption import FileDecryptionPipeline
from dataport.core.usecases.request_signing import RequestSigner
from dataport.core.usecases.response_verification import DEFAULT_JWKS_PATH, ResponseVerifier
from dataport.core.usecases.session_sync import SessionSyncUseCase

from .external.crypto_service import CryptoServiceAdapter
from .external.key_set_fetcher import HttpKeySetFetcher
from .external.platform_api_client import PlatformApiClientAdapter
from .logger import LoggerAdapter


class AdapterFactory:
    """어댑터 팩토리"""

    def __init__(
        self,
        config: Optional[ConfigPort] = None,
        contract: Optional[ContractDetails] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or get_config()
        self.transport = transport
        self._contract = contract
        self._logger: Optional[LoggerPort] = None
        self._api_client: Optional[PlatformApiClientPort] = None
        self._key_set_fetcher: Optional[KeySetFetcherPort] = None
        self._crypto_service: Optional[CryptoServicePort] = None
        self._verifier: Optional[ResponseVerifier] = None
        self._token_manager: Optional[TokenLifecycleManager] = None

    def create_logger(self) -> LoggerPort:
        """로거 어댑터를 생성합니다."""
        if self._logger is None:
            self._logger = LoggerAdapter(
                name="dataport",
                level=self.config.get_log_level(),
                format_string=self.config.get_log_format(),
            )
        return self._logger

    def create_retry_policy(self) -> RetryPolicy:
        """재시도 정책을 생성합니다."""
        return RetryPolicy(**self.config.get_retry_config())

    def create_api_client(self) -> PlatformApiClientPort:
        """플랫폼 API 클라이언트 어댑터를 생성합니다."""
        if self._api_client is None:
            self._api_client = PlatformApiClientAdapter(
                base_url=self.config.get_base_url(),
                logger=self.create_logger(),
                retry_policy=self.create_retry_policy(),
                timeout=self.config.get_http_timeout(),
                transport=self.transport,
            )
        return self._api_client

    def create_key_set_fetcher(self) -> KeySetFetcherPort:
        """키 셋 조회 어댑터를 생성합니다."""
        if self._key_set_fetcher is None:
            self._key_set_fetcher = HttpKeySetFetcher(
                api_client=self.create_api_client(),
                logger=self.create_logger(),
            )
        return self._key_set_fetcher

    def create_crypto_service(self) -> CryptoServicePort:
        """암호화 서비스 어댑터를 생성합니다."""
        if self._crypto_service is None:
            self._crypto_service = CryptoServiceAdapter(logger=self.create_logger())
        return self._crypto_service

    def create_contract(self) -> ContractDetails:
        """설정에서 계약 정보를 읽습니다.

        Raises:
            TypeValidationError: 계약 설정이 빠졌거나 개인 키 파일을 읽을 수 없는 경우
        """
        if self._contract is not None:
            return self._contract

        application_id = self.config.get_application_id()
        contract_id = self.config.get_contract_id()
        private_key_path = self.config.get_private_key_path()

        if not application_id or not contract_id or not private_key_path:
            raise TypeValidationError(
                "DATAPORT_APPLICATION_ID, DATAPORT_CONTRACT_ID, DATAPORT_PRIVATE_KEY_PATH 설정이 필요합니다"
            )

        try:
            private_key = Path(private_key_path).read_text(encoding="utf-8")
        except OSError as e:
            raise TypeValidationError(f"개인 키 파일을 읽을 수 없습니다: {private_key_path}") from e

        self._contract = ContractDetails(
            application_id=application_id,
            contract_id=contract_id,
            private_key=private_key,
            redirect_uri=self.config.get_redirect_uri(),
        )
        return self._contract

    def create_signer(self) -> RequestSigner:
        return RequestSigner(logger=self.create_logger())

    def create_verifier(self) -> ResponseVerifier:
        """응답 검증기를 생성합니다. 기본 신뢰 키 셋은 {base_url}jwks/oauth 입니다."""
        if self._verifier is None:
            self._verifier = ResponseVerifier(
                key_set_fetcher=self.create_key_set_fetcher(),
                logger=self.create_logger(),
                trusted_jwks=[f"{self.config.get_base_url()}{DEFAULT_JWKS_PATH}"],
            )
        return self._verifier

    def create_token_manager(
        self,
        token_pair: Optional[TokenPair] = None,
        on_token_pair_refreshed: Optional[TokenPairRefreshedHandler] = None,
    ) -> TokenLifecycleManager:
        """토큰 수명 주기 관리자를 생성합니다. 한 팩토리에서는 하나의 관리자를 공유합니다."""
        if self._token_manager is None:
            self._token_manager = TokenLifecycleManager(
                api_client=self.create_api_client(),
                signer=self.create_signer(),
                verifier=self.create_verifier(),
                contract=self.create_contract(),
                logger=self.create_logger(),
                token_pair=token_pair,
                safety_margin=self.config.get_token_refresh_margin(),
                on_token_pair_refreshed=on_token_pair_refreshed,
            )
        return self._token_manager

    def create_authentication_usecase(self) -> AuthenticationUseCase:
        """인증 유즈케이스를 생성합니다."""
        return AuthenticationUseCase(
            token_manager=self.create_token_manager(),
            api_client=self.create_api_client(),
            signer=self.create_signer(),
            verifier=self.create_verifier(),
            contract=self.create_contract(),
            onboard_url=self.config.get_onboard_url(),
            logger=self.create_logger(),
        )

    def create_account_management_usecase(self) -> AccountManagementUseCase:
        """계정 관리 유즈케이스를 생성합니다."""
        return AccountManagementUseCase(
            token_manager=self.create_token_manager(),
            api_client=self.create_api_client(),
            signer=self.create_signer(),
            verifier=self.create_verifier(),
            contract=self.create_contract(),
            onboard_url=self.config.get_onboard_url(),
            logger=self.create_logger(),
        )

    def create_file_decryption_pipeline(self) -> FileDecryptionPipeline:
        return FileDecryptionPipeline(
            crypto_service=self.create_crypto_service(),
            logger=self.create_logger(),
        )

    def create_session_sync_usecase(self) -> SessionSyncUseCase:
        """세션 동기화 유즈케이스를 생성합니다."""
        return SessionSyncUseCase(
            token_manager=self.create_token_manager(),
            api_client=self.create_api_client(),
            signer=self.create_signer(),
            pipeline=self.create_file_decryption_pipeline(),
            contract=self.create_contract(),
            logger=self.create_logger(),
            poll_interval=self.config.get_poll_interval(),
        )

    def create_data_push_usecase(self) -> DataPushUseCase:
        """데이터 전송 유즈케이스를 생성합니다."""
        return DataPushUseCase(
            token_manager=self.create_token_manager(),
            api_client=self.create_api_client(),
            signer=self.create_signer(),
            crypto_service=self.create_crypto_service(),
            contract=self.create_contract(),
            logger=self.create_logger(),
        )

    def get_config(self) -> ConfigPort:
        """설정 객체를 반환합니다."""
        return self.config


# 전역 팩토리 인스턴스
_factory: Optional[AdapterFactory] = None


def get_adapter_factory() -> AdapterFactory:
    """전역 어댑터 팩토리 인스턴스를 반환합니다."""
    global _factory
    if _factory is None:
        _factory = AdapterFactory()
    return _factory


def initialize_adapter_factory(
    config: Optional[ConfigPort] = None,
    contract: Optional[ContractDetails] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> AdapterFactory:
    """어댑터 팩토리를 초기화합니다."""
    global _factory
    _factory = AdapterFactory(config, contract, transport)
    return _factory
