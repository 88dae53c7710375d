"""
데이터 전송 유즈케이스

사용자 postbox, 라이브러리, 또는 제공자 계정으로 데이터를 보냅니다.
- postbox: 무작위 대칭 키로 파일과 설명자를 암호화하고, 키는 postbox 공개 키로 감싸서 전송
- library: 서명된 FileDescriptor 헤더와 함께 원본 바이트를 전송
- provider: 표준 형식(FHIR) JSON 문서를 계정으로 전송
"""

import base64
import json
import os
from typing import Any, Dict, Optional

from ..domain.entities import ContractDetails, PushedFile, TokenPair
from ..domain.errors import TypeValidationError
from ..domain.ports import CryptoServicePort, LoggerPort, PlatformApiClientPort
from .authentication import TokenLifecycleManager
from .request_signing import RequestSigner, bearer_header


POSTBOX_PATH = "permission-access/postbox"
IMPORT_PATH = "permission-access/import"
SYMMETRIC_KEY_BYTES = 32
IV_BYTES = 16

# 계정 ID 는 경로가 아니라 accountId 헤더로 전달
PROVIDER_IMPORT_PATH = IMPORT_PATH + "/h:accountId/{standard}/{version}"
PROVIDER_STANDARDS = {"fhir": ("stu3", "3.0.2")}


class DataPushUseCase:
    """데이터 전송 유즈케이스"""

    def __init__(
        self,
        token_manager: TokenLifecycleManager,
        api_client: PlatformApiClientPort,
        signer: RequestSigner,
        crypto_service: CryptoServicePort,
        contract: ContractDetails,
        logger: LoggerPort,
    ):
        self.token_manager = token_manager
        self.api_client = api_client
        self.signer = signer
        self.crypto_service = crypto_service
        self.contract = contract
        self.logger = logger

    async def push_to_postbox(
        self,
        session_key: str,
        postbox_id: str,
        public_key: str,
        file: PushedFile,
    ) -> Any:
        """
        파일을 암호화하여 postbox 로 전송합니다.

        토큰 쌍이 있으면 유효한 액세스 토큰을 실어 보내고, 인증 오류나 pending 응답이면
        한 번 갱신 후 다시 보냅니다. 토큰 쌍이 없으면 익명으로 보냅니다.

        Args:
            session_key: postbox 세션 키
            postbox_id: postbox ID
            public_key: postbox 공개 키 (PEM)
            file: 전송할 파일

        Returns:
            서버 응답
        """
        self.logger.info(f"postbox 전송 시작: {postbox_id}, 파일={file.file_name}")

        key = os.urandom(SYMMETRIC_KEY_BYTES)
        iv = os.urandom(IV_BYTES)

        encrypted_data = self.crypto_service.aes_encrypt(key, iv, file.file_data)
        encrypted_meta = self.crypto_service.aes_encrypt(
            key, iv, json.dumps(file.file_descriptor).encode("utf-8")
        )
        encrypted_key = self.crypto_service.rsa_encrypt(public_key, key)

        claims: Dict[str, Any] = {
            "iv": iv.hex(),
            "metadata": base64.b64encode(encrypted_meta).decode("ascii"),
            "session_key": session_key,
            "symmetrical_key": base64.b64encode(encrypted_key).decode("ascii"),
        }
        if self.contract.redirect_uri:
            claims["redirect_uri"] = self.contract.redirect_uri

        async def _push(token_pair: Optional[TokenPair]):
            signed_claims = dict(claims)
            if token_pair is not None:
                signed_claims["access_token"] = token_pair.access_token.value

            token = self.signer.sign(signed_claims, self.contract)
            return await self.api_client.post_multipart(
                f"{POSTBOX_PATH}/{postbox_id}",
                files={"file": (file.file_name, encrypted_data, "application/octet-stream")},
                headers=bearer_header(token),
            )

        if self.token_manager.token_pair is None:
            result = await _push(None)
        else:
            result = await self.token_manager.call_with_token_retry(_push)

            # 액세스 토큰이 받아들여지지 않으면 서버는 pending 으로 응답
            if isinstance(result, dict) and result.get("status") == "pending":
                self.logger.warning(f"postbox 전송이 pending 상태입니다. 토큰 갱신 후 다시 보냅니다: {postbox_id}")
                result = await _push(await self.token_manager.refresh())

        self.logger.info(f"postbox 전송 완료: {postbox_id}")
        return result

    async def push_to_library(self, file: PushedFile) -> TokenPair:
        """
        파일을 사용자 라이브러리로 전송합니다.

        Returns:
            현재 토큰 쌍
        """
        self.logger.info(f"라이브러리 전송 시작: 파일={file.file_name}")

        descriptor = self.signer.sign({"metadata": file.file_descriptor}, self.contract)

        async def _import(token_pair: TokenPair):
            token = self.signer.sign({"access_token": token_pair.access_token.value}, self.contract)
            return await self.api_client.post_bytes(
                IMPORT_PATH,
                file.file_data,
                {"FileDescriptor": descriptor},
                bearer_token=token,
            )

        await self.token_manager.call_with_token_retry(_import)

        self.logger.info(f"라이브러리 전송 완료: 파일={file.file_name}")
        return self.token_manager.token_pair

    async def push_to_provider(
        self,
        account_id: str,
        data: Dict[str, Any],
        standard: str = "fhir",
        version: str = "stu3",
    ) -> TokenPair:
        """
        표준 형식 문서를 제공자 계정으로 전송합니다.

        Args:
            account_id: 대상 계정 ID
            data: 전송할 JSON 문서
            standard: 문서 표준 (fhir)
            version: 표준 버전 (stu3, 3.0.2)

        Returns:
            현재 토큰 쌍

        Raises:
            TypeValidationError: 계정 ID, 문서, 표준 또는 버전이 올바르지 않은 경우
        """
        if not isinstance(account_id, str) or not account_id:
            raise TypeValidationError("account_id 는 비어 있지 않은 문자열이어야 합니다")
        if not isinstance(data, dict):
            raise TypeValidationError("전송할 문서는 JSON 객체여야 합니다")
        if version not in PROVIDER_STANDARDS.get(standard, ()):
            raise TypeValidationError(f"지원하지 않는 표준 또는 버전입니다: {standard} {version}")

        self.logger.info(f"제공자 전송 시작: 계정={account_id}, {standard}/{version}")

        path = PROVIDER_IMPORT_PATH.format(standard=standard, version=version)

        async def _import(token_pair: TokenPair):
            token = self.signer.sign({"access_token": token_pair.access_token.value}, self.contract)
            return await self.api_client.post_json(path, token, data, headers={"accountId": account_id})

        await self.token_manager.call_with_token_retry(_import)

        self.logger.info(f"제공자 전송 완료: 계정={account_id}")
        return self.token_manager.token_pair
