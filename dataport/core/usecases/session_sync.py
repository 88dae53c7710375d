"""
세션 동기화 유즈케이스

세션의 파일 목록을 폴링하고, 새로 보이거나 갱신된 파일을 동시에 내려받아 복호화합니다.
- 폴링은 항상 순차적으로 수행
- (파일 이름, updatedDate) 쌍마다 한 번만 디스패치
- 파일 단위 실패는 on_file_error 콜백으로 전달하고 동기화는 계속 진행
- stop_polling() 은 새 작업만 막고 진행 중인 작업은 끝까지 수행
"""

import asyncio
import base64
import inspect
import json
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import ValidationError

from ..domain.entities import (
    AccountSyncState,
    ContractDetails,
    EngineState,
    FileDataHandler,
    FileErrorEvent,
    FileErrorHandler,
    FileHeaderMetadata,
    FileListEntry,
    FileListResponse,
    FileReadResult,
    Session,
    SyncState,
    TokenPair,
)
from ..domain.errors import TypeValidationError
from ..domain.ports import LoggerPort, PlatformApiClientPort
from .authentication import TokenLifecycleManager
from .file_decryption import FileDecryptionFailure, FileDecryptionPipeline
from .request_signing import RequestSigner


TRIGGER_PATH = "permission-access/trigger"
QUERY_PATH = "permission-access/query"
ACCOUNTS_PATH = "permission-access/accounts"
METADATA_HEADER = "x-metadata"

TERMINAL_SYNC_STATES = {SyncState.PARTIAL, SyncState.COMPLETED}


def decode_file_header(value: Optional[str]) -> FileHeaderMetadata:
    """base64url 로 인코딩된 x-metadata 헤더를 해석합니다."""
    if not value:
        raise TypeValidationError("x-metadata 헤더가 없습니다")

    try:
        raw = base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))
        return FileHeaderMetadata.model_validate(json.loads(raw))
    except (ValueError, ValidationError) as e:
        raise TypeValidationError(f"x-metadata 헤더를 해석할 수 없습니다: {str(e)}") from e


class SyncHandle:
    """read_all_files 가 돌려주는 동기화 핸들"""

    def __init__(self):
        self.state = EngineState.IDLE
        self._stop_event = asyncio.Event()
        self._jobs: List[asyncio.Task] = []
        self._runner: Optional[asyncio.Task] = None

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def stop_polling(self) -> None:
        """새 폴링과 디스패치를 중단합니다. 이미 시작된 파일 작업은 끝까지 수행됩니다."""
        self._stop_event.set()

    async def wait(self) -> None:
        """디스패치된 모든 작업이 끝날 때까지 기다립니다. 폴링이 실패했다면 그 오류를 다시 발생시킵니다."""
        await self._runner


class SessionSyncUseCase:
    """세션 동기화 유즈케이스"""

    def __init__(
        self,
        token_manager: TokenLifecycleManager,
        api_client: PlatformApiClientPort,
        signer: RequestSigner,
        pipeline: FileDecryptionPipeline,
        contract: ContractDetails,
        logger: LoggerPort,
        poll_interval: float = 3.0,
    ):
        self.token_manager = token_manager
        self.api_client = api_client
        self.signer = signer
        self.pipeline = pipeline
        self.contract = contract
        self.logger = logger
        self.poll_interval = poll_interval

    def _sign_access(self, token_pair: TokenPair) -> str:
        claims: Dict[str, Any] = {"access_token": token_pair.access_token.value}
        if self.contract.redirect_uri:
            claims["redirect_uri"] = self.contract.redirect_uri
        return self.signer.sign(claims, self.contract)

    async def read_session(self, scope: Optional[Dict[str, Any]] = None) -> Tuple[Session, TokenPair]:
        """
        새 동기화 세션을 시작합니다.

        Args:
            scope: 데이터 범위 (선택)

        Returns:
            (세션, 현재 토큰 쌍)
        """
        self.logger.info("세션 시작 요청")

        body: Dict[str, Any] = {}
        if scope is not None:
            body["scope"] = scope

        async def _trigger(token_pair: TokenPair):
            return await self.api_client.post_json(TRIGGER_PATH, self._sign_access(token_pair), body)

        response = await self.token_manager.call_with_token_retry(_trigger)
        if not isinstance(response, dict):
            raise TypeValidationError("세션 응답 형식이 올바르지 않습니다")

        try:
            session = Session.model_validate(response.get("session"))
        except ValidationError as e:
            raise TypeValidationError(f"세션 응답 형식이 올바르지 않습니다: {str(e)}") from e

        self.logger.info(f"세션 시작 완료: {session.key}")
        return session, self.token_manager.token_pair

    async def read_accounts(self) -> Dict[str, Any]:
        """사용자가 연결한 계정 목록을 조회합니다."""

        async def _accounts(token_pair: TokenPair):
            return await self.api_client.get_json(ACCOUNTS_PATH, self._sign_access(token_pair))

        return await self.token_manager.call_with_token_retry(_accounts)

    async def read_file_list(self, session_key: str) -> FileListResponse:
        """세션의 파일 목록과 동기화 상태를 조회합니다."""

        async def _query(token_pair: TokenPair):
            return await self.api_client.get_json(f"{QUERY_PATH}/{session_key}", self._sign_access(token_pair))

        response = await self.token_manager.call_with_token_retry(_query)

        try:
            return FileListResponse.model_validate(response)
        except ValidationError as e:
            raise TypeValidationError(f"파일 목록 응답 형식이 올바르지 않습니다: {str(e)}") from e

    async def _download(self, session_key: str, file_name: str) -> Tuple[bytes, FileHeaderMetadata]:
        async def _fetch(token_pair: TokenPair):
            return await self.api_client.get_bytes(
                f"{QUERY_PATH}/{session_key}/{file_name}", self._sign_access(token_pair)
            )

        body, headers = await self.token_manager.call_with_token_retry(_fetch)
        return body, decode_file_header(headers.get(METADATA_HEADER))

    async def read_file(self, session_key: str, file_name: str) -> FileReadResult:
        """
        파일 하나를 내려받아 복호화합니다.

        Raises:
            FileDecryptionError: 무결성 검증 실패
            TypeValidationError: x-metadata 헤더 오류
        """
        body, header = await self._download(session_key, file_name)
        return self.pipeline.decrypt(body, header, self.contract.private_key, file_name)

    def read_all_files(
        self,
        session_key: str,
        on_file_data: FileDataHandler,
        on_file_error: Optional[FileErrorHandler] = None,
    ) -> SyncHandle:
        """
        세션의 모든 파일을 동기화합니다. 실행 중인 이벤트 루프 안에서 호출해야 합니다.

        Args:
            session_key: 세션 키
            on_file_data: 파일 복호화 성공 시 호출
            on_file_error: 파일 처리 실패 시 호출

        Returns:
            stop_polling(), state, wait() 를 제공하는 핸들
        """
        handle = SyncHandle()
        loop = asyncio.get_running_loop()
        handle._runner = loop.create_task(self._run(handle, session_key, on_file_data, on_file_error))
        return handle

    async def _pause(self, handle: SyncHandle) -> None:
        try:
            await asyncio.wait_for(handle._stop_event.wait(), timeout=self.poll_interval)
        except asyncio.TimeoutError:
            pass

    def _log_account_errors(self, details: Optional[Mapping[str, AccountSyncState]]) -> None:
        for account_id, account_state in (details or {}).items():
            if account_state.error:
                self.logger.warning(f"계정 동기화 오류: {account_id} - {account_state.error}")

    async def _run(
        self,
        handle: SyncHandle,
        session_key: str,
        on_file_data: FileDataHandler,
        on_file_error: Optional[FileErrorHandler],
    ) -> None:
        seen: Dict[str, int] = {}
        finished = False

        try:
            while not handle.stopped:
                handle.state = EngineState.POLLING
                response = await self.read_file_list(session_key)
                sync_state = response.status.state
                self.logger.debug(f"파일 목록 조회: {session_key} 상태={sync_state.value}, 파일 {len(response.file_list)}개")

                if sync_state == SyncState.PENDING:
                    await self._pause(handle)
                    continue

                self._log_account_errors(response.status.details)

                handle.state = EngineState.DISPATCHING_FILES
                for entry in response.file_list:
                    if handle.stopped:
                        break
                    if seen.get(entry.name) == entry.updated_date:
                        continue

                    seen[entry.name] = entry.updated_date
                    job = asyncio.ensure_future(
                        self._fetch_job(session_key, entry.name, response.file_list, on_file_data, on_file_error)
                    )
                    handle._jobs.append(job)

                if sync_state in TERMINAL_SYNC_STATES:
                    finished = not handle.stopped
                    break

                await self._pause(handle)
        except Exception as e:
            handle.state = EngineState.FAILED
            self.logger.error(f"세션 동기화 실패: {session_key} - {str(e)}")
            await asyncio.gather(*handle._jobs, return_exceptions=True)
            raise

        await asyncio.gather(*handle._jobs, return_exceptions=True)

        if finished:
            handle.state = EngineState.DONE
            self.logger.info(f"세션 동기화 완료: {session_key} (파일 작업 {len(handle._jobs)}개)")
        else:
            handle.state = EngineState.CANCELLED
            self.logger.info(f"세션 동기화 중단: {session_key}")

    async def _fetch_job(
        self,
        session_key: str,
        file_name: str,
        file_list: List[FileListEntry],
        on_file_data: FileDataHandler,
        on_file_error: Optional[FileErrorHandler],
    ) -> None:
        try:
            body, header = await self._download(session_key, file_name)
            outcome = self.pipeline.process(body, header, self.contract.private_key, file_name)
        except Exception as e:
            self.logger.warning("파일 다운로드 실패", file_name=file_name, error=f"{type(e).__name__}: {e}")
            outcome = FileDecryptionFailure(error=e, file_name=file_name)

        if isinstance(outcome, FileDecryptionFailure):
            event = FileErrorEvent(error=outcome.error, file_name=file_name, file_list=file_list)
            await self._invoke(on_file_error, event, file_name)
            return

        await self._invoke(on_file_data, outcome.model_copy(update={"file_list": file_list}), file_name)

    async def _invoke(self, callback, argument, file_name: str) -> None:
        if callback is None:
            return

        try:
            result = callback(argument)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            self.logger.error(f"파일 콜백 실패: {file_name} - {str(e)}")
