"""
플랫폼 API 클라이언트 어댑터

데이터 이동 플랫폼 API와의 HTTP 통신을 담당하는 어댑터입니다.
재시도 정책을 적용하고, 구조화된 API 오류 응답을 ServerError 로 변환합니다.
"""

import asyncio
import time
from email.utils import parsedate_to_datetime
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Tuple

import httpx

from dataport.core.domain.entities import RetryPolicy
from dataport.core.domain.errors import server_error_from_payload
from dataport.core.domain.ports import LoggerPort, PlatformApiClientPort


def parse_retry_after(value: Optional[str], now: Optional[float] = None) -> Optional[float]:
    """Retry-After 헤더를 대기 시간(초)으로 변환합니다.

    초 단위 숫자와 HTTP 날짜 형식을 모두 지원하며, 해석할 수 없으면 None 을 반환합니다.
    """
    if not value:
        return None

    try:
        return float(value)
    except ValueError:
        pass

    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None

    current = time.time() if now is None else now
    return retry_at.timestamp() - current


class PlatformApiClientAdapter(PlatformApiClientPort):
    """플랫폼 API 클라이언트 어댑터"""

    def __init__(
        self,
        base_url: str,
        logger: LoggerPort,
        retry_policy: Optional[RetryPolicy] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.base_url = base_url if base_url.endswith("/") else f"{base_url}/"
        self.logger = logger
        self.retry_policy = retry_policy or RetryPolicy()
        self.timeout = timeout
        self.transport = transport
        self._sleep = sleep

    def _url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url}{path.lstrip('/')}"

    @staticmethod
    def _auth_headers(bearer_token: Optional[str], headers: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        result = dict(headers or {})
        if bearer_token:
            result["Authorization"] = f"Bearer {bearer_token}"
        return result

    def _raise_for_error(self, response: httpx.Response) -> None:
        """오류 응답을 ServerError 또는 HTTPStatusError 로 변환합니다."""
        error: Dict[str, Any] = {}

        try:
            body = response.json()
            if isinstance(body, dict) and isinstance(body.get("error"), dict):
                error = body["error"]
        except ValueError:
            pass

        if not isinstance(error.get("code"), str) and "x-error-code" in response.headers:
            error = {
                "code": response.headers.get("x-error-code"),
                "message": response.headers.get("x-error-message", ""),
                "reference": response.headers.get("x-error-reference"),
            }

        if isinstance(error.get("code"), str):
            server_error = server_error_from_payload(
                code=error["code"],
                message=str(error.get("message", "")),
                reference=error.get("reference"),
                status_code=response.status_code,
            )
            self.logger.error(
                f"API 오류 응답: {response.request.method} {response.request.url} "
                f"{response.status_code} - {server_error}"
            )
            raise server_error

        self.logger.error(
            f"API 요청 실패: {response.request.method} {response.request.url} {response.status_code}"
        )
        response.raise_for_status()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """재시도 정책을 적용하여 요청을 보냅니다."""
        url = self._url(path)
        policy = self.retry_policy
        can_retry_method = policy.allows_method(method)
        attempt = 0

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            while True:
                self.logger.debug(f"API 요청: {method} {url} (시도 {attempt + 1})")

                try:
                    response = await client.request(method, url, **kwargs)
                except httpx.TransportError as e:
                    retryable = type(e).__name__ in policy.error_codes
                    if not (can_retry_method and retryable and attempt < policy.limit):
                        self.logger.error(f"API 전송 오류: {method} {url} - {type(e).__name__}: {str(e)}")
                        raise

                    attempt += 1
                    delay = policy.delay_for(attempt)
                    self.logger.warning(f"전송 오류 재시도 {attempt}/{policy.limit}: {type(e).__name__}, {delay:.2f}초 후")
                    await self._sleep(delay)
                    continue

                if response.status_code < 400:
                    return response

                if can_retry_method and response.status_code in policy.status_codes and attempt < policy.limit:
                    retry_after = parse_retry_after(response.headers.get("retry-after"))

                    if (
                        retry_after is not None
                        and policy.max_retry_after is not None
                        and retry_after > policy.max_retry_after
                    ):
                        self.logger.warning(
                            f"Retry-After({retry_after:.2f}초)가 허용 상한을 넘어 재시도하지 않습니다"
                        )
                        self._raise_for_error(response)

                    attempt += 1
                    delay = policy.delay_for(attempt, retry_after)
                    self.logger.warning(
                        f"상태 코드 {response.status_code} 재시도 {attempt}/{policy.limit}: {delay:.2f}초 후"
                    )
                    await self._sleep(delay)
                    continue

                self._raise_for_error(response)

    @staticmethod
    def _json_or_none(response: httpx.Response) -> Any:
        if not response.content:
            return None
        return response.json()

    async def post_json(
        self,
        path: str,
        bearer_token: str,
        json_body: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """JSON 요청을 POST 하고 JSON 응답을 반환합니다."""
        response = await self._request(
            "POST",
            path,
            json=json_body if json_body is not None else {},
            headers=self._auth_headers(bearer_token, {"Accept": "application/json", **(headers or {})}),
        )
        return self._json_or_none(response)

    async def get_json(
        self,
        path: str,
        bearer_token: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """GET 요청 후 JSON 응답을 반환합니다."""
        response = await self._request(
            "GET",
            path,
            headers=self._auth_headers(bearer_token, {"Accept": "application/json", **(headers or {})}),
        )
        return self._json_or_none(response)

    async def delete_json(
        self,
        path: str,
        bearer_token: str,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """DELETE 요청 후 JSON 응답을 반환합니다."""
        response = await self._request(
            "DELETE",
            path,
            headers=self._auth_headers(bearer_token, {"Accept": "application/json", **(headers or {})}),
        )
        return self._json_or_none(response)

    async def get_bytes(self, path: str, bearer_token: str) -> Tuple[bytes, Mapping[str, str]]:
        """GET 요청 후 (본문, 헤더) 를 반환합니다."""
        response = await self._request(
            "GET",
            path,
            headers=self._auth_headers(bearer_token, {"Accept": "application/octet-stream"}),
        )
        return response.content, response.headers

    async def post_bytes(
        self,
        path: str,
        content: bytes,
        headers: Dict[str, str],
        bearer_token: Optional[str] = None,
    ) -> Any:
        """바이너리 본문을 POST 합니다."""
        request_headers = self._auth_headers(bearer_token, {"Content-Type": "application/octet-stream"})
        request_headers.update(headers)

        response = await self._request("POST", path, content=content, headers=request_headers)
        return self._json_or_none(response)

    async def post_multipart(
        self,
        path: str,
        files: Dict[str, Tuple[str, bytes, str]],
        headers: Dict[str, str],
    ) -> Any:
        """multipart/form-data 요청을 POST 합니다."""
        response = await self._request("POST", path, files=files, headers=dict(headers))
        return self._json_or_none(response)
