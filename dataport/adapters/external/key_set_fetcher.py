"""
키 셋 조회 어댑터

응답 토큰 헤더의 jku URL 에서 JWKS 를 가져옵니다.
다른 API 호출과 같은 재시도 정책을 쓰도록 플랫폼 API 클라이언트를 통해 조회합니다.
"""

from typing import Any

from dataport.core.domain.ports import KeySetFetcherPort, LoggerPort, PlatformApiClientPort


class HttpKeySetFetcher(KeySetFetcherPort):
    """HTTP JWKS 조회 어댑터"""

    def __init__(self, api_client: PlatformApiClientPort, logger: LoggerPort):
        self.api_client = api_client
        self.logger = logger

    async def fetch(self, jku: str) -> Any:
        self.logger.debug(f"키 셋 조회: {jku}")
        return await self.api_client.get_json(jku)
