"""
외부 서비스 어댑터 패키지

플랫폼 API, 키 셋 조회, 암호화 프리미티브와의 연동을 담당하는 어댑터들을 포함합니다.
"""

from .crypto_service import CryptoServiceAdapter
from .key_set_fetcher import HttpKeySetFetcher
from .platform_api_client import PlatformApiClientAdapter

__all__ = [
    "CryptoServiceAdapter",
    "HttpKeySetFetcher",
    "PlatformApiClientAdapter",
]
