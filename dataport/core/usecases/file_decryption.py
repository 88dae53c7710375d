"""
파일 복호화 유즈케이스

세션 파일 본문 하나를 복호화하고 무결성을 검증한 뒤 압축을 풉니다.

본문 구조: RSA 로 암호화된 대칭 키 (키 크기만큼) || IV (16 바이트) || AES-256-CBC 암호문
"""

import gzip
import hashlib
import hmac
from typing import Optional, Union

import brotli
from pydantic import BaseModel, ConfigDict

from ..domain.entities import Compression, FileHeaderMetadata, FileReadResult
from ..domain.errors import FileDecryptionError
from ..domain.ports import CryptoServicePort, LoggerPort


IV_BYTES = 16
AES_BLOCK_BYTES = 16


class FileDecryptionFailure(BaseModel):
    """복호화 실패 결과"""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    error: BaseException
    file_name: str


def _expected_length(value) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise FileDecryptionError(f"data length 필드가 올바르지 않습니다: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    raise FileDecryptionError(f"data length 필드가 올바르지 않습니다: {value!r}")


def _expected_hash(value, algorithm: str):
    if value is None:
        return None
    if not isinstance(value, str) or not value:
        raise FileDecryptionError(f"hash 필드가 올바르지 않습니다: {value!r}")

    try:
        hasher = hashlib.new(algorithm.lower())
    except (ValueError, TypeError) as e:
        raise FileDecryptionError(f"지원하지 않는 해시 알고리즘입니다: {algorithm}") from e

    return value.lower(), hasher


class FileDecryptionPipeline:
    """파일 복호화 파이프라인"""

    def __init__(self, crypto_service: CryptoServicePort, logger: LoggerPort):
        self.crypto_service = crypto_service
        self.logger = logger

    def decrypt(
        self,
        body: bytes,
        header: FileHeaderMetadata,
        private_key: str,
        file_name: str,
    ) -> FileReadResult:
        """
        파일 본문을 복호화합니다.

        Args:
            body: 암호화된 파일 본문
            header: x-metadata 헤더에서 읽은 메타데이터
            private_key: 계약 개인 키 (PEM)
            file_name: 파일 이름

        Returns:
            복호화된 파일

        Raises:
            FileDecryptionError: 크기, 길이, 해시 검증 실패 또는 무결성 필드 오류
            ValueError: 키 불일치나 패딩 오류 (cryptography 의 일반 오류)
        """
        expected_length = _expected_length(header.length)
        expected_hash = _expected_hash(header.hash, header.hash_algorithm)

        key_size = self.crypto_service.rsa_key_size_bytes(private_key)
        ciphertext_length = len(body) - key_size - IV_BYTES
        if ciphertext_length < AES_BLOCK_BYTES or ciphertext_length % AES_BLOCK_BYTES != 0:
            raise FileDecryptionError("File size not valid")

        encrypted_key = body[:key_size]
        iv = body[key_size:key_size + IV_BYTES]
        ciphertext = body[key_size + IV_BYTES:]

        symmetric_key = self.crypto_service.rsa_decrypt(private_key, encrypted_key)
        data = self.crypto_service.aes_decrypt(symmetric_key, iv, ciphertext)

        if expected_length is not None and len(data) != expected_length:
            raise FileDecryptionError(
                f"data length validation 실패: 기대 {expected_length}, 실제 {len(data)}"
            )

        if expected_hash is not None:
            hex_digest, hasher = expected_hash
            hasher.update(data)
            if not hmac.compare_digest(hasher.hexdigest(), hex_digest):
                raise FileDecryptionError("hash validation 실패")

        if header.compression == Compression.GZIP:
            data = gzip.decompress(data)
        elif header.compression == Compression.BROTLI:
            data = brotli.decompress(data)

        self.logger.debug(f"파일 복호화 완료: {file_name} ({len(data)} bytes)")
        return FileReadResult(file_data=data, file_name=file_name, file_metadata=header.metadata)

    def process(
        self,
        body: bytes,
        header: FileHeaderMetadata,
        private_key: str,
        file_name: str,
    ) -> Union[FileReadResult, FileDecryptionFailure]:
        """decrypt 와 같지만 실패를 예외 대신 FileDecryptionFailure 로 반환합니다."""
        try:
            return self.decrypt(body, header, private_key, file_name)
        except Exception as e:
            self.logger.warning(f"파일 복호화 실패: {file_name} - {type(e).__name__}: {str(e)}")
            return FileDecryptionFailure(error=e, file_name=file_name)
