"""
암호화 서비스 어댑터

파일 전송에 사용되는 하이브리드 암호화(RSA-OAEP + AES-256-CBC)를 담당하는 어댑터입니다.
cryptography 라이브러리의 프리미티브만 조합합니다.
"""

from cryptography.hazmat.primitives import hashes, padding, serialization
from cryptography.hazmat.primitives.asymmetric import padding as asym_padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from dataport.core.domain.ports import CryptoServicePort, LoggerPort


AES_BLOCK_BITS = 128


class CryptoServiceAdapter(CryptoServicePort):
    """하이브리드 암호화 서비스 어댑터"""

    def __init__(self, logger: LoggerPort):
        self.logger = logger

    @staticmethod
    def _oaep():
        return asym_padding.OAEP(
            mgf=asym_padding.MGF1(algorithm=hashes.SHA1()),
            algorithm=hashes.SHA1(),
            label=None,
        )

    @staticmethod
    def _load_private_key(private_key_pem: str):
        return serialization.load_pem_private_key(private_key_pem.encode(), password=None)

    def rsa_key_size_bytes(self, private_key_pem: str) -> int:
        """RSA 키 크기(바이트)를 반환합니다."""
        return self._load_private_key(private_key_pem).key_size // 8

    def rsa_decrypt(self, private_key_pem: str, data: bytes) -> bytes:
        """RSA-OAEP 로 대칭 키를 복호화합니다.

        키가 맞지 않으면 cryptography 의 ValueError 가 그대로 전파됩니다.
        """
        private_key = self._load_private_key(private_key_pem)
        return private_key.decrypt(data, self._oaep())

    def rsa_encrypt(self, public_key_pem: str, data: bytes) -> bytes:
        """RSA-OAEP 로 대칭 키를 암호화합니다."""
        public_key = serialization.load_pem_public_key(public_key_pem.encode())
        return public_key.encrypt(data, self._oaep())

    def aes_decrypt(self, key: bytes, iv: bytes, data: bytes) -> bytes:
        """AES-256-CBC 복호화 후 PKCS7 패딩을 제거합니다."""
        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(data) + decryptor.finalize()

        unpadder = padding.PKCS7(AES_BLOCK_BITS).unpadder()
        return unpadder.update(padded) + unpadder.finalize()

    def aes_encrypt(self, key: bytes, iv: bytes, data: bytes) -> bytes:
        """PKCS7 패딩 후 AES-256-CBC 로 암호화합니다."""
        padder = padding.PKCS7(AES_BLOCK_BITS).padder()
        padded = padder.update(data) + padder.finalize()

        encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
        return encryptor.update(padded) + encryptor.finalize()
