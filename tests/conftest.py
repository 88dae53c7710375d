"""Shared test fixtures for dataport."""

import base64
import json
import os
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from dataport.adapters.external.crypto_service import CryptoServiceAdapter
from dataport.adapters.factory import AdapterFactory
from dataport.config.adapters import TestingConfig
from dataport.core.domain.entities import ContractDetails, Token, TokenPair
from dataport.core.domain.ports import LoggerPort


BASE_URL = "https://api.test.local/v1/"
JWKS_URL = f"{BASE_URL}jwks/oauth"
SERVER_KID = "server-key-1"


def _generate_key_pair() -> Tuple[str, str]:
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()
    return private_pem, public_pem


@pytest.fixture(scope="session")
def contract_keys() -> Tuple[str, str]:
    """Contract (application) RSA key pair as PEM strings."""
    return _generate_key_pair()


@pytest.fixture(scope="session")
def server_keys() -> Tuple[str, str]:
    """Platform signing RSA key pair as PEM strings."""
    return _generate_key_pair()


@pytest.fixture(scope="session")
def other_keys() -> Tuple[str, str]:
    """An unrelated RSA key pair."""
    return _generate_key_pair()


@pytest.fixture
def contract(contract_keys) -> ContractDetails:
    return ContractDetails(
        application_id="test-app",
        contract_id="test-contract",
        private_key=contract_keys[0],
        redirect_uri="https://app.test.local/callback",
    )


@pytest.fixture
def key_set(server_keys) -> Dict[str, Any]:
    return {"keys": [{"kid": SERVER_KID, "pem": server_keys[1]}]}


@pytest.fixture
def sign_server_token(server_keys) -> Callable[..., str]:
    """Sign a payload the way the platform signs its responses."""

    def _sign(payload: Dict[str, Any], kid: str = SERVER_KID, jku: str = JWKS_URL, key: Optional[str] = None) -> str:
        return jwt.encode(
            payload,
            key or server_keys[0],
            algorithm="PS512",
            headers={"jku": jku, "kid": kid},
        )

    return _sign


def make_token_pair(access_in: int = 3600, refresh_in: int = 7200, suffix: str = "") -> TokenPair:
    now = int(time.time())
    return TokenPair(
        access_token=Token(value=f"access{suffix}", expires_on=now + access_in),
        refresh_token=Token(value=f"refresh{suffix}", expires_on=now + refresh_in),
    )


def token_pair_payload(suffix: str = "-new") -> Dict[str, Any]:
    now = int(time.time())
    return {
        "access_token": {"value": f"access{suffix}", "expires_on": now + 3600},
        "refresh_token": {"value": f"refresh{suffix}", "expires_on": now + 7200},
        "sub": "user-1",
    }


def encrypt_file(
    public_pem: str,
    data: bytes,
    metadata: Optional[Dict[str, Any]] = None,
    **header_fields,
) -> Tuple[bytes, str]:
    """Encrypt data with the hybrid scheme and build the matching x-metadata header."""
    crypto = CryptoServiceAdapter(MemoryLogger())
    key = os.urandom(32)
    iv = os.urandom(16)
    body = crypto.rsa_encrypt(public_pem, key) + iv + crypto.aes_encrypt(key, iv, data)

    header = {"metadata": metadata or {"mimetype": "application/json"}}
    header.update(header_fields)
    encoded = base64.urlsafe_b64encode(json.dumps(header).encode()).rstrip(b"=").decode()
    return body, encoded


def unverified_claims(request: httpx.Request) -> Dict[str, Any]:
    """Read the signed bearer claims of a captured request."""
    token = request.headers["Authorization"].split(" ", 1)[1]
    return jwt.decode(token, options={"verify_signature": False})


class MemoryLogger(LoggerPort):
    """LoggerPort that keeps messages in memory."""

    def __init__(self):
        self.records: List[Tuple[str, str]] = []

    def info(self, message: str, **kwargs) -> None:
        self.records.append(("info", message))

    def warning(self, message: str, **kwargs) -> None:
        self.records.append(("warning", message))

    def error(self, message: str, **kwargs) -> None:
        self.records.append(("error", message))

    def debug(self, message: str, **kwargs) -> None:
        self.records.append(("debug", message))

    def messages(self, level: str) -> List[str]:
        return [message for record_level, message in self.records if record_level == level]


class FakePlatform:
    """Routes MockTransport requests to per-endpoint responders.

    A responder is an httpx.Response, a list of them (consumed in order, the last one
    repeats), or a callable taking the request (sync or async).
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], Any] = {}
        self.requests: List[httpx.Request] = []

    def add(self, method: str, url: str, responder: Any) -> None:
        if not url.startswith("http"):
            url = f"{BASE_URL}{url}"
        self.routes[(method.upper(), url)] = responder

    def calls(self, method: str, url: str) -> List[httpx.Request]:
        if not url.startswith("http"):
            url = f"{BASE_URL}{url}"
        return [r for r in self.requests if r.method == method.upper() and str(r.url) == url]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, str(request.url))
        if key not in self.routes:
            return httpx.Response(404, json={"message": f"no route for {key}"})

        responder = self.routes[key]
        if isinstance(responder, list):
            responder = responder.pop(0) if len(responder) > 1 else responder[0]

        if callable(responder):
            response = responder(request)
            if hasattr(response, "__await__"):
                response = await response
            return response

        return httpx.Response(responder.status_code, headers=responder.headers, content=responder.content)


@pytest.fixture
def platform(key_set) -> FakePlatform:
    fake = FakePlatform()
    fake.add("GET", JWKS_URL, httpx.Response(200, json=key_set))
    return fake


@pytest.fixture
def config() -> TestingConfig:
    return TestingConfig(_env_file=None)


@pytest.fixture
def make_factory(config, contract, platform):
    """Build an AdapterFactory wired to the fake platform."""

    def _make(token_pair: Optional[TokenPair] = None, on_token_pair_refreshed=None) -> AdapterFactory:
        factory = AdapterFactory(config=config, contract=contract, transport=httpx.MockTransport(platform))
        factory._logger = MemoryLogger()
        factory.create_token_manager(token_pair=token_pair, on_token_pair_refreshed=on_token_pair_refreshed)
        return factory

    return _make
