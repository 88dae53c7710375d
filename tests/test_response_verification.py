"""Tests for response token verification with dynamic key discovery."""

import base64
import json
from typing import Any, List

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from jwt.algorithms import RSAAlgorithm

from conftest import JWKS_URL, SERVER_KID, MemoryLogger
from dataport.core.domain.entities import PreauthorizationPayload
from dataport.core.domain.errors import JWTVerificationError
from dataport.core.domain.ports import KeySetFetcherPort
from dataport.core.usecases.response_verification import ResponseVerifier


class StaticKeySetFetcher(KeySetFetcherPort):
    def __init__(self, key_set: Any):
        self.key_set = key_set
        self.fetched: List[str] = []

    async def fetch(self, jku: str) -> Any:
        self.fetched.append(jku)
        return self.key_set


def _b64(value) -> str:
    return base64.urlsafe_b64encode(json.dumps(value).encode()).rstrip(b"=").decode()


def make_verifier(key_set: Any):
    fetcher = StaticKeySetFetcher(key_set)
    return ResponseVerifier(fetcher, MemoryLogger(), trusted_jwks=[JWKS_URL]), fetcher


@pytest.mark.asyncio
async def test_verify_with_pem_key(key_set, sign_server_token):
    verifier, fetcher = make_verifier(key_set)
    token = sign_server_token({"preauthorization_code": "code-1"})

    payload = await verifier.verify(token)

    assert payload["preauthorization_code"] == "code-1"
    assert fetcher.fetched == [JWKS_URL]


@pytest.mark.asyncio
async def test_verify_with_rsa_jwk(server_keys, sign_server_token):
    public_key = serialization.load_pem_public_key(server_keys[1].encode())
    jwk = json.loads(RSAAlgorithm.to_jwk(public_key))
    jwk["kid"] = SERVER_KID
    verifier, _ = make_verifier({"keys": [jwk]})

    payload = await verifier.verify(sign_server_token({"value": 1}))

    assert payload["value"] == 1


@pytest.mark.asyncio
async def test_verify_returns_expected_model(key_set, sign_server_token):
    verifier, _ = make_verifier(key_set)
    token = sign_server_token({"preauthorization_code": "code-2"})

    payload = await verifier.verify(token, PreauthorizationPayload)

    assert isinstance(payload, PreauthorizationPayload)
    assert payload.preauthorization_code == "code-2"


@pytest.mark.asyncio
async def test_payload_shape_mismatch_fails(key_set, sign_server_token):
    verifier, _ = make_verifier(key_set)
    token = sign_server_token({"something_else": True})

    with pytest.raises(JWTVerificationError):
        await verifier.verify(token, PreauthorizationPayload)


@pytest.mark.asyncio
async def test_missing_jku_fails_without_fetch(key_set, server_keys):
    verifier, fetcher = make_verifier(key_set)
    token = jwt.encode({"a": 1}, server_keys[0], algorithm="PS512", headers={"kid": SERVER_KID})

    with pytest.raises(JWTVerificationError):
        await verifier.verify(token)
    assert fetcher.fetched == []


@pytest.mark.asyncio
async def test_non_string_kid_fails(key_set):
    verifier, fetcher = make_verifier(key_set)
    header = {"alg": "PS512", "typ": "JWT", "jku": JWKS_URL, "kid": 5}
    token = ".".join([_b64(header), _b64({"a": 1}), "c2lnbmF0dXJl"])

    with pytest.raises(JWTVerificationError):
        await verifier.verify(token)
    assert fetcher.fetched == []


@pytest.mark.asyncio
@pytest.mark.parametrize("bad_key_set", [None, [], {"keys": "nope"}, {"keys": [1, 2]}, {"other": []}])
async def test_malformed_key_set_fails(bad_key_set, sign_server_token):
    verifier, _ = make_verifier(bad_key_set)

    with pytest.raises(JWTVerificationError):
        await verifier.verify(sign_server_token({"a": 1}))


@pytest.mark.asyncio
async def test_unknown_kid_fails(key_set, sign_server_token):
    verifier, _ = make_verifier(key_set)

    with pytest.raises(JWTVerificationError):
        await verifier.verify(sign_server_token({"a": 1}, kid="rotated-away"))


@pytest.mark.asyncio
async def test_signature_from_wrong_key_fails(key_set, sign_server_token, other_keys):
    verifier, _ = make_verifier(key_set)
    token = sign_server_token({"a": 1}, key=other_keys[0])

    with pytest.raises(JWTVerificationError) as exc_info:
        await verifier.verify(token)
    assert exc_info.value.__cause__ is not None


@pytest.mark.asyncio
async def test_garbage_token_fails(key_set):
    verifier, _ = make_verifier(key_set)

    with pytest.raises(JWTVerificationError):
        await verifier.verify("not-a-jwt")


@pytest.mark.asyncio
async def test_non_string_token_fails(key_set):
    verifier, _ = make_verifier(key_set)

    with pytest.raises(JWTVerificationError):
        await verifier.verify(None)


@pytest.mark.asyncio
async def test_untrusted_jku_fails_without_fetch(key_set, sign_server_token):
    verifier, fetcher = make_verifier(key_set)
    attacker_url = "https://evil.example/jwks"
    token = sign_server_token({"preauthorization_code": "forged"}, jku=attacker_url)

    with pytest.raises(JWTVerificationError):
        await verifier.verify(token)
    assert fetcher.fetched == []


@pytest.mark.asyncio
async def test_added_trusted_jwks_is_accepted(key_set, sign_server_token):
    fetcher = StaticKeySetFetcher(key_set)
    verifier = ResponseVerifier(fetcher, MemoryLogger())
    partner_url = "https://keys.partner.example/jwks"
    token = sign_server_token({"a": 1}, jku=partner_url)

    with pytest.raises(JWTVerificationError):
        await verifier.verify(token)

    verifier.add_trusted_jwks(partner_url)

    assert (await verifier.verify(token))["a"] == 1
    assert fetcher.fetched == [partner_url]


def test_add_trusted_jwks_rejects_non_url(key_set):
    verifier, _ = make_verifier(key_set)

    with pytest.raises(JWTVerificationError):
        verifier.add_trusted_jwks("jwks/oauth")


@pytest.mark.asyncio
async def test_key_set_is_cached_until_kid_changes(key_set, server_keys, sign_server_token):
    verifier, fetcher = make_verifier(key_set)

    await verifier.verify(sign_server_token({"a": 1}))
    await verifier.verify(sign_server_token({"a": 2}))
    assert fetcher.fetched == [JWKS_URL]

    fetcher.key_set = {"keys": [{"kid": "rotated", "pem": server_keys[1]}]}
    payload = await verifier.verify(sign_server_token({"a": 3}, kid="rotated"))

    assert payload["a"] == 3
    assert fetcher.fetched == [JWKS_URL, JWKS_URL]


class BrokenKeySetFetcher(KeySetFetcherPort):
    async def fetch(self, jku: str) -> Any:
        return json.loads("<html>not a key set</html>")


@pytest.mark.asyncio
async def test_non_json_key_set_fails(sign_server_token):
    verifier = ResponseVerifier(BrokenKeySetFetcher(), MemoryLogger(), trusted_jwks=[JWKS_URL])

    with pytest.raises(JWTVerificationError) as exc_info:
        await verifier.verify(sign_server_token({"a": 1}))
    assert isinstance(exc_info.value.__cause__, ValueError)


@pytest.mark.asyncio
async def test_html_key_set_response_fails_over_http(make_factory, platform, sign_server_token):
    platform.add("GET", JWKS_URL, httpx.Response(
        200, content=b"<html>not a key set</html>", headers={"Content-Type": "text/html"}
    ))
    verifier = make_factory().create_verifier()

    with pytest.raises(JWTVerificationError):
        await verifier.verify(sign_server_token({"a": 1}))
