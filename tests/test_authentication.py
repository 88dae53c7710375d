"""Tests for the token lifecycle manager and OAuth flows."""

import asyncio
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from conftest import make_token_pair, token_pair_payload, unverified_claims
from dataport.core.domain.entities import TokenPair
from dataport.core.domain.errors import (
    JWTVerificationError,
    OAuthError,
    ServerError,
    TokenExpiredError,
    TypeValidationError,
)
from dataport.core.usecases.authentication import is_authorization_error
from dataport.core.usecases.request_signing import code_challenge


@pytest.fixture
def token_endpoint(platform, sign_server_token):
    """Register a working oauth/token endpoint and return its call list accessor."""
    platform.add("POST", "oauth/token", lambda request: httpx.Response(
        200, json={"token": sign_server_token(token_pair_payload())}
    ))
    return lambda: platform.calls("POST", "oauth/token")


@pytest.mark.asyncio
async def test_ensure_valid_returns_current_pair_without_network(make_factory, platform):
    pair = make_token_pair()
    manager = make_factory(token_pair=pair).create_token_manager()

    assert await manager.ensure_valid() is pair
    assert platform.requests == []


@pytest.mark.asyncio
async def test_access_token_inside_margin_is_refreshed(make_factory, token_endpoint):
    manager = make_factory(token_pair=make_token_pair(access_in=5)).create_token_manager()

    pair = await manager.ensure_valid()

    assert pair.access_token.value == "access-new"
    assert len(token_endpoint()) == 1


@pytest.mark.asyncio
async def test_both_tokens_expired_fails_without_network(make_factory, platform):
    manager = make_factory(token_pair=make_token_pair(access_in=-10, refresh_in=-5)).create_token_manager()

    with pytest.raises(TokenExpiredError):
        await manager.ensure_valid()
    assert platform.requests == []


@pytest.mark.asyncio
async def test_missing_token_pair_is_rejected(make_factory):
    manager = make_factory().create_token_manager()

    with pytest.raises(TypeValidationError):
        await manager.ensure_valid()


@pytest.mark.asyncio
async def test_refresh_request_and_hook(make_factory, token_endpoint):
    events = []
    outdated = make_token_pair(access_in=-10)
    manager = make_factory(token_pair=outdated, on_token_pair_refreshed=events.append).create_token_manager()

    new_pair = await manager.ensure_valid()

    claims = unverified_claims(token_endpoint()[0])
    assert claims["grant_type"] == "refresh_token"
    assert claims["refresh_token"] == "refresh"
    assert claims["redirect_uri"] == "https://app.test.local/callback"
    assert manager.token_pair == new_pair
    assert len(events) == 1
    assert events[0].outdated_token_pair == outdated
    assert events[0].new_token_pair == new_pair


@pytest.mark.asyncio
async def test_concurrent_callers_share_single_refresh(make_factory, platform, sign_server_token):
    release = asyncio.Event()

    async def slow_token(request):
        await release.wait()
        return httpx.Response(200, json={"token": sign_server_token(token_pair_payload())})

    platform.add("POST", "oauth/token", slow_token)
    events = []
    manager = make_factory(
        token_pair=make_token_pair(access_in=-10), on_token_pair_refreshed=events.append
    ).create_token_manager()

    callers = [asyncio.ensure_future(manager.ensure_valid()) for _ in range(5)]
    await asyncio.sleep(0.01)
    release.set()
    results = await asyncio.gather(*callers)

    assert len(platform.calls("POST", "oauth/token")) == 1
    assert all(result == results[0] for result in results)
    assert len(events) == 1


@pytest.mark.asyncio
async def test_failed_refresh_is_shared_and_cleared(make_factory, platform):
    platform.add("POST", "oauth/token", httpx.Response(
        400, json={"error": {"code": "InvalidGrant", "message": "bad refresh token"}}
    ))
    manager = make_factory(token_pair=make_token_pair(access_in=-10)).create_token_manager()

    results = await asyncio.gather(manager.ensure_valid(), manager.ensure_valid(), return_exceptions=True)

    assert all(isinstance(result, OAuthError) for result in results)
    assert len(platform.calls("POST", "oauth/token")) == 1

    await asyncio.sleep(0)
    with pytest.raises(OAuthError):
        await manager.ensure_valid()
    assert len(platform.calls("POST", "oauth/token")) == 2


@pytest.mark.asyncio
async def test_hook_failure_does_not_abort_refresh(make_factory, token_endpoint):
    def broken_hook(event):
        raise RuntimeError("storage unavailable")

    factory = make_factory(token_pair=make_token_pair(access_in=-10), on_token_pair_refreshed=broken_hook)
    manager = factory.create_token_manager()

    pair = await manager.ensure_valid()

    assert pair.access_token.value == "access-new"
    assert any("storage unavailable" in message for message in factory.create_logger().messages("error"))


@pytest.mark.asyncio
async def test_async_hook_runs_in_background(make_factory, token_endpoint):
    seen = []
    done = asyncio.Event()

    async def hook(event):
        seen.append(event.new_token_pair.access_token.value)
        done.set()

    manager = make_factory(token_pair=make_token_pair(access_in=-10), on_token_pair_refreshed=hook).create_token_manager()
    await manager.ensure_valid()
    await asyncio.wait_for(done.wait(), 1.0)

    assert seen == ["access-new"]


@pytest.mark.asyncio
async def test_slow_async_hook_does_not_block_callers(make_factory, token_endpoint):
    release = asyncio.Event()
    finished = []

    async def slow_hook(event):
        await release.wait()
        finished.append(event.new_token_pair.access_token.value)

    manager = make_factory(
        token_pair=make_token_pair(access_in=-10), on_token_pair_refreshed=slow_hook
    ).create_token_manager()

    pair = await asyncio.wait_for(manager.ensure_valid(), 1.0)
    assert await asyncio.wait_for(manager.ensure_valid(), 1.0) is pair

    assert pair.access_token.value == "access-new"
    assert finished == []
    assert len(token_endpoint()) == 1

    release.set()
    await asyncio.sleep(0.01)
    assert finished == ["access-new"]


@pytest.mark.asyncio
async def test_async_hook_failure_is_logged(make_factory, token_endpoint):
    async def broken_hook(event):
        raise RuntimeError("token store offline")

    factory = make_factory(token_pair=make_token_pair(access_in=-10), on_token_pair_refreshed=broken_hook)

    pair = await factory.create_token_manager().ensure_valid()
    await asyncio.sleep(0.01)

    assert pair.access_token.value == "access-new"
    assert any("token store offline" in message for message in factory.create_logger().messages("error"))


@pytest.mark.asyncio
async def test_non_oauth_server_error_passes_through(make_factory, platform):
    platform.add("POST", "oauth/token", httpx.Response(
        500, json={"error": {"code": "InternalError", "message": "boom"}}
    ))
    manager = make_factory(token_pair=make_token_pair(access_in=-10)).create_token_manager()

    with pytest.raises(ServerError) as exc_info:
        await manager.ensure_valid()
    assert not isinstance(exc_info.value, OAuthError)
    assert exc_info.value.code == "InternalError"


@pytest.mark.asyncio
async def test_call_with_token_retry_refreshes_once_on_invalid_token(make_factory, token_endpoint):
    manager = make_factory(token_pair=make_token_pair()).create_token_manager()
    seen_tokens = []

    async def operation(pair: TokenPair):
        seen_tokens.append(pair.access_token.value)
        if len(seen_tokens) == 1:
            raise ServerError("token revoked", "InvalidToken", status_code=401)
        return "ok"

    assert await manager.call_with_token_retry(operation) == "ok"
    assert seen_tokens == ["access", "access-new"]
    assert len(token_endpoint()) == 1


@pytest.mark.asyncio
async def test_second_authorization_failure_propagates(make_factory, token_endpoint):
    manager = make_factory(token_pair=make_token_pair()).create_token_manager()
    attempts = []

    async def operation(pair: TokenPair):
        attempts.append(pair)
        raise ServerError("token revoked", "InvalidToken", status_code=401)

    with pytest.raises(ServerError):
        await manager.call_with_token_retry(operation)
    assert len(attempts) == 2
    assert len(token_endpoint()) == 1


@pytest.mark.asyncio
async def test_http_401_counts_as_authorization_error(make_factory, token_endpoint, platform):
    platform.add("GET", "permission-access/accounts", [
        httpx.Response(401, text="unauthorized"),
        httpx.Response(200, json={"accounts": []}),
    ])
    sync = make_factory(token_pair=make_token_pair()).create_session_sync_usecase()

    assert await sync.read_accounts() == {"accounts": []}
    assert len(token_endpoint()) == 1
    assert len(platform.calls("GET", "permission-access/accounts")) == 2


@pytest.mark.asyncio
async def test_other_errors_are_not_retried(make_factory, token_endpoint):
    manager = make_factory(token_pair=make_token_pair()).create_token_manager()
    attempts = []

    async def operation(pair: TokenPair):
        attempts.append(pair)
        raise ServerError("no such session", "SessionNotFound", status_code=404)

    with pytest.raises(ServerError):
        await manager.call_with_token_retry(operation)
    assert len(attempts) == 1
    assert token_endpoint() == []


def test_is_authorization_error():
    request = httpx.Request("GET", "https://api.test.local/v1/x")
    unauthorized = httpx.HTTPStatusError("401", request=request, response=httpx.Response(401, request=request))
    forbidden = httpx.HTTPStatusError("403", request=request, response=httpx.Response(403, request=request))

    assert is_authorization_error(unauthorized)
    assert not is_authorization_error(forbidden)
    assert is_authorization_error(ServerError("m", "InvalidToken"))
    assert not is_authorization_error(ServerError("m", "Other", status_code=400))
    assert not is_authorization_error(ValueError("x"))


@pytest.mark.asyncio
async def test_exchange_code_for_token_installs_pair(make_factory, token_endpoint):
    factory = make_factory()
    auth = factory.create_authentication_usecase()

    pair = await auth.exchange_code_for_token("verifier-123", "auth-code-1")

    claims = unverified_claims(token_endpoint()[0])
    assert claims["grant_type"] == "authorization_code"
    assert claims["code"] == "auth-code-1"
    assert claims["code_verifier"] == "verifier-123"
    assert pair.access_token.value == "access-new"
    assert factory.create_token_manager().token_pair == pair


@pytest.mark.asyncio
async def test_exchange_code_maps_oauth_errors(make_factory, platform):
    platform.add("POST", "oauth/token", httpx.Response(
        400, headers={"x-error-code": "InvalidRedirectUri", "x-error-message": "mismatch"}
    ))
    auth = make_factory().create_authentication_usecase()

    with pytest.raises(OAuthError):
        await auth.exchange_code_for_token("verifier", "code")


@pytest.mark.asyncio
async def test_get_authorize_url(make_factory, platform, sign_server_token):
    platform.add("POST", "oauth/authorize", lambda request: httpx.Response(200, json={
        "token": sign_server_token({"preauthorization_code": "pre-123"}),
        "session": {"key": "session-1", "expiry": 1700000000000},
    }))
    auth = make_factory(token_pair=make_token_pair()).create_authentication_usecase()

    result = await auth.get_authorize_url("https://app.test.local/done", state="s1", service_id=16)

    parsed = urlparse(result.url)
    query = parse_qs(parsed.query)
    assert result.url.startswith("https://onboard.test.local/authorize?")
    assert query["code"] == ["pre-123"]
    assert query["service"] == ["16"]
    assert query["sourceType"] == ["pull"]
    assert result.session.key == "session-1"

    request = platform.calls("POST", "oauth/authorize")[0]
    claims = unverified_claims(request)
    assert claims["code_challenge"] == code_challenge(result.code_verifier)
    assert claims["code_challenge_method"] == "S256"
    assert claims["redirect_uri"] == "https://app.test.local/done"
    assert claims["state"] == "s1"
    assert claims["access_token"] == "access"


@pytest.mark.asyncio
async def test_get_authorize_url_rejects_unverified_token(make_factory, platform, sign_server_token, other_keys):
    platform.add("POST", "oauth/authorize", lambda request: httpx.Response(200, json={
        "token": sign_server_token({"preauthorization_code": "pre-123"}, key=other_keys[0]),
        "session": {"key": "session-1", "expiry": 1700000000000},
    }))
    auth = make_factory().create_authentication_usecase()

    with pytest.raises(JWTVerificationError):
        await auth.get_authorize_url("https://app.test.local/done")


@pytest.mark.asyncio
@pytest.mark.parametrize("session", [None, {"key": "session-1"}, {"key": 5, "expiry": "soon"}])
async def test_get_authorize_url_rejects_malformed_session(make_factory, platform, sign_server_token, session):
    platform.add("POST", "oauth/authorize", lambda request: httpx.Response(200, json={
        "token": sign_server_token({"preauthorization_code": "pre-123"}),
        "session": session,
    }))
    auth = make_factory().create_authentication_usecase()

    with pytest.raises(TypeValidationError):
        await auth.get_authorize_url("https://app.test.local/done")
