from urllib.parse import parse_qs, urlsplit

import pytest

from budget_auth.core.errors import (
    AuthenticationFailed,
    InvalidClient,
    InvalidGrant,
    LoginRequired,
    TokenMalformed,
    TokenRevoked,
    ValidationFailed,
)
from budget_auth.crud.user import user_crud
from budget_auth.services.oauth2 import append_query

from .conftest import CLIENT_SECRET, REDIRECT_URI


async def _setup(runtime, make_user, scopes="api,reports", client_scopes="api,reports"):
    user_id = await make_user(runtime, "alice", scopes=scopes)
    await runtime.credentials.create_client("n8n", CLIENT_SECRET, client_scopes, REDIRECT_URI)
    return await runtime.credentials.get_active_user(user_id)


async def _code_for(runtime, user, scope="api", state="xyz", redirect_uri=REDIRECT_URI):
    location = await runtime.oauth2.authorize("n8n", redirect_uri, "code", scope, state, user=user)
    return parse_qs(urlsplit(location).query)["code"][0]


async def test_authorize_without_session_requires_login(runtime, make_user):
    await _setup(runtime, make_user)
    query = f"client_id=n8n&redirect_uri={REDIRECT_URI}&response_type=code"
    with pytest.raises(LoginRequired) as excinfo:
        await runtime.oauth2.authorize(
            "n8n", REDIRECT_URI, "code", None, None, user=None, path="/oauth/authorize", query_string=query
        )
    target = excinfo.value.redirect_to
    assert target.startswith("/login?client_id=n8n")
    assert "return_to=%2Foauth%2Fauthorize%3Fclient_id%3Dn8n" in target


async def test_authorize_with_session_redirects_with_code_and_state(runtime, make_user):
    user = await _setup(runtime, make_user)
    location = await runtime.oauth2.authorize("n8n", REDIRECT_URI, None, "api", "s-123", user=user)
    parts = urlsplit(location)
    assert f"{parts.scheme}://{parts.netloc}{parts.path}" == REDIRECT_URI
    query = parse_qs(parts.query)
    assert len(query["code"][0]) == 64
    assert query["state"] == ["s-123"]


async def test_authorize_keeps_existing_query(runtime, make_user):
    user = await _setup(runtime, make_user)
    uri = "https://app.example.com/cb?tenant=7"
    await runtime.credentials.update_client("n8n", redirect_uris=[uri])
    location = await runtime.oauth2.authorize("n8n", uri, "code", "api", None, user=user)
    query = parse_qs(urlsplit(location).query)
    assert query["tenant"] == ["7"]
    assert "code" in query
    assert "state" not in query


async def test_registered_query_is_not_reencoded(runtime, make_user):
    user = await _setup(runtime, make_user)
    uri = "https://app.example.com/cb?a=b%20c&x=1"
    await runtime.credentials.update_client("n8n", redirect_uris=[uri])
    location = await runtime.oauth2.authorize("n8n", uri, "code", "api", "s 1", user=user)
    assert location.startswith(uri + "&code=")
    assert location.endswith("&state=s+1")


def test_append_query():
    assert append_query("https://c.example/cb", [("code", "z")]) == "https://c.example/cb?code=z"
    assert append_query("https://c.example/cb?a=b%20c&x=1", [("code", "z")]) == "https://c.example/cb?a=b%20c&x=1&code=z"
    assert append_query("https://c.example/cb?k=v#frag", [("code", "z")]) == "https://c.example/cb?k=v&code=z#frag"


@pytest.mark.parametrize(
    "client_id,redirect_uri,response_type,scope",
    [
        ("n8n", REDIRECT_URI, "token", "api"),
        (None, REDIRECT_URI, "code", "api"),
        ("n8n", None, "code", "api"),
        ("bad id", REDIRECT_URI, "code", "api"),
        ("ghost", REDIRECT_URI, "code", "api"),
        ("n8n", "https://evil.example.com/cb", "code", "api"),
        ("n8n", REDIRECT_URI, "code", "admin"),
    ],
)
async def test_authorize_rejects_bad_requests(runtime, make_user, client_id, redirect_uri, response_type, scope):
    user = await _setup(runtime, make_user)
    with pytest.raises(ValidationFailed):
        await runtime.oauth2.authorize(client_id, redirect_uri, response_type, scope, None, user=user)


async def test_authorize_rejects_client_without_redirect_uris(runtime, make_user):
    user = await _setup(runtime, make_user)
    await runtime.credentials.create_client("bare", CLIENT_SECRET, "api")
    with pytest.raises(ValidationFailed):
        await runtime.oauth2.authorize("bare", REDIRECT_URI, "code", "api", None, user=user)


async def test_code_exchanges_exactly_once(runtime, make_user, settings):
    user = await _setup(runtime, make_user)
    code = await _code_for(runtime, user, scope="api,reports")
    bundle = await runtime.oauth2.exchange_code("n8n", CLIENT_SECRET, code, REDIRECT_URI)
    claims = await runtime.issuer.verify_access(bundle.access_token)
    assert claims["user_id"] == user.user_id
    assert claims["scopes"] == ["api", "reports"]

    with pytest.raises(InvalidGrant):
        await runtime.oauth2.exchange_code("n8n", CLIENT_SECRET, code, REDIRECT_URI)


async def test_exchange_requires_client_authentication(runtime, make_user):
    user = await _setup(runtime, make_user)
    code = await _code_for(runtime, user)
    with pytest.raises(InvalidClient):
        await runtime.oauth2.exchange_code("n8n", "w" * 40, code, REDIRECT_URI)
    with pytest.raises(ValidationFailed):
        await runtime.oauth2.exchange_code("n8n", CLIENT_SECRET, None, REDIRECT_URI)
    # failed attempts above leave the code usable
    await runtime.oauth2.exchange_code("n8n", CLIENT_SECRET, code, REDIRECT_URI)


async def test_exchange_with_mismatched_redirect_fails(runtime, make_user):
    user = await _setup(runtime, make_user)
    code = await _code_for(runtime, user)
    with pytest.raises(InvalidGrant):
        await runtime.oauth2.exchange_code("n8n", CLIENT_SECRET, code, "https://n8n.example.com/other")


async def test_exchange_after_ttl_fails(runtime, make_user, settings, clock):
    user = await _setup(runtime, make_user)
    code = await _code_for(runtime, user)
    clock.advance(settings.AUTH_CODE_TTL_SECONDS + 5)
    with pytest.raises(InvalidGrant):
        await runtime.oauth2.exchange_code("n8n", CLIENT_SECRET, code, REDIRECT_URI)


async def test_exchange_narrows_scopes_to_current_user_scopes(runtime, make_user):
    user = await _setup(runtime, make_user)
    code = await _code_for(runtime, user, scope="api,reports")
    await user_crud.update(runtime.database, user.user_id, {"scopes": "api", "role": "auditor"})
    bundle = await runtime.oauth2.exchange_code("n8n", CLIENT_SECRET, code, REDIRECT_URI)
    claims = await runtime.issuer.verify_access(bundle.access_token)
    assert claims["scopes"] == ["api"]
    assert claims["role"] == "auditor"
    assert bundle.scope == "api"


async def test_exchange_for_deactivated_user_fails(runtime, make_user):
    user = await _setup(runtime, make_user)
    code = await _code_for(runtime, user)
    await runtime.credentials.set_user_active(user.user_id, False)
    with pytest.raises(InvalidGrant):
        await runtime.oauth2.exchange_code("n8n", CLIENT_SECRET, code, REDIRECT_URI)


async def test_refresh_rotates_and_detects_reuse(runtime, make_user):
    user = await _setup(runtime, make_user)
    first = await runtime.issuer.issue_tokens(user.user_id, user.username, user.scopes, user.role)

    second = await runtime.oauth2.refresh(first.refresh_token)
    assert second.refresh_token != first.refresh_token
    await runtime.issuer.verify_access(second.access_token)

    with pytest.raises(TokenRevoked):
        await runtime.oauth2.refresh(first.refresh_token)
    # the rotated token still works once
    await runtime.oauth2.refresh(second.refresh_token)


async def test_refresh_uses_current_role(runtime, make_user):
    user = await _setup(runtime, make_user)
    first = await runtime.issuer.issue_tokens(user.user_id, user.username, user.scopes, user.role)
    await user_crud.update(runtime.database, user.user_id, {"role": "admin"})
    second = await runtime.oauth2.refresh(first.refresh_token)
    claims = await runtime.issuer.verify_access(second.access_token)
    assert claims["role"] == "admin"


async def test_refresh_rejects_access_tokens_and_inactive_users(runtime, make_user):
    user = await _setup(runtime, make_user)
    bundle = await runtime.issuer.issue_tokens(user.user_id, user.username, user.scopes, user.role)
    with pytest.raises(TokenMalformed):
        await runtime.oauth2.refresh(bundle.access_token)
    with pytest.raises(ValidationFailed):
        await runtime.oauth2.refresh(None)

    await runtime.credentials.set_user_active(user.user_id, False)
    with pytest.raises(AuthenticationFailed):
        await runtime.oauth2.refresh(bundle.refresh_token)
