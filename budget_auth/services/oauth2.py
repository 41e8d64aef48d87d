# budget_auth/services/oauth2.py
"""Authorization-code and refresh-token grants.

An authorize attempt either ends with a code bound to (client, user,
redirect_uri, scope) or bounces the browser to the login page; the code is
later exchanged exactly once at the token endpoint.
"""
from __future__ import annotations

import logging
from typing import List, Optional
from urllib.parse import urlencode, urlsplit, urlunsplit

from budget_auth.core.errors import (
    AuthenticationFailed,
    InvalidGrant,
    LoginRequired,
    TokenRevoked,
    ValidationFailed,
)
from budget_auth.core.logging import log_auth_event, log_suspicious_activity
from budget_auth.core.security import is_valid_client_id, split_csv
from budget_auth.core.tokens import TokenBundle, TokenIssuer
from budget_auth.services.credentials import AuthenticatedUser, CredentialStore
from budget_auth.services.ledger import TokenLedger

logger = logging.getLogger(__name__)

DEFAULT_SCOPE = "api"


def _invalid_request(message: str) -> ValidationFailed:
    return ValidationFailed(message, error_code="invalid_request")


def append_query(url: str, params: List[tuple]) -> str:
    # the registered query is kept byte for byte
    parts = urlsplit(url)
    extra = urlencode(params)
    query = f"{parts.query}&{extra}" if parts.query else extra
    return urlunsplit(parts._replace(query=query))


def login_redirect(path: str, query_string: str) -> str:
    return_to = f"{path}?{query_string}" if query_string else path
    extra = urlencode({"return_to": return_to})
    return f"/login?{query_string}&{extra}" if query_string else f"/login?{extra}"


class OAuth2Server:
    def __init__(self, credentials: CredentialStore, ledger: TokenLedger, issuer: TokenIssuer) -> None:
        self.credentials = credentials
        self.ledger = ledger
        self.issuer = issuer

    async def authorize(
        self,
        client_id: Optional[str],
        redirect_uri: Optional[str],
        response_type: Optional[str] = None,
        scope: Optional[str] = None,
        state: Optional[str] = None,
        user: Optional[AuthenticatedUser] = None,
        path: str = "/oauth/authorize",
        query_string: str = "",
    ) -> str:
        """Return the client redirect carrying a fresh code, or raise ``LoginRequired``."""
        if (response_type or "code") != "code":
            raise ValidationFailed("response_type must be 'code'", error_code="unsupported_response_type")
        if not client_id or not redirect_uri:
            raise _invalid_request("client_id and redirect_uri are required")
        if not is_valid_client_id(client_id):
            raise _invalid_request("Invalid client_id format")

        client = await self.credentials.find_client(client_id)
        if client is None:
            raise ValidationFailed("Unknown client", error_code="invalid_client")
        if not client["redirect_uris"]:
            raise _invalid_request("Client has no registered redirect URIs")
        if redirect_uri not in client["redirect_uris"]:
            log_suspicious_activity("REDIRECT_URI_MISMATCH", client_id=client_id)
            raise _invalid_request("redirect_uri is not registered for this client")

        requested = split_csv((scope or DEFAULT_SCOPE).replace(" ", ","))
        if not requested or not set(requested) <= set(client["allowed_scopes"]):
            raise ValidationFailed("Requested scope not allowed for this client", error_code="invalid_scope")

        if user is None:
            raise LoginRequired(login_redirect(path, query_string))

        code = await self.ledger.store_code(client_id, user.user_id, redirect_uri, requested)
        log_auth_event("AUTH_CODE_ISSUED", user.user_id, True, client_id=client_id)
        params = [("code", code)]
        if state:
            params.append(("state", state))
        return append_query(redirect_uri, params)

    async def exchange_code(
        self,
        client_id: Optional[str],
        client_secret: Optional[str],
        code: Optional[str],
        redirect_uri: Optional[str],
    ) -> TokenBundle:
        await self.credentials.validate_client(client_id, client_secret)
        if not code or not redirect_uri:
            raise _invalid_request("code and redirect_uri are required")

        grant = await self.ledger.redeem_code(code, client_id, redirect_uri)
        user = await self.credentials.get_active_user(grant.user_id)
        if user is None:
            raise InvalidGrant("User is no longer active")
        scopes = [s for s in grant.scopes if s in user.scopes]
        if not scopes:
            raise InvalidGrant("None of the granted scopes are still held by the user")

        bundle = await self.issuer.issue_tokens(user.user_id, user.username, scopes, user.role)
        log_auth_event("TOKEN_ISSUED", user.user_id, True, grant="authorization_code", client_id=client_id)
        return bundle

    async def refresh(self, refresh_token: Optional[str], client_id: Optional[str] = None) -> TokenBundle:
        """Rotate a refresh token; a second presentation of the same token is reuse."""
        if not refresh_token:
            raise _invalid_request("refresh_token is required")
        claims = await self.issuer.verify_refresh(refresh_token)
        jti = claims["jti"]
        user_id = claims.get("user_id")
        if not await self.ledger.claim(jti):
            log_suspicious_activity("REFRESH_TOKEN_REUSE", user_id, client_id=client_id)
            raise TokenRevoked("Refresh token already used")

        user = await self.credentials.get_active_user(user_id)
        if user is None:
            log_auth_event("REFRESH_FAILED", user_id, False, reason="inactive_user")
            raise AuthenticationFailed("User is no longer active")
        bundle = await self.issuer.issue_tokens(user.user_id, user.username, user.scopes, user.role)
        log_auth_event("TOKEN_REFRESHED", user.user_id, True, client_id=client_id)
        return bundle
