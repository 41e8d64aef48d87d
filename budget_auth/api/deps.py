# budget_auth/api/deps.py
import base64
import binascii
import json
import logging
from typing import Any, Callable, Dict, Optional, Tuple
from urllib.parse import parse_qs, unquote, urlencode

from fastapi import Depends, Request

from budget_auth.core.errors import (
    AuthenticationFailed,
    AuthorizationDenied,
    LoginRequired,
    RateLimited,
    ValidationFailed,
)
from budget_auth.core.logging import log_auth_event
from budget_auth.core.rbac import Principal, is_admin
from budget_auth.services.credentials import AuthenticatedUser
from budget_auth.services.runtime import AuthRuntime

logger = logging.getLogger(__name__)

SESSION_KEY = "user"


def get_runtime(request: Request) -> AuthRuntime:
    return request.app.state.runtime


# ----------------------------------------------------------------------
# Authorization header parsing (no OAuth2PasswordBearer: we need both schemes)
# ----------------------------------------------------------------------
def parse_bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]


def parse_basic(authorization: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    if not authorization:
        return None, None
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "basic":
        return None, None
    try:
        decoded = base64.b64decode(parts[1], validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None, None
    client_id, sep, client_secret = decoded.partition(":")
    if not sep:
        return None, None
    return unquote(client_id), unquote(client_secret)


async def read_body(request: Request) -> Dict[str, Any]:
    """JSON object or urlencoded form; anything else is a 400."""
    raw = await request.body()
    if not raw:
        return {}
    ct = request.headers.get("content-type", "").lower()
    if ct.startswith("application/json"):
        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise ValidationFailed("Malformed JSON body", error_code="invalid_request") from exc
        if not isinstance(data, dict):
            raise ValidationFailed("JSON body must be an object", error_code="invalid_request")
        return data
    parsed = parse_qs(raw.decode("utf-8", errors="replace"), keep_blank_values=True)
    return {key: values[0] for key, values in parsed.items()}


# ----------------------------------------------------------------------
# Identities
# ----------------------------------------------------------------------
async def require_bearer(request: Request, runtime: AuthRuntime = Depends(get_runtime)) -> Principal:
    token = parse_bearer(request.headers.get("authorization"))
    if not token:
        raise AuthenticationFailed("Missing or invalid Authorization header")
    claims = await runtime.issuer.verify_access(token)
    return Principal.from_claims(claims)


async def get_session_user(request: Request, runtime: AuthRuntime = Depends(get_runtime)) -> Optional[AuthenticatedUser]:
    data = request.session.get(SESSION_KEY)
    if not isinstance(data, dict) or data.get("id") is None:
        return None
    # role and scopes come from storage, never from the cookie
    return await runtime.credentials.get_active_user(data["id"])


class DualAuthenticator:
    """Bearer token first, browser session second."""

    def __init__(self, runtime: AuthRuntime) -> None:
        self.runtime = runtime

    async def authenticate(self, request: Request) -> Optional[Principal]:
        token = parse_bearer(request.headers.get("authorization"))
        if token:
            try:
                claims = await self.runtime.issuer.verify_access(token)
                return Principal.from_claims(claims)
            except AuthenticationFailed as exc:
                logger.debug("Bearer rejected (%s); falling back to session", exc.error_code)
        user = await get_session_user(request, self.runtime)
        if user is None:
            return None
        return Principal(
            user_id=user.user_id,
            username=user.username,
            role=user.role,
            scopes=list(user.scopes),
            via="session",
        )


async def get_principal(request: Request, runtime: AuthRuntime = Depends(get_runtime)) -> Optional[Principal]:
    return await DualAuthenticator(runtime).authenticate(request)


def wants_json(request: Request) -> bool:
    return "application/json" in request.headers.get("accept", "").lower()


async def require_identity(request: Request, principal: Optional[Principal] = Depends(get_principal)) -> Principal:
    if principal is None:
        if wants_json(request):
            raise AuthenticationFailed()
        target = request.url.path
        if request.url.query:
            target = f"{target}?{request.url.query}"
        raise LoginRequired(f"/login?{urlencode({'return_to': target})}")
    return principal


async def require_admin(principal: Principal = Depends(require_identity)) -> Principal:
    if not is_admin(principal):
        raise AuthorizationDenied("Admin role required")
    return principal


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def login_rate_limit(endpoint: str) -> Callable:
    """Dependency counting password attempts per client IP on ``endpoint``."""

    async def _enforce(request: Request, runtime: AuthRuntime = Depends(get_runtime)) -> None:
        ip = client_ip(request)
        retry_after = runtime.login_limiter.hit(f"{endpoint}:{ip}")
        if retry_after is not None:
            log_auth_event("RATE_LIMITED", None, False, ip=ip, endpoint=endpoint)
            raise RateLimited(retry_after=retry_after)

    return _enforce
