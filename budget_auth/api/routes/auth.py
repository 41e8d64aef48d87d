# budget_auth/api/routes/auth.py
import logging

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError

from budget_auth.api.deps import get_runtime, login_rate_limit, read_body, require_bearer
from budget_auth.core.errors import AuthenticationFailed, ValidationFailed
from budget_auth.core.logging import log_auth_event
from budget_auth.core.rbac import Principal
from budget_auth.core.security import refresh_jti_for
from budget_auth.schemas.token import LoginRequest, LogoutRequest, LogoutResponse, TokenResponse
from budget_auth.services.runtime import AuthRuntime

logger = logging.getLogger(__name__)

router = APIRouter()


def _parse(model, data):
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise ValidationFailed("Invalid request body", details=exc.errors(include_url=False)) from exc


@router.post(
    "/login",
    response_model=TokenResponse,
    dependencies=[Depends(login_rate_limit("/auth/login"))],
)
async def login(request: Request, runtime: AuthRuntime = Depends(get_runtime)):
    """Password login, or refresh-token rotation when only ``refresh_token`` is sent."""
    body = _parse(LoginRequest, await read_body(request))

    if body.refresh_token and not body.username and not body.password:
        bundle = await runtime.oauth2.refresh(body.refresh_token)
        return bundle.as_dict()

    if not body.username or not body.password:
        raise ValidationFailed("Username and password required")

    user = await runtime.credentials.authenticate_user(body.username, body.password)
    bundle = await runtime.issuer.issue_tokens(user.user_id, user.username, user.scopes, user.role)
    return bundle.as_dict()


@router.post("/logout", response_model=LogoutResponse)
async def logout(
    request: Request,
    principal: Principal = Depends(require_bearer),
    runtime: AuthRuntime = Depends(get_runtime),
):
    body = _parse(LogoutRequest, await read_body(request))

    presented_jti = None
    refresh_problem = False
    if body.refresh_token:
        try:
            claims = await runtime.issuer.verify_refresh(body.refresh_token)
            presented_jti = claims["jti"]
        except AuthenticationFailed as exc:
            logger.warning("Invalid refresh_token on logout for user %s: %s", principal.user_id, exc.error_code)
            refresh_problem = True

    # access token always goes, whatever happened to the refresh token
    await runtime.ledger.mark_revoked(principal.jti)
    await runtime.ledger.mark_revoked(refresh_jti_for(principal.jti))
    log_auth_event("LOGOUT", principal.user_id, True, username=principal.username)

    if presented_jti:
        await runtime.ledger.mark_revoked(presented_jti)
        log_auth_event("REFRESH_REVOKED", principal.user_id, True)
        message = "Logged out successfully; access and refresh tokens revoked"
    elif refresh_problem:
        message = "Access token revoked; refresh_token was invalid or already expired"
    else:
        message = "Access token revoked (no refresh_token provided)"
    return {"success": True, "message": message}
