# budget_auth/api/routes/oauth2.py
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse

from budget_auth.api.deps import get_runtime, get_session_user, parse_basic, read_body
from budget_auth.core.errors import (
    InvalidGrant,
    TokenExpired,
    TokenMalformed,
    TokenRevoked,
    UnsupportedGrantType,
    ValidationFailed,
)
from budget_auth.schemas.token import TokenRequest, TokenResponse
from budget_auth.services.credentials import AuthenticatedUser
from budget_auth.services.runtime import AuthRuntime

router = APIRouter()


@router.get("/authorize", response_class=RedirectResponse, status_code=302)
async def authorize(
    request: Request,
    client_id: Optional[str] = Query(None),
    redirect_uri: Optional[str] = Query(None),
    response_type: Optional[str] = Query(None),
    scope: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    user: Optional[AuthenticatedUser] = Depends(get_session_user),
    runtime: AuthRuntime = Depends(get_runtime),
):
    location = await runtime.oauth2.authorize(
        client_id,
        redirect_uri,
        response_type=response_type,
        scope=scope,
        state=state,
        user=user,
        path=request.url.path,
        query_string=request.url.query,
    )
    return RedirectResponse(location, status_code=302)


@router.post("/token", response_model=TokenResponse)
async def token(request: Request, runtime: AuthRuntime = Depends(get_runtime)):
    data = await read_body(request)
    try:
        body = TokenRequest.model_validate(data)
    except ValueError as exc:
        raise ValidationFailed("Invalid token request", error_code="invalid_request") from exc

    basic_id, basic_secret = parse_basic(request.headers.get("authorization"))
    client_id = basic_id or body.client_id
    client_secret = basic_secret or body.client_secret

    if not body.grant_type:
        raise ValidationFailed("grant_type is required", error_code="invalid_request")

    if body.grant_type == "authorization_code":
        bundle = await runtime.oauth2.exchange_code(client_id, client_secret, body.code, body.redirect_uri)
        return bundle.as_dict()

    if body.grant_type == "refresh_token":
        await runtime.credentials.validate_client(client_id, client_secret)
        try:
            bundle = await runtime.oauth2.refresh(body.refresh_token, client_id=client_id)
        except (TokenExpired, TokenRevoked, TokenMalformed) as exc:
            raise InvalidGrant(exc.message) from exc
        return bundle.as_dict()

    raise UnsupportedGrantType(f"Unsupported grant_type: {body.grant_type}")
