# budget_auth/api/routes/login.py
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Form, Query, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from budget_auth.api.deps import SESSION_KEY, get_runtime, login_rate_limit
from budget_auth.core.errors import AuthenticationFailed
from budget_auth.services.login_page import render_login_page, safe_return_to
from budget_auth.services.runtime import AuthRuntime

router = APIRouter()


@router.get("/login", response_class=HTMLResponse, include_in_schema=False)
def login_page(return_to: Optional[str] = Query(None), error: Optional[str] = Query(None)):
    return HTMLResponse(render_login_page(return_to, error))


@router.post("/login", include_in_schema=False, dependencies=[Depends(login_rate_limit("/login"))])
async def login_submit(
    request: Request,
    username: str = Form(""),
    password: str = Form(""),
    return_to: str = Form(""),
    runtime: AuthRuntime = Depends(get_runtime),
):
    target = safe_return_to(return_to)
    if not username or not password:
        query = urlencode({"error": "missing_fields", "return_to": target})
        return RedirectResponse(f"/login?{query}", status_code=302)
    try:
        user = await runtime.credentials.authenticate_user(username, password)
    except AuthenticationFailed:
        query = urlencode({"error": "invalid_credentials", "return_to": target})
        return RedirectResponse(f"/login?{query}", status_code=302)

    request.session.clear()
    request.session[SESSION_KEY] = {"id": user.user_id, "username": user.username}
    return RedirectResponse(target, status_code=302)


@router.post("/logout", include_in_schema=False)
def logout(request: Request):
    request.session.clear()
    return RedirectResponse("/login", status_code=302)
