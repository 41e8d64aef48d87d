# budget_auth/core/security.py
"""Identifier formats shared by the token issuer and the token ledger."""
from __future__ import annotations

import hmac
import re
import secrets
import uuid
from datetime import datetime, timezone

REFRESH_SUFFIX = "-refresh"

_UUID4 = r"[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}"
ACCESS_JTI_RE = re.compile(rf"^{_UUID4}$", re.IGNORECASE)
REFRESH_JTI_RE = re.compile(rf"^{_UUID4}{REFRESH_SUFFIX}$", re.IGNORECASE)
AUTH_CODE_RE = re.compile(r"^[0-9a-f]{64}$", re.IGNORECASE)
CLIENT_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,255}$")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_jti() -> str:
    return str(uuid.uuid4())


def refresh_jti_for(access_jti: str) -> str:
    return f"{access_jti}{REFRESH_SUFFIX}"


def access_jti_for(refresh_jti: str) -> str:
    return refresh_jti[: -len(REFRESH_SUFFIX)] if refresh_jti.endswith(REFRESH_SUFFIX) else refresh_jti


def is_valid_jti(jti: object) -> bool:
    if not jti or not isinstance(jti, str):
        return False
    return bool(ACCESS_JTI_RE.match(jti) or REFRESH_JTI_RE.match(jti))


def jti_kind(jti: str) -> str:
    if REFRESH_JTI_RE.match(jti):
        return "refresh"
    if ACCESS_JTI_RE.match(jti):
        return "access"
    return "unknown"


def new_authorization_code() -> str:
    return secrets.token_hex(32)


def is_valid_authorization_code(code: object) -> bool:
    return isinstance(code, str) and bool(AUTH_CODE_RE.match(code))


def is_valid_client_id(client_id: object) -> bool:
    return isinstance(client_id, str) and bool(CLIENT_ID_RE.match(client_id))


def new_client_secret() -> str:
    return secrets.token_hex(32)


def constant_time_equals(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def split_csv(value: str | None) -> list[str]:
    return [part.strip() for part in (value or "").split(",") if part.strip()]
