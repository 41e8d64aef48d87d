# budget_auth/core/tokens.py
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Callable, Dict, List

from jose import JWTError, jwt

from budget_auth.core.config import Settings
from budget_auth.core.errors import (
    InternalFailure,
    TokenExpired,
    TokenMalformed,
    TokenRevoked,
    ValidationFailed,
)
from budget_auth.core.logging import log_auth_event, log_suspicious_activity
from budget_auth.core.security import jti_kind, new_jti, refresh_jti_for, utc_now
from budget_auth.db.database import StorageError

if TYPE_CHECKING:
    from budget_auth.services.ledger import TokenLedger

logger = logging.getLogger(__name__)

ACCESS = "access"
REFRESH = "refresh"


@dataclass
class TokenBundle:
    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = "Bearer"
    scope: str = ""

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _ts(value: datetime) -> int:
    return int(value.timestamp())


class TokenIssuer:
    """Signs access/refresh pairs and verifies them against the revocation ledger.

    Issue times, the exp check (with leeway) and ledger expiry all read the
    injected ``clock``; python-jose is not asked to compare exp against the
    wall clock.
    """

    def __init__(
        self,
        settings: Settings,
        ledger: "TokenLedger",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.settings = settings
        self.ledger = ledger
        self.clock = clock

    def _key(self, kind: str) -> str:
        return self.settings.JWT_REFRESH_SECRET if kind == REFRESH else self.settings.JWT_SECRET

    async def issue_tokens(self, user_id: int, username: str, scopes: List[str], role: str) -> TokenBundle:
        s = self.settings
        now = self.clock()
        jti = new_jti()
        refresh_jti = refresh_jti_for(jti)
        access_exp = now + timedelta(seconds=s.ACCESS_TTL_SECONDS)
        refresh_exp = now + timedelta(seconds=s.REFRESH_TTL_SECONDS)
        scope = ",".join(scopes)

        access_claims = {
            "user_id": user_id,
            "username": username,
            "role": role,
            "scope": scope,
            "scopes": list(scopes),
            "iss": s.JWT_ISSUER,
            "aud": s.JWT_AUDIENCE,
            "jti": jti,
            "iat": _ts(now),
            "exp": _ts(access_exp),
            "type": ACCESS,
        }
        refresh_claims = {
            "user_id": user_id,
            "username": username,
            "iss": s.JWT_ISSUER,
            "aud": s.JWT_AUDIENCE,
            "jti": refresh_jti,
            "iat": _ts(now),
            "exp": _ts(refresh_exp),
            "type": REFRESH,
        }
        access_token = jwt.encode(access_claims, self._key(ACCESS), algorithm=s.JWT_ALGORITHM)
        refresh_token = jwt.encode(refresh_claims, self._key(REFRESH), algorithm=s.JWT_ALGORITHM)

        try:
            await self.ledger.record_token(jti, ACCESS, access_exp)
            await self.ledger.record_token(refresh_jti, REFRESH, refresh_exp)
        except (StorageError, ValidationFailed) as exc:
            logger.error("Failed to record issued tokens for user %s: %s", user_id, exc)
            raise InternalFailure("Could not issue tokens") from exc

        log_auth_event("TOKEN_ISSUED", user_id, True, username=username, jti=jti)
        return TokenBundle(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=s.ACCESS_TTL_SECONDS,
            scope=scope,
        )

    def _decode(self, token: str, kind: str) -> Dict[str, Any]:
        s = self.settings
        if not token or not isinstance(token, str):
            raise TokenMalformed()
        try:
            claims = jwt.decode(
                token,
                self._key(kind),
                algorithms=[s.JWT_ALGORITHM],
                audience=s.JWT_AUDIENCE,
                issuer=s.JWT_ISSUER,
                # exp is judged below against self.clock, not the wall clock
                options={"verify_exp": False, "require_exp": True},
            )
        except JWTError as exc:
            log_suspicious_activity("INVALID_TOKEN", token_type=kind, reason=str(exc))
            raise TokenMalformed() from exc
        exp = claims["exp"]
        if not isinstance(exp, (int, float)) or isinstance(exp, bool):
            log_suspicious_activity("INVALID_TOKEN", claims.get("user_id"), token_type=kind, reason="bad_exp")
            raise TokenMalformed()
        if exp < _ts(self.clock()) - s.LEEWAY_SECONDS:
            raise TokenExpired()
        return claims

    async def verify(self, token: str, kind: str = ACCESS, allow_unknown: bool = True) -> Dict[str, Any]:
        claims = self._decode(token, kind)
        if claims.get("type") != kind:
            log_suspicious_activity("INVALID_TOKEN", claims.get("user_id"), token_type=kind, reason="wrong_type")
            raise TokenMalformed("Wrong token type")
        jti = claims.get("jti")
        if not isinstance(jti, str) or jti_kind(jti) != kind:
            log_suspicious_activity("INVALID_TOKEN", claims.get("user_id"), token_type=kind, reason="bad_jti")
            raise TokenMalformed()
        try:
            revoked = await self.ledger.is_revoked(jti, allow_unknown=allow_unknown)
        except StorageError as exc:
            raise InternalFailure("Token ledger unavailable") from exc
        if revoked:
            log_suspicious_activity("REVOKED_TOKEN_USE", claims.get("user_id"), token_type=kind)
            raise TokenRevoked()
        return claims

    async def verify_access(self, token: str) -> Dict[str, Any]:
        return await self.verify(token, ACCESS)

    async def verify_refresh(self, token: str) -> Dict[str, Any]:
        # refresh identifiers are always recorded at issue time
        return await self.verify(token, REFRESH, allow_unknown=False)
