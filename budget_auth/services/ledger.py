# budget_auth/services/ledger.py
"""Revocation ledger for issued token identifiers and one-time authorization codes.

Every public method prunes expired rows first. Races between concurrent
callers are settled by row counts: a zero-row update or delete, or a
duplicate-key insert, marks the loser.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from budget_auth.core.config import Settings
from budget_auth.core.errors import InvalidGrant, ValidationFailed
from budget_auth.core.logging import log_suspicious_activity
from budget_auth.core.security import (
    is_valid_authorization_code,
    is_valid_jti,
    new_authorization_code,
    split_csv,
    utc_now,
)
from budget_auth.crud.auth_code import auth_code_crud
from budget_auth.crud.token import token_crud
from budget_auth.db.database import Database, DuplicateKeyError

logger = logging.getLogger(__name__)


@dataclass
class CodeGrant:
    code: str
    client_id: str
    user_id: int
    redirect_uri: str
    scopes: List[str] = field(default_factory=list)
    expires_at: Optional[datetime] = None


class TokenLedger:
    def __init__(self, database: Database, settings: Settings, clock: Callable[[], datetime] = utc_now) -> None:
        self.db = database
        self.settings = settings
        self.clock = clock

    async def prune_expired(self) -> int:
        now = self.clock()
        cutoff = now - timedelta(seconds=self.settings.LEEWAY_SECONDS)
        removed_tokens = await token_crud.remove_expired(self.db, cutoff)
        removed_codes = await auth_code_crud.remove_expired(self.db, now)
        if removed_tokens or removed_codes:
            logger.debug("Pruned %d tokens and %d authorization codes", removed_tokens, removed_codes)
        return removed_tokens + removed_codes

    # ------------------------------------------------------------------ tokens
    async def record_token(self, jti: str, kind: str, expires_at: datetime) -> None:
        if not is_valid_jti(jti):
            raise ValidationFailed("Invalid token identifier format")
        await self.prune_expired()
        await token_crud.create(
            self.db,
            {
                "jti": jti,
                "token_type": kind,
                "revoked": False,
                "issued_at": self.clock(),
                "expires_at": expires_at,
            },
        )

    async def mark_revoked(self, jti: str) -> None:
        if not is_valid_jti(jti):
            log_suspicious_activity("INVALID_JTI_REVOCATION", jti_length=len(jti or ""))
            raise ValidationFailed("Invalid token identifier format")
        await self.prune_expired()
        if await token_crud.revoke(self.db, jti):
            return
        # never recorded (or already pruned): remember the revocation anyway
        expires_at = self.clock() + timedelta(seconds=self.settings.REFRESH_TTL_SECONDS)
        try:
            await token_crud.create(
                self.db,
                {
                    "jti": jti,
                    "token_type": "unknown",
                    "revoked": True,
                    "issued_at": self.clock(),
                    "expires_at": expires_at,
                },
            )
        except DuplicateKeyError:
            await token_crud.revoke(self.db, jti)

    async def is_revoked(self, jti: str, allow_unknown: bool = True) -> bool:
        if not is_valid_jti(jti):
            return True
        await self.prune_expired()
        row = await token_crud.get(self.db, jti)
        if row is None:
            return not allow_unknown
        return bool(row["revoked"])

    async def claim(self, jti: str) -> bool:
        """Atomically move ``jti`` from live to revoked; True for exactly one caller."""
        if not is_valid_jti(jti):
            return False
        await self.prune_expired()
        return await token_crud.claim(self.db, jti) == 1

    # ------------------------------------------------------------------ codes
    async def store_code(self, client_id: str, user_id: int, redirect_uri: str, scopes: List[str]) -> str:
        await self.prune_expired()
        code = new_authorization_code()
        now = self.clock()
        await auth_code_crud.create(
            self.db,
            {
                "code": code,
                "client_id": client_id,
                "user_id": user_id,
                "redirect_uri": redirect_uri,
                "scope": ",".join(scopes),
                "expires_at": now + timedelta(seconds=self.settings.AUTH_CODE_TTL_SECONDS),
                "created_at": now,
            },
        )
        return code

    async def redeem_code(self, code: str, client_id: str, redirect_uri: str) -> CodeGrant:
        if not is_valid_authorization_code(code):
            raise InvalidGrant("Malformed authorization code")
        await self.prune_expired()
        row = await auth_code_crud.find(self.db, code, client_id, redirect_uri)
        if row is None:
            raise InvalidGrant()
        if await auth_code_crud.remove(self.db, code) != 1:
            # another exchange got there first
            raise InvalidGrant()
        if row["expires_at"] < self.clock():
            raise InvalidGrant("Authorization code expired")
        return CodeGrant(
            code=code,
            client_id=row["client_id"],
            user_id=row["user_id"],
            redirect_uri=row["redirect_uri"],
            scopes=split_csv(row["scope"]),
            expires_at=row["expires_at"],
        )
