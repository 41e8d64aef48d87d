# budget_auth/services/credentials.py
"""User accounts and the OAuth2 client registry."""
from __future__ import annotations

import logging
import re
import secrets
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Union
from urllib.parse import urlparse

from budget_auth.core.errors import (
    AuthenticationFailed,
    Conflict,
    InvalidClient,
    NotFound,
    ValidationFailed,
)
from budget_auth.core.logging import log_auth_event, log_suspicious_activity
from budget_auth.core.security import (
    constant_time_equals,
    is_valid_client_id,
    new_client_secret,
    split_csv,
    utc_now,
)
from budget_auth.core.security_password import (
    hash_secret_async,
    needs_rehash,
    verify_dummy_async,
    verify_secret_async,
)
from budget_auth.crud.client import client_crud
from budget_auth.crud.user import user_crud
from budget_auth.db.database import Database, DuplicateKeyError

logger = logging.getLogger(__name__)

MIN_CLIENT_SECRET_LENGTH = 32
ADMIN_SCOPES = ("api", "admin")
_SCOPE_RE = re.compile(r"^[A-Za-z0-9_.:-]+$")

ListOrCsv = Union[str, Iterable[str], None]


@dataclass
class AuthenticatedUser:
    user_id: int
    username: str
    role: str = "user"
    scopes: List[str] = field(default_factory=lambda: ["api"])

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "AuthenticatedUser":
        return cls(
            user_id=row["id"],
            username=row["username"],
            role=row.get("role") or "user",
            scopes=split_csv(row.get("scopes")) or ["api"],
        )


def _as_list(value: ListOrCsv) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return split_csv(value)
    return [str(v).strip() for v in value if str(v).strip()]


def _check_redirect_uris(uris: List[str]) -> None:
    for uri in uris:
        parsed = urlparse(uri)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValidationFailed("redirect_uris must be absolute http(s) URLs", details={"redirect_uri": uri})


def _check_scopes(scopes: List[str]) -> None:
    if not scopes:
        raise ValidationFailed("allowed_scopes must not be empty")
    bad = [s for s in scopes if not _SCOPE_RE.match(s)]
    if bad:
        raise ValidationFailed("Invalid scope name", details={"scopes": bad})


def _check_secret(secret: str) -> None:
    if len(secret) < MIN_CLIENT_SECRET_LENGTH:
        raise ValidationFailed(f"client_secret must be at least {MIN_CLIENT_SECRET_LENGTH} characters")


def _password_is_weak(password: str) -> bool:
    return (
        len(password) < 12
        or not re.search(r"[a-z]", password)
        or not re.search(r"[A-Z]", password)
        or not re.search(r"\d", password)
        or not re.search(r"[^A-Za-z0-9]", password)
    )


def public_client(row: Dict[str, Any]) -> Dict[str, Any]:
    """Client record safe to hand out: the stored secret never leaves this module."""
    return {
        "client_id": row["client_id"],
        "allowed_scopes": split_csv(row.get("allowed_scopes")) or ["api"],
        "redirect_uris": split_csv(row.get("redirect_uris")),
        "created_at": row.get("created_at"),
    }


class CredentialStore:
    def __init__(self, database: Database, clock: Callable[[], datetime] = utc_now) -> None:
        self.db = database
        self.clock = clock

    # ------------------------------------------------------------------ users
    async def authenticate_user(self, username: str, password: str) -> AuthenticatedUser:
        if not username or not password:
            raise AuthenticationFailed("Invalid credentials")
        row = await user_crud.get_by_username(self.db, username)
        if row is None or not row["is_active"]:
            # one bcrypt check on every path, known user or not
            await verify_dummy_async(password)
            log_auth_event("LOGIN_FAILED", None, False, reason="unknown_or_inactive")
            raise AuthenticationFailed("Invalid credentials")
        if not await verify_secret_async(password, row["password_hash"]):
            log_auth_event("LOGIN_FAILED", row["id"], False, reason="bad_password")
            raise AuthenticationFailed("Invalid credentials")
        if needs_rehash(row["password_hash"]):
            await user_crud.update(
                self.db,
                row["id"],
                {"password_hash": await hash_secret_async(password), "updated_at": self.clock()},
            )
        log_auth_event("LOGIN_SUCCESS", row["id"], True)
        return AuthenticatedUser.from_row(row)

    async def get_active_user(self, user_id: Any) -> Optional[AuthenticatedUser]:
        try:
            user_id = int(user_id)
        except (TypeError, ValueError):
            return None
        row = await user_crud.get_active(self.db, user_id)
        return AuthenticatedUser.from_row(row) if row else None

    async def create_user(
        self,
        username: str,
        password: Optional[str],
        role: str = "user",
        scopes: ListOrCsv = "api",
        password_hash: Optional[str] = None,
    ) -> int:
        """Provision an account; pass ``password_hash`` to store a precomputed hash or sentinel."""
        if password_hash is None:
            if not password:
                raise ValidationFailed("password is required")
            password_hash = await hash_secret_async(password)
        try:
            return await user_crud.create(
                self.db,
                {
                    "username": username,
                    "password_hash": password_hash,
                    "role": role,
                    "scopes": ",".join(_as_list(scopes) or ["api"]),
                    "is_active": True,
                    "created_at": self.clock(),
                },
            )
        except DuplicateKeyError as exc:
            raise Conflict("Username already exists") from exc

    async def set_user_active(self, user_id: int, active: bool) -> None:
        if not await user_crud.update(self.db, user_id, {"is_active": active, "updated_at": self.clock()}):
            raise NotFound("User not found")

    async def ensure_admin_user(self, username: str, password: Optional[str]) -> int:
        if password and _password_is_weak(password):
            logger.warning(
                "ADMIN_PASSWORD is weak; use at least 12 characters mixing upper, lower, digit and symbol"
            )
        row = await user_crud.get_by_username(self.db, username)
        if row is None:
            if not password:
                logger.warning(
                    "ADMIN_PASSWORD not set; admin user %s created with an unusable random password", username
                )
            secret = password or secrets.token_urlsafe(32)
            try:
                user_id = await user_crud.create(
                    self.db,
                    {
                        "username": username,
                        "password_hash": await hash_secret_async(secret),
                        "role": "admin",
                        "scopes": ",".join(ADMIN_SCOPES),
                        "is_active": True,
                        "created_at": self.clock(),
                    },
                )
                logger.info("Created admin user %s", username)
                return user_id
            except DuplicateKeyError:
                row = await user_crud.get_by_username(self.db, username)
                if row is None:
                    raise

        changes: Dict[str, Any] = {}
        if row.get("role") != "admin":
            changes["role"] = "admin"
        scopes = split_csv(row.get("scopes"))
        merged = scopes + [s for s in ADMIN_SCOPES if s not in scopes]
        if merged != scopes:
            changes["scopes"] = ",".join(merged)
        if not row["is_active"]:
            changes["is_active"] = True
        if password and not await verify_secret_async(password, row["password_hash"]):
            changes["password_hash"] = await hash_secret_async(password)
        if changes:
            changes["updated_at"] = self.clock()
            await user_crud.update(self.db, row["id"], changes)
            logger.info("Updated admin user %s (%s)", username, ", ".join(sorted(changes)))
        return row["id"]

    # ------------------------------------------------------------------ clients
    async def list_clients(self) -> List[Dict[str, Any]]:
        rows = await client_crud.get_multi(self.db, limit=1000)
        return [public_client(r) for r in rows]

    async def get_client(self, client_id: str) -> Dict[str, Any]:
        if not is_valid_client_id(client_id):
            raise ValidationFailed("Invalid client_id format")
        row = await client_crud.get(self.db, client_id)
        if row is None:
            raise NotFound("Client not found")
        return public_client(row)

    async def create_client(
        self,
        client_id: str,
        client_secret: Optional[str] = None,
        allowed_scopes: ListOrCsv = "api",
        redirect_uris: ListOrCsv = None,
    ) -> Dict[str, Any]:
        """Register a client; the returned record carries the plaintext secret exactly once."""
        if not is_valid_client_id(client_id):
            raise ValidationFailed("client_id must match ^[A-Za-z0-9_-]{1,255}$")
        if client_secret is None:
            client_secret = new_client_secret()
        else:
            _check_secret(client_secret)
        scopes = _as_list(allowed_scopes) or ["api"]
        _check_scopes(scopes)
        uris = _as_list(redirect_uris)
        _check_redirect_uris(uris)

        try:
            await client_crud.create(
                self.db,
                {
                    "client_id": client_id,
                    "client_secret": await hash_secret_async(client_secret),
                    "client_secret_hashed": True,
                    "allowed_scopes": ",".join(scopes),
                    "redirect_uris": ",".join(uris) or None,
                    "created_at": self.clock(),
                },
            )
        except DuplicateKeyError as exc:
            raise Conflict("Client already exists", details={"client_id": client_id}) from exc
        logger.info("Created OAuth client %s", client_id)
        record = await self.get_client(client_id)
        record["client_secret"] = client_secret
        return record

    async def update_client(
        self,
        client_id: str,
        client_secret: Optional[str] = None,
        allowed_scopes: ListOrCsv = None,
        redirect_uris: ListOrCsv = None,
    ) -> Dict[str, Any]:
        if not is_valid_client_id(client_id):
            raise ValidationFailed("Invalid client_id format")
        changes: Dict[str, Any] = {}
        if client_secret is not None:
            _check_secret(client_secret)
            changes["client_secret"] = await hash_secret_async(client_secret)
            changes["client_secret_hashed"] = True
        if allowed_scopes is not None:
            scopes = _as_list(allowed_scopes)
            _check_scopes(scopes)
            changes["allowed_scopes"] = ",".join(scopes)
        if redirect_uris is not None:
            uris = _as_list(redirect_uris)
            _check_redirect_uris(uris)
            changes["redirect_uris"] = ",".join(uris) or None
        if not changes:
            raise ValidationFailed("Nothing to update")
        if not await client_crud.update(self.db, client_id, changes):
            raise NotFound("Client not found")
        logger.info("Updated OAuth client %s (%s)", client_id, ", ".join(sorted(changes)))
        return await self.get_client(client_id)

    async def delete_client(self, client_id: str) -> None:
        if not is_valid_client_id(client_id):
            raise ValidationFailed("Invalid client_id format")
        if not await client_crud.remove(self.db, client_id):
            raise NotFound("Client not found")
        logger.info("Deleted OAuth client %s", client_id)

    async def validate_client(self, client_id: Optional[str], client_secret: Optional[str]) -> Dict[str, Any]:
        if not client_id or not client_secret or not is_valid_client_id(client_id):
            raise InvalidClient()
        row = await client_crud.get(self.db, client_id)
        if row is None:
            log_suspicious_activity("INVALID_CLIENT", client_id=client_id, reason="unknown_client")
            raise InvalidClient()

        if row["client_secret_hashed"]:
            ok = await verify_secret_async(client_secret, row["client_secret"])
        else:
            ok = constant_time_equals(client_secret, row["client_secret"])
            if ok:
                await client_crud.upgrade_legacy_secret(self.db, client_id, await hash_secret_async(client_secret))
                logger.info("Migrated plaintext secret of client %s to hashed storage", client_id)
        if not ok:
            log_suspicious_activity("INVALID_CLIENT", client_id=client_id, reason="bad_secret")
            raise InvalidClient()
        return public_client(row)

    async def find_client(self, client_id: str) -> Optional[Dict[str, Any]]:
        row = await client_crud.get(self.db, client_id)
        return public_client(row) if row else None

    async def ensure_default_client(
        self,
        client_id: Optional[str],
        client_secret: Optional[str],
        redirect_uris: ListOrCsv = None,
        allowed_scopes: ListOrCsv = "api",
    ) -> None:
        if not client_id or not client_secret:
            return
        if await client_crud.get(self.db, client_id) is not None:
            return
        try:
            await self.create_client(client_id, client_secret, allowed_scopes, redirect_uris)
        except Conflict:
            # created by a concurrent startup
            return
        except ValidationFailed as exc:
            logger.error("Default OAuth client %s not created: %s", client_id, exc.message)
