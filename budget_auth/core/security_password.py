# budget_auth/core/security_password.py
from __future__ import annotations

import secrets
from functools import lru_cache

from passlib.context import CryptContext
from starlette.concurrency import run_in_threadpool

# users whose identity is verified elsewhere carry this instead of a hash
EXTERNAL_AUTH_SENTINEL = "!external"

BCRYPT_ROUNDS = 12

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=BCRYPT_ROUNDS,
)


def hash_secret(plain: str) -> str:
    return pwd_context.hash(plain)


def verify_secret(plain: str, stored_hash: str | None) -> bool:
    if not plain or not stored_hash or stored_hash == EXTERNAL_AUTH_SENTINEL:
        return False
    try:
        return pwd_context.verify(plain, stored_hash)
    except (ValueError, TypeError):
        # not a hash passlib recognises
        return False


def needs_rehash(stored_hash: str) -> bool:
    try:
        return pwd_context.needs_update(stored_hash)
    except (ValueError, TypeError):
        return False


async def hash_secret_async(plain: str) -> str:
    return await run_in_threadpool(hash_secret, plain)


async def verify_secret_async(plain: str, stored_hash: str | None) -> bool:
    return await run_in_threadpool(verify_secret, plain, stored_hash)


@lru_cache(maxsize=1)
def dummy_hash() -> str:
    """A real bcrypt hash of a throwaway secret, built on first use."""
    return pwd_context.hash(secrets.token_urlsafe(24))


def _verify_dummy(plain: str) -> None:
    pwd_context.verify(plain or "-", dummy_hash())


async def verify_dummy_async(plain: str) -> None:
    """Spend one bcrypt verification when there is no stored hash to check against."""
    await run_in_threadpool(_verify_dummy, plain)
