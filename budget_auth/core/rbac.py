# budget_auth/core/rbac.py
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from budget_auth.core.security import split_csv

ROLE_ADMIN = "admin"
ROLE_USER = "user"
SCOPE_ADMIN = "admin"


@dataclass
class Principal:
    """Whoever is calling: resolved from a bearer token or a browser session."""

    user_id: int
    username: str
    role: str = ROLE_USER
    scopes: List[str] = field(default_factory=list)
    via: str = "bearer"
    jti: Optional[str] = None
    claims: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_claims(cls, claims: Dict[str, Any]) -> "Principal":
        scopes = claims.get("scopes")
        if not isinstance(scopes, list):
            scopes = split_csv(claims.get("scope"))
        return cls(
            user_id=claims.get("user_id"),
            username=claims.get("username") or "",
            role=claims.get("role") or ROLE_USER,
            scopes=[str(s) for s in scopes],
            via="bearer",
            jti=claims.get("jti"),
            claims=claims,
        )


def has_scope(principal: Principal, scope: str) -> bool:
    return scope in principal.scopes


def is_admin(principal: Optional[Principal]) -> bool:
    if principal is None:
        return False
    return principal.role == ROLE_ADMIN or has_scope(principal, SCOPE_ADMIN)
