# budget_auth/models/__init__.py
from budget_auth.db.base import Base
from budget_auth.models.auth_code import AuthorizationCode
from budget_auth.models.client import Client
from budget_auth.models.tokens import Token
from budget_auth.models.user import User

__all__ = ["Base", "AuthorizationCode", "Client", "Token", "User"]
