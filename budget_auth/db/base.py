# budget_auth/db/base.py
from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase

naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=naming_convention)


# register every table on Base.metadata
from budget_auth.models.user import User  # noqa: E402,F401
from budget_auth.models.tokens import Token  # noqa: E402,F401
from budget_auth.models.client import Client  # noqa: E402,F401
from budget_auth.models.auth_code import AuthorizationCode  # noqa: E402,F401
