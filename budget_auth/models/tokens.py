# budget_auth/models/tokens.py
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from budget_auth.db.base import Base

TOKEN_KINDS = ("access", "refresh", "unknown")


class Token(Base):
    __tablename__ = "tokens"

    jti: Mapped[str] = mapped_column(String(255), primary_key=True)
    token_type: Mapped[str] = mapped_column(String(50), nullable=False, default="access", server_default="access")
    revoked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")
    issued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    # NULL = never expires (legacy rows only)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
