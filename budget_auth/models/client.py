# budget_auth/models/client.py
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from budget_auth.db.base import Base


class Client(Base):
    __tablename__ = "clients"

    client_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    client_secret: Mapped[str] = mapped_column(Text, nullable=False)
    # false only for rows written before secrets were hashed at rest
    client_secret_hashed: Mapped[bool] = mapped_column(Boolean, default=False, server_default="0")
    allowed_scopes: Mapped[str] = mapped_column(Text, default="api", server_default="api")
    redirect_uris: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
