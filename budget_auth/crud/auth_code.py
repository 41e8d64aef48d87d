# budget_auth/crud/auth_code.py
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import delete, select

from budget_auth.crud.base import CRUDBase
from budget_auth.db.database import Database
from budget_auth.models.auth_code import AuthorizationCode


class CRUDAuthCode(CRUDBase[AuthorizationCode]):
    async def find(self, db: Database, code: str, client_id: str, redirect_uri: str) -> Optional[Dict[str, Any]]:
        c = self.table.c
        stmt = select(self.table).where(c.code == code, c.client_id == client_id, c.redirect_uri == redirect_uri)
        return await db.query_one(stmt)

    async def remove_expired(self, db: Database, now: datetime) -> int:
        stmt = delete(self.table).where(self.table.c.expires_at < now)
        return (await db.execute(stmt)).affected_count


auth_code_crud = CRUDAuthCode(AuthorizationCode)
