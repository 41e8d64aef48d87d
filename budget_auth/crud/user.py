# budget_auth/crud/user.py
from typing import Any, Dict, Optional

from sqlalchemy import select

from budget_auth.crud.base import CRUDBase
from budget_auth.db.database import Database
from budget_auth.models.user import User


class CRUDUser(CRUDBase[User]):
    async def get_by_username(self, db: Database, username: str) -> Optional[Dict[str, Any]]:
        return await db.query_one(select(self.table).where(self.table.c.username == username))

    async def get_active(self, db: Database, user_id: int) -> Optional[Dict[str, Any]]:
        stmt = select(self.table).where(self.table.c.id == user_id, self.table.c.is_active.is_(True))
        return await db.query_one(stmt)


user_crud = CRUDUser(User)
