# budget_auth/crud/token.py
from datetime import datetime

from sqlalchemy import delete, update

from budget_auth.crud.base import CRUDBase
from budget_auth.db.database import Database
from budget_auth.models.tokens import Token


class CRUDToken(CRUDBase[Token]):
    async def revoke(self, db: Database, jti: str) -> int:
        stmt = update(self.table).where(self.table.c.jti == jti).values(revoked=True)
        return (await db.execute(stmt)).affected_count

    async def claim(self, db: Database, jti: str) -> int:
        # the WHERE on revoked makes this the compare-and-set
        stmt = (
            update(self.table)
            .where(self.table.c.jti == jti, self.table.c.revoked.is_(False))
            .values(revoked=True)
        )
        return (await db.execute(stmt)).affected_count

    async def remove_expired(self, db: Database, cutoff: datetime) -> int:
        stmt = delete(self.table).where(self.table.c.expires_at.is_not(None), self.table.c.expires_at < cutoff)
        return (await db.execute(stmt)).affected_count


token_crud = CRUDToken(Token)
