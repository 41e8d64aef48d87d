# budget_auth/crud/client.py
from sqlalchemy import update

from budget_auth.crud.base import CRUDBase
from budget_auth.db.database import Database
from budget_auth.models.client import Client


class CRUDClient(CRUDBase[Client]):
    async def upgrade_legacy_secret(self, db: Database, client_id: str, secret_hash: str) -> int:
        """Replace a plaintext secret with its hash; no-op if another caller already did."""
        stmt = (
            update(self.table)
            .where(self.table.c.client_id == client_id, self.table.c.client_secret_hashed.is_(False))
            .values(client_secret=secret_hash, client_secret_hashed=True)
        )
        result = await db.execute(stmt)
        return result.affected_count


client_crud = CRUDClient(Client)
