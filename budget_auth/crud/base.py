# budget_auth/crud/base.py
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from sqlalchemy import delete, insert, select, update

from budget_auth.db.base import Base
from budget_auth.db.database import Database

ModelType = TypeVar("ModelType", bound=Base)


class CRUDBase(Generic[ModelType]):
    """Table-level statements for one model; rows come back as plain dicts."""

    def __init__(self, model: Type[ModelType]):
        self.model = model
        self.table = model.__table__
        self.pk = list(self.table.primary_key.columns)[0]

    async def get(self, db: Database, id: Any) -> Optional[Dict[str, Any]]:
        return await db.query_one(select(self.table).where(self.pk == id))

    async def get_multi(self, db: Database, skip: int = 0, limit: int = 100) -> List[Dict[str, Any]]:
        stmt = select(self.table).order_by(self.pk).offset(skip).limit(limit)
        return await db.query_many(stmt)

    async def create(self, db: Database, data: Dict[str, Any]) -> Any:
        result = await db.execute(insert(self.table).values(**data))
        return result.inserted_id

    async def update(self, db: Database, id: Any, data: Dict[str, Any]) -> int:
        if not data:
            return 0
        result = await db.execute(update(self.table).where(self.pk == id).values(**data))
        return result.affected_count

    async def remove(self, db: Database, id: Any) -> int:
        result = await db.execute(delete(self.table).where(self.pk == id))
        return result.affected_count
