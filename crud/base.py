"""
Shared repository plumbing for contractor-owned rows (every row carries user_id)
"""

from typing import Any, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession


class OwnedRepository:
    """
    CRUD for a model whose rows belong to a single contractor.
    All lookups are scoped by user_id so one tenant never sees another's data.
    """

    model: Any = None

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list(self, user_id: int, order_by=None, **filters) -> Sequence[Any]:
        stmt = select(self.model).where(self.model.user_id == user_id)
        for column, value in filters.items():
            if value is not None:
                stmt = stmt.where(getattr(self.model, column) == value)
        if order_by is not None:
            stmt = stmt.order_by(order_by)
        result = await self.db.execute(stmt)
        return result.scalars().all()

    async def get(self, obj_id: int, user_id: int) -> Optional[Any]:
        result = await self.db.execute(
            select(self.model).where(self.model.id == obj_id, self.model.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def create(self, user_id: int, data: dict) -> Any:
        obj = self.model(**data, user_id=user_id)
        self.db.add(obj)
        await self.db.flush()
        await self.db.refresh(obj)
        return obj

    async def update(self, obj_id: int, user_id: int, data: dict) -> Optional[Any]:
        obj = await self.get(obj_id, user_id)
        if obj is None:
            return None
        for key, value in data.items():
            if key in ("id", "user_id"):
                continue
            if hasattr(obj, key):
                setattr(obj, key, value)
        await self.db.flush()
        await self.db.refresh(obj)
        return obj

    async def delete(self, obj_id: int, user_id: int) -> bool:
        obj = await self.get(obj_id, user_id)
        if obj is None:
            return False
        await self.db.delete(obj)
        await self.db.flush()
        return True
