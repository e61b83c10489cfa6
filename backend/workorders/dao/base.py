"""
Shared DAO plumbing.

WHAT: Insert and primary-key lookup for the reference tables (users,
buildings, the SMS log). Ticket tables have their own DAOs in
workorders.dao.ticket because every ticket read goes through visibility.
"""

from typing import Any, Generic, Optional, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from workorders.models.base import Base

ModelT = TypeVar("ModelT", bound=Base)


class BaseDAO(Generic[ModelT]):
    """
    Generic DAO bound to one mapped class.

    Attributes:
        model: Mapped class
        session: Async session owned by the caller (the DAO never commits)
    """

    def __init__(self, model: Type[ModelT], session: AsyncSession):
        self.model = model
        self.session = session

    async def create(self, **values: Any) -> ModelT:
        """
        Insert one row and flush so server defaults and keys are loaded.

        Raises:
            IntegrityError: On a unique or foreign key violation
        """
        row = self.model(**values)
        self.session.add(row)
        await self.session.flush()
        await self.session.refresh(row)
        return row

    async def get_by_id(self, pk: Any) -> Optional[ModelT]:
        result = await self.session.execute(select(self.model).where(self.model.id == pk))
        return result.scalar_one_or_none()
