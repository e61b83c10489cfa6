"""
Building Data Access Object.

WHY: Ticket creation validates that the chosen space sits inside the
chosen building, and that the building is visible to the caller.
"""

from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from workorders.dao.base import BaseDAO
from workorders.models.building import Building, Space
from workorders.models.user import User


class BuildingDAO(BaseDAO[Building]):
    """Data Access Object for Building and Space reference data."""

    def __init__(self, session: AsyncSession):
        super().__init__(Building, session)

    async def get_space_in_building(self, space_id: int, building_id: int) -> Optional[Space]:
        """
        Return the space only if it belongs to the building.

        Returns:
            Space if found and owned by building_id, None otherwise
        """
        result = await self.session.execute(
            select(Space).where(Space.id == space_id, Space.building_id == building_id)
        )
        return result.scalar_one_or_none()

    async def get_for_user(self, building_id: int, user: User) -> Optional[Building]:
        """
        Return the building if the user may file tickets against it.

        WHY: Platform staff work across all organizations. Everyone else is
        limited to buildings of their own organization.

        Returns:
            Building if found and in scope, None otherwise
        """
        query = select(Building).where(Building.id == building_id)
        if not user.role.is_platform_admin:
            if user.organization_id is None:
                return None
            query = query.where(Building.organization_id == user.organization_id)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()
