"""
Building and Space models.

WHY: Tickets are filed against a space (a unit or a common area) inside a
building owned by an organization. Both are reference data for this
service: they are read for validation, visibility and email content only.
"""

import enum
from sqlalchemy import Column, Integer, String, ForeignKey
from sqlalchemy.orm import relationship

from workorders.models.base import Base, TimestampMixin, PrimaryKeyMixin, enum_column


class SpaceType(str, enum.Enum):
    UNIT = "unit"
    COMMON_AREA = "common_area"


class Building(Base, PrimaryKeyMixin, TimestampMixin):
    """A property managed by an organization."""

    __tablename__ = "buildings"

    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    name = Column(String(255), nullable=True)
    address_line1 = Column(String(255), nullable=False)
    city = Column(String(100), nullable=False)
    state = Column(String(50), nullable=False)

    organization = relationship("Organization", back_populates="buildings")
    spaces = relationship("Space", back_populates="building", lazy="noload")

    @property
    def display_name(self) -> str:
        """Name if set, otherwise the street address."""
        return self.name or self.address_line1

    @property
    def full_address(self) -> str:
        return f"{self.address_line1}, {self.city}, {self.state}"

    def __repr__(self) -> str:
        return f"<Building(id={self.id}, name='{self.display_name}')>"


class Space(Base, PrimaryKeyMixin, TimestampMixin):
    """A unit or common area inside a building."""

    __tablename__ = "spaces"

    building_id = Column(Integer, ForeignKey("buildings.id"), nullable=False, index=True)
    space_type = Column(enum_column(SpaceType, "spacetype"), nullable=False)
    unit_number = Column(String(50), nullable=True)
    common_area_type = Column(String(100), nullable=True)

    building = relationship("Building", back_populates="spaces")

    @property
    def label(self) -> str:
        """Human-readable location, e.g. "Unit 4B" or "Laundry"."""
        if self.space_type == SpaceType.UNIT:
            return f"Unit {self.unit_number}" if self.unit_number else "Unit"
        if self.common_area_type:
            return self.common_area_type.replace("_", " ").title()
        return "Common Area"

    def __repr__(self) -> str:
        return f"<Space(id={self.id}, building_id={self.building_id}, label='{self.label}')>"
