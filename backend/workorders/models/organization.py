"""
Organization model.

WHY: Organizations are the property-management companies that own
buildings. A ticket's organization (through its building) decides which
org users see it and who is notified about it.
"""

from sqlalchemy import Column, String, Boolean
from sqlalchemy.orm import relationship

from workorders.models.base import Base, TimestampMixin, PrimaryKeyMixin


class Organization(Base, PrimaryKeyMixin, TimestampMixin):
    """
    Property-management company (tenant).

    Read-only to this service: company CRUD lives elsewhere.
    """

    __tablename__ = "organizations"

    name = Column(String(255), nullable=False, index=True)

    # WHY: is_active allows soft-deletion while preserving ticket history
    is_active = Column(Boolean, nullable=False, default=True)

    users = relationship("User", back_populates="organization", lazy="noload")
    buildings = relationship("Building", back_populates="organization", lazy="noload")

    def __repr__(self) -> str:
        return f"<Organization(id={self.id}, name='{self.name}')>"
