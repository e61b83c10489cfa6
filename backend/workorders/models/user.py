"""
User model.

WHY: Users carry the role that every lifecycle authorization decision reads,
plus the contact details notification fan-out needs (email, phone, SMS opt-in).
"""

import enum
from sqlalchemy import Column, Integer, String, ForeignKey, Boolean
from sqlalchemy.orm import relationship

from workorders.models.base import Base, TimestampMixin, PrimaryKeyMixin, enum_column


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    WHY: The role set is closed. Every role-keyed table (transition matrix,
    notification routing) is checked for completeness against this enum at
    import, so adding a role without deciding its permissions fails fast.

    Assigned once at account creation; never changed by this service.
    """

    PLATFORM_ADMIN = "platform_admin"  # Service provider staff, full lifecycle control
    ORG_ADMIN = "org_admin"  # Property-management company administrator
    ORG_MEMBER = "org_member"  # Property-management company staff
    RESIDENT = "resident"  # End user who reports issues

    @property
    def is_platform_admin(self) -> bool:
        return self is UserRole.PLATFORM_ADMIN

    @property
    def is_org_user(self) -> bool:
        return self in (UserRole.ORG_ADMIN, UserRole.ORG_MEMBER)


class User(Base, PrimaryKeyMixin, TimestampMixin):
    """
    User model representing individuals who use the platform.

    WHY: organization_id is nullable because platform staff belong to no
    property-management company.
    """

    __tablename__ = "users"

    full_name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)

    # WHY: Free text as entered; normalized to E.164 only when an SMS is sent
    phone = Column(String(50), nullable=True)

    role = Column(enum_column(UserRole, "userrole"), nullable=False, default=UserRole.RESIDENT)

    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=True, index=True)

    # WHY: is_active allows soft-deletion of users without losing audit trail
    is_active = Column(Boolean, default=True, nullable=False)

    # SMS opt-in for high-urgency events
    sms_notifications_enabled = Column(Boolean, default=False, nullable=False)

    organization = relationship("Organization", back_populates="users")

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', role={self.role.value})>"
