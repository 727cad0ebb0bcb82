"""User identities and staff profiles."""
from __future__ import annotations

import enum
import uuid

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fleetdesk.db.base import Base
from fleetdesk.models.mixins import JSONB_TYPE, TimestampMixin, enum_column_type


class UserRole(str, enum.Enum):
    """Role enumeration for platform permissions."""

    CUSTOMER = "customer"
    AGENT = "agent"
    MANAGER = "manager"
    ADMIN = "admin"
    DRIVER = "driver"


STAFF_ROLES = frozenset({UserRole.AGENT, UserRole.MANAGER, UserRole.ADMIN})


class UserStatus(str, enum.Enum):
    """Enumerates user activation states."""

    INVITED = "invited"
    ACTIVE = "active"
    SUSPENDED = "suspended"


class User(TimestampMixin, Base):
    """Platform user; a renter, a staff member, or both."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone_number: Mapped[str | None] = mapped_column(String(32))
    roles: Mapped[list[str]] = mapped_column(JSONB_TYPE, default=list, nullable=False)
    status: Mapped[UserStatus] = mapped_column(
        enum_column_type(UserStatus), default=UserStatus.ACTIVE, nullable=False
    )

    staff_profile: Mapped["StaffProfile | None"] = relationship(
        "StaffProfile", back_populates="user", uselist=False, lazy="selectin"
    )

    @property
    def role_set(self) -> set[UserRole]:
        known = {role.value for role in UserRole}
        return {UserRole(role) for role in self.roles or [] if role in known}

    def has_role(self, role: UserRole) -> bool:
        return role in self.role_set

    @property
    def is_staff(self) -> bool:
        return bool(self.role_set & STAFF_ROLES)


class StaffProfile(TimestampMixin, Base):
    """Branch assignment for managers (declared scope) and agents (assignment)."""

    __tablename__ = "staff_profiles"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    branch_ids: Mapped[list[str]] = mapped_column(
        JSONB_TYPE, default=list, nullable=False
    )

    user: Mapped[User] = relationship("User", back_populates="staff_profile")

    @property
    def branch_uuids(self) -> frozenset[uuid.UUID]:
        return frozenset(uuid.UUID(str(value)) for value in self.branch_ids or [])
