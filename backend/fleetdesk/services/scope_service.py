"""Resolve an actor into the branches and renters it may read or mutate."""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from fleetdesk.core.errors import Forbidden
from fleetdesk.models.reservation import Reservation
from fleetdesk.models.user import StaffProfile, User, UserRole, UserStatus


@dataclass(frozen=True, slots=True)
class Scope:
    """Capability object passed into every scoped query.

    ``branch_ids`` is ``None`` when the actor is not branch-restricted;
    ``user_id`` restricts reservation reads to a single renter.
    """

    actor_id: uuid.UUID
    unrestricted: bool = False
    is_staff: bool = False
    branch_ids: frozenset[uuid.UUID] | None = None
    user_id: uuid.UUID | None = None

    @classmethod
    def admin(cls, actor_id: uuid.UUID) -> "Scope":
        return cls(actor_id=actor_id, unrestricted=True, is_staff=True)

    @classmethod
    def branches(
        cls, actor_id: uuid.UUID, branch_ids: Iterable[uuid.UUID]
    ) -> "Scope":
        return cls(actor_id=actor_id, is_staff=True, branch_ids=frozenset(branch_ids))

    @classmethod
    def renter(cls, actor_id: uuid.UUID) -> "Scope":
        return cls(actor_id=actor_id, user_id=actor_id)

    def require_staff(self) -> None:
        if not self.is_staff:
            raise Forbidden("Only staff can perform this operation")

    def require_admin(self) -> None:
        if not self.unrestricted:
            raise Forbidden("Only administrators can perform this operation")

    def allowed_branch_ids(self) -> frozenset[uuid.UUID] | None:
        """Branches a scoped read may touch; ``None`` means all branches."""
        if self.unrestricted or self.branch_ids is None:
            return None
        if not self.branch_ids:
            raise Forbidden("No branch scope is assigned to this account")
        return self.branch_ids

    def require_branch(self, branch_id: uuid.UUID) -> None:
        allowed = self.allowed_branch_ids()
        if allowed is not None and branch_id not in allowed:
            raise Forbidden("Requested branch is outside your scope")

    def effective_branch_ids(
        self, requested: uuid.UUID | None = None
    ) -> frozenset[uuid.UUID] | None:
        """Intersect an optional requested branch with the scope."""
        allowed = self.allowed_branch_ids()
        if requested is None:
            return allowed
        if allowed is not None and requested not in allowed:
            raise Forbidden("Requested branch is outside your scope")
        return frozenset({requested})

    def can_read_reservation(self, reservation: Reservation) -> bool:
        """Mirror ``apply_to_reservations`` for a single loaded row."""
        if self.unrestricted:
            return True
        if self.is_staff:
            # Staff reads follow branch scope even for their own bookings.
            allowed = self.branch_ids or frozenset()
            return reservation.pickup_branch_id in allowed
        return reservation.user_id == self.actor_id

    def apply_to_reservations(self, stmt: Select) -> Select:
        """Add the scope predicate to a reservation query."""
        if self.unrestricted:
            return stmt
        if self.user_id is not None:
            return stmt.where(Reservation.user_id == self.user_id)
        allowed = self.allowed_branch_ids()
        if allowed is None:
            return stmt
        return stmt.where(Reservation.pickup_branch_id.in_(allowed))


async def _profile_by_user(
    session: AsyncSession, user_id: uuid.UUID
) -> StaffProfile | None:
    result = await session.execute(
        select(StaffProfile).where(StaffProfile.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def resolve_scope(session: AsyncSession, user: User) -> Scope:
    """Produce the actor's scope; role priority is admin > manager > agent."""
    if user.status != UserStatus.ACTIVE:
        raise Forbidden("User account is not active")

    roles = user.role_set
    if UserRole.ADMIN in roles:
        return Scope.admin(user.id)
    if UserRole.MANAGER in roles or UserRole.AGENT in roles:
        profile = await _profile_by_user(session, user.id)
        branch_ids = profile.branch_uuids if profile is not None else frozenset()
        return Scope.branches(user.id, branch_ids)
    return Scope.renter(user.id)


__all__ = ["Scope", "resolve_scope"]
