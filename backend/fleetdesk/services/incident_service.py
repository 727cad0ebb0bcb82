"""Vehicle incidents, scoped by the branch they were logged at."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fleetdesk.core.errors import NotFound, ValidationFailed
from fleetdesk.models.incident import IncidentStatus, IncidentType, VehicleIncident
from fleetdesk.models.mixins import coerce_utc
from fleetdesk.models.reservation import Reservation
from fleetdesk.models.vehicle import Vehicle
from fleetdesk.schemas.incident import IncidentCreate, IncidentStatusUpdate
from fleetdesk.services.scope_service import Scope

logger = logging.getLogger(__name__)

_ALLOWED_STATUS_TRANSITIONS: dict[IncidentStatus, set[IncidentStatus]] = {
    IncidentStatus.OPEN: {
        IncidentStatus.UNDER_REVIEW,
        IncidentStatus.RESOLVED,
        IncidentStatus.CLOSED,
    },
    IncidentStatus.UNDER_REVIEW: {IncidentStatus.RESOLVED, IncidentStatus.CLOSED},
    IncidentStatus.RESOLVED: {IncidentStatus.CLOSED},
    IncidentStatus.CLOSED: set(),
}


async def list_incidents(
    session: AsyncSession,
    *,
    scope: Scope,
    vehicle_id: uuid.UUID | None = None,
    reservation_id: uuid.UUID | None = None,
    branch_id: uuid.UUID | None = None,
    status: IncidentStatus | None = None,
    incident_type: IncidentType | None = None,
) -> Sequence[VehicleIncident]:
    scope.require_staff()
    stmt = select(VehicleIncident).order_by(VehicleIncident.occurred_at.desc())
    branch_ids = scope.effective_branch_ids(branch_id)
    if branch_ids is not None:
        stmt = stmt.where(VehicleIncident.branch_id.in_(branch_ids))
    if vehicle_id is not None:
        stmt = stmt.where(VehicleIncident.vehicle_id == vehicle_id)
    if reservation_id is not None:
        stmt = stmt.where(VehicleIncident.reservation_id == reservation_id)
    if status is not None:
        stmt = stmt.where(VehicleIncident.status == status)
    if incident_type is not None:
        stmt = stmt.where(VehicleIncident.type == incident_type)
    result = await session.execute(stmt)
    return result.scalars().all()


async def get_incident(
    session: AsyncSession, *, scope: Scope, incident_id: uuid.UUID
) -> VehicleIncident:
    scope.require_staff()
    incident = await session.get(VehicleIncident, incident_id)
    if incident is None:
        raise NotFound("Vehicle incident not found", code="INCIDENT_NOT_FOUND")
    if incident.branch_id is not None:
        scope.require_branch(incident.branch_id)
    else:
        # Legacy rows without a branch are visible to administrators only.
        scope.require_admin()
    return incident


async def create_incident(
    session: AsyncSession, *, scope: Scope, payload: IncidentCreate
) -> VehicleIncident:
    """Log an incident at the vehicle's home branch, or the rental's pickup branch."""
    scope.require_staff()
    vehicle = await session.get(Vehicle, payload.vehicle_id)
    if vehicle is None:
        raise NotFound("Vehicle not found")
    branch_id = vehicle.branch_id

    if payload.reservation_id is not None:
        reservation = await session.get(Reservation, payload.reservation_id)
        if reservation is None:
            raise ValidationFailed("Reservation not found")
        if reservation.vehicle_id != vehicle.id:
            raise ValidationFailed("Reservation is not assigned to this vehicle")
        branch_id = reservation.pickup_branch_id
    scope.require_branch(branch_id)

    incident = VehicleIncident(
        vehicle_id=vehicle.id,
        reservation_id=payload.reservation_id,
        branch_id=branch_id,
        reported_by=scope.actor_id,
        type=payload.type,
        severity=payload.severity,
        status=IncidentStatus.OPEN,
        occurred_at=coerce_utc(payload.occurred_at),
        description=payload.description,
        estimated_cost=payload.estimated_cost,
    )
    session.add(incident)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise ValidationFailed("Incident references unknown records") from exc
    await session.refresh(incident)
    logger.info("Incident %s logged for vehicle %s", incident.id, vehicle.id)
    return incident


async def update_incident_status(
    session: AsyncSession,
    *,
    scope: Scope,
    incident_id: uuid.UUID,
    payload: IncidentStatusUpdate,
) -> VehicleIncident:
    incident = await get_incident(session, scope=scope, incident_id=incident_id)
    if payload.status != incident.status:
        if payload.status not in _ALLOWED_STATUS_TRANSITIONS[incident.status]:
            raise ValidationFailed(
                f"Cannot move incident from {incident.status.value} to {payload.status.value}"
            )
        incident.status = payload.status
    if payload.final_cost is not None:
        incident.final_cost = payload.final_cost

    await session.commit()
    await session.refresh(incident)
    logger.info("Incident %s is now %s", incident.id, incident.status.value)
    return incident
