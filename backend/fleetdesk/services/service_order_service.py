"""Service orders scoped through the vehicle's home branch."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fleetdesk.core.errors import NotFound, ValidationFailed
from fleetdesk.models.service_order import (
    BLOCKING_SERVICE_STATUSES,
    ServiceOrder,
    ServiceOrderStatus,
)
from fleetdesk.models.vehicle import Vehicle
from fleetdesk.schemas.service_order import ServiceOrderCreate, ServiceOrderStatusUpdate
from fleetdesk.services.availability_service import sync_availability_state
from fleetdesk.services.scope_service import Scope

logger = logging.getLogger(__name__)

_ALLOWED_STATUS_TRANSITIONS: dict[ServiceOrderStatus, set[ServiceOrderStatus]] = {
    ServiceOrderStatus.OPEN: {
        ServiceOrderStatus.IN_PROGRESS,
        ServiceOrderStatus.COMPLETED,
        ServiceOrderStatus.CANCELLED,
    },
    ServiceOrderStatus.IN_PROGRESS: {
        ServiceOrderStatus.COMPLETED,
        ServiceOrderStatus.CANCELLED,
    },
    ServiceOrderStatus.COMPLETED: set(),
    ServiceOrderStatus.CANCELLED: set(),
}


async def list_service_orders(
    session: AsyncSession,
    *,
    scope: Scope,
    vehicle_id: uuid.UUID | None = None,
    status: ServiceOrderStatus | None = None,
    branch_id: uuid.UUID | None = None,
) -> Sequence[ServiceOrder]:
    scope.require_staff()
    stmt = (
        select(ServiceOrder)
        .join(Vehicle, Vehicle.id == ServiceOrder.vehicle_id)
        .order_by(ServiceOrder.created_at.desc())
    )
    branch_ids = scope.effective_branch_ids(branch_id)
    if branch_ids is not None:
        stmt = stmt.where(Vehicle.branch_id.in_(branch_ids))
    if vehicle_id is not None:
        stmt = stmt.where(ServiceOrder.vehicle_id == vehicle_id)
    if status is not None:
        stmt = stmt.where(ServiceOrder.status == status)
    result = await session.execute(stmt)
    return result.scalars().all()


async def _scoped_vehicle(
    session: AsyncSession, scope: Scope, vehicle_id: uuid.UUID
) -> Vehicle:
    vehicle = await session.get(Vehicle, vehicle_id)
    if vehicle is None:
        raise NotFound("Vehicle not found")
    scope.require_branch(vehicle.branch_id)
    return vehicle


async def create_service_order(
    session: AsyncSession, *, scope: Scope, payload: ServiceOrderCreate
) -> ServiceOrder:
    """Open a work order; the vehicle is marked blocked while it stays open."""
    scope.require_staff()
    vehicle = await _scoped_vehicle(session, scope, payload.vehicle_id)
    order = ServiceOrder(
        vehicle_id=vehicle.id,
        type=payload.type,
        status=ServiceOrderStatus.OPEN,
        odometer_km=payload.odometer_km,
        cost=payload.cost,
        notes=payload.notes,
        created_by=scope.actor_id,
    )
    session.add(order)
    await sync_availability_state(session, vehicle.id)
    await session.commit()
    await session.refresh(order)
    logger.info("Service order %s opened for vehicle %s", order.id, vehicle.id)
    return order


async def update_service_order_status(
    session: AsyncSession,
    *,
    scope: Scope,
    order_id: uuid.UUID,
    payload: ServiceOrderStatusUpdate,
) -> ServiceOrder:
    scope.require_staff()
    order = await session.get(ServiceOrder, order_id)
    if order is None:
        raise NotFound("Service order not found")
    await _scoped_vehicle(session, scope, order.vehicle_id)

    if payload.status != order.status:
        if payload.status not in _ALLOWED_STATUS_TRANSITIONS[order.status]:
            raise ValidationFailed(
                f"Cannot move service order from {order.status.value} to {payload.status.value}"
            )
        order.status = payload.status
    if payload.cost is not None:
        order.cost = payload.cost
    if payload.notes is not None:
        order.notes = payload.notes

    await sync_availability_state(session, order.vehicle_id)
    await session.commit()
    await session.refresh(order)
    if order.status not in BLOCKING_SERVICE_STATUSES:
        logger.info("Service order %s closed as %s", order.id, order.status.value)
    return order
