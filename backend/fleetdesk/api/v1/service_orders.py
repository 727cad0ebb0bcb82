"""Service order endpoints."""

from __future__ import annotations

import uuid
from typing import Annotated

from fastapi import APIRouter, Query, status

from fleetdesk.api import deps
from fleetdesk.models.service_order import ServiceOrderStatus
from fleetdesk.schemas.common import Envelope
from fleetdesk.schemas.service_order import (
    ServiceOrderCreate,
    ServiceOrderRead,
    ServiceOrderStatusUpdate,
)
from fleetdesk.services import service_order_service

router = APIRouter()


@router.get("", response_model=Envelope[list[ServiceOrderRead]], summary="List service orders")
async def list_service_orders(
    session: deps.DbSession,
    scope: deps.StaffScope,
    vehicle_id: uuid.UUID | None = None,
    status_filter: Annotated[ServiceOrderStatus | None, Query(alias="status")] = None,
    branch_id: uuid.UUID | None = None,
) -> Envelope[list[ServiceOrderRead]]:
    orders = await service_order_service.list_service_orders(
        session,
        scope=scope,
        vehicle_id=vehicle_id,
        status=status_filter,
        branch_id=branch_id,
    )
    return Envelope(data=[ServiceOrderRead.model_validate(order) for order in orders])


@router.post(
    "",
    response_model=Envelope[ServiceOrderRead],
    status_code=status.HTTP_201_CREATED,
    summary="Open service order",
)
async def create_service_order(
    payload: ServiceOrderCreate,
    session: deps.DbSession,
    scope: deps.StaffScope,
) -> Envelope[ServiceOrderRead]:
    order = await service_order_service.create_service_order(
        session, scope=scope, payload=payload
    )
    return Envelope(message="Service order opened", data=ServiceOrderRead.model_validate(order))


@router.patch(
    "/{order_id}/status",
    response_model=Envelope[ServiceOrderRead],
    summary="Update service order status",
)
async def update_service_order_status(
    order_id: uuid.UUID,
    payload: ServiceOrderStatusUpdate,
    session: deps.DbSession,
    scope: deps.StaffScope,
) -> Envelope[ServiceOrderRead]:
    order = await service_order_service.update_service_order_status(
        session, scope=scope, order_id=order_id, payload=payload
    )
    return Envelope(data=ServiceOrderRead.model_validate(order))
