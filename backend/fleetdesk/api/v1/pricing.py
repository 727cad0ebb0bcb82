"""Rate plan, promo code and quote endpoints."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, status

from fleetdesk.api import deps
from fleetdesk.models.vehicle import VehicleClass
from fleetdesk.schemas.common import Envelope
from fleetdesk.schemas.pricing import (
    PricingSnapshotRead,
    PromoCodeCreate,
    PromoCodeRead,
    PromoCodeUpdate,
    QuoteRequest,
    RatePlanCreate,
    RatePlanRead,
    RatePlanUpdate,
)
from fleetdesk.services import pricing_service

router = APIRouter()


@router.get(
    "/rate-plans",
    response_model=Envelope[list[RatePlanRead]],
    summary="List rate plans",
)
async def list_rate_plans(
    session: deps.DbSession,
    scope: deps.StaffScope,
    branch_id: uuid.UUID | None = None,
    vehicle_class: VehicleClass | None = None,
    active: bool | None = None,
) -> Envelope[list[RatePlanRead]]:
    plans = await pricing_service.list_rate_plans(
        session,
        scope=scope,
        branch_id=branch_id,
        vehicle_class=vehicle_class,
        active=active,
    )
    return Envelope(data=[RatePlanRead.model_validate(plan) for plan in plans])


@router.post(
    "/rate-plans",
    response_model=Envelope[RatePlanRead],
    status_code=status.HTTP_201_CREATED,
    summary="Create rate plan",
)
async def create_rate_plan(
    payload: RatePlanCreate,
    session: deps.DbSession,
    scope: deps.ManagerScope,
) -> Envelope[RatePlanRead]:
    plan = await pricing_service.create_rate_plan(session, scope=scope, payload=payload)
    return Envelope(message="Rate plan created", data=RatePlanRead.model_validate(plan))


@router.get(
    "/rate-plans/{plan_id}",
    response_model=Envelope[RatePlanRead],
    summary="Get rate plan",
)
async def get_rate_plan(
    plan_id: uuid.UUID,
    session: deps.DbSession,
    scope: deps.StaffScope,
) -> Envelope[RatePlanRead]:
    plan = await pricing_service.get_rate_plan(session, scope=scope, plan_id=plan_id)
    return Envelope(data=RatePlanRead.model_validate(plan))


@router.patch(
    "/rate-plans/{plan_id}",
    response_model=Envelope[RatePlanRead],
    summary="Update rate plan",
)
async def update_rate_plan(
    plan_id: uuid.UUID,
    payload: RatePlanUpdate,
    session: deps.DbSession,
    scope: deps.ManagerScope,
) -> Envelope[RatePlanRead]:
    plan = await pricing_service.update_rate_plan(
        session, scope=scope, plan_id=plan_id, payload=payload
    )
    return Envelope(message="Rate plan updated", data=RatePlanRead.model_validate(plan))


@router.get(
    "/promo-codes",
    response_model=Envelope[list[PromoCodeRead]],
    summary="List promo codes",
)
async def list_promo_codes(
    session: deps.DbSession,
    scope: deps.StaffScope,
    active: bool | None = None,
) -> Envelope[list[PromoCodeRead]]:
    promos = await pricing_service.list_promo_codes(session, scope=scope, active=active)
    return Envelope(data=[PromoCodeRead.model_validate(promo) for promo in promos])


@router.post(
    "/promo-codes",
    response_model=Envelope[PromoCodeRead],
    status_code=status.HTTP_201_CREATED,
    summary="Create promo code",
)
async def create_promo_code(
    payload: PromoCodeCreate,
    session: deps.DbSession,
    scope: deps.ManagerScope,
) -> Envelope[PromoCodeRead]:
    promo = await pricing_service.create_promo_code(session, scope=scope, payload=payload)
    return Envelope(message="Promo code created", data=PromoCodeRead.model_validate(promo))


@router.get(
    "/promo-codes/{promo_id}",
    response_model=Envelope[PromoCodeRead],
    summary="Get promo code",
)
async def get_promo_code(
    promo_id: uuid.UUID,
    session: deps.DbSession,
    scope: deps.StaffScope,
) -> Envelope[PromoCodeRead]:
    promo = await pricing_service.get_promo_code(session, scope=scope, promo_id=promo_id)
    return Envelope(data=PromoCodeRead.model_validate(promo))


@router.patch(
    "/promo-codes/{promo_id}",
    response_model=Envelope[PromoCodeRead],
    summary="Update or deactivate promo code",
)
async def update_promo_code(
    promo_id: uuid.UUID,
    payload: PromoCodeUpdate,
    session: deps.DbSession,
    scope: deps.ManagerScope,
) -> Envelope[PromoCodeRead]:
    promo = await pricing_service.update_promo_code(
        session, scope=scope, promo_id=promo_id, payload=payload
    )
    return Envelope(message="Promo code updated", data=PromoCodeRead.model_validate(promo))


@router.post(
    "/pricing/quote",
    response_model=Envelope[PricingSnapshotRead],
    summary="Quote a prospective reservation",
)
async def quote(
    payload: QuoteRequest,
    session: deps.DbSession,
    scope: deps.ActorScope,
) -> Envelope[PricingSnapshotRead]:
    snapshot, _promo = await pricing_service.quote(
        session,
        vehicle_model_id=payload.vehicle_model_id,
        vehicle_id=payload.vehicle_id,
        pickup_branch_id=payload.pickup_branch_id,
        pickup_at=payload.pickup_at,
        dropoff_at=payload.dropoff_at,
        currency=payload.currency,
        promo_code=payload.promo_code,
    )
    return Envelope(data=PricingSnapshotRead.model_validate(snapshot))
