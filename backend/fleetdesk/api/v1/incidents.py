"""Vehicle incident endpoints."""

from __future__ import annotations

import uuid
from typing import Annotated

from fastapi import APIRouter, Query, status

from fleetdesk.api import deps
from fleetdesk.models.incident import IncidentStatus, IncidentType
from fleetdesk.schemas.common import Envelope
from fleetdesk.schemas.incident import IncidentCreate, IncidentRead, IncidentStatusUpdate
from fleetdesk.services import incident_service

router = APIRouter()


@router.get("", response_model=Envelope[list[IncidentRead]], summary="List vehicle incidents")
async def list_incidents(
    session: deps.DbSession,
    scope: deps.StaffScope,
    vehicle_id: uuid.UUID | None = None,
    reservation_id: uuid.UUID | None = None,
    branch_id: uuid.UUID | None = None,
    status_filter: Annotated[IncidentStatus | None, Query(alias="status")] = None,
    incident_type: Annotated[IncidentType | None, Query(alias="type")] = None,
) -> Envelope[list[IncidentRead]]:
    incidents = await incident_service.list_incidents(
        session,
        scope=scope,
        vehicle_id=vehicle_id,
        reservation_id=reservation_id,
        branch_id=branch_id,
        status=status_filter,
        incident_type=incident_type,
    )
    return Envelope(data=[IncidentRead.model_validate(item) for item in incidents])


@router.post(
    "",
    response_model=Envelope[IncidentRead],
    status_code=status.HTTP_201_CREATED,
    summary="Log vehicle incident",
)
async def create_incident(
    payload: IncidentCreate,
    session: deps.DbSession,
    scope: deps.ManagerScope,
) -> Envelope[IncidentRead]:
    incident = await incident_service.create_incident(session, scope=scope, payload=payload)
    return Envelope(message="Incident logged", data=IncidentRead.model_validate(incident))


@router.get("/{incident_id}", response_model=Envelope[IncidentRead], summary="Get vehicle incident")
async def get_incident(
    incident_id: uuid.UUID,
    session: deps.DbSession,
    scope: deps.StaffScope,
) -> Envelope[IncidentRead]:
    incident = await incident_service.get_incident(
        session, scope=scope, incident_id=incident_id
    )
    return Envelope(data=IncidentRead.model_validate(incident))


@router.patch(
    "/{incident_id}/status",
    response_model=Envelope[IncidentRead],
    summary="Update vehicle incident status",
)
async def update_incident_status(
    incident_id: uuid.UUID,
    payload: IncidentStatusUpdate,
    session: deps.DbSession,
    scope: deps.ManagerScope,
) -> Envelope[IncidentRead]:
    incident = await incident_service.update_incident_status(
        session, scope=scope, incident_id=incident_id, payload=payload
    )
    return Envelope(data=IncidentRead.model_validate(incident))
