"""Schema exports."""

from fleetdesk.schemas.common import Envelope, ErrorEnvelope
from fleetdesk.schemas.incident import IncidentCreate, IncidentRead, IncidentStatusUpdate
from fleetdesk.schemas.payment import PaymentEvent
from fleetdesk.schemas.pricing import (
    PricingInput,
    PricingSnapshotRead,
    PromoCodeCreate,
    PromoCodeRead,
    PromoCodeUpdate,
    QuoteRequest,
    RatePlanCreate,
    RatePlanRead,
    RatePlanUpdate,
)
from fleetdesk.schemas.reporting import DashboardRead, ReportRead, ReportType
from fleetdesk.schemas.reservation import (
    AvailabilityQuery,
    AvailabilityResult,
    ReservationCreate,
    ReservationListQuery,
    ReservationRead,
    ReservationStatusUpdate,
    ReservationUpdate,
)
from fleetdesk.schemas.service_order import (
    ServiceOrderCreate,
    ServiceOrderRead,
    ServiceOrderStatusUpdate,
)

__all__ = [
    "AvailabilityQuery",
    "AvailabilityResult",
    "DashboardRead",
    "Envelope",
    "ErrorEnvelope",
    "IncidentCreate",
    "IncidentRead",
    "IncidentStatusUpdate",
    "PaymentEvent",
    "PricingInput",
    "PricingSnapshotRead",
    "PromoCodeCreate",
    "PromoCodeRead",
    "PromoCodeUpdate",
    "QuoteRequest",
    "RatePlanCreate",
    "RatePlanRead",
    "RatePlanUpdate",
    "ReportRead",
    "ReportType",
    "ReservationCreate",
    "ReservationListQuery",
    "ReservationRead",
    "ReservationStatusUpdate",
    "ReservationUpdate",
    "ServiceOrderCreate",
    "ServiceOrderRead",
    "ServiceOrderStatusUpdate",
]
