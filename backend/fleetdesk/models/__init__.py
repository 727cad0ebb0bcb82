"""ORM models package export."""

from fleetdesk.models.branch import Branch
from fleetdesk.models.incident import (
    IncidentSeverity,
    IncidentStatus,
    IncidentType,
    VehicleIncident,
)
from fleetdesk.models.payment import PaymentKind, ReservationPayment
from fleetdesk.models.pricing import Currency, PromoCode, PromoType, RatePlan
from fleetdesk.models.pricing_snapshot import (
    BreakdownLine,
    DiscountKind,
    DiscountLine,
    FeeLine,
    PricingSnapshot,
    TaxLine,
)
from fleetdesk.models.reservation import (
    BLOCKING_STATUSES,
    PaymentSummaryStatus,
    Reservation,
    ReservationChannel,
    ReservationCodeSequence,
    ReservationStatus,
)
from fleetdesk.models.service_order import (
    ServiceOrder,
    ServiceOrderStatus,
    ServiceOrderType,
)
from fleetdesk.models.user import StaffProfile, User, UserRole, UserStatus
from fleetdesk.models.vehicle import (
    AvailabilityState,
    Vehicle,
    VehicleClass,
    VehicleModel,
    VehicleStatus,
)
from fleetdesk.models.vehicle_lock import VehicleLock

__all__ = [
    "AvailabilityState",
    "BLOCKING_STATUSES",
    "Branch",
    "BreakdownLine",
    "Currency",
    "DiscountKind",
    "DiscountLine",
    "FeeLine",
    "IncidentSeverity",
    "IncidentStatus",
    "IncidentType",
    "PaymentKind",
    "PaymentSummaryStatus",
    "PricingSnapshot",
    "PromoCode",
    "PromoType",
    "RatePlan",
    "Reservation",
    "ReservationChannel",
    "ReservationCodeSequence",
    "ReservationPayment",
    "ReservationStatus",
    "ServiceOrder",
    "ServiceOrderStatus",
    "ServiceOrderType",
    "StaffProfile",
    "TaxLine",
    "User",
    "UserRole",
    "UserStatus",
    "Vehicle",
    "VehicleClass",
    "VehicleIncident",
    "VehicleLock",
    "VehicleModel",
    "VehicleStatus",
]
