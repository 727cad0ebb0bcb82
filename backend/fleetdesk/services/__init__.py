"""Service layer exports."""
from fleetdesk.services import (
    availability_service,
    dashboard_service,
    incident_service,
    lock_service,
    notification_service,
    payment_service,
    pricing_service,
    reporting_service,
    reservation_service,
    scope_service,
    service_order_service,
)

__all__ = [
    "availability_service",
    "dashboard_service",
    "incident_service",
    "lock_service",
    "notification_service",
    "payment_service",
    "pricing_service",
    "reporting_service",
    "reservation_service",
    "scope_service",
    "service_order_service",
]
