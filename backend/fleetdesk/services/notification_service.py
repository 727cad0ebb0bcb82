"""Post-commit email notifications for reservation events."""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from typing import Iterable

from fastapi import BackgroundTasks

from fleetdesk.core.config import get_settings
from fleetdesk.models.mixins import coerce_utc
from fleetdesk.models.reservation import Reservation, ReservationStatus

logger = logging.getLogger(__name__)


def schedule_email(
    background_tasks: BackgroundTasks,
    *,
    recipients: Iterable[str],
    subject: str,
    body: str,
) -> None:
    """Queue an email to be delivered after the response is sent."""
    recipients_list = [addr for addr in recipients if addr]
    if not recipients_list:
        logger.debug("No recipients provided for email; skipping")
        return
    settings = get_settings()
    if not settings.smtp_host or not settings.smtp_port:
        logger.debug("SMTP disabled; skipping email to %d recipients", len(recipients_list))
        return
    background_tasks.add_task(_send_email, recipients_list, subject, body)


def _describe(reservation: Reservation) -> list[str]:
    pickup_branch = getattr(reservation.pickup_branch, "name", "the branch")
    dropoff_branch = getattr(reservation.dropoff_branch, "name", pickup_branch)
    return [
        f"Reservation: {reservation.code}",
        f"Pick-up: {pickup_branch}, {coerce_utc(reservation.pickup_at):%Y-%m-%d %H:%M} UTC",
        f"Drop-off: {dropoff_branch}, {coerce_utc(reservation.dropoff_at):%Y-%m-%d %H:%M} UTC",
        f"Total: {reservation.currency} {reservation.grand_total}",
    ]


def build_reservation_customer_email(reservation: Reservation) -> tuple[str, str]:
    renter_name = getattr(reservation.renter, "full_name", None) or "there"
    subject = f"Your reservation {reservation.code} is booked"
    body = "\n".join(
        [f"Hi {renter_name},", "", "Thanks for booking with FleetDesk.", ""]
        + _describe(reservation)
        + ["", "Your reservation is pending confirmation; we will email you once it is confirmed."]
    )
    return subject, body


def build_reservation_staff_email(reservation: Reservation) -> tuple[str, str]:
    renter = reservation.renter
    customer = f"{renter.full_name} ({renter.email})" if renter else "the customer"
    subject = f"Reservation {reservation.code} created"
    body = "\n".join(
        ["Hello,", "", f"You created a reservation for {customer}.", ""]
        + _describe(reservation)
    )
    return subject, body


def build_status_change_email(reservation: Reservation) -> tuple[str, str]:
    if reservation.status is ReservationStatus.CONFIRMED:
        subject = f"Reservation {reservation.code} confirmed"
        lead = "Your reservation is confirmed. See you at pick-up!"
    else:
        subject = f"Reservation {reservation.code} cancelled"
        lead = "Your reservation has been cancelled."
    body = "\n".join(["Hello,", "", lead, ""] + _describe(reservation))
    return subject, body


def notify_reservation_created(
    reservation: Reservation, background_tasks: BackgroundTasks
) -> None:
    """Email the renter and, when someone else booked it, the creator."""
    renter = reservation.renter
    if renter is not None:
        subject, body = build_reservation_customer_email(reservation)
        schedule_email(
            background_tasks, recipients=[renter.email], subject=subject, body=body
        )
    creator = reservation.creator
    if creator is not None and creator.id != reservation.user_id:
        subject, body = build_reservation_staff_email(reservation)
        schedule_email(
            background_tasks, recipients=[creator.email], subject=subject, body=body
        )


def notify_status_change(
    reservation: Reservation, background_tasks: BackgroundTasks
) -> None:
    if reservation.status not in {ReservationStatus.CONFIRMED, ReservationStatus.CANCELLED}:
        return
    renter = reservation.renter
    if renter is None:
        return
    subject, body = build_status_change_email(reservation)
    schedule_email(background_tasks, recipients=[renter.email], subject=subject, body=body)


def _send_email(recipients: list[str], subject: str, body: str) -> None:
    settings = get_settings()
    if not settings.smtp_host or not settings.smtp_port:
        logger.info("SMTP settings missing; skipping email delivery")
        return

    message = EmailMessage()
    message["Subject"] = subject
    message["To"] = ", ".join(recipients)
    message["From"] = settings.smtp_from or settings.smtp_username or "no-reply@fleetdesk.local"
    message.set_content(body)

    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port) as smtp:
            if settings.smtp_username and settings.smtp_password:
                smtp.starttls()
                smtp.login(settings.smtp_username, settings.smtp_password)
            smtp.send_message(message)
        logger.info("Email '%s' sent to %d recipients", subject, len(recipients))
    except (smtplib.SMTPException, OSError):
        logger.exception("Failed to send email '%s'", subject)
