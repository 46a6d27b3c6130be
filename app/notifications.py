# app/notifications.py
import logging
import smtplib
from email.message import EmailMessage

from .config import settings
from .dates import slot_start

logger = logging.getLogger(__name__)


def send_email(to_email: str, subject: str, body: str) -> bool:
    if not settings.SMTP_HOST or not settings.SMTP_USER or not settings.SMTP_PASS:
        logger.info(f"SMTP not configured, mock email to {to_email}: {subject}")
        logger.debug(body)
        return True

    msg = EmailMessage()
    msg["From"] = settings.SMTP_SENDER
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body)

    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT) as server:
        server.starttls()
        server.login(settings.SMTP_USER, settings.SMTP_PASS)
        server.send_message(msg)
    logger.info(f"Email sent to {to_email}: {subject}")
    return True


def format_appointment_datetime(appointment) -> str:
    start = slot_start(appointment.appointment_date, appointment.time_slot)
    hour = start.hour % 12 or 12
    period = "PM" if start.hour >= 12 else "AM"
    return f"{start.strftime('%A, %d %B %Y')} at {hour}:{start.minute:02d} {period}"


def _deliver(to_email, subject: str, body: str, appointment_id: int) -> bool:
    # Booking facts are already committed; a failed delivery is only logged
    if not to_email:
        logger.info(f"No email address for appointment {appointment_id}, skipping notification")
        return False
    try:
        return send_email(to_email, subject, body)
    except Exception:
        logger.exception(f"Failed to send '{subject}' for appointment {appointment_id}")
        return False


def notify_appointment_confirmed(appointment) -> bool:
    customer = appointment.customer
    barber = appointment.barber
    service = appointment.service
    body = (
        f"Hi {(customer.full_name if customer else None) or 'there'},\n\n"
        f"Your appointment #{appointment.id} is confirmed.\n"
        f"Service: {service.name if service else '-'}\n"
        f"Barber: {barber.display_name if barber else '-'}\n"
        f"When: {format_appointment_datetime(appointment)}\n\n"
        f"See you soon!"
    )
    return _deliver(customer.email if customer else None, "Appointment confirmed", body, appointment.id)


def notify_appointment_reminder(appointment) -> int:
    """Remind both the customer and the barber. Returns how many messages went out."""
    when = format_appointment_datetime(appointment)
    service_name = appointment.service.name if appointment.service else "your service"
    sent = 0
    customer = appointment.customer
    if customer and _deliver(
        customer.email,
        "Your appointment starts soon",
        f"Reminder: {service_name} with {appointment.barber.display_name} on {when}.",
        appointment.id,
    ):
        sent += 1
    barber = appointment.barber
    if barber and barber.email and _deliver(
        barber.email,
        "Upcoming appointment",
        f"Reminder: {service_name} for {(customer.full_name if customer else None) or 'a customer'} on {when}.",
        appointment.id,
    ):
        sent += 1
    return sent
