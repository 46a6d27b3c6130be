"""Slot reservation and the appointment lifecycle.

The read checks here give callers a precise answer (slot not offered vs.
slot taken) but they are not what prevents double booking. Two requests can
both pass :func:`check_slot`; the partial unique index on
``appointments`` makes the second write fail, and :func:`claim_slot` turns
that failure into the same :class:`ConflictError` the check would have
raised.
"""
import logging
from datetime import date, datetime, timedelta
from typing import Optional, Union

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from . import models, notifications
from .config import settings
from .database import is_unique_violation
from .dates import local_now, normalize_time_slot, parse_date, slot_start
from .errors import (
    ConflictError,
    InvalidTransitionError,
    LimitReachedError,
    LockoutWindowError,
    NotFoundError,
    SlotNotOfferedError,
    ValidationError,
)
from .schedules import get_barber, offered_slots

logger = logging.getLogger(__name__)

Status = models.AppointmentStatus

TRANSITIONS = {
    Status.PENDING.value: {Status.CONFIRMED.value, Status.CANCELLED.value},
    Status.CONFIRMED.value: {Status.COMPLETED.value, Status.CANCELLED.value},
    Status.COMPLETED.value: set(),
    Status.CANCELLED.value: set(),
}

TERMINAL_STATUSES = {Status.COMPLETED.value, Status.CANCELLED.value}


def _as_date(value: Union[str, date]) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return parse_date(value)


def get_appointment(db: Session, appointment_id: int) -> models.Appointment:
    appointment = db.get(models.Appointment, appointment_id)
    if not appointment:
        raise NotFoundError(f"Appointment {appointment_id} not found")
    return appointment


def get_customer(db: Session, customer_id: int) -> models.User:
    customer = db.get(models.User, customer_id)
    if not customer or not customer.is_active:
        raise NotFoundError(f"Customer {customer_id} not found")
    return customer


def get_service(db: Session, service_id: int) -> models.Service:
    svc = db.get(models.Service, service_id)
    if not svc or not svc.is_active:
        raise NotFoundError(f"Service {service_id} not found")
    return svc


# --- Slot Reservation Guard ---

def check_slot(
    db: Session,
    barber_id: int,
    day: date,
    time_slot: str,
    exclude_appointment_id: Optional[int] = None,
) -> str:
    """Raise unless (barber, day, time_slot) can be claimed. Returns the normalized label."""
    label = normalize_time_slot(time_slot)
    if label not in offered_slots(db, barber_id, day):
        raise SlotNotOfferedError(f"Barber {barber_id} does not offer {label} on {day.isoformat()}")

    q = db.query(models.Appointment).filter(
        models.Appointment.barber_id == barber_id,
        models.Appointment.appointment_date == day,
        models.Appointment.time_slot == label,
        models.Appointment.status != Status.CANCELLED.value,
    )
    if exclude_appointment_id is not None:
        q = q.filter(models.Appointment.id != exclude_appointment_id)
    if db.query(q.exists()).scalar():
        raise ConflictError(f"Slot {label} on {day.isoformat()} is already taken, pick another")
    return label


def is_slot_available(
    db: Session,
    barber_id: int,
    day: Union[str, date],
    time_slot: str,
    exclude_appointment_id: Optional[int] = None,
) -> bool:
    try:
        check_slot(db, barber_id, _as_date(day), time_slot, exclude_appointment_id)
    except (ValidationError, ConflictError):
        return False
    return True


def claim_slot(db: Session, appointment: models.Appointment) -> models.Appointment:
    """Write ``appointment`` and let the active-slot index decide who wins.

    Flushes without committing so the caller keeps control of the unit of
    work. On a lost race the session is rolled back.
    """
    db.add(appointment)
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        if is_unique_violation(exc, models.ACTIVE_SLOT_INDEX, "appointments.time_slot"):
            logger.info(
                f"Lost slot race for barber {appointment.barber_id} "
                f"on {appointment.appointment_date} at {appointment.time_slot}"
            )
            raise ConflictError(
                f"Slot {appointment.time_slot} on {appointment.appointment_date.isoformat()} "
                "is already taken, pick another"
            ) from exc
        raise
    return appointment


# --- Lifecycle ---

def create_appointment(
    db: Session,
    customer_id: Optional[int],
    barber_id: Optional[int],
    service_id: Optional[int],
    appointment_date: Union[str, date, None],
    time_slot: Optional[str],
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> models.Appointment:
    missing = [
        name
        for name, value in (
            ("customer_id", customer_id),
            ("barber_id", barber_id),
            ("service_id", service_id),
            ("date", appointment_date),
            ("time_slot", time_slot),
        )
        if value in (None, "")
    ]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    day = _as_date(appointment_date)
    label = normalize_time_slot(time_slot)

    get_customer(db, customer_id)
    get_barber(db, barber_id)
    get_service(db, service_id)

    now = now or local_now()
    if slot_start(day, label) <= now:
        raise ValidationError("Cannot book a slot in the past")

    check_slot(db, barber_id, day, label)

    appointment = models.Appointment(
        customer_id=customer_id,
        barber_id=barber_id,
        service_id=service_id,
        appointment_date=day,
        time_slot=label,
        status=Status.PENDING.value,
        reschedule_count=0,
        notes=notes,
    )
    try:
        claim_slot(db, appointment)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(
            f"Booking write failed, rolled back "
            f"[customer={customer_id} barber={barber_id} date={day.isoformat()} slot={label}]"
        )
        raise
    db.refresh(appointment)
    logger.info(f"Appointment {appointment.id} booked: barber {barber_id} {day.isoformat()} {label}")
    return appointment


def update_appointment_status(db: Session, appointment_id: int, status: str) -> models.Appointment:
    try:
        status = Status(status).value
    except ValueError:
        raise ValidationError(f"Invalid status: {status!r}")

    appointment = get_appointment(db, appointment_id)
    current = appointment.status
    if status not in TRANSITIONS.get(current, set()):
        raise InvalidTransitionError(f"Cannot move appointment {appointment_id} from {current} to {status}")

    values = {"status": status, "updated_at": datetime.utcnow()}
    if status == Status.COMPLETED.value:
        values["reschedule_count"] = 0

    # Compare-and-set on the status read above so two staff actions cannot both apply
    updated = (
        db.query(models.Appointment)
        .filter(models.Appointment.id == appointment_id, models.Appointment.status == current)
        .update(values, synchronize_session=False)
    )
    if updated == 0:
        db.rollback()
        raise InvalidTransitionError(f"Appointment {appointment_id} changed concurrently, reload and retry")
    db.commit()
    db.refresh(appointment)
    logger.info(f"Appointment {appointment_id} status {current} -> {status}")

    if status == Status.CONFIRMED.value:
        notifications.notify_appointment_confirmed(appointment)
    return appointment


def reschedule_appointment(
    db: Session,
    appointment_id: int,
    new_date: Union[str, date],
    new_time_slot: str,
    now: Optional[datetime] = None,
) -> models.Appointment:
    appointment = get_appointment(db, appointment_id)
    if appointment.status in TERMINAL_STATUSES:
        raise InvalidTransitionError(f"Cannot reschedule a {appointment.status} appointment")

    count = appointment.reschedule_count or 0
    if count >= settings.MAX_RESCHEDULES:
        raise LimitReachedError(f"Maximum reschedule limit reached ({settings.MAX_RESCHEDULES} time)")

    now = now or local_now()
    lockout = timedelta(minutes=settings.RESCHEDULE_LOCKOUT_MINUTES)
    if slot_start(appointment.appointment_date, appointment.time_slot) - now <= lockout:
        raise LockoutWindowError(
            f"Cannot reschedule within {settings.RESCHEDULE_LOCKOUT_MINUTES} minutes of the appointment"
        )

    day = _as_date(new_date)
    label = normalize_time_slot(new_time_slot)
    if day == appointment.appointment_date and label == appointment.time_slot:
        raise ValidationError("New slot is the same as the current one")
    if slot_start(day, label) <= now:
        raise ValidationError("Cannot move an appointment into the past")

    check_slot(db, appointment.barber_id, day, label, exclude_appointment_id=appointment.id)

    context = (
        f"appointment={appointment_id} barber={appointment.barber_id} "
        f"date={day.isoformat()} slot={label}"
    )
    try:
        updated = (
            db.query(models.Appointment)
            .filter(
                models.Appointment.id == appointment.id,
                models.Appointment.reschedule_count == count,
                models.Appointment.status == appointment.status,
            )
            .update(
                {
                    "appointment_date": day,
                    "time_slot": label,
                    "reschedule_count": count + 1,
                    "updated_at": datetime.utcnow(),
                },
                synchronize_session=False,
            )
        )
    except IntegrityError as exc:
        db.rollback()
        if is_unique_violation(exc, models.ACTIVE_SLOT_INDEX, "appointments.time_slot"):
            raise ConflictError(f"Slot {label} on {day.isoformat()} is already taken, pick another") from exc
        logger.exception(f"Reschedule write failed, rolled back [{context}]")
        raise
    except SQLAlchemyError:
        db.rollback()
        logger.exception(f"Reschedule write failed, rolled back [{context}]")
        raise

    if updated == 0:
        db.rollback()
        db.refresh(appointment)
        if (appointment.reschedule_count or 0) >= settings.MAX_RESCHEDULES:
            raise LimitReachedError(f"Maximum reschedule limit reached ({settings.MAX_RESCHEDULES} time)")
        raise InvalidTransitionError(f"Appointment {appointment_id} changed concurrently, reload and retry")

    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(f"Reschedule commit failed, rolled back [{context}]")
        raise
    db.refresh(appointment)
    logger.info(f"Appointment {appointment_id} rescheduled to {day.isoformat()} {label}")
    return appointment
