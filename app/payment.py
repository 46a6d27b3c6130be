"""Applying processor payment events.

A completed checkout produces a Payment and, when the customer picked a
slot, a confirmed Appointment. Processors deliver webhooks at least once, so
the same event may arrive repeatedly or concurrently. The transaction id is
the deduplication key and its unique constraint is what settles a race
between two deliveries: the first insert wins, the other one reports a
duplicate.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models, notifications
from .appointments import check_slot, claim_slot, get_customer, get_service
from .database import is_unique_violation
from .dates import normalize_time_slot, parse_date
from .errors import BookingError, ValidationError
from .schedules import get_barber
from .schemas import PaymentEvent

logger = logging.getLogger(__name__)


@dataclass
class PaymentEventResult:
    payment: models.Payment
    appointment: Optional[models.Appointment] = None
    duplicate: bool = False


def find_payment(db: Session, transaction_id: str) -> Optional[models.Payment]:
    return db.query(models.Payment).filter(models.Payment.transaction_id == transaction_id).first()


def _duplicate(payment: models.Payment) -> PaymentEventResult:
    logger.info(f"Payment event {payment.transaction_id} already applied (payment {payment.id}), ignoring replay")
    return PaymentEventResult(payment=payment, appointment=payment.appointment, duplicate=True)


def apply_payment_event(db: Session, event: PaymentEvent) -> PaymentEventResult:
    existing = find_payment(db, event.transaction_id)
    if existing:
        return _duplicate(existing)

    # Reject malformed slot data before anything is written
    slot = event.slot
    day = label = None
    if slot is not None:
        day = parse_date(slot.date)
        label = normalize_time_slot(slot.time_slot)
    try:
        payment_type = models.PaymentType(event.payment_type).value
    except ValueError:
        raise ValidationError(f"Invalid payment type: {event.payment_type!r}")

    context = (
        f"transaction={event.transaction_id} service={event.service_id} "
        f"barber={slot.barber_id if slot else None} date={day} slot={label}"
    )

    try:
        if event.customer_id is not None:
            get_customer(db, event.customer_id)
        service = get_service(db, event.service_id)
        if slot is not None:
            get_barber(db, slot.barber_id)

        payment = models.Payment(
            amount=event.amount if event.amount is not None else service.price,
            payment_method=event.payment_method,
            payment_type=payment_type,
            status=models.PaymentStatus.COMPLETED.value,
            transaction_id=event.transaction_id,
        )
        db.add(payment)
        try:
            db.flush()
        except IntegrityError as exc:
            db.rollback()
            if is_unique_violation(exc, models.TRANSACTION_ID_CONSTRAINT, "payments.transaction_id"):
                return _duplicate(find_payment(db, event.transaction_id))
            raise

        appointment = None
        if slot is not None:
            check_slot(db, slot.barber_id, day, label)
            appointment = claim_slot(
                db,
                models.Appointment(
                    customer_id=event.customer_id,
                    barber_id=slot.barber_id,
                    service_id=service.id,
                    appointment_date=day,
                    time_slot=label,
                    status=models.AppointmentStatus.CONFIRMED.value,
                    reschedule_count=0,
                    notes=slot.notes,
                ),
            )
            payment.appointment_id = appointment.id
            db.flush()

        db.commit()
    except BookingError as exc:
        db.rollback()
        logger.warning(f"Payment event rejected ({exc.code}): {exc.detail} [{context}]")
        raise
    except Exception:
        db.rollback()
        logger.exception(f"Payment event failed, rolled back [{context}]")
        raise

    db.refresh(payment)
    logger.info(
        f"Payment {payment.id} recorded for {event.transaction_id}"
        + (f", appointment {appointment.id} confirmed" if appointment else "")
    )

    if appointment is not None:
        db.refresh(appointment)
        notifications.notify_appointment_confirmed(appointment)
    return PaymentEventResult(payment=payment, appointment=appointment)
