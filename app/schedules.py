import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models
from .dates import format_date, local_now, normalize_time_slot, weekday_name, WEEKDAYS
from .errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class Availability:
    barber_id: int
    date: str
    day_of_week: str
    available_slots: List[str] = field(default_factory=list)
    booked_slots: List[str] = field(default_factory=list)


def get_barber(db: Session, barber_id: int) -> models.Barber:
    barber = db.get(models.Barber, barber_id)
    if not barber or not barber.is_active:
        raise NotFoundError(f"Barber {barber_id} not found")
    return barber


def normalize_slots(time_slots) -> List[str]:
    return sorted({normalize_time_slot(s) for s in time_slots})


def get_active_schedule(db: Session, barber_id: int, day_of_week: str) -> Optional[models.WeeklySchedule]:
    return (
        db.query(models.WeeklySchedule)
        .filter(
            models.WeeklySchedule.barber_id == barber_id,
            models.WeeklySchedule.day_of_week == day_of_week,
            models.WeeklySchedule.is_active == True,  # noqa: E712
        )
        .first()
    )


def offered_slots(db: Session, barber_id: int, day: date) -> List[str]:
    schedule = get_active_schedule(db, barber_id, weekday_name(day))
    if not schedule:
        return []
    return [normalize_time_slot(s) for s in schedule.time_slots or []]


def list_barber_schedules(db: Session, barber_id: int) -> List[models.WeeklySchedule]:
    get_barber(db, barber_id)
    rows = db.query(models.WeeklySchedule).filter(models.WeeklySchedule.barber_id == barber_id).all()
    return sorted(rows, key=lambda s: WEEKDAYS.index(s.day_of_week))


def set_barber_schedule(
    db: Session,
    barber_id: int,
    day_of_week: str,
    time_slots,
    is_active: bool = True,
) -> models.WeeklySchedule:
    """Create or replace the template for (barber, weekday).

    Existing appointments are left alone even if their slot disappears from
    the template.
    """
    day_of_week = (day_of_week or "").lower()
    if day_of_week not in WEEKDAYS:
        raise ValidationError(f"Invalid day of week: {day_of_week!r}")
    get_barber(db, barber_id)
    slots = normalize_slots(time_slots)

    schedule = (
        db.query(models.WeeklySchedule)
        .filter(
            models.WeeklySchedule.barber_id == barber_id,
            models.WeeklySchedule.day_of_week == day_of_week,
        )
        .first()
    )
    if schedule is None:
        schedule = models.WeeklySchedule(
            barber_id=barber_id, day_of_week=day_of_week, time_slots=slots, is_active=is_active
        )
        db.add(schedule)
        try:
            db.commit()
        except IntegrityError:
            # Lost an insert race for the same weekday; the other row wins and we overwrite it
            db.rollback()
            logger.info(f"Concurrent schedule insert for barber {barber_id} on {day_of_week}, updating instead")
            schedule = (
                db.query(models.WeeklySchedule)
                .filter(
                    models.WeeklySchedule.barber_id == barber_id,
                    models.WeeklySchedule.day_of_week == day_of_week,
                )
                .one()
            )
            schedule.time_slots = slots
            schedule.is_active = is_active
            db.commit()
    else:
        schedule.time_slots = slots
        schedule.is_active = is_active
        db.commit()

    db.refresh(schedule)
    logger.info(f"Schedule set for barber {barber_id} on {day_of_week}: {slots}")
    return schedule


def booked_slots_on(db: Session, barber_id: int, day: date) -> List[str]:
    rows = (
        db.query(models.Appointment.time_slot)
        .filter(
            models.Appointment.barber_id == barber_id,
            models.Appointment.appointment_date == day,
            models.Appointment.status != models.AppointmentStatus.CANCELLED.value,
        )
        .all()
    )
    return sorted(normalize_time_slot(r.time_slot) for r in rows)


def get_availability(db: Session, barber_id: int, day: date, now: Optional[datetime] = None) -> Availability:
    get_barber(db, barber_id)
    now = now or local_now()
    if day < now.date():
        raise ValidationError("Cannot query availability for past dates")

    day_name = weekday_name(day)
    result = Availability(barber_id=barber_id, date=format_date(day), day_of_week=day_name)

    template = offered_slots(db, barber_id, day)
    if not template:
        logger.debug(f"Barber {barber_id} has no active schedule on {day_name}")
        return result

    booked = booked_slots_on(db, barber_id, day)
    taken = set(booked)
    result.booked_slots = booked
    result.available_slots = [slot for slot in template if slot not in taken]
    return result
