import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from . import models, notifications
from .config import settings
from .dates import local_now, slot_start

logger = logging.getLogger(__name__)


def reminder_window(now: datetime) -> tuple[datetime, datetime]:
    start = now + timedelta(minutes=settings.REMINDER_LEAD_MINUTES)
    return start, start + timedelta(minutes=settings.REMINDER_WINDOW_MINUTES)


def due_reminders(db: Session, now: Optional[datetime] = None) -> List[models.Appointment]:
    """Confirmed appointments starting in ``[now + lead, now + lead + window)``.

    Meant to be called once every ``REMINDER_WINDOW_MINUTES``; consecutive
    windows tile the timeline so an appointment is reminded exactly once.
    """
    now = now or local_now()
    start, end = reminder_window(now)
    candidates = (
        db.query(models.Appointment)
        .filter(
            models.Appointment.status == models.AppointmentStatus.CONFIRMED.value,
            models.Appointment.appointment_date >= start.date(),
            models.Appointment.appointment_date <= end.date(),
        )
        .all()
    )
    due = [a for a in candidates if start <= slot_start(a.appointment_date, a.time_slot) < end]
    return sorted(due, key=lambda a: slot_start(a.appointment_date, a.time_slot))


def send_due_reminders(db: Session, now: Optional[datetime] = None) -> int:
    due = due_reminders(db, now)
    sent = 0
    for appointment in due:
        sent += notifications.notify_appointment_reminder(appointment)
    logger.info(f"Reminder run: {len(due)} appointments due, {sent} messages sent")
    return sent
