from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from ..database import get_db
from .. import schemas, models
from ..dates import parse_date
from ..reminders import send_due_reminders

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/appointments", response_model=List[schemas.AppointmentOut])
def list_appointments(
    status: Optional[str] = Query(None),
    barber_id: Optional[int] = Query(None),
    date: Optional[str] = Query(None, description="dd/mm/yyyy"),
    db: Session = Depends(get_db),
):
    """Staff view of the book, earliest first."""
    q = db.query(models.Appointment)
    if status:
        q = q.filter(models.Appointment.status == status)
    if barber_id is not None:
        q = q.filter(models.Appointment.barber_id == barber_id)
    if date:
        q = q.filter(models.Appointment.appointment_date == parse_date(date))
    return q.order_by(models.Appointment.appointment_date, models.Appointment.time_slot).all()


@router.post("/reminders/run")
def run_reminders(db: Session = Depends(get_db)):
    return {"sent": send_due_reminders(db)}
