# app/routers/appointments.py
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from ..database import get_db
from .. import schemas
from ..appointments import (
    create_appointment,
    get_appointment,
    reschedule_appointment,
    update_appointment_status,
)

router = APIRouter(prefix="/appointments", tags=["appointments"])


@router.post("/", response_model=schemas.AppointmentOut, status_code=status.HTTP_201_CREATED)
def book(payload: schemas.AppointmentCreate, db: Session = Depends(get_db)):
    return create_appointment(
        db,
        customer_id=payload.customer_id,
        barber_id=payload.barber_id,
        service_id=payload.service_id,
        appointment_date=payload.date,
        time_slot=payload.time_slot,
        notes=payload.notes,
    )


@router.get("/{appointment_id}", response_model=schemas.AppointmentOut)
def read_appointment(appointment_id: int, db: Session = Depends(get_db)):
    return get_appointment(db, appointment_id)


@router.put("/{appointment_id}/status", response_model=schemas.AppointmentOut)
def change_status(appointment_id: int, payload: schemas.AppointmentStatusUpdate, db: Session = Depends(get_db)):
    return update_appointment_status(db, appointment_id, payload.status)


@router.put("/{appointment_id}/reschedule", response_model=schemas.AppointmentOut)
def reschedule(appointment_id: int, payload: schemas.AppointmentReschedule, db: Session = Depends(get_db)):
    return reschedule_appointment(db, appointment_id, payload.date, payload.time_slot)
