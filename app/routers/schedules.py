from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from ..database import get_db
from .. import schemas
from ..appointments import is_slot_available
from ..dates import parse_date
from ..schedules import get_availability, list_barber_schedules, set_barber_schedule

router = APIRouter(prefix="/schedules", tags=["schedules"])


@router.get("/availability", response_model=schemas.AvailabilityOut)
def availability(
    barber_id: int = Query(...),
    date: str = Query(..., description="dd/mm/yyyy"),
    db: Session = Depends(get_db),
):
    return get_availability(db, barber_id, parse_date(date))


@router.get("/slot-check", response_model=schemas.SlotCheckOut)
def slot_check(
    barber_id: int = Query(...),
    date: str = Query(..., description="dd/mm/yyyy"),
    time_slot: str = Query(...),
    exclude_appointment_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
):
    return {"available": is_slot_available(db, barber_id, parse_date(date), time_slot, exclude_appointment_id)}


@router.get("/{barber_id}", response_model=List[schemas.ScheduleOut])
def barber_schedules(barber_id: int, db: Session = Depends(get_db)):
    return list_barber_schedules(db, barber_id)


@router.put("/{barber_id}/{day_of_week}", response_model=schemas.ScheduleOut)
def set_schedule(barber_id: int, day_of_week: str, payload: schemas.ScheduleSet, db: Session = Depends(get_db)):
    return set_barber_schedule(db, barber_id, day_of_week, payload.time_slots, payload.is_active)
