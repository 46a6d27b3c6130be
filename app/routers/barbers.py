from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List
from ..database import get_db
from .. import schemas, models

router = APIRouter(prefix="/barbers", tags=["barbers"])

@router.get("/", response_model=List[schemas.BarberOut])
def list_barbers(db: Session = Depends(get_db)):
    return db.query(models.Barber).filter(models.Barber.is_active == True).all()

@router.post("/", response_model=schemas.BarberOut, status_code=201)
def create_barber(payload: schemas.BarberCreate, db: Session = Depends(get_db)):
    barber = models.Barber(**payload.model_dump())
    db.add(barber)
    db.commit()
    db.refresh(barber)
    return barber
