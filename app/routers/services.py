from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List
from ..database import get_db
from .. import schemas, models

router = APIRouter(prefix="/services", tags=["services"])


@router.get("/", response_model=List[schemas.ServiceOut])
def list_services(db: Session = Depends(get_db)):
    return db.query(models.Service).filter(models.Service.is_active == True).all()


@router.post("/", response_model=schemas.ServiceOut, status_code=201)
def create_service(payload: schemas.ServiceCreate, db: Session = Depends(get_db)):
    existing = db.query(models.Service).filter(models.Service.name == payload.name).first()
    if existing:
        raise HTTPException(status_code=400, detail="Service already exists")
    svc = models.Service(**payload.model_dump())
    db.add(svc)
    db.commit()
    db.refresh(svc)
    return svc
