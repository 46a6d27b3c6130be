from datetime import datetime, date
from typing import Optional, List
from pydantic import BaseModel, EmailStr, Field, field_serializer

from .dates import format_date

class CustomerCreate(BaseModel):
    email: EmailStr
    full_name: Optional[str] = None
    phone: Optional[str] = None

class CustomerOut(BaseModel):
    id: int
    email: EmailStr
    full_name: Optional[str]
    phone: Optional[str] = None
    class Config:
        from_attributes = True

class ServiceBase(BaseModel):
    name: str
    description: Optional[str] = None
    price: float = Field(ge=0)
    duration_minutes: int = 60

class ServiceCreate(ServiceBase):
    pass

class ServiceOut(ServiceBase):
    id: int
    is_active: bool
    class Config:
        from_attributes = True

class BarberCreate(BaseModel):
    display_name: str
    email: Optional[EmailStr] = None
    bio: Optional[str] = None

class BarberOut(BaseModel):
    id: int
    display_name: str
    email: Optional[str] = None
    bio: Optional[str] = None
    is_active: bool
    class Config:
        from_attributes = True

class ScheduleSet(BaseModel):
    time_slots: List[str]
    is_active: bool = True

class ScheduleOut(BaseModel):
    id: int
    barber_id: int
    day_of_week: str
    time_slots: List[str]
    is_active: bool
    updated_at: Optional[datetime] = None
    class Config:
        from_attributes = True

class AvailabilityOut(BaseModel):
    barber_id: int
    date: str
    day_of_week: str
    available_slots: List[str]
    booked_slots: List[str]
    class Config:
        from_attributes = True

class SlotCheckOut(BaseModel):
    available: bool

class AppointmentCreate(BaseModel):
    customer_id: int
    barber_id: int
    service_id: int
    date: str = Field(description="dd/mm/yyyy")
    time_slot: str = Field(description="HH:MM")
    notes: Optional[str] = None

class AppointmentStatusUpdate(BaseModel):
    status: str

class AppointmentReschedule(BaseModel):
    date: str = Field(description="dd/mm/yyyy")
    time_slot: str

class AppointmentOut(BaseModel):
    id: int
    customer_id: Optional[int]
    barber_id: int
    service_id: int
    appointment_date: date
    time_slot: str
    status: str
    reschedule_count: int
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    class Config:
        from_attributes = True

    @field_serializer("appointment_date")
    def _wire_date(self, value: date) -> str:
        return format_date(value)

class SlotData(BaseModel):
    barber_id: int
    date: str = Field(description="dd/mm/yyyy")
    time_slot: str
    notes: Optional[str] = None

class PaymentEvent(BaseModel):
    transaction_id: str = Field(min_length=1)
    service_id: int
    payment_type: str = "full"
    amount: Optional[float] = Field(default=None, ge=0)
    payment_method: str = "stripe"
    customer_id: Optional[int] = None
    slot: Optional[SlotData] = None

class PaymentOut(BaseModel):
    id: int
    appointment_id: Optional[int]
    amount: float
    payment_method: str
    payment_type: str
    status: str
    transaction_id: str
    created_at: Optional[datetime] = None
    class Config:
        from_attributes = True

class PaymentEventOut(BaseModel):
    duplicate: bool
    payment: PaymentOut
    appointment: Optional[AppointmentOut] = None
    class Config:
        from_attributes = True
