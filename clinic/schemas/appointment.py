from pydantic import BaseModel, model_validator
from typing import Optional
from datetime import datetime

from ..models.appointment import AppointmentStatus, AppointmentType
from ..models.invoice import InvoiceStatus
from .user import UserSummary


class Vitals(BaseModel):
    blood_pressure: Optional[str] = None
    temperature: Optional[str] = None
    pulse: Optional[str] = None
    weight: Optional[str] = None


class AppointmentBook(BaseModel):
    doctor_id: str
    date: datetime
    type: AppointmentType = AppointmentType.IN_PERSON
    reason: Optional[str] = None


class AppointmentAssign(AppointmentBook):
    patient_id: str


class AppointmentUpdate(BaseModel):
    status: Optional[AppointmentStatus] = None
    date: Optional[datetime] = None

    @model_validator(mode="after")
    def check_not_empty(self):
        if self.status is None and self.date is None:
            raise ValueError("Provide a status or a date")
        return self


class AppointmentResponse(BaseModel):
    id: int
    patient_id: str
    doctor_id: str
    date: datetime
    type: AppointmentType
    status: AppointmentStatus
    reason: Optional[str] = None
    diagnosis: Optional[str] = None
    clinical_notes: Optional[str] = None
    vitals: Optional[Vitals] = None
    patient: Optional[UserSummary] = None
    doctor: Optional[UserSummary] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class DoctorAppointmentResponse(AppointmentResponse):
    payment_status: InvoiceStatus = InvoiceStatus.UNPAID
