from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime

from ..models.invoice import InvoiceStatus
from .appointment import AppointmentResponse, Vitals
from .billing import InvoiceResponse
from .user import UserSummary


class Medication(BaseModel):
    name: str
    dosage: Optional[str] = None
    frequency: Optional[str] = None
    duration: Optional[str] = None


class ConsultationFinalize(BaseModel):
    appointment_id: int
    patient_id: Optional[str] = None
    medications: List[Medication] = []
    notes: Optional[str] = None
    diagnosis: Optional[str] = None
    clinical_notes: Optional[str] = None
    vitals: Optional[Vitals] = None
    consultation_fee: Optional[float] = Field(default=None, ge=0)
    payment_status: Optional[InvoiceStatus] = None


class PrescriptionResponse(BaseModel):
    id: int
    doctor_id: str
    patient_id: str
    appointment_id: int
    medications: List[Medication] = []
    notes: Optional[str] = None
    pdf_url: Optional[str] = None
    is_immutable: bool = True
    doctor: Optional[UserSummary] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ClinicalDetails(BaseModel):
    diagnosis: Optional[str] = None
    clinical_notes: Optional[str] = None
    vitals: Optional[Vitals] = None


class PrescriptionDetail(BaseModel):
    prescription: Optional[PrescriptionResponse] = None
    clinical_details: ClinicalDetails


class TestReportResponse(BaseModel):
    id: int
    patient_id: str
    title: str
    file_url: str
    extracted_data: Optional[Dict[str, Any]] = None
    uploaded_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PatientHistory(BaseModel):
    prescriptions: List[PrescriptionResponse] = []
    reports: List[TestReportResponse] = []
    appointments: List[AppointmentResponse] = []
    invoices: List[InvoiceResponse] = []


class DoctorPatientResponse(BaseModel):
    id: str
    name: str
    email: str
    phone: str
    display_id: Optional[str] = None
    created_at: Optional[datetime] = None
    last_visit: Optional[datetime] = None


class DepartmentHead(BaseModel):
    id: str
    name: str

    class Config:
        from_attributes = True


class DepartmentResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    head: Optional[DepartmentHead] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
