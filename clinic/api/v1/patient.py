from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from typing import List

from ...api.deps import (
    get_appointment_service, get_clinical_service, get_identity_service, get_patient_user
)
from ...models.user import User
from ...schemas.appointment import AppointmentBook, AppointmentResponse
from ...schemas.clinical import DepartmentResponse, PatientHistory, TestReportResponse
from ...schemas.user import UserResponse
from ...services.appointment_service import AppointmentService
from ...services.clinical_service import ClinicalService
from ...services.identity_service import IdentityService

router = APIRouter(prefix="/patient", tags=["Patient"])


@router.post("/appointments", response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def book_appointment(
    data: AppointmentBook,
    patient: User = Depends(get_patient_user),
    appointments: AppointmentService = Depends(get_appointment_service)
):
    """Book an appointment; it stays pending until the doctor acts on it."""
    return appointments.book_appointment(patient, data)


@router.get("/appointments", response_model=List[AppointmentResponse])
def list_appointments(
    patient: User = Depends(get_patient_user),
    appointments: AppointmentService = Depends(get_appointment_service)
):
    return appointments.list_for_patient(patient)


@router.get("/history", response_model=PatientHistory)
def medical_history(
    patient: User = Depends(get_patient_user),
    clinical: ClinicalService = Depends(get_clinical_service)
):
    return clinical.patient_history(patient)


@router.post("/reports", response_model=TestReportResponse, status_code=status.HTTP_201_CREATED)
def upload_report(
    title: str = Form(...),
    report: UploadFile = File(...),
    patient: User = Depends(get_patient_user),
    clinical: ClinicalService = Depends(get_clinical_service)
):
    content = report.file.read()
    return clinical.upload_report(patient, title, report.filename, content)


@router.get("/doctors", response_model=List[UserResponse])
def list_doctors(
    patient: User = Depends(get_patient_user),
    identity: IdentityService = Depends(get_identity_service)
):
    return identity.list_doctors()


@router.get("/departments", response_model=List[DepartmentResponse])
def list_departments(
    patient: User = Depends(get_patient_user),
    clinical: ClinicalService = Depends(get_clinical_service)
):
    return clinical.list_departments()
