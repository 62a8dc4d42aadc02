from fastapi import APIRouter, Depends, status
from typing import List, Optional

from ...api.deps import get_appointment_service, get_clinical_service, get_doctor_user
from ...models.user import User
from ...schemas.appointment import AppointmentResponse, AppointmentUpdate, DoctorAppointmentResponse
from ...schemas.billing import PaymentStatusResponse, PaymentStatusUpdate
from ...schemas.clinical import (
    ConsultationFinalize, DoctorPatientResponse, PatientHistory,
    PrescriptionDetail, PrescriptionResponse
)
from ...services.appointment_service import AppointmentService
from ...services.clinical_service import ClinicalService, search_medications

router = APIRouter(prefix="/doctor", tags=["Doctor"])


@router.get("/appointments", response_model=List[DoctorAppointmentResponse])
def list_appointments(
    doctor: User = Depends(get_doctor_user),
    appointments: AppointmentService = Depends(get_appointment_service)
):
    """Assigned appointments with the payment status of each."""
    return appointments.list_for_doctor(doctor)


@router.put("/appointments/{appointment_id}", response_model=AppointmentResponse)
def update_appointment(
    appointment_id: int,
    data: AppointmentUpdate,
    doctor: User = Depends(get_doctor_user),
    appointments: AppointmentService = Depends(get_appointment_service)
):
    """Accept, reschedule, complete or cancel an appointment."""
    return appointments.update_appointment(doctor, appointment_id, data)


@router.patch("/appointments/{appointment_id}/payment", response_model=PaymentStatusResponse)
def update_payment_status(
    appointment_id: int,
    data: PaymentStatusUpdate,
    doctor: User = Depends(get_doctor_user),
    appointments: AppointmentService = Depends(get_appointment_service)
):
    invoice = appointments.update_payment_status(doctor, appointment_id, data.status)
    return PaymentStatusResponse(status=invoice.status)


@router.get("/appointments/{appointment_id}/prescription", response_model=PrescriptionDetail)
def get_prescription(
    appointment_id: int,
    doctor: User = Depends(get_doctor_user),
    appointments: AppointmentService = Depends(get_appointment_service)
):
    return appointments.get_prescription(doctor, appointment_id)


@router.post("/prescriptions", response_model=PrescriptionResponse, status_code=status.HTTP_201_CREATED)
def finalize_consultation(
    data: ConsultationFinalize,
    doctor: User = Depends(get_doctor_user),
    appointments: AppointmentService = Depends(get_appointment_service)
):
    """Close out a visit: clinical findings, prescription and invoice."""
    return appointments.finalize_consultation(doctor, data)


@router.get("/patients", response_model=List[DoctorPatientResponse])
def list_patients(
    doctor: User = Depends(get_doctor_user),
    clinical: ClinicalService = Depends(get_clinical_service)
):
    return clinical.doctor_patients(doctor)


@router.get("/patients/{patient_id}/history", response_model=PatientHistory)
def patient_history(
    patient_id: str,
    doctor: User = Depends(get_doctor_user),
    clinical: ClinicalService = Depends(get_clinical_service)
):
    return clinical.patient_history_for_doctor(doctor, patient_id)


@router.get("/medications/search", response_model=List[str])
def medication_search(
    query: Optional[str] = None,
    doctor: User = Depends(get_doctor_user)
):
    return search_medications(query)
