import logging
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from ..core.exceptions import ValidationFailedError, NotFoundError, PermissionDeniedError
from ..core.security import UserRole, AuthorizationError
from ..models.appointment import Appointment, AppointmentStatus
from ..models.department import Department
from ..models.invoice import Invoice
from ..models.prescription import Prescription
from ..models.report import TestReport
from ..models.user import User
from .audit import AuditTrail
from .storage import BlobStore, LocalBlobStore

logger = logging.getLogger(__name__)

# Formulary used for prescription autosuggest
MEDICATION_CATALOG = [
    "Paracetamol 500mg", "Amoxicillin 250mg", "Ibuprofen 400mg",
    "Metformin 500mg", "Atorvastatin 10mg", "Amlodipine 5mg",
    "Omeprazole 20mg", "Losartan 50mg", "Albuterol Inhaler",
    "Azithromycin 250mg", "Gabapentin 300mg", "Lisinopril 10mg",
]


def search_medications(query: Optional[str]) -> List[str]:
    needle = (query or "").lower()
    return [name for name in MEDICATION_CATALOG if needle in name.lower()]


class ClinicalService:
    """Prescriptions, test reports and the patient history views."""

    def __init__(self, db: Session, blob_store: Optional[BlobStore] = None, audit: Optional[AuditTrail] = None):
        self.db = db
        self.blob_store = blob_store or LocalBlobStore()
        self.audit = audit or AuditTrail(db)

    def create_prescription(
        self,
        doctor_id: str,
        patient_id: str,
        appointment_id: int,
        medications: List[Dict],
        notes: Optional[str] = None
    ) -> Prescription:
        """Add a prescription to the current transaction (caller commits)."""
        prescription = Prescription(
            doctor_id=doctor_id,
            patient_id=patient_id,
            appointment_id=appointment_id,
            medications=medications or [],
            notes=notes,
            is_immutable=True
        )
        self.db.add(prescription)
        return prescription

    def get_prescription_for_appointment(self, appointment_id: int) -> Optional[Prescription]:
        return self.db.query(Prescription).filter(
            Prescription.appointment_id == appointment_id
        ).first()

    def upload_report(
        self,
        patient: User,
        title: str,
        filename: Optional[str],
        content: Optional[bytes],
        extracted_data: Optional[Dict] = None
    ) -> TestReport:
        if patient.role != UserRole.PATIENT:
            raise AuthorizationError("Access denied. Required roles: ['patient']")
        if not title:
            raise ValidationFailedError("Report title is required")
        if not content:
            raise ValidationFailedError("No file uploaded")

        file_url = self.blob_store.save(filename, content)
        report = TestReport(
            patient_id=patient.id,
            title=title,
            file_url=file_url,
            extracted_data=extracted_data
        )
        self.db.add(report)
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        self.db.refresh(report)

        logger.info(f"Report '{title}' uploaded for patient {patient.id}")
        self.audit.record(patient.id, "Upload Report", "Medical Records", f"Uploaded test report '{title}'")
        return report

    def patient_history(self, patient: User) -> Dict[str, list]:
        """Timeline view for the patient: every appointment, not just completed."""
        if patient.role != UserRole.PATIENT:
            raise AuthorizationError("Access denied. Required roles: ['patient']")
        return self._history(patient.id, completed_only=False)

    def patient_history_for_doctor(self, doctor: User, patient_id: str) -> Dict[str, list]:
        """History of a patient the doctor has seen at least once.

        Access hinges on the doctor-patient link alone, so an unknown patient
        and an unrelated one look the same to the caller.
        """
        if doctor.role != UserRole.DOCTOR:
            raise AuthorizationError("Access denied. Required roles: ['doctor']")

        has_link = self.db.query(Appointment.id).filter(
            Appointment.doctor_id == doctor.id,
            Appointment.patient_id == patient_id
        ).first()
        if not has_link:
            raise PermissionDeniedError("Access denied. No clinical relationship found with this patient.")

        return self._history(patient_id, completed_only=True)

    def doctor_patients(self, doctor: User) -> List[Dict]:
        """Distinct patients of a doctor with the date of their latest visit."""
        if doctor.role != UserRole.DOCTOR:
            raise AuthorizationError("Access denied. Required roles: ['doctor']")

        rows = (
            self.db.query(User, func.max(Appointment.date))
            .join(Appointment, Appointment.patient_id == User.id)
            .filter(Appointment.doctor_id == doctor.id)
            .group_by(User.id)
            .order_by(User.name)
            .all()
        )
        return [
            {
                "id": patient.id,
                "name": patient.name,
                "email": patient.email,
                "phone": patient.phone,
                "display_id": patient.display_id,
                "created_at": patient.created_at,
                "last_visit": last_visit,
            }
            for patient, last_visit in rows
        ]

    def list_departments(self) -> List[Department]:
        return (
            self.db.query(Department)
            .options(joinedload(Department.head))
            .order_by(Department.name)
            .all()
        )

    def _history(self, patient_id: str, completed_only: bool) -> Dict[str, list]:
        if not self.db.query(User.id).filter(User.id == patient_id).first():
            raise NotFoundError("Patient not found")

        appointments = self.db.query(Appointment).filter(Appointment.patient_id == patient_id)
        if completed_only:
            appointments = appointments.filter(Appointment.status == AppointmentStatus.COMPLETED)

        return {
            "prescriptions": self.db.query(Prescription)
            .filter(Prescription.patient_id == patient_id)
            .order_by(Prescription.created_at.desc())
            .all(),
            "reports": self.db.query(TestReport)
            .filter(TestReport.patient_id == patient_id)
            .order_by(TestReport.uploaded_at.desc())
            .all(),
            "appointments": appointments.order_by(Appointment.date.desc()).all(),
            "invoices": self.db.query(Invoice)
            .filter(Invoice.patient_id == patient_id)
            .order_by(Invoice.created_at.desc())
            .all(),
        }
