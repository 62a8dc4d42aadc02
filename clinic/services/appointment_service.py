"""
Appointment lifecycle engine.

Every transition follows the same sequence: check role and ownership,
mutate, commit once, then run the best-effort side effects (audit entry and
realtime broadcast). Side-effect failures are logged and never undo or fail
the committed transition.

    pending --(doctor)--> accepted / rescheduled / completed / cancelled
    (admin assignment starts at accepted)
    * --(finalize)--> completed + prescription + invoice   (irreversible)
    not completed --(admin cancel)--> removed
"""
import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import (
    NotFoundError, PermissionDeniedError, PolicyViolationError, ValidationFailedError
)
from ..core.security import UserRole, AuthorizationError
from ..models.appointment import Appointment, AppointmentStatus, DOCTOR_SETTABLE_STATUSES
from ..models.invoice import Invoice, InvoiceStatus
from ..models.prescription import Prescription
from ..models.user import User
from ..schemas.appointment import AppointmentAssign, AppointmentBook, AppointmentUpdate, DoctorAppointmentResponse
from ..schemas.clinical import ConsultationFinalize
from .audit import AuditTrail
from .billing_service import BillingService
from .broadcaster import EventBroadcaster, NotificationEvent
from .clinical_service import ClinicalService

logger = logging.getLogger(__name__)


class AppointmentService:
    def __init__(
        self,
        db: Session,
        broadcaster: EventBroadcaster,
        audit: Optional[AuditTrail] = None,
        billing: Optional[BillingService] = None,
        clinical: Optional[ClinicalService] = None,
        allow_admin_override: Optional[bool] = None
    ):
        self.db = db
        self.broadcaster = broadcaster
        self.audit = audit or AuditTrail(db)
        self.billing = billing or BillingService(db, self.audit)
        self.clinical = clinical or ClinicalService(db, audit=self.audit)
        if allow_admin_override is None:
            allow_admin_override = settings.ALLOW_ADMIN_OVERRIDE
        self.allow_admin_override = allow_admin_override

    # Creation

    def book_appointment(self, patient: User, data: AppointmentBook) -> Appointment:
        """Patient self-booking; waits in pending for the doctor."""
        self._require_role(patient, UserRole.PATIENT)
        doctor = self._get_active_user(data.doctor_id, UserRole.DOCTOR)

        appointment = Appointment(
            patient_id=patient.id,
            doctor_id=doctor.id,
            date=data.date,
            type=data.type,
            reason=data.reason,
            status=AppointmentStatus.PENDING
        )
        self.db.add(appointment)
        self._commit()
        self.db.refresh(appointment)

        logger.info(f"Appointment {appointment.id} booked by patient {patient.id} with doctor {doctor.id}")
        self.audit.record(
            patient.id,
            "Book Appointment",
            "Appointment Management",
            f"Booked appointment {appointment.id} with doctor ID {doctor.id} for {data.date:%Y-%m-%d}"
        )
        self._broadcast(
            "NEW_BOOKING",
            f"New appointment booking by {patient.name} for {data.date:%Y-%m-%d}",
            appointment
        )
        return appointment

    def assign_appointment(self, admin: User, data: AppointmentAssign) -> Appointment:
        """Administrator assignment; skips pending and notifies the doctor."""
        self._require_role(admin, UserRole.SUPERADMIN)
        patient = self._get_active_user(data.patient_id, UserRole.PATIENT)
        doctor = self._get_active_user(data.doctor_id, UserRole.DOCTOR)

        appointment = Appointment(
            patient_id=patient.id,
            doctor_id=doctor.id,
            date=data.date,
            type=data.type,
            reason=data.reason,
            status=AppointmentStatus.ACCEPTED
        )
        self.db.add(appointment)
        self._commit()
        self.db.refresh(appointment)

        logger.info(f"Appointment {appointment.id} assigned to doctor {doctor.id} for patient {patient.id}")
        self.audit.record(
            admin.id,
            "Assign Appointment",
            "Appointment Management",
            f"Assigned new appointment to doctor ID {doctor.id} for patient ID {patient.id}"
        )
        self._broadcast(
            "ASSIGN_APPOINTMENT",
            f"New appointment assigned for {data.date:%Y-%m-%d} ({data.reason or 'no reason given'})",
            appointment,
            target_doctor_id=doctor.id
        )
        return appointment

    # Doctor transitions

    def update_appointment(self, doctor: User, appointment_id: int, data: AppointmentUpdate) -> Appointment:
        self._require_doctor(doctor)
        appointment = self._get_appointment(appointment_id)
        self.ensure_appointment_access(doctor, appointment)

        if data.status is None and data.date is None:
            raise ValidationFailedError("Provide a status or a date")
        if data.status is not None and data.status not in DOCTOR_SETTABLE_STATUSES:
            raise ValidationFailedError(
                f"Status must be one of {sorted(s.value for s in DOCTOR_SETTABLE_STATUSES)}"
            )
        if (
            data.status not in (None, AppointmentStatus.COMPLETED)
            and self.clinical.get_prescription_for_appointment(appointment.id) is not None
        ):
            raise PolicyViolationError("Finalized consultations cannot change status")

        if data.status is not None:
            appointment.status = data.status
        if data.date is not None:
            appointment.date = data.date
        self._commit()
        self.db.refresh(appointment)

        status = appointment.status.value
        logger.info(f"Appointment {appointment.id} updated by {doctor.id}: status={status}")
        self.audit.record(
            doctor.id,
            "Update Appointment",
            "Clinical Queue",
            f"Updated appointment ID {appointment.id} status to {status}"
        )
        self._broadcast(
            "APPOINTMENT_UPDATE",
            f"Doctor updated appointment {appointment.id} status to {status}",
            appointment
        )
        return appointment

    def finalize_consultation(self, doctor: User, data: ConsultationFinalize) -> Prescription:
        """Record the clinical outcome, issue the prescription and the invoice.

        The appointment update, prescription and invoice commit together or
        not at all. Repeating the call returns the prescription issued the
        first time and writes nothing.
        """
        self._require_doctor(doctor)
        appointment = self._get_appointment(data.appointment_id)
        self.ensure_appointment_access(doctor, appointment)

        if data.patient_id and data.patient_id != appointment.patient_id:
            raise ValidationFailedError("Patient does not match the appointment")

        existing = self.clinical.get_prescription_for_appointment(appointment.id)
        if existing is not None:
            logger.info(f"Appointment {appointment.id} already finalized, returning prescription {existing.id}")
            return existing

        if appointment.status == AppointmentStatus.CANCELLED:
            raise PolicyViolationError("Cancelled appointments cannot be finalized")

        for attempt in range(2):
            try:
                appointment.diagnosis = data.diagnosis
                appointment.clinical_notes = data.clinical_notes
                appointment.vitals = data.vitals.model_dump() if data.vitals else None
                appointment.status = AppointmentStatus.COMPLETED

                prescription = self.clinical.create_prescription(
                    doctor_id=appointment.doctor_id,
                    patient_id=appointment.patient_id,
                    appointment_id=appointment.id,
                    medications=[m.model_dump() for m in data.medications],
                    notes=data.notes
                )

                invoice = self.billing.get_invoice_for_appointment(appointment.id)
                if invoice is None:
                    # A zero fee means the clinic default
                    invoice = self.billing.create_invoice(
                        patient_id=appointment.patient_id,
                        appointment_id=appointment.id,
                        amount=data.consultation_fee or None,
                        status=data.payment_status or InvoiceStatus.UNPAID
                    )
                else:
                    logger.info(f"Appointment {appointment.id} already has invoice {invoice.invoice_number}, keeping it")

                self.db.commit()
                break
            except IntegrityError:
                # A concurrent finalize or payment update for the same appointment won the race
                self.db.rollback()
                existing = self.clinical.get_prescription_for_appointment(data.appointment_id)
                if existing is not None:
                    return existing
                if attempt == 0 and self.billing.get_invoice_for_appointment(data.appointment_id) is not None:
                    logger.info(f"Invoice for appointment {data.appointment_id} was issued concurrently, retrying")
                    continue
                raise
            except SQLAlchemyError:
                self.db.rollback()
                logger.error(f"Finalizing appointment {data.appointment_id} failed, changes rolled back")
                raise

        self.db.refresh(prescription)
        logger.info(
            f"Appointment {appointment.id} finalized: prescription {prescription.id}, "
            f"invoice {invoice.invoice_number}"
        )
        self.audit.record(
            doctor.id,
            "Create Prescription",
            "Clinical Consultation",
            f"Finalized clinical record and issued prescription for appointment {appointment.id}"
        )
        self._broadcast(
            "CONSULTATION_FINALIZED",
            f"Consultation for appointment {appointment.id} finalized",
            appointment
        )
        return prescription

    def update_payment_status(self, doctor: User, appointment_id: int, status: InvoiceStatus) -> Invoice:
        """Set the invoice status, issuing the fallback invoice if none exists yet."""
        self._require_doctor(doctor)
        appointment = self._get_appointment(appointment_id)
        self.ensure_appointment_access(doctor, appointment)

        invoice = self.billing.get_invoice_for_appointment(appointment.id)
        if invoice is None:
            invoice = self.billing.create_invoice(
                patient_id=appointment.patient_id,
                appointment_id=appointment.id,
                amount=settings.FALLBACK_INVOICE_AMOUNT,
                status=status
            )
            try:
                self.db.commit()
            except IntegrityError:
                # Another request created the invoice first; update that one
                self.db.rollback()
                invoice = self.billing.get_invoice_for_appointment(appointment_id)
                if invoice is None:
                    raise
                invoice.status = status
                self._commit()
        else:
            invoice.status = status
            self._commit()
        self.db.refresh(invoice)

        self.audit.record(
            doctor.id,
            "Update Payment Status",
            "Billing Intelligence",
            f"Updated payment status for appointment {appointment_id} to {status.value}"
        )
        return invoice

    def get_prescription(self, doctor: User, appointment_id: int) -> dict:
        self._require_doctor(doctor)
        appointment = self._get_appointment(appointment_id)
        self.ensure_appointment_access(doctor, appointment)

        return {
            "prescription": self.clinical.get_prescription_for_appointment(appointment.id),
            "clinical_details": {
                "diagnosis": appointment.diagnosis,
                "clinical_notes": appointment.clinical_notes,
                "vitals": appointment.vitals,
            },
        }

    # Administration

    def cancel_appointment(self, admin: User, appointment_id: int) -> None:
        """Remove an appointment that has not reached completion."""
        appointment = self._get_appointment(appointment_id)
        if appointment.is_completed or self.clinical.get_prescription_for_appointment(appointment.id):
            raise PolicyViolationError("Completed appointments cannot be removed")

        self._require_role(admin, UserRole.SUPERADMIN)

        if self.billing.get_invoice_for_appointment(appointment.id) is not None:
            raise PolicyViolationError("Appointments with an issued invoice cannot be removed")

        doctor_id = appointment.doctor_id
        self.db.delete(appointment)
        self._commit()

        logger.info(f"Appointment {appointment_id} removed by {admin.id}")
        self.audit.record(
            admin.id,
            "Cancel Appointment",
            "Appointment Management",
            f"Cancelled appointment ID {appointment_id}"
        )
        self.broadcaster.notify(NotificationEvent(
            action="APPOINTMENT_CANCELLED",
            target_doctor_id=doctor_id,
            message=f"Appointment {appointment_id} was cancelled",
            data={"id": appointment_id}
        ))

    # Listings

    def list_for_doctor(self, doctor: User) -> List[DoctorAppointmentResponse]:
        self._require_role(doctor, UserRole.DOCTOR)
        appointments = (
            self.db.query(Appointment)
            .filter(Appointment.doctor_id == doctor.id)
            .order_by(Appointment.date.desc())
            .all()
        )
        return [
            DoctorAppointmentResponse.model_validate(appointment).model_copy(update={
                "payment_status": self.billing.payment_status_for(appointment.id)
            })
            for appointment in appointments
        ]

    def list_for_patient(self, patient: User) -> List[Appointment]:
        self._require_role(patient, UserRole.PATIENT)
        return (
            self.db.query(Appointment)
            .filter(Appointment.patient_id == patient.id)
            .order_by(Appointment.date.desc())
            .all()
        )

    def list_all(self, admin: User, skip: int = 0, limit: int = 100) -> List[Appointment]:
        self._require_role(admin, UserRole.SUPERADMIN)
        return (
            self.db.query(Appointment)
            .order_by(Appointment.created_at.desc(), Appointment.id.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    # Policy

    def ensure_appointment_access(self, user: User, appointment: Appointment):
        """Single ownership rule for every doctor-side appointment operation."""
        if user.role == UserRole.SUPERADMIN and self.allow_admin_override:
            return
        if user.role == UserRole.DOCTOR and appointment.doctor_id == user.id:
            return
        raise PermissionDeniedError("Unauthorized access to this appointment")

    def _require_doctor(self, user: User):
        if self.allow_admin_override:
            self._require_role(user, UserRole.DOCTOR, UserRole.SUPERADMIN)
        else:
            self._require_role(user, UserRole.DOCTOR)

    def _require_role(self, user: User, *roles: UserRole):
        if user.role not in roles:
            raise AuthorizationError(
                f"Access denied. Required roles: {[role.value for role in roles]}"
            )

    # Helpers

    def _get_appointment(self, appointment_id: int) -> Appointment:
        appointment = self.db.query(Appointment).filter(Appointment.id == appointment_id).first()
        if not appointment:
            raise NotFoundError("Appointment not found")
        return appointment

    def _get_active_user(self, user_id: str, role: UserRole) -> User:
        user = self.db.query(User).filter(
            User.id == user_id,
            User.role == role,
            User.is_deleted == False  # noqa: E712
        ).first()
        if not user:
            raise NotFoundError(f"{role.value.capitalize()} not found")
        return user

    def _commit(self):
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

    def _broadcast(self, action: str, message: str, appointment: Appointment, target_doctor_id: str = None):
        self.broadcaster.notify(NotificationEvent(
            action=action,
            target_doctor_id=target_doctor_id,
            message=message,
            data={
                "id": appointment.id,
                "patient_id": appointment.patient_id,
                "doctor_id": appointment.doctor_id,
                "date": appointment.date.isoformat() if appointment.date else None,
                "type": appointment.type.value if appointment.type else None,
                "status": appointment.status.value,
            }
        ))
