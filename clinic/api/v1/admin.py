from fastapi import APIRouter, Depends, status
from typing import List

from ...api.deps import (
    get_admin_user, get_appointment_service, get_audit_trail,
    get_billing_service, get_identity_service
)
from ...models.user import User
from ...schemas.appointment import AppointmentAssign, AppointmentResponse
from ...schemas.audit import AuditLogResponse
from ...schemas.billing import InvoiceResponse, InvoiceStatusUpdate
from ...schemas.user import StaffCreate, UserResponse, MessageResponse
from ...services.appointment_service import AppointmentService
from ...services.audit import AuditTrail
from ...services.billing_service import BillingService
from ...services.identity_service import IdentityService

router = APIRouter(prefix="/admin", tags=["Administration"])


@router.get("/users", response_model=List[UserResponse])
def list_users(
    admin: User = Depends(get_admin_user),
    identity: IdentityService = Depends(get_identity_service)
):
    return identity.list_users(admin)


@router.post("/doctors", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_doctor(
    data: StaffCreate,
    admin: User = Depends(get_admin_user),
    identity: IdentityService = Depends(get_identity_service)
):
    """Create a doctor account and email temporary credentials."""
    return identity.create_doctor(admin, data)


@router.post("/patients", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_patient(
    data: StaffCreate,
    admin: User = Depends(get_admin_user),
    identity: IdentityService = Depends(get_identity_service)
):
    """Onboard a patient on their behalf."""
    return identity.create_patient(admin, data)


@router.delete("/users/{user_id}", response_model=MessageResponse)
def delete_user(
    user_id: str,
    admin: User = Depends(get_admin_user),
    identity: IdentityService = Depends(get_identity_service)
):
    """Soft delete: the account is archived, never removed."""
    identity.soft_delete_user(admin, user_id)
    return {"message": "User removed from active registry"}


@router.put("/users/{user_id}/restore", response_model=MessageResponse)
def restore_user(
    user_id: str,
    admin: User = Depends(get_admin_user),
    identity: IdentityService = Depends(get_identity_service)
):
    identity.restore_user(admin, user_id)
    return {"message": "User restored successfully"}


@router.get("/invoices", response_model=List[InvoiceResponse])
def list_invoices(
    skip: int = 0,
    limit: int = 100,
    admin: User = Depends(get_admin_user),
    billing: BillingService = Depends(get_billing_service)
):
    return billing.list_invoices(admin, skip, limit)


@router.patch("/invoices/{invoice_id}/status", response_model=InvoiceResponse)
def update_invoice_status(
    invoice_id: int,
    data: InvoiceStatusUpdate,
    admin: User = Depends(get_admin_user),
    billing: BillingService = Depends(get_billing_service)
):
    return billing.update_invoice_status(admin, invoice_id, data.status, data.payment_method)


@router.get("/logs", response_model=List[AuditLogResponse])
def list_audit_logs(
    skip: int = 0,
    limit: int = 100,
    admin: User = Depends(get_admin_user),
    audit: AuditTrail = Depends(get_audit_trail)
):
    return audit.list_entries(skip, limit)


@router.post("/appointments", response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def assign_appointment(
    data: AppointmentAssign,
    admin: User = Depends(get_admin_user),
    appointments: AppointmentService = Depends(get_appointment_service)
):
    """Assign an appointment to a doctor; it starts out accepted."""
    return appointments.assign_appointment(admin, data)


@router.get("/appointments", response_model=List[AppointmentResponse])
def list_appointments(
    skip: int = 0,
    limit: int = 100,
    admin: User = Depends(get_admin_user),
    appointments: AppointmentService = Depends(get_appointment_service)
):
    return appointments.list_all(admin, skip, limit)


@router.delete("/appointments/{appointment_id}", response_model=MessageResponse)
def cancel_appointment(
    appointment_id: int,
    admin: User = Depends(get_admin_user),
    appointments: AppointmentService = Depends(get_appointment_service)
):
    appointments.cancel_appointment(admin, appointment_id)
    return {"message": "Appointment removed"}
