from .user import User
from .appointment import Appointment, AppointmentStatus, AppointmentType
from .invoice import Invoice, InvoiceItem, InvoiceStatus, PaymentMethod
from .prescription import Prescription
from .report import TestReport
from .audit_log import AuditLog
from .department import Department

__all__ = [
    "User",
    "Appointment",
    "AppointmentStatus",
    "AppointmentType",
    "Invoice",
    "InvoiceItem",
    "InvoiceStatus",
    "PaymentMethod",
    "Prescription",
    "TestReport",
    "AuditLog",
    "Department",
]
