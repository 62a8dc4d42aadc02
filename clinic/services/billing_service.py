import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import NotFoundError
from ..core.security import UserRole, AuthorizationError
from ..models.invoice import Invoice, InvoiceItem, InvoiceStatus, PaymentMethod
from ..models.user import User
from .audit import AuditTrail

logger = logging.getLogger(__name__)

CONSULTATION_FEE_LABEL = "Consultation Fee"


def generate_invoice_number() -> str:
    """INV-<date>-<48 random bits>; the unique column rejects the rare clash."""
    return f"INV-{datetime.utcnow():%Y%m%d}-{uuid.uuid4().hex[:12].upper()}"


class BillingService:
    def __init__(self, db: Session, audit: Optional[AuditTrail] = None):
        self.db = db
        self.audit = audit or AuditTrail(db)

    def create_invoice(
        self,
        patient_id: str,
        appointment_id: int,
        amount: float = None,
        status: InvoiceStatus = InvoiceStatus.UNPAID,
        description: str = CONSULTATION_FEE_LABEL
    ) -> Invoice:
        """Add a single-line invoice to the current transaction.

        The caller owns the commit, so the invoice lands together with the
        lifecycle change that triggered it.
        """
        if amount is None:
            amount = settings.DEFAULT_CONSULTATION_FEE

        invoice = Invoice(
            invoice_number=generate_invoice_number(),
            patient_id=patient_id,
            appointment_id=appointment_id,
            total_amount=amount,
            status=status or InvoiceStatus.UNPAID,
            items=[InvoiceItem(description=description, amount=amount)]
        )
        self.db.add(invoice)
        return invoice

    def get_invoice_for_appointment(self, appointment_id: int) -> Optional[Invoice]:
        return self.db.query(Invoice).filter(
            Invoice.appointment_id == appointment_id
        ).first()

    def payment_status_for(self, appointment_id: int) -> InvoiceStatus:
        invoice = self.get_invoice_for_appointment(appointment_id)
        return invoice.status if invoice else InvoiceStatus.UNPAID

    def list_invoices(self, admin: User, skip: int = 0, limit: int = 100):
        self._require_admin(admin)
        return (
            self.db.query(Invoice)
            .order_by(Invoice.created_at.desc(), Invoice.id.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def update_invoice_status(
        self,
        admin: User,
        invoice_id: int,
        status: InvoiceStatus,
        payment_method: Optional[PaymentMethod] = None
    ) -> Invoice:
        """Set any status from the enumerated set; no transition rules apply."""
        self._require_admin(admin)

        invoice = self.db.query(Invoice).filter(Invoice.id == invoice_id).first()
        if not invoice:
            raise NotFoundError("Invoice not found")

        invoice.status = status
        if payment_method is not None:
            invoice.payment_method = payment_method

        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        self.db.refresh(invoice)

        logger.info(f"Invoice {invoice.invoice_number} status set to {status.value}")
        self.audit.record(
            admin.id,
            "Update Invoice",
            "Financial Hub",
            f"Updated status of invoice {invoice.invoice_number} to {status.value}"
        )
        return invoice

    def _require_admin(self, user: User):
        if user.role != UserRole.SUPERADMIN:
            raise AuthorizationError("Access denied. Required roles: ['superadmin']")
