from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime

from ..models.invoice import InvoiceStatus, PaymentMethod


class InvoiceItemResponse(BaseModel):
    description: str
    amount: float

    class Config:
        from_attributes = True


class InvoiceResponse(BaseModel):
    id: int
    invoice_number: str
    patient_id: str
    appointment_id: int
    items: List[InvoiceItemResponse] = []
    total_amount: float
    status: InvoiceStatus
    payment_method: Optional[PaymentMethod] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PaymentStatusUpdate(BaseModel):
    status: InvoiceStatus = InvoiceStatus.UNPAID


class InvoiceStatusUpdate(BaseModel):
    status: InvoiceStatus
    payment_method: Optional[PaymentMethod] = None


class PaymentStatusResponse(BaseModel):
    success: bool = True
    status: InvoiceStatus
