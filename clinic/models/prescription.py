from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Boolean, Text, JSON, event
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship, object_session

from ..core.database import Base
from ..core.exceptions import ImmutableRecordError


class Prescription(Base):
    """Issued once per appointment when the consultation is finalized.

    Rows are write-once: the mapper hooks below reject any UPDATE or DELETE
    of a persisted prescription, whatever the `is_immutable` column says.
    """
    __tablename__ = "prescriptions"

    id = Column(Integer, primary_key=True, index=True)
    doctor_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    patient_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), unique=True, nullable=False)

    # [{"name", "dosage", "frequency", "duration"}, ...]
    medications = Column(JSON, nullable=False, default=list)
    notes = Column(Text, nullable=True)
    pdf_url = Column(String(512), nullable=True)
    is_immutable = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, server_default=func.now())

    doctor = relationship("User", foreign_keys=[doctor_id])
    patient = relationship("User", foreign_keys=[patient_id])
    appointment = relationship("Appointment", back_populates="prescription")

    def __repr__(self):
        return f"<Prescription(id={self.id}, appointment_id={self.appointment_id})>"


@event.listens_for(Prescription, "before_update")
def _reject_update(mapper, connection, target):
    session = object_session(target)
    if session is not None and not session.is_modified(target, include_collections=False):
        return
    raise ImmutableRecordError(f"Prescription {target.id} is immutable and cannot be modified")


@event.listens_for(Prescription, "before_delete")
def _reject_delete(mapper, connection, target):
    raise ImmutableRecordError(f"Prescription {target.id} is immutable and cannot be deleted")
