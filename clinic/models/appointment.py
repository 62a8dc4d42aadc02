from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Text, JSON, Enum as SQLEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from ..core.database import Base


class AppointmentStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    RESCHEDULED = "rescheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AppointmentType(str, enum.Enum):
    IN_PERSON = "in-person"
    ONLINE = "online"


# Statuses a doctor may set directly on an appointment
DOCTOR_SETTABLE_STATUSES = frozenset({
    AppointmentStatus.ACCEPTED,
    AppointmentStatus.RESCHEDULED,
    AppointmentStatus.COMPLETED,
    AppointmentStatus.CANCELLED,
})


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)

    # Relationships
    patient_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    doctor_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    # Appointment details
    date = Column(DateTime, nullable=False, server_default=func.now(), index=True)
    type = Column(SQLEnum(AppointmentType), default=AppointmentType.IN_PERSON, nullable=False)
    status = Column(SQLEnum(AppointmentStatus), default=AppointmentStatus.PENDING, nullable=False)
    reason = Column(Text, nullable=True)

    # Clinical outcome, written when the consultation is finalized
    diagnosis = Column(Text, nullable=True)
    clinical_notes = Column(Text, nullable=True)
    vitals = Column(JSON, nullable=True)

    # Tracking
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    patient = relationship("User", foreign_keys=[patient_id], back_populates="patient_appointments")
    doctor = relationship("User", foreign_keys=[doctor_id], back_populates="doctor_appointments")
    invoice = relationship("Invoice", back_populates="appointment", uselist=False)
    prescription = relationship("Prescription", back_populates="appointment", uselist=False)

    @property
    def is_completed(self) -> bool:
        return self.status == AppointmentStatus.COMPLETED

    def __repr__(self):
        return f"<Appointment(id={self.id}, patient_id={self.patient_id}, doctor_id={self.doctor_id}, date='{self.date}')>"
