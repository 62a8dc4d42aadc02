from sqlalchemy import Column, String, DateTime, Boolean, Enum as SQLEnum, event
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import random
import uuid

from ..core.database import Base
from ..core.security import UserRole, verify_password


def build_display_id(name: str, user_id=None) -> str:
    """Short human-facing id: three name letters plus a three digit suffix.

    The suffix is derived from the last four hex digits of the storage id
    when one exists, otherwise it is random.
    """
    prefix = name[:3].upper()
    if user_id:
        decimal = int(uuid.UUID(str(user_id)).hex[-4:], 16)
        suffix = str(decimal % 1000).zfill(3)
    else:
        suffix = str(random.randint(100, 999))
    return f"{prefix}-{suffix}"


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    phone = Column(String(20), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(SQLEnum(UserRole), nullable=False, default=UserRole.PATIENT)
    specialization = Column(String(100), nullable=True)

    # Onboarding and archive flags
    profile_created = Column(Boolean, default=False, nullable=False)
    is_deleted = Column(Boolean, default=False, nullable=False)
    display_id = Column(String(16), index=True, nullable=True)

    # One-time code for registration and password reset
    otp_code = Column(String(6), nullable=True)
    otp_expires_at = Column(DateTime, nullable=True)

    # Timestamps; updated_at moves on every write, archive and restore included
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    patient_appointments = relationship(
        "Appointment", foreign_keys="Appointment.patient_id", back_populates="patient"
    )
    doctor_appointments = relationship(
        "Appointment", foreign_keys="Appointment.doctor_id", back_populates="doctor"
    )

    def __init__(self, **kwargs):
        kwargs.setdefault("id", str(uuid.uuid4()))
        super().__init__(**kwargs)

    @property
    def is_active(self) -> bool:
        return not self.is_deleted

    def verify_password(self, plain_password: str) -> bool:
        return bool(self.password_hash) and verify_password(plain_password, self.password_hash)

    def assign_display_id(self):
        """Set the display id once; later saves keep the existing value."""
        if not self.display_id and self.name:
            self.display_id = build_display_id(self.name, self.id)

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"


@event.listens_for(User, "before_insert")
@event.listens_for(User, "before_update")
def _ensure_display_id(mapper, connection, target):
    target.assign_display_id()
