"""Create the superadmin account (and optionally demo users and departments)."""

import os
import sys

from ..core.database import SessionLocal, init_db
from ..core.security import UserRole, get_password_hash
from ..models.department import Department
from ..models.user import User


def ensure_user(db, name, email, phone, password, role, specialization=None):
    existing = db.query(User).filter(User.email == email).first()
    if existing:
        print(f"  {role.value} '{email}' already exists ({existing.display_id})")
        return existing

    user = User(
        name=name,
        email=email,
        phone=phone,
        password_hash=get_password_hash(password),
        role=role,
        specialization=specialization,
        profile_created=True
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    print(f"  Created {role.value} '{email}' ({user.display_id})")
    return user


def ensure_department(db, name, description=None, head=None):
    existing = db.query(Department).filter(Department.name == name).first()
    if existing:
        print(f"  Department '{name}' already exists")
        return existing

    department = Department(name=name, description=description, head_id=head.id if head else None)
    db.add(department)
    db.commit()
    db.refresh(department)
    print(f"  Created department '{name}'")
    return department


def seed(with_demo: bool = False):
    init_db()
    db = SessionLocal()
    try:
        ensure_user(
            db,
            "Super Admin",
            os.environ.get("SUPERADMIN_EMAIL", "admin@venus.local"),
            os.environ.get("SUPERADMIN_PHONE", "0000000000"),
            os.environ.get("SUPERADMIN_PASSWORD", "ChangeMe123"),
            UserRole.SUPERADMIN,
        )
        if with_demo:
            demo_doctor = ensure_user(db, "Dr. Demo", "doctor@venus.local", "1111111111", "Doctor1234",
                                      UserRole.DOCTOR, specialization="General Medicine")
            ensure_user(db, "Demo Patient", "patient@venus.local", "2222222222", "Patient1234",
                        UserRole.PATIENT)
            ensure_department(db, "General Medicine", "Primary care and consultations", head=demo_doctor)
            ensure_department(db, "Pathology", "Laboratory tests and reports")
    finally:
        db.close()

    print("\nDatabase seeded successfully!")


if __name__ == "__main__":
    seed(with_demo="--demo" in sys.argv[1:])
