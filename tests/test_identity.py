import re
import uuid
from datetime import datetime, timedelta

import pytest

from clinic.core.config import settings
from clinic.core.exceptions import (
    ArchivedAccountError, DuplicateAccountError, NotFoundError,
    PermissionDeniedError, ValidationFailedError
)
from clinic.core.security import AuthenticationError, AuthorizationError, UserRole
from clinic.models import AuditLog, User
from clinic.models.user import build_display_id
from clinic.schemas.auth import PatientRegister
from clinic.schemas.user import StaffCreate
from clinic.services.identity_service import IdentityService

from .conftest import TEST_PASSWORD, FailingNotifier


@pytest.fixture
def identity(db, notifier):
    return IdentityService(db, notifier)


def registration(**overrides):
    fields = dict(name="Riley Reg", email="riley@example.com", phone="5551234567", password="Sup3rSecret!")
    fields.update(overrides)
    return PatientRegister(**fields)


class TestDisplayId:

    def test_derived_from_storage_id(self):
        user_id = "3f2a9c1e-0000-4000-8000-00000000abcd"
        # 0xabcd = 43981
        assert build_display_id("jordan", user_id) == "JOR-981"

    def test_suffix_is_zero_padded(self):
        user_id = "3f2a9c1e-0000-4000-8000-000000000007"
        assert build_display_id("Al", user_id) == "AL-007"

    def test_random_suffix_without_storage_id(self):
        assert re.fullmatch(r"SAM-\d{3}", build_display_id("Samir"))

    def test_assigned_at_first_save_and_stable(self, db, patient):
        expected = build_display_id(patient.name, patient.id)
        assert patient.display_id == expected
        assert re.fullmatch(r"JOR-\d{3}", patient.display_id)

        patient.name = "Morgan Renamed"
        db.commit()
        db.refresh(patient)

        assert patient.display_id == expected

    def test_ids_are_uuids(self, patient):
        assert uuid.UUID(patient.id)


class TestRegistration:

    def test_register_then_verify(self, identity, db, notifier):
        user = identity.register_patient(registration())

        assert user.profile_created is False
        code = notifier.codes["riley@example.com"]

        with pytest.raises(AuthenticationError):
            identity.authenticate("riley@example.com", "Sup3rSecret!")

        token = identity.verify_otp(user.id, code)

        assert token.access_token
        assert token.user.email == "riley@example.com"
        db.refresh(user)
        assert user.profile_created is True
        assert user.otp_code is None

    def test_wrong_code_is_rejected(self, identity, notifier):
        user = identity.register_patient(registration())
        wrong = "000000" if notifier.codes["riley@example.com"] != "000000" else "111111"

        with pytest.raises(ValidationFailedError):
            identity.verify_otp(user.id, wrong)

    def test_expired_code_is_rejected(self, identity, db, notifier):
        user = identity.register_patient(registration())
        user.otp_expires_at = datetime.utcnow() - timedelta(minutes=1)
        db.commit()

        with pytest.raises(ValidationFailedError):
            identity.verify_otp(user.id, notifier.codes["riley@example.com"])

    def test_unverified_account_gets_new_code(self, identity, db):
        first = identity.register_patient(registration())
        second = identity.register_patient(registration(password="An0therSecret"))

        assert first.id == second.id
        assert db.query(User).filter(User.email == "riley@example.com").count() == 1

    def test_notification_failure_does_not_fail_registration(self, db):
        identity = IdentityService(db, FailingNotifier())

        user = identity.register_patient(registration())

        assert db.query(User).filter(User.id == user.id).count() == 1

    def test_disabled_self_registration(self, identity, monkeypatch):
        monkeypatch.setattr(settings, "ALLOW_SELF_REGISTRATION", False)

        with pytest.raises(AuthorizationError):
            identity.register_patient(registration())


class TestDuplicates:

    def test_active_email_conflict(self, identity, patient):
        with pytest.raises(DuplicateAccountError) as exc_info:
            identity.register_patient(registration(email=patient.email))
        assert exc_info.value.status_code == 409
        assert exc_info.value.detail == "Email is already registered"

    def test_active_phone_conflict(self, identity, patient):
        with pytest.raises(DuplicateAccountError) as exc_info:
            identity.register_patient(registration(phone=patient.phone))
        assert exc_info.value.detail == "Mobile number is already registered"

    def test_archived_email_points_to_restore(self, identity, make_user):
        archived = make_user("Ari Archived", UserRole.PATIENT, email="ari@example.com", is_deleted=True)

        with pytest.raises(ArchivedAccountError) as exc_info:
            identity.register_patient(registration(email="ari@example.com"))

        assert exc_info.value.user_id == archived.id
        assert exc_info.value.field == "email"
        assert exc_info.value.detail["code"] == "archived"

    def test_archived_phone_on_staff_creation(self, identity, admin, make_user):
        archived = make_user("Ari Archived", UserRole.DOCTOR, phone="5559990000", is_deleted=True)

        with pytest.raises(ArchivedAccountError) as exc_info:
            identity.create_doctor(admin, StaffCreate(
                name="New Doc", email="new.doc@example.com", phone="5559990000"
            ))

        assert exc_info.value.user_id == archived.id
        assert exc_info.value.field == "mobile number"


class TestAuthentication:

    def test_login_success_is_audited(self, identity, db, patient):
        token = identity.authenticate(patient.email, TEST_PASSWORD)

        assert token.user.id == patient.id
        entry = db.query(AuditLog).filter(AuditLog.action == "Login").one()
        assert entry.user_id == patient.id

    def test_failed_login_audited_without_actor(self, identity, db, patient):
        with pytest.raises(AuthenticationError):
            identity.authenticate(patient.email, "wrong-password")

        entry = db.query(AuditLog).filter(AuditLog.action == "Login Failed").one()
        assert entry.user_id is None
        assert patient.email in entry.details

    def test_archived_account_cannot_login(self, identity, make_user):
        user = make_user("Gone User", UserRole.PATIENT, is_deleted=True)

        with pytest.raises(AuthenticationError):
            identity.authenticate(user.email, TEST_PASSWORD)

    def test_password_reset_flow(self, identity, notifier, patient):
        identity.request_password_reset(patient.email)
        code = notifier.codes[patient.email]

        identity.reset_password(patient.email, code, "Brand-new-pass1")

        assert identity.authenticate(patient.email, "Brand-new-pass1").user.id == patient.id
        with pytest.raises(ValidationFailedError):
            identity.reset_password(patient.email, code, "Another-pass2")

    def test_reset_for_unknown_email(self, identity):
        with pytest.raises(NotFoundError):
            identity.request_password_reset("nobody@example.com")

    def test_change_password_checks_current(self, identity, patient):
        with pytest.raises(ValidationFailedError):
            identity.change_password(patient, "not-it", "Whatever123")

        identity.change_password(patient, TEST_PASSWORD, "Whatever123")
        assert patient.verify_password("Whatever123")


class TestAdministration:

    def test_create_doctor_sends_credentials(self, identity, db, notifier, admin):
        doctor = identity.create_doctor(admin, StaffCreate(
            name="Priya Sharma", email="priya@example.com", phone="5550001111", specialization="Cardiology"
        ))

        assert doctor.role == UserRole.DOCTOR
        assert doctor.profile_created is True
        assert doctor.display_id.startswith("PRI-")
        temporary_password = notifier.credentials["priya@example.com"]
        assert re.fullmatch(r"Priya\d{4}", temporary_password)
        assert identity.authenticate("priya@example.com", temporary_password).user.id == doctor.id
        assert db.query(AuditLog).filter(AuditLog.action == "Create Doctor").count() == 1

    def test_create_patient_ignores_specialization(self, identity, admin):
        patient = identity.create_patient(admin, StaffCreate(
            name="Sam Walkin", email="sam@example.com", phone="5550002222", specialization="Ignored"
        ))

        assert patient.role == UserRole.PATIENT
        assert patient.specialization is None

    def test_creation_survives_failed_notification(self, db, admin):
        identity = IdentityService(db, FailingNotifier())

        doctor = identity.create_doctor(admin, StaffCreate(
            name="Quiet Doc", email="quiet@example.com", phone="5550003333"
        ))

        assert db.query(User).filter(User.id == doctor.id).count() == 1

    def test_only_admin_creates_staff(self, identity, doctor):
        with pytest.raises(AuthorizationError):
            identity.create_doctor(doctor, StaffCreate(name="X", email="x@example.com", phone="5550004444"))

    def test_soft_delete_and_restore(self, identity, db, admin, patient):
        # updated_at is bookkeeping and moves on every write
        columns = [c.key for c in User.__table__.columns if c.key not in ("is_deleted", "updated_at")]
        before = {key: getattr(patient, key) for key in columns}

        identity.soft_delete_user(admin, patient.id)
        db.refresh(patient)
        assert patient.is_deleted is True

        restored = identity.restore_user(admin, patient.id)
        db.refresh(restored)

        assert restored.is_deleted is False
        assert {key: getattr(restored, key) for key in columns} == before
        assert restored.display_id == build_display_id(patient.name, patient.id)

    def test_superadmin_cannot_be_deleted(self, identity, db, admin, make_user):
        other_admin = make_user("Second Admin", UserRole.SUPERADMIN)

        with pytest.raises(PermissionDeniedError):
            identity.soft_delete_user(admin, other_admin.id)

        db.refresh(other_admin)
        assert other_admin.is_deleted is False

    def test_listings(self, identity, admin, doctor, other_doctor, make_user):
        make_user("Retired Doc", UserRole.DOCTOR, is_deleted=True)

        assert {d.id for d in identity.list_doctors()} == {doctor.id, other_doctor.id}
        assert len(identity.list_users(admin)) == 4
        assert len(identity.list_users(admin, include_deleted=False)) == 3
