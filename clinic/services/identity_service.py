import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import (
    ArchivedAccountError, DuplicateAccountError, NotFoundError,
    PermissionDeniedError, ValidationFailedError
)
from ..core.security import (
    AuthenticationError, AuthorizationError, UserRole, create_token,
    generate_otp, generate_temporary_password, get_password_hash, verify_password
)
from ..models.user import User
from ..schemas.auth import PatientRegister, TokenResponse
from ..schemas.user import StaffCreate, UserResponse
from .audit import AuditTrail
from .notifications import NotificationDispatcher

logger = logging.getLogger(__name__)


class IdentityService:
    """Accounts, credentials, and the soft-delete archive."""

    def __init__(self, db: Session, notifier: NotificationDispatcher, audit: Optional[AuditTrail] = None):
        self.db = db
        self.notifier = notifier
        self.audit = audit or AuditTrail(db)

    # Self-service

    def register_patient(self, data: PatientRegister) -> User:
        """Self-registration; the account stays unverified until the OTP is confirmed."""
        if not settings.ALLOW_SELF_REGISTRATION:
            raise AuthorizationError("Self registration is disabled. Contact the clinic administrator.")

        existing = self.db.query(User).filter(User.email == data.email).first()
        if existing and not existing.profile_created and not existing.is_deleted:
            # Unverified account: issue a fresh code instead of failing
            existing.password_hash = get_password_hash(data.password)
            code = self._issue_otp(existing)
            self._commit()
            self.notifier.send_one_time_code(existing.email, code)
            return existing

        self._check_duplicates(data.email, data.phone)

        user = User(
            name=data.name,
            email=data.email,
            phone=data.phone,
            password_hash=get_password_hash(data.password),
            role=UserRole.PATIENT,
            profile_created=False
        )
        code = self._issue_otp(user)
        self.db.add(user)
        self._commit_new_account()
        self.db.refresh(user)

        self.notifier.send_one_time_code(user.email, code)
        logger.info(f"Patient {user.id} registered, awaiting OTP verification")
        return user

    def verify_otp(self, user_id: str, code: str) -> TokenResponse:
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user or not self._otp_matches(user, code):
            raise ValidationFailedError("Invalid or expired OTP")

        user.otp_code = None
        user.otp_expires_at = None
        user.profile_created = True
        self._commit()
        self.db.refresh(user)
        return self._token_response(user)

    def authenticate(self, email: str, password: str) -> TokenResponse:
        user = self.db.query(User).filter(User.email == email).first()

        if not user or not user.verify_password(password):
            self.audit.record(
                None, "Login Failed", "Authentication", f"Failed login attempt for email: {email}"
            )
            raise AuthenticationError("Invalid email or password")

        if user.is_deleted:
            raise AuthenticationError("Account is deactivated")

        if not user.profile_created:
            raise AuthenticationError("Account is not verified yet")

        self.audit.record(
            user.id, "Login", "Authentication", f"User logged in successfully as {user.role.value}"
        )
        return self._token_response(user)

    def request_password_reset(self, email: str) -> User:
        user = self.db.query(User).filter(User.email == email).first()
        if not user:
            raise NotFoundError("User not found")

        code = self._issue_otp(user)
        self._commit()
        self.notifier.send_one_time_code(user.email, code)

        self.audit.record(user.id, "Forgot Password", "User Account", "Password reset OTP requested")
        return user

    def reset_password(self, email: str, code: str, new_password: str) -> bool:
        user = self.db.query(User).filter(User.email == email).first()
        if not user or not self._otp_matches(user, code):
            raise ValidationFailedError("Invalid or expired OTP")

        user.password_hash = get_password_hash(new_password)
        user.otp_code = None
        user.otp_expires_at = None
        self._commit()

        self.audit.record(user.id, "Reset Password", "User Account", "Password was successfully reset via OTP")
        return True

    def change_password(self, user: User, current_password: str, new_password: str) -> bool:
        if not verify_password(current_password, user.password_hash):
            raise ValidationFailedError("Current password is incorrect")

        user.password_hash = get_password_hash(new_password)
        self._commit()
        self.audit.record(user.id, "Change Password", "User Account", "Password changed")
        return True

    # Administration

    def create_doctor(self, admin: User, data: StaffCreate) -> User:
        return self._create_by_admin(admin, data, UserRole.DOCTOR)

    def create_patient(self, admin: User, data: StaffCreate) -> User:
        return self._create_by_admin(admin, data, UserRole.PATIENT)

    def soft_delete_user(self, admin: User, user_id: str) -> User:
        self._require_admin(admin)
        user = self._get_user(user_id)
        if user.role == UserRole.SUPERADMIN:
            raise PermissionDeniedError("Superadmin accounts cannot be deleted")

        user.is_deleted = True
        self._commit()

        self.audit.record(
            admin.id,
            "Delete User",
            "User Management",
            f"Soft deleted user {user.name} ({user.email}) - Data preserved"
        )
        return user

    def restore_user(self, admin: User, user_id: str) -> User:
        self._require_admin(admin)
        user = self._get_user(user_id)

        user.is_deleted = False
        self._commit()

        self.audit.record(
            admin.id,
            "Restore User",
            "User Management",
            f"Restored user {user.name} ({user.email}) from archives"
        )
        return user

    def list_users(self, admin: User, include_deleted: bool = True) -> List[User]:
        self._require_admin(admin)
        query = self.db.query(User)
        if not include_deleted:
            query = query.filter(User.is_deleted == False)  # noqa: E712
        return query.order_by(User.created_at.desc()).all()

    def list_doctors(self) -> List[User]:
        return (
            self.db.query(User)
            .filter(User.role == UserRole.DOCTOR, User.is_deleted == False)  # noqa: E712
            .order_by(User.name)
            .all()
        )

    # Helpers

    def _create_by_admin(self, admin: User, data: StaffCreate, role: UserRole) -> User:
        self._require_admin(admin)
        self._check_duplicates(data.email, data.phone)

        temporary_password = generate_temporary_password(data.name)
        user = User(
            name=data.name,
            email=data.email,
            phone=data.phone,
            password_hash=get_password_hash(temporary_password),
            role=role,
            specialization=data.specialization if role == UserRole.DOCTOR else None,
            profile_created=True
        )
        self.db.add(user)
        self._commit_new_account()
        self.db.refresh(user)

        self.notifier.send_welcome_credentials(user.email, user.name, temporary_password, role.value)
        self.audit.record(
            admin.id,
            f"Create {role.value.capitalize()}",
            "User Management",
            f"Created {role.value} profile for {user.name} ({user.email})"
        )
        logger.info(f"{role.value} account {user.id} created by {admin.id}")
        return user

    def _check_duplicates(self, email: str, phone: str):
        """Email first, then phone; archived matches point the caller at restore."""
        for field, label, value in (("email", "email", email), ("phone", "mobile number", phone)):
            existing = self.db.query(User).filter(getattr(User, field) == value).first()
            if existing:
                if existing.is_deleted:
                    raise ArchivedAccountError(existing.id, label)
                raise DuplicateAccountError(f"{label.capitalize()} is already registered")

    def _commit_new_account(self):
        try:
            self.db.commit()
        except IntegrityError:
            # Lost a race with a concurrent registration for the same email or phone
            self.db.rollback()
            raise DuplicateAccountError("User already exists")
        except SQLAlchemyError:
            self.db.rollback()
            raise

    def _commit(self):
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

    def _issue_otp(self, user: User) -> str:
        code = generate_otp()
        user.otp_code = code
        user.otp_expires_at = datetime.utcnow() + timedelta(minutes=settings.OTP_EXPIRE_MINUTES)
        return code

    def _otp_matches(self, user: User, code: str) -> bool:
        return bool(
            user.otp_code
            and user.otp_code == code
            and user.otp_expires_at
            and user.otp_expires_at > datetime.utcnow()
        )

    def _get_user(self, user_id: str) -> User:
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFoundError("User not found")
        return user

    def _require_admin(self, user: User):
        if user.role != UserRole.SUPERADMIN:
            raise AuthorizationError("Access denied. Required roles: ['superadmin']")

    def _token_response(self, user: User) -> TokenResponse:
        token = create_token(user.id, user.email, user.role)
        return TokenResponse(
            access_token=token.access_token,
            token_type=token.token_type,
            expires_in=token.expires_in,
            user=UserResponse.model_validate(user)
        )
