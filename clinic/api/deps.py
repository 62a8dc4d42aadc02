from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import List

from ..core.config import settings
from ..core.database import get_db, get_redis
from ..core.security import (
    security, verify_token, AuthenticationError,
    AuthorizationError, UserRole, TokenPayload
)
from ..models.user import User
from ..services.appointment_service import AppointmentService
from ..services.audit import AuditTrail
from ..services.billing_service import BillingService
from ..services.broadcaster import EventBroadcaster, RedisEventBroadcaster
from ..services.clinical_service import ClinicalService
from ..services.identity_service import IdentityService
from ..services.notifications import NotificationDispatcher, build_dispatcher
from ..services.storage import BlobStore, LocalBlobStore


async def get_current_user_token(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> TokenPayload:
    """Extract and verify JWT token from Authorization header."""
    token = credentials.credentials

    # Verify token
    token_payload = verify_token(token)
    if not token_payload:
        raise AuthenticationError("Invalid or expired token")

    # Check if token is access token
    if token_payload.token_type != "access":
        raise AuthenticationError("Invalid token type")

    return token_payload


def get_current_user(
    token_payload: TokenPayload = Depends(get_current_user_token),
    db: Session = Depends(get_db)
) -> User:
    """Get current authenticated user from database."""
    if not token_payload.sub:
        raise AuthenticationError("Invalid token payload")

    user = db.query(User).filter(User.id == token_payload.sub).first()
    if not user:
        raise AuthenticationError("User not found")

    if not user.is_active:
        raise AuthenticationError("User account is deactivated")

    return user


# Role-based access control dependencies
def require_role(allowed_roles: List[UserRole]):
    """Create a dependency that requires specific user roles."""
    async def role_checker(
        current_user: User = Depends(get_current_user)
    ) -> User:
        if current_user.role not in allowed_roles:
            raise AuthorizationError(
                f"Access denied. Required roles: {[role.value for role in allowed_roles]}"
            )
        return current_user

    return role_checker


async def get_admin_user(
    current_user: User = Depends(require_role([UserRole.SUPERADMIN]))
) -> User:
    """Require superadmin role."""
    return current_user


def _doctor_roles() -> List[UserRole]:
    if settings.ALLOW_ADMIN_OVERRIDE:
        return [UserRole.DOCTOR, UserRole.SUPERADMIN]
    return [UserRole.DOCTOR]


async def get_doctor_user(
    current_user: User = Depends(get_current_user)
) -> User:
    """Require doctor role (or superadmin when the override is enabled)."""
    return await require_role(_doctor_roles())(current_user)


async def get_patient_user(
    current_user: User = Depends(require_role([UserRole.PATIENT]))
) -> User:
    """Require patient role."""
    return current_user


# Collaborators, overridable in tests
def get_broadcaster(redis_client=Depends(get_redis)) -> EventBroadcaster:
    return RedisEventBroadcaster(redis_client)


def get_notifier() -> NotificationDispatcher:
    return build_dispatcher()


def get_blob_store() -> BlobStore:
    return LocalBlobStore()


def get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def get_audit_trail(
    request: Request,
    db: Session = Depends(get_db)
) -> AuditTrail:
    return AuditTrail(db, origin=get_client_ip(request))


def get_identity_service(
    db: Session = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
    audit: AuditTrail = Depends(get_audit_trail)
) -> IdentityService:
    return IdentityService(db, notifier, audit)


def get_billing_service(
    db: Session = Depends(get_db),
    audit: AuditTrail = Depends(get_audit_trail)
) -> BillingService:
    return BillingService(db, audit)


def get_clinical_service(
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
    audit: AuditTrail = Depends(get_audit_trail)
) -> ClinicalService:
    return ClinicalService(db, blob_store, audit)


def get_appointment_service(
    db: Session = Depends(get_db),
    broadcaster: EventBroadcaster = Depends(get_broadcaster),
    audit: AuditTrail = Depends(get_audit_trail),
    billing: BillingService = Depends(get_billing_service),
    clinical: ClinicalService = Depends(get_clinical_service)
) -> AppointmentService:
    return AppointmentService(db, broadcaster, audit, billing, clinical)


# Rate limiting dependency
def rate_limit_check(
    request: Request,
    redis_client=Depends(get_redis)
) -> None:
    """Basic rate limiting for public credential endpoints."""
    key = f"rate_limit:{request.url.path}:{get_client_ip(request)}"

    current_requests = redis_client.get(key)
    if current_requests is None:
        redis_client.setex(key, 3600, 1)  # 1 hour window
    else:
        if int(current_requests) >= settings.RATE_LIMIT_PER_HOUR:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many requests. Please try again later."
            )
        redis_client.incr(key)
