from fastapi import APIRouter, Depends, status

from ...api.deps import get_current_user, get_identity_service, rate_limit_check
from ...services.identity_service import IdentityService
from ...schemas.auth import (
    UserLogin, PatientRegister, RegistrationResponse, OtpVerify,
    TokenResponse, ForgotPassword, ResetPassword, ChangePassword
)
from ...schemas.user import UserResponse, MessageResponse
from ...models.user import User

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/register", response_model=RegistrationResponse, status_code=status.HTTP_201_CREATED)
def register(
    user_data: PatientRegister,
    identity: IdentityService = Depends(get_identity_service),
    _: None = Depends(rate_limit_check)
):
    """Register a patient account; a one-time code is sent by email."""
    user = identity.register_patient(user_data)
    return RegistrationResponse(message="OTP sent to email", user_id=user.id)


@router.post("/verify-otp", response_model=TokenResponse)
def verify_otp(
    data: OtpVerify,
    identity: IdentityService = Depends(get_identity_service)
):
    """Confirm the one-time code and activate the account."""
    return identity.verify_otp(data.user_id, data.otp)


@router.post("/login", response_model=TokenResponse)
def login(
    login_data: UserLogin,
    identity: IdentityService = Depends(get_identity_service)
):
    """Authenticate user and return an access token."""
    return identity.authenticate(login_data.email, login_data.password)


@router.get("/me", response_model=UserResponse)
def get_current_user_info(
    current_user: User = Depends(get_current_user)
):
    """Get current user information."""
    return UserResponse.model_validate(current_user)


@router.post("/change-password", response_model=MessageResponse)
def change_password(
    password_data: ChangePassword,
    current_user: User = Depends(get_current_user),
    identity: IdentityService = Depends(get_identity_service)
):
    """Change user password."""
    identity.change_password(current_user, password_data.current_password, password_data.new_password)
    return {"message": "Password changed successfully"}


@router.post("/forgot-password", response_model=MessageResponse)
def forgot_password(
    reset_data: ForgotPassword,
    identity: IdentityService = Depends(get_identity_service),
    _: None = Depends(rate_limit_check)
):
    """Send a password reset code."""
    identity.request_password_reset(reset_data.email)
    return {"message": "Password reset OTP sent to email"}


@router.post("/reset-password", response_model=MessageResponse)
def reset_password(
    reset_data: ResetPassword,
    identity: IdentityService = Depends(get_identity_service)
):
    """Reset password using the emailed code."""
    identity.reset_password(reset_data.email, reset_data.otp, reset_data.password)
    return {"message": "Password reset successful"}
