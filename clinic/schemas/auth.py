from pydantic import BaseModel, EmailStr, Field
from typing import Optional

from .user import UserResponse


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class PatientRegister(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    phone: str = Field(..., min_length=5, max_length=20)
    password: str = Field(..., min_length=8)


class RegistrationResponse(BaseModel):
    message: str
    user_id: str


class OtpVerify(BaseModel):
    user_id: str
    otp: str = Field(..., min_length=6, max_length=6)


class ForgotPassword(BaseModel):
    email: EmailStr


class ResetPassword(BaseModel):
    email: EmailStr
    otp: str = Field(..., min_length=6, max_length=6)
    password: str = Field(..., min_length=8)


class ChangePassword(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=8)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: Optional[UserResponse] = None
