from typing import Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from access_gate.models.verification_code import VerificationFlow

MIN_PASSWORD_LENGTH = 6
MIN_USERNAME_LENGTH = 3
MAX_USERNAME_LENGTH = 50


def _check_password(value: str) -> str:
    if len(value) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    return value


# ==================== RAW CODE OPERATIONS ====================

class SendCodeRequest(BaseModel):
    email: str = Field(..., min_length=1)
    type: VerificationFlow
    user_id: Optional[str] = None

    model_config = ConfigDict(
        json_schema_extra={"example": {"email": "user@example.com", "type": "login"}}
    )


class VerifyCodeRequest(BaseModel):
    email: str = Field(..., min_length=1)
    code: str = Field(..., min_length=1)
    type: VerificationFlow
    password: Optional[str] = None

    model_config = ConfigDict(
        json_schema_extra={"example": {"email": "user@example.com", "code": "042917", "type": "login"}}
    )


# ==================== GATE FLOW ====================

class LoginRequest(BaseModel):
    email: EmailStr
    password: str

    @field_validator("password")
    @classmethod
    def password_length(cls, value: str) -> str:
        return _check_password(value)


class SignupRequest(BaseModel):
    username: str
    email: EmailStr
    password: str
    confirm_password: str

    @field_validator("password")
    @classmethod
    def password_length(cls, value: str) -> str:
        return _check_password(value)

    @field_validator("username")
    @classmethod
    def username_length(cls, value: str) -> str:
        if len(value) < MIN_USERNAME_LENGTH:
            raise ValueError(f"Username must be at least {MIN_USERNAME_LENGTH} characters")
        if len(value) > MAX_USERNAME_LENGTH:
            raise ValueError(f"Username must be at most {MAX_USERNAME_LENGTH} characters")
        return value

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class PendingTokenRequest(BaseModel):
    pending_token: str


class GateVerifyRequest(PendingTokenRequest):
    code: str = Field(..., pattern=r"^\d{6}$")


# ==================== ADMIN ====================

class BanIPRequest(BaseModel):
    ip_address: str
    reason: Optional[str] = None


class BanEmailRequest(BaseModel):
    email: str
    reason: Optional[str] = None


class AccountStatusRequest(BaseModel):
    active: bool


class ProfileRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    username: Optional[str] = None
    role: str
    active: bool
    login_count: int
    last_login: Optional[datetime] = None
    last_ip: Optional[str] = None
    created_at: datetime
