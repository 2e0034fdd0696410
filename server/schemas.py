import re
from typing import Optional
from datetime import date, datetime, timezone
from pydantic import BaseModel, EmailStr, Field, validator
from server.enums import TaskPriority, OtpPurpose
from server.stores import MAX_REMINDER_MINUTES, normalize_email

# =========================================================
# PYDANTIC SCHEMAS
# =========================================================
START_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def _to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class EmailPayload(BaseModel):
    email: EmailStr

    @validator("email", pre=True)
    def strip_email(cls, v):
        return v.strip() if isinstance(v, str) else v

    @validator("email")
    def lower_email(cls, v):
        return normalize_email(v)

# Auth Schemas
class SignupRequest(EmailPayload):
    name: str = Field(..., min_length=1, max_length=100)
    password: str

class SignupResponse(BaseModel):
    message: str
    otp_expires_at: datetime

class VerifyOtpRequest(EmailPayload):
    otp: str = Field(..., min_length=1, max_length=16)

class ResendOtpRequest(EmailPayload):
    purpose: OtpPurpose = OtpPurpose.signup

class OtpIssuedResponse(BaseModel):
    message: str
    otp_expires_at: datetime

class LoginRequest(EmailPayload):
    password: str

class ForgotPasswordRequest(EmailPayload):
    pass

class ResetPasswordRequest(EmailPayload):
    reset_token: str
    new_password: str

class ResetGrantResponse(BaseModel):
    reset_token: str
    expires_at: datetime

class OtpStatusRequest(EmailPayload):
    purpose: OtpPurpose = OtpPurpose.signup

class OtpStatusResponse(BaseModel):
    exists: bool
    expires_at: Optional[datetime] = None
    seconds_remaining: int = 0

class MessageResponse(BaseModel):
    message: str

# User Schemas
class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    is_verified: bool
    profile_picture: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True

class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    profile_picture: Optional[str] = Field(None, max_length=500)

class AuthResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse

# Task Schemas
class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    start_date: Optional[date] = None
    start_time: Optional[str] = None
    deadline: datetime
    reminder_minutes: int = Field(10, ge=0, le=MAX_REMINDER_MINUTES)
    priority: TaskPriority = TaskPriority.medium

    @validator("start_time")
    def check_start_time(cls, v):
        if v is not None and not START_TIME_RE.match(v):
            raise ValueError("start_time must be HH:MM")
        return v

    @validator("deadline")
    def deadline_to_utc(cls, v):
        return _to_naive_utc(v)

class TaskUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    start_date: Optional[date] = None
    start_time: Optional[str] = None
    deadline: Optional[datetime] = None
    reminder_minutes: Optional[int] = Field(None, ge=0, le=MAX_REMINDER_MINUTES)
    priority: Optional[TaskPriority] = None
    completed: Optional[bool] = None

    @validator("start_time")
    def check_start_time(cls, v):
        if v is not None and not START_TIME_RE.match(v):
            raise ValueError("start_time must be HH:MM")
        return v

    @validator("deadline")
    def deadline_to_utc(cls, v):
        return _to_naive_utc(v)

class TaskResponse(BaseModel):
    id: int
    owner_id: int
    title: str
    description: Optional[str]
    start_date: Optional[date]
    start_time: Optional[str]
    deadline: datetime
    reminder_minutes: int
    priority: TaskPriority
    completed: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
