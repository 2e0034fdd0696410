from fastapi import APIRouter, Depends, status
from server.schemas import (
    SignupRequest, SignupResponse, VerifyOtpRequest, ResendOtpRequest, OtpIssuedResponse,
    LoginRequest, AuthResponse, ForgotPasswordRequest, ResetGrantResponse,
    ResetPasswordRequest, OtpStatusRequest, OtpStatusResponse, MessageResponse
)
from server.enums import OtpPurpose
from server.auth_service import AuthService
from server.dependencies import get_auth_service

router = APIRouter()

# =========================================================
# AUTH ENDPOINTS
# =========================================================
@router.post("/signup", response_model=SignupResponse, status_code=status.HTTP_201_CREATED)
def signup(payload: SignupRequest, auth: AuthService = Depends(get_auth_service)):
    result = auth.signup(payload.name, payload.email, payload.password)
    return {"message": result.message, "otp_expires_at": result.otp_expires_at}

@router.post("/verify-otp", response_model=AuthResponse)
def verify_otp(payload: VerifyOtpRequest, auth: AuthService = Depends(get_auth_service)):
    result = auth.verify_signup(payload.email, payload.otp)
    return {"access_token": result.access_token, "token_type": "bearer", "user": result.user}

@router.post("/resend-otp", response_model=OtpIssuedResponse)
def resend_otp(payload: ResendOtpRequest, auth: AuthService = Depends(get_auth_service)):
    expires_at = auth.resend_otp(payload.email, payload.purpose)
    return {"message": "A new code has been sent", "otp_expires_at": expires_at}

@router.post("/login", response_model=AuthResponse)
def login(payload: LoginRequest, auth: AuthService = Depends(get_auth_service)):
    result = auth.login(payload.email, payload.password)
    return {"access_token": result.access_token, "token_type": "bearer", "user": result.user}

@router.post("/forgot-password", response_model=MessageResponse)
def forgot_password(payload: ForgotPasswordRequest, auth: AuthService = Depends(get_auth_service)):
    return {"message": auth.forgot_password(payload.email)}

@router.post("/verify-reset-otp", response_model=ResetGrantResponse)
def verify_reset_otp(payload: VerifyOtpRequest, auth: AuthService = Depends(get_auth_service)):
    result = auth.verify_reset_otp(payload.email, payload.otp)
    return {"reset_token": result.reset_token, "expires_at": result.expires_at}

@router.post("/reset-password", response_model=MessageResponse)
def reset_password(payload: ResetPasswordRequest, auth: AuthService = Depends(get_auth_service)):
    return {"message": auth.reset_password(payload.email, payload.reset_token, payload.new_password)}

@router.post("/check-otp-status", response_model=OtpStatusResponse)
def check_otp_status(payload: OtpStatusRequest, auth: AuthService = Depends(get_auth_service)):
    otp_status = auth.check_otp_status(payload.email, payload.purpose or OtpPurpose.signup)
    return {
        "exists": otp_status.exists,
        "expires_at": otp_status.expires_at,
        "seconds_remaining": otp_status.seconds_remaining(auth.clock()),
    }
