# File: app/api/v1/endpoints/auth.py

from fastapi import APIRouter, Depends, Request
from supabase import Client

from app.api.deps import client_identifier, get_db, get_origin, get_session
from app.auth.session_context import SessionContext
from app.models.schemas import OtpSentResponse, OtpVerifiedResponse, SendOtpRequest, VerifyOtpRequest
from app.services import otp_service
from app.services.rate_limit import RateLimitConfig, enforce_rate_limit

router = APIRouter()

OTP_RATE_LIMIT = RateLimitConfig(window_minutes=15, max_requests=5)


@router.get("/session")
def current_session(session: SessionContext = Depends(get_session)):
    return {"user_id": session.user.id, "email": session.user.email, "role": session.role}


@router.post("/sign-out")
def sign_out(session: SessionContext = Depends(get_session)):
    session.sign_out()
    return {"success": True}


@router.post("/password-reset/send", response_model=OtpSentResponse)
def send_password_reset_otp(
    body: SendOtpRequest,
    request: Request,
    db: Client = Depends(get_db),
):
    enforce_rate_limit(db, client_identifier(request), "send-password-reset-otp", OTP_RATE_LIMIT)
    message = otp_service.send_reset_otp(db, body.email)
    return OtpSentResponse(message=message)


@router.post("/password-reset/verify", response_model=OtpVerifiedResponse)
def verify_password_reset_otp(
    body: VerifyOtpRequest,
    db: Client = Depends(get_db),
    origin: str = Depends(get_origin),
):
    link = otp_service.verify_reset_otp(db, body.email, body.otp, redirect_origin=origin)
    return OtpVerifiedResponse(link=link)
