"""
Splash Router
Captive-portal verification: email OTP, Google Sign-In and status checks
"""
from typing import Optional, Callable

from fastapi import APIRouter, Request, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from core.database import get_db
from utils.background import get_dispatcher
from utils.compliance import get_client_ip, get_user_agent
from utils.emailing import get_mailer
from utils.google_identity import get_google_verifier
from utils.rate_limit import check_throttle, otp_request_throttle, otp_verify_throttle, google_auth_throttle
from utils.verification import VerificationService, get_clock

router = APIRouter(prefix="/api/splash", tags=["splash"])


# ============ Pydantic Models ============

class _CamelBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class RequestOtpBody(_CamelBody):
    email: str
    ip_address: Optional[str] = Field(None, alias="ipAddress")
    device_info: Optional[str] = Field(None, alias="deviceInfo")


class VerifyOtpBody(_CamelBody):
    email: str
    otp: str
    session_id: Optional[str] = Field(None, alias="sessionId")
    mac_address: Optional[str] = Field(None, alias="macAddress")


class GoogleAuthBody(_CamelBody):
    credential: str
    ip_address: Optional[str] = Field(None, alias="ipAddress")
    device_info: Optional[str] = Field(None, alias="deviceInfo")
    session_id: Optional[str] = Field(None, alias="sessionId")
    mac_address: Optional[str] = Field(None, alias="macAddress")


# ============ Dependencies ============

def get_verification_service(
    db: Session = Depends(get_db),
    mailer: Callable = Depends(get_mailer),
    dispatcher=Depends(get_dispatcher),
    google_verifier=Depends(get_google_verifier),
    clock: Callable = Depends(get_clock),
) -> VerificationService:
    return VerificationService(db, mailer, dispatcher, google_verifier=google_verifier, clock=clock)


def _throttled() -> JSONResponse:
    return JSONResponse(
        {"error": "Too many requests. Please try again later."},
        status_code=429,
        headers={"Retry-After": "60"},
    )


# ============ Endpoints ============

@router.post("/{venue_id}/request-otp")
def request_otp(
    venue_id: str,
    body: RequestOtpBody,
    request: Request,
    service: VerificationService = Depends(get_verification_service),
):
    """Send a 6-digit code to the visitor's email"""
    ip = get_client_ip(request)
    if not check_throttle(otp_request_throttle, f"otp_request:{ip}"):
        return _throttled()

    return service.request_otp(
        venue_id,
        body.email,
        ip_address=body.ip_address or ip,
        device_info=body.device_info or get_user_agent(request) or None,
    )


@router.post("/{venue_id}/verify-otp")
def verify_otp(
    venue_id: str,
    body: VerifyOtpBody,
    request: Request,
    service: VerificationService = Depends(get_verification_service),
):
    ip = get_client_ip(request)
    if not check_throttle(otp_verify_throttle, f"otp_verify:{ip}"):
        return _throttled()

    return service.verify_otp(
        venue_id,
        body.email,
        body.otp,
        session_id=body.session_id,
        mac_address=body.mac_address,
        ip_address=ip,
        user_agent=get_user_agent(request) or None,
    )


@router.post("/{venue_id}/auth/google")
def google_auth(
    venue_id: str,
    body: GoogleAuthBody,
    request: Request,
    service: VerificationService = Depends(get_verification_service),
):
    """Sign in with a Google ID token (Google Identity Services `credential`)"""
    ip = get_client_ip(request)
    if not check_throttle(google_auth_throttle, f"google_auth:{ip}"):
        return _throttled()

    return service.authenticate_federated(
        venue_id,
        body.credential,
        ip_address=body.ip_address or ip,
        device_info=body.device_info or get_user_agent(request) or None,
        session_id=body.session_id,
        mac_address=body.mac_address,
    )


@router.get("/{venue_id}/check/{email}")
def check_verification(
    venue_id: str,
    email: str,
    service: VerificationService = Depends(get_verification_service),
):
    return service.check_verification_status(venue_id, email)
