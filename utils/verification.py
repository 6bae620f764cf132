"""
Splash-page verification: email OTP and Google Sign-In for venue WiFi.

Both paths end in the same place: a verified WifiUser for (venue, email), a
redirect URL for the visitor, and two detached jobs (session linking and the
compliance log entry) that never hold up or fail the response.
"""
from typing import Callable, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.config import logger
from core.database import utcnow
from core.errors import InvalidInput, NoPendingCode, DeliveryFailed
from models.venue import Venue
from models.wifi_user import WifiUser
from utils.compliance import log_login_safe
from utils.emailing import EmailDeliveryError
from utils.google_identity import FederatedIdentity
from utils.interactions import link_session, detect_device_type
from utils.otp import OtpEngine, OtpCooldown, otp_engine, OTP_EXPIRY_MINUTES
from utils.validation import normalize_email, validate_email
from utils.venues import get_active_venue, resolve_redirect_url


class VerificationService:
    def __init__(
        self,
        db: Session,
        mailer: Callable,
        dispatcher,
        google_verifier=None,
        clock: Callable = utcnow,
        engine: OtpEngine = otp_engine,
    ):
        self.db = db
        self.mailer = mailer
        self.dispatcher = dispatcher
        self.google_verifier = google_verifier
        self.clock = clock
        self.engine = engine

    # ---- records ----

    def _lookup(self, venue_id: str, email: str) -> Optional[WifiUser]:
        return (
            self.db.query(WifiUser)
            .filter(WifiUser.venue_id == venue_id, WifiUser.email == email)
            .first()
        )

    def _find_or_create(self, venue_id: str, email: str, **defaults) -> Tuple[WifiUser, bool]:
        """
        One record per (venue, email). A concurrent insert that wins the
        unique constraint is resolved by re-reading its row.
        """
        user = self._lookup(venue_id, email)
        if user:
            return user, False
        user = WifiUser(venue_id=venue_id, email=email, signup_source="wifi_splash", **defaults)
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            user = self._lookup(venue_id, email)
            if user is None:
                raise
            return user, False
        self.db.refresh(user)
        return user, True

    # ---- OTP ----

    def request_otp(
        self,
        venue_id: str,
        email: str,
        ip_address: Optional[str] = None,
        device_info: Optional[str] = None,
    ) -> dict:
        venue = get_active_venue(self.db, venue_id)
        ok, err = validate_email(email)
        if not ok:
            raise InvalidInput(err)
        email = normalize_email(email)
        now = self.clock()

        user, created = self._find_or_create(
            venue.id, email, auth_method="email", ip_address=ip_address, device_info=device_info,
        )
        if not created and (ip_address or device_info):
            user.ip_address = ip_address or user.ip_address
            user.device_info = device_info or user.device_info
            self.db.commit()

        outcome = self.engine.request_code(self.db, user, now)
        if isinstance(outcome, OtpCooldown):
            return {
                "success": False,
                "message": f"Please wait {outcome.seconds} seconds before requesting a new OTP",
                "cooldown": outcome.seconds,
            }

        try:
            self.mailer(email, outcome.code, "wifi_access", venue.name, OTP_EXPIRY_MINUTES)
        except EmailDeliveryError as ex:
            logger.error(f"[splash] OTP email to {email} failed for venue={venue.id}: {ex}")
            # The visitor never saw this code; leave nothing pending. Quota stays spent.
            self.engine.clear_code(self.db, user, expected_hash=user.otp_code_hash)
            raise DeliveryFailed()

        logger.info(f"[splash] OTP sent to {email} for venue={venue.id}")
        return {
            "success": True,
            "message": "Verification code sent to your email",
            "expiresIn": outcome.expires_in,
        }

    def verify_otp(
        self,
        venue_id: str,
        email: str,
        code: str,
        session_id: Optional[str] = None,
        mac_address: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> dict:
        venue = get_active_venue(self.db, venue_id)
        email = normalize_email(email)
        user = self._lookup(venue.id, email) if email else None
        if not user:
            raise NoPendingCode()

        self.engine.verify_code(self.db, user, code, self.clock())
        is_new = (user.visit_count or 0) == 1
        logger.info(f"[splash] Email verified for {email} at venue={venue.id} (visit {user.visit_count})")

        redirect_url = self._after_verified(venue, user, session_id, mac_address, ip_address, user_agent)
        return {
            "success": True,
            "message": "Email verified successfully! You are now connected." if is_new
            else "Welcome back! You are now connected.",
            "redirectUrl": redirect_url,
            "isNewUser": is_new,
        }

    # ---- Google ----

    def authenticate_federated(
        self,
        venue_id: str,
        credential: str,
        ip_address: Optional[str] = None,
        device_info: Optional[str] = None,
        session_id: Optional[str] = None,
        mac_address: Optional[str] = None,
    ) -> dict:
        venue = get_active_venue(self.db, venue_id)
        # Raises InvalidCredential before anything is written
        identity: FederatedIdentity = self.google_verifier.verify(credential)
        now = self.clock()

        user, created = self._find_or_create(venue.id, identity.email, auth_method="google")
        self._apply_identity(user, identity, now, ip_address, device_info, first_visit=created)
        self.db.commit()
        self.db.refresh(user)

        is_new = created
        display_name = identity.given_name or identity.name or "friend"
        logger.info(f"[google] {'New' if is_new else 'Returning'} visitor {identity.email} at venue={venue.id}")

        redirect_url = self._after_verified(venue, user, session_id, mac_address, ip_address, device_info)
        return {
            "success": True,
            "message": f"Welcome, {display_name}! You're connected to WiFi." if is_new
            else f"Welcome back, {display_name}! You're connected to WiFi.",
            "email": user.email,
            "name": user.full_name,
            "picture": user.profile_picture_url,
            "isNewUser": is_new,
            "redirectUrl": redirect_url,
        }

    def _apply_identity(
        self,
        user: WifiUser,
        identity: FederatedIdentity,
        now,
        ip_address: Optional[str],
        device_info: Optional[str],
        first_visit: bool,
    ) -> None:
        user.google_id = identity.subject
        user.full_name = identity.name or user.full_name
        user.first_name = identity.given_name or user.first_name
        user.last_name = identity.family_name or user.last_name
        user.profile_picture_url = identity.picture or user.profile_picture_url
        user.locale = identity.locale or user.locale
        user.email_verified_by_google = bool(identity.email_verified)
        user.auth_method = "google"
        user.is_verified = True
        user.verified_at = now
        user.visit_count = (user.visit_count or 0) + 1
        user.last_visit_at = now
        user.ip_address = ip_address or user.ip_address
        user.device_info = device_info or user.device_info
        if first_visit or user.first_login_at is None:
            user.first_login_at = now

    # ---- status ----

    def check_verification_status(self, venue_id: str, email: str) -> dict:
        user = self._lookup((venue_id or "").strip(), normalize_email(email))
        if not user:
            return {"isVerified": False, "visitCount": 0, "authMethod": None}
        return {
            "isVerified": bool(user.is_verified),
            "visitCount": user.visit_count or 0,
            "authMethod": user.auth_method,
        }

    # ---- post-verification ----

    def _after_verified(
        self,
        venue: Venue,
        user: WifiUser,
        session_id: Optional[str],
        mac_address: Optional[str],
        ip_address: Optional[str],
        user_agent: Optional[str],
    ) -> str:
        redirect_url = resolve_redirect_url(venue)

        if session_id:
            self.dispatcher.submit(link_session, session_id, user.id, user.email)

        self.dispatcher.submit(
            log_login_safe,
            venue_id=venue.id,
            mac_address=mac_address,
            ip_address=ip_address,
            device_type=detect_device_type(user_agent),
            user_agent=user_agent,
            wifi_user_id=user.id,
            email=user.email,
        )
        return redirect_url


def get_clock() -> Callable:
    """FastAPI dependency for the verification clock; tests pin it."""
    return utcnow
