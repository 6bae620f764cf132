"""
Email OTP engine for WiFi access.

Codes are 6 digits, live 10 minutes and are stored only as a bcrypt hash.
Each WiFi user may request at most 3 codes per rolling hour, and a resend
within 60 seconds of the previous code is answered with a cooldown instead
of a new code.
"""
import math
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Union

import bcrypt
from sqlalchemy import update, or_, case, func
from sqlalchemy.orm import Session

from core.config import logger
from core.errors import RateLimited, Expired, InvalidCredential, NoPendingCode
from models.wifi_user import WifiUser

OTP_LENGTH = 6
OTP_EXPIRY_MINUTES = 10
MAX_OTP_REQUESTS_PER_HOUR = 3
RATE_LIMIT_WINDOW = timedelta(hours=1)
RESEND_COOLDOWN_SECONDS = 60
BCRYPT_ROUNDS = 10


@dataclass
class OtpIssue:
    code: str  # plaintext, only ever handed to the mailer
    expires_at: datetime

    @property
    def expires_in(self) -> int:
        return OTP_EXPIRY_MINUTES * 60


@dataclass
class OtpCooldown:
    seconds: int


def generate_otp() -> str:
    """6-digit numeric code from the OS CSPRNG (100000-999999)."""
    low = 10 ** (OTP_LENGTH - 1)
    return str(low + secrets.randbelow(9 * low))


def hash_otp(code: str) -> str:
    return bcrypt.hashpw(code.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def check_otp(code: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(code.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


def _looks_like_otp(code: str) -> bool:
    return len(code) == OTP_LENGTH and code.isdigit()


def _issued_at(expiry: datetime) -> datetime:
    return expiry - timedelta(minutes=OTP_EXPIRY_MINUTES)


class OtpEngine:
    def request_code(self, db: Session, user: WifiUser, now: datetime) -> Union[OtpIssue, OtpCooldown]:
        """
        Issue a new code for `user`, or report why not.

        The quota check, counter increment and code write happen in one
        conditional UPDATE, so concurrent requests for the same user can't
        both slip under the limit.

        Raises RateLimited when the hourly quota is used up.
        Returns OtpCooldown when the previous code is younger than the resend cooldown.
        """
        code = generate_otp()
        hashed = hash_otp(code)
        expires_at = now + timedelta(minutes=OTP_EXPIRY_MINUTES)

        window_floor = now - RATE_LIMIT_WINDOW
        # Previous code issued < cooldown ago  <=>  its expiry is later than this edge
        cooldown_edge = now + timedelta(minutes=OTP_EXPIRY_MINUTES) - timedelta(seconds=RESEND_COOLDOWN_SECONDS)
        window_elapsed = or_(WifiUser.otp_window_start.is_(None), WifiUser.otp_window_start <= window_floor)

        for _ in range(2):
            stmt = (
                update(WifiUser)
                .where(
                    WifiUser.id == user.id,
                    or_(window_elapsed, WifiUser.otp_request_count < MAX_OTP_REQUESTS_PER_HOUR),
                    or_(WifiUser.otp_expiry.is_(None), WifiUser.otp_expiry <= cooldown_edge),
                )
                .values(
                    otp_request_count=case((window_elapsed, 1), else_=WifiUser.otp_request_count + 1),
                    otp_window_start=case((window_elapsed, now), else_=WifiUser.otp_window_start),
                    otp_code_hash=hashed,
                    otp_expiry=expires_at,
                    auth_method="email",
                )
                .execution_options(synchronize_session=False)
            )
            result = db.execute(stmt)
            if result.rowcount == 1:
                db.commit()
                db.refresh(user)
                logger.info(f"[otp] Issued code for wifi_user={user.id} ({user.otp_request_count}/{MAX_OTP_REQUESTS_PER_HOUR} this window)")
                return OtpIssue(code=code, expires_at=expires_at)

            db.rollback()
            db.refresh(user)
            refusal = self._refusal(user, now)
            if refusal is not None:
                return refusal
            # Row changed between the UPDATE and the re-read; try once more

        raise RateLimited("Too many OTP requests. Please try again shortly.", retry_after_seconds=RESEND_COOLDOWN_SECONDS)

    def _refusal(self, user: WifiUser, now: datetime) -> Optional[OtpCooldown]:
        window_start = user.otp_window_start
        if window_start is not None and window_start > now - RATE_LIMIT_WINDOW:
            if (user.otp_request_count or 0) >= MAX_OTP_REQUESTS_PER_HOUR:
                reset_time = window_start + RATE_LIMIT_WINDOW
                wait_seconds = int(math.ceil((reset_time - now).total_seconds()))
                wait_minutes = int(math.ceil(wait_seconds / 60.0))
                logger.warning(f"[otp] Rate limited wifi_user={user.id}, window resets in {wait_minutes} min")
                raise RateLimited(
                    f"Too many OTP requests. Please wait {wait_minutes} minutes.",
                    retry_after_seconds=wait_seconds,
                )

        if user.otp_expiry is not None:
            seconds_since = (now - _issued_at(user.otp_expiry)).total_seconds()
            if seconds_since < RESEND_COOLDOWN_SECONDS:
                return OtpCooldown(seconds=int(math.ceil(RESEND_COOLDOWN_SECONDS - seconds_since)))
        return None

    def clear_code(self, db: Session, user: WifiUser, expected_hash: Optional[str] = None) -> None:
        """Drop the pending code (hash and expiry together)."""
        stmt = update(WifiUser).where(WifiUser.id == user.id)
        if expected_hash is not None:
            stmt = stmt.where(WifiUser.otp_code_hash == expected_hash)
        db.execute(
            stmt.values(otp_code_hash=None, otp_expiry=None).execution_options(synchronize_session=False)
        )
        db.commit()
        db.refresh(user)

    def verify_code(self, db: Session, user: WifiUser, submitted: str, now: datetime) -> WifiUser:
        """
        Check `submitted` against the pending code and mark the user verified.

        Raises NoPendingCode, Expired or InvalidCredential. A code can be
        consumed only once; a concurrent second consumer gets NoPendingCode.
        """
        if not user.has_pending_otp:
            raise NoPendingCode()

        seen_hash = user.otp_code_hash
        if now > user.otp_expiry:
            self.clear_code(db, user, expected_hash=seen_hash)
            raise Expired()

        submitted = (submitted or "").strip()
        if not _looks_like_otp(submitted) or not check_otp(submitted, seen_hash):
            raise InvalidCredential()

        result = db.execute(
            update(WifiUser)
            .where(WifiUser.id == user.id, WifiUser.otp_code_hash == seen_hash)
            .values(
                otp_code_hash=None,
                otp_expiry=None,
                is_verified=True,
                verified_at=now,
                visit_count=func.coalesce(WifiUser.visit_count, 0) + 1,
                last_visit_at=now,
                first_login_at=func.coalesce(WifiUser.first_login_at, now),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.rollback()
            raise NoPendingCode()

        db.commit()
        db.refresh(user)
        return user


otp_engine = OtpEngine()
