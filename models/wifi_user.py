"""
WiFi user model: one verification record per (venue, email)
"""
from sqlalchemy import Column, String, Text, DateTime, Integer, Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func

from core.database import Base


class WifiUser(Base):
    __tablename__ = "wifi_users"
    __table_args__ = (
        UniqueConstraint("venue_id", "email", name="uq_wifi_users_venue_email"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    venue_id = Column(String(64), ForeignKey("venues.id", ondelete="CASCADE"), nullable=False, index=True)
    email = Column(String(255), nullable=False, index=True)  # Always lowercased

    # Google Sign-In
    google_id = Column(String(128), nullable=True, index=True)
    full_name = Column(String(255), nullable=True)
    first_name = Column(String(128), nullable=True)
    last_name = Column(String(128), nullable=True)
    profile_picture_url = Column(Text, nullable=True)
    locale = Column(String(32), nullable=True)
    email_verified_by_google = Column(Boolean, nullable=False, default=False)

    # email, google
    auth_method = Column(String(20), nullable=False, default="email", index=True)

    # Email OTP; hash and expiry are set and cleared together
    otp_code_hash = Column(String(128), nullable=True)
    otp_expiry = Column(DateTime, nullable=True)
    otp_request_count = Column(Integer, nullable=False, default=0)
    otp_window_start = Column(DateTime, nullable=True)

    # Verification
    is_verified = Column(Boolean, nullable=False, default=False, index=True)
    verified_at = Column(DateTime, nullable=True)

    # Network/device seen on the latest attempt
    ip_address = Column(String(45), nullable=True)  # IPv6 max length
    device_info = Column(String(512), nullable=True)

    # Visits
    visit_count = Column(Integer, nullable=False, default=0)
    first_login_at = Column(DateTime, nullable=True)
    last_visit_at = Column(DateTime, nullable=True)

    signup_source = Column(String(32), nullable=False, default="wifi_splash")

    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    @property
    def has_pending_otp(self) -> bool:
        return bool(self.otp_code_hash and self.otp_expiry)

    def to_dict(self):
        """Convert to dict for API responses (never includes the OTP hash)"""
        return {
            "id": self.id,
            "venueId": self.venue_id,
            "email": self.email,
            "fullName": self.full_name,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "profilePictureUrl": self.profile_picture_url,
            "authMethod": self.auth_method,
            "isVerified": bool(self.is_verified),
            "verifiedAt": self.verified_at.isoformat() if self.verified_at else None,
            "visitCount": self.visit_count or 0,
            "firstLoginAt": self.first_login_at.isoformat() if self.first_login_at else None,
            "lastVisitAt": self.last_visit_at.isoformat() if self.last_visit_at else None,
        }
