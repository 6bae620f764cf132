"""
Compliance log model (PM-WANI login audit trail)
Rows older than the retention horizon are treated as deleted
"""
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Index

from core.database import Base, utcnow


class ComplianceLog(Base):
    __tablename__ = "compliance_logs"
    __table_args__ = (
        Index("ix_compliance_logs_mac_login", "mac_address", "login_time"),
        Index("ix_compliance_logs_phone_login", "phone", "login_time"),
        Index("ix_compliance_logs_venue_login", "venue_id", "login_time"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Device identity (MAC is a PM-WANI requirement; "unknown" when the portal can't see it)
    mac_address = Column(String(32), nullable=False, default="unknown")
    assigned_ip = Column(String(45), nullable=True)  # IPv6 max length
    device_type = Column(String(32), nullable=True)
    user_agent = Column(String(512), nullable=True)

    # Who
    phone = Column(String(32), nullable=True)
    email = Column(String(255), nullable=True)
    wifi_user_id = Column(Integer, ForeignKey("wifi_users.id", ondelete="SET NULL"), nullable=True)
    venue_id = Column(String(64), ForeignKey("venues.id", ondelete="SET NULL"), nullable=True)

    # Session
    login_time = Column(DateTime, nullable=False, default=utcnow)
    logout_time = Column(DateTime, nullable=True)
    session_duration_minutes = Column(Integer, nullable=True)

    # Drives the retention horizon
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    def to_dict(self):
        return {
            "id": self.id,
            "macAddress": self.mac_address,
            "assignedIP": self.assigned_ip,
            "deviceType": self.device_type,
            "userAgent": self.user_agent,
            "phone": self.phone,
            "email": self.email,
            "wifiUserId": self.wifi_user_id,
            "venueId": self.venue_id,
            "loginTime": self.login_time.isoformat() if self.login_time else None,
            "logoutTime": self.logout_time.isoformat() if self.logout_time else None,
            "sessionDurationMinutes": self.session_duration_minutes,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
