"""
Ad interaction events recorded from the captive portal
"""
from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, Index

from core.database import Base, utcnow


INTERACTION_TYPES = ("view", "click", "like", "share", "expand")


class AdInteraction(Base):
    """One row per recorded view/click/like/share/expand. Append-only."""
    __tablename__ = "ad_interactions"
    __table_args__ = (
        Index("ix_ad_interactions_venue_time", "venue_id", "timestamp"),
        Index("ix_ad_interactions_ad_type_time", "ad_id", "interaction_type", "timestamp"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)

    ad_id = Column(String(64), nullable=False, index=True)
    venue_id = Column(String(64), ForeignKey("venues.id", ondelete="CASCADE"), nullable=False, index=True)
    interaction_type = Column(String(16), nullable=False)

    # Filled at record time or later by session linking
    wifi_user_id = Column(Integer, ForeignKey("wifi_users.id", ondelete="SET NULL"), nullable=True)
    email = Column(String(255), nullable=True)

    # Device/network
    mac_address = Column(String(32), nullable=True)
    device_type = Column(String(32), nullable=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(512), nullable=True)

    session_id = Column(String(128), nullable=True, index=True)

    timestamp = Column(DateTime, default=utcnow, nullable=False, index=True)

    def to_dict(self):
        return {
            "id": self.id,
            "adId": self.ad_id,
            "venueId": self.venue_id,
            "interactionType": self.interaction_type,
            "wifiUserId": self.wifi_user_id,
            "email": self.email,
            "deviceType": self.device_type,
            "sessionId": self.session_id,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }
