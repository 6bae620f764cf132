"""
Venue (business) and ad models
Read-only collaborators for the splash flow; only the ad counters are written here
"""
import uuid

from sqlalchemy import Column, String, Text, DateTime, Integer, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from core.database import Base


def _new_id() -> str:
    return uuid.uuid4().hex


class Venue(Base):
    __tablename__ = "venues"

    id = Column(String(64), primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False)

    # pending, active, suspended, rejected
    status = Column(String(32), nullable=False, default="pending", index=True)

    # Post-connect redirect (Google review deep-link)
    review_url = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    ads = relationship("VenueAd", back_populates="venue", cascade="all, delete-orphan")

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status,
            "reviewUrl": self.review_url,
        }


class VenueAd(Base):
    __tablename__ = "venue_ads"

    id = Column(String(64), primary_key=True, default=_new_id)
    venue_id = Column(String(64), ForeignKey("venues.id", ondelete="CASCADE"), nullable=False, index=True)

    title = Column(String(255), nullable=True)
    cta_url = Column(Text, nullable=True)
    status = Column(String(32), nullable=False, default="active")

    # Counters; only ever incremented with `col = col + 1`
    views = Column(Integer, nullable=False, default=0)
    clicks = Column(Integer, nullable=False, default=0)
    likes_count = Column(Integer, nullable=False, default=0)
    shares_count = Column(Integer, nullable=False, default=0)
    expands_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    venue = relationship("Venue", back_populates="ads")

    def to_dict(self):
        return {
            "id": self.id,
            "venueId": self.venue_id,
            "title": self.title,
            "ctaUrl": self.cta_url,
            "status": self.status,
            "views": self.views or 0,
            "clicks": self.clicks or 0,
            "likesCount": self.likes_count or 0,
            "sharesCount": self.shares_count or 0,
            "expandsCount": self.expands_count or 0,
        }
