"""
Venue lookups shared by the splash and tracking paths
"""
from typing import Optional

from sqlalchemy.orm import Session

from core.config import DEFAULT_REDIRECT_URL, logger
from core.errors import NotFound, Unavailable
from models.venue import Venue, VenueAd


def get_active_venue(db: Session, venue_id: str) -> Venue:
    """Raises NotFound for an unknown venue and Unavailable for one that isn't active."""
    venue = db.query(Venue).filter(Venue.id == (venue_id or "").strip()).first() if venue_id else None
    if not venue:
        raise NotFound("Business not found")
    if not venue.is_active:
        raise Unavailable("This WiFi network is currently unavailable")
    return venue


def resolve_redirect_url(venue: Optional[Venue]) -> str:
    url = (venue.review_url or "").strip() if venue else ""
    return url or DEFAULT_REDIRECT_URL


def resolve_ad_redirect_url(db: Session, venue: Venue, ad_id: str) -> str:
    """Click destination: the ad's CTA, then the venue review link, then the default."""
    try:
        ad = db.query(VenueAd).filter(VenueAd.id == ad_id, VenueAd.venue_id == venue.id).first()
        if ad and (ad.cta_url or "").strip():
            return ad.cta_url.strip()
    except Exception as ex:
        logger.warning(f"[tracker] Redirect lookup failed for ad={ad_id}: {ex}")
        return DEFAULT_REDIRECT_URL
    return resolve_redirect_url(venue)
