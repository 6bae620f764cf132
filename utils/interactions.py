"""
Ad interaction tracking and session linking

Visitors' ad views/clicks/likes/shares/expands are acknowledged immediately;
persistence, like de-duplication and the counter increment run on the
background dispatcher with their own DB session.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import update, or_
from sqlalchemy.orm import Session
from user_agents import parse as parse_ua

from core.config import logger, LIKE_DEDUP_WINDOW_SEC
from core.database import SessionLocal, utcnow
from core.errors import UnknownInteraction
from models.ad_interaction import AdInteraction
from models.venue import VenueAd
from models.wifi_user import WifiUser
from utils.venues import get_active_venue, resolve_ad_redirect_url
from utils.validation import normalize_email, normalize_mac

# Wire spelling -> stored kind. The portal's older builds send LIKE/SHARE/GALLERY_EXPAND.
_KIND_ALIASES = {
    "view": "view",
    "click": "click",
    "like": "like",
    "share": "share",
    "expand": "expand",
    "gallery_expand": "expand",
}

COUNTER_COLUMNS = {
    "view": VenueAd.views,
    "click": VenueAd.clicks,
    "like": VenueAd.likes_count,
    "share": VenueAd.shares_count,
    "expand": VenueAd.expands_count,
}


def normalize_kind(raw: Optional[str]) -> str:
    kind = _KIND_ALIASES.get((raw or "").strip().lower())
    if not kind:
        raise UnknownInteraction(f"Unsupported interaction type: {raw}")
    return kind


def detect_device_type(user_agent: Optional[str]) -> Optional[str]:
    if not user_agent:
        return None
    ua = parse_ua(user_agent)
    if ua.is_tablet:
        return "tablet"
    if ua.is_mobile:
        return "mobile"
    if ua.is_pc:
        return "desktop"
    return "unknown"


def _parse_user_id(raw) -> Optional[int]:
    if raw is None:
        return None
    text = str(raw).strip()
    return int(text) if text.isdigit() else None


@dataclass
class InteractionEvent:
    ad_id: str
    venue_id: str
    kind: str
    session_id: Optional[str] = None
    wifi_user_id: Optional[int] = None
    email: Optional[str] = None
    mac_address: Optional[str] = None
    device_type: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    occurred_at: datetime = field(default_factory=utcnow)


def _is_duplicate_like(db: Session, event: InteractionEvent) -> bool:
    """
    A like on the same ad from the same IP or the same session inside the
    dedup window. Query errors count as "no prior like".
    """
    matchers = []
    if event.ip_address:
        matchers.append(AdInteraction.ip_address == event.ip_address)
    if event.session_id:
        matchers.append(AdInteraction.session_id == event.session_id)
    if not matchers:
        return False
    window_start = event.occurred_at - timedelta(seconds=LIKE_DEDUP_WINDOW_SEC)
    try:
        prior = (
            db.query(AdInteraction.id)
            .filter(
                AdInteraction.ad_id == event.ad_id,
                AdInteraction.interaction_type == "like",
                AdInteraction.timestamp > window_start,
                or_(*matchers),
            )
            .first()
        )
        return prior is not None
    except Exception as ex:
        logger.warning(f"[tracker] Like dedup check failed for ad={event.ad_id}, recording anyway: {ex}")
        db.rollback()
        return False


def _known_wifi_user(db: Session, event: InteractionEvent) -> Optional[int]:
    if event.wifi_user_id is None:
        return None
    found = (
        db.query(WifiUser.id)
        .filter(WifiUser.id == event.wifi_user_id, WifiUser.venue_id == event.venue_id)
        .first()
    )
    if found is None:
        logger.warning(f"[tracker] Ignoring wifi_user={event.wifi_user_id} not registered at venue={event.venue_id}")
        return None
    return found.id


def record_interaction(event: InteractionEvent) -> bool:
    """
    Persist one event and bump the matching ad counter in the same transaction.
    Returns False when a like was dropped as a duplicate or the ad isn't one
    of the venue's.
    """
    db = SessionLocal()
    try:
        if event.kind == "like" and _is_duplicate_like(db, event):
            logger.warning(f"[tracker] Duplicate like dropped for ad={event.ad_id} ip={event.ip_address} session={event.session_id}")
            return False

        column = COUNTER_COLUMNS[event.kind]
        bumped = db.execute(
            update(VenueAd)
            .where(VenueAd.id == event.ad_id, VenueAd.venue_id == event.venue_id)
            .values({column: column + 1})
            .execution_options(synchronize_session=False)
        )
        if bumped.rowcount != 1:
            db.rollback()
            logger.warning(f"[tracker] Dropped {event.kind} for ad={event.ad_id}: no such ad at venue={event.venue_id}")
            return False

        db.add(AdInteraction(
            ad_id=event.ad_id,
            venue_id=event.venue_id,
            interaction_type=event.kind,
            wifi_user_id=_known_wifi_user(db, event),
            email=event.email,
            mac_address=event.mac_address,
            device_type=event.device_type,
            ip_address=event.ip_address,
            user_agent=event.user_agent,
            session_id=event.session_id,
            timestamp=event.occurred_at,
        ))
        db.commit()
        return True
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


class InteractionTracker:
    def __init__(self, dispatcher):
        self.dispatcher = dispatcher

    def track(self, db: Session, event: InteractionEvent) -> dict:
        """
        Validate and acknowledge an interaction; persistence is detached.
        Clicks get their redirect resolved before returning.
        """
        venue = get_active_venue(db, event.venue_id)
        event.venue_id = venue.id
        event.kind = normalize_kind(event.kind)
        event.email = normalize_email(event.email) or None
        event.mac_address = normalize_mac(event.mac_address)
        if not event.device_type:
            event.device_type = detect_device_type(event.user_agent)

        result = {"success": True}
        if event.kind == "click":
            result["redirectUrl"] = resolve_ad_redirect_url(db, venue, event.ad_id)

        self.dispatcher.submit(record_interaction, event)
        return result


def build_event(
    ad_id: str,
    venue_id: str,
    interaction_type: str,
    session_id: Optional[str] = None,
    user_id=None,
    email: Optional[str] = None,
    mac_address: Optional[str] = None,
    device_type: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> InteractionEvent:
    return InteractionEvent(
        ad_id=(ad_id or "").strip(),
        venue_id=(venue_id or "").strip(),
        kind=interaction_type,
        session_id=(session_id or "").strip() or None,
        wifi_user_id=_parse_user_id(user_id),
        email=email,
        mac_address=mac_address,
        device_type=device_type,
        ip_address=ip_address,
        user_agent=(user_agent or "")[:512] or None,
    )


def link_session(session_id: Optional[str], wifi_user_id: int, email: str) -> int:
    """
    Attach a verified identity to the session's anonymous events.
    Rows that already carry an email are left alone. Returns rows updated.
    """
    session_id = (session_id or "").strip()
    if not session_id:
        return 0
    db = SessionLocal()
    try:
        result = db.execute(
            update(AdInteraction)
            .where(AdInteraction.session_id == session_id, AdInteraction.email.is_(None))
            .values(wifi_user_id=wifi_user_id, email=email)
            .execution_options(synchronize_session=False)
        )
        db.commit()
        if result.rowcount:
            logger.info(f"[linker] Linked {result.rowcount} interactions of session {session_id} to wifi_user={wifi_user_id}")
        return int(result.rowcount or 0)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
