"""
Analytics Router
Tracks splash-page ad engagement (views, clicks, likes, shares, gallery expands)
"""
from typing import Optional, Union

from fastapi import APIRouter, Request, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from core.config import logger
from core.database import get_db
from utils.background import get_dispatcher
from utils.compliance import get_client_ip, get_user_agent, log_login_safe
from utils.interactions import InteractionTracker, build_event, detect_device_type
from utils.venues import get_active_venue, resolve_redirect_url

router = APIRouter(prefix="/api/analytics", tags=["analytics"])


# ============ Pydantic Models ============

class TrackInteraction(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ad_id: str = Field(..., alias="adId")
    business_id: str = Field(..., alias="businessId")
    interaction_type: str = Field(..., alias="interactionType")  # view, click, like, share, expand
    session_id: Optional[str] = Field(None, alias="sessionId")
    user_id: Optional[Union[int, str]] = Field(None, alias="userId")
    email: Optional[str] = None
    mac_address: Optional[str] = Field(None, alias="macAddress")
    device_type: Optional[str] = Field(None, alias="deviceType")


class ConnectAction(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    business_id: str = Field(..., alias="businessId")
    mac_address: Optional[str] = Field(None, alias="macAddress")
    device_type: Optional[str] = Field(None, alias="deviceType")


# ============ Public Tracking Endpoints ============

@router.post("/track")
def track_interaction(
    request: Request,
    data: TrackInteraction,
    db: Session = Depends(get_db),
    dispatcher=Depends(get_dispatcher),
):
    """Record an ad interaction; returns before the event is stored"""
    event = build_event(
        ad_id=data.ad_id,
        venue_id=data.business_id,
        interaction_type=data.interaction_type,
        session_id=data.session_id,
        user_id=data.user_id,
        email=data.email,
        mac_address=data.mac_address,
        device_type=data.device_type,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    return InteractionTracker(dispatcher).track(db, event)


@router.post("/connect")
def connect(
    request: Request,
    data: ConnectAction,
    db: Session = Depends(get_db),
    dispatcher=Depends(get_dispatcher),
):
    """'Connect to WiFi' without sign-in: log the session and hand back the redirect"""
    venue = get_active_venue(db, data.business_id)
    user_agent = get_user_agent(request)

    dispatcher.submit(
        log_login_safe,
        venue_id=venue.id,
        mac_address=data.mac_address,
        ip_address=get_client_ip(request),
        device_type=data.device_type or detect_device_type(user_agent),
        user_agent=user_agent,
    )
    logger.info(f"[tracker] Connect action at venue={venue.id}")
    return {"success": True, "redirectUrl": resolve_redirect_url(venue)}
