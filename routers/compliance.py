"""
Compliance Router
PM-WANI audit log access for operators (admin only)
"""
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Request, Query, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from core.auth import require_admin
from core.database import get_db
from utils import compliance

router = APIRouter(prefix="/api/compliance", tags=["compliance"])


def _require_admin(request: Request) -> Optional[JSONResponse]:
    ok, _ = require_admin(request)
    if not ok:
        return JSONResponse({"error": "forbidden"}, status_code=403)
    return None


def _parse_when(raw: Optional[str]) -> Optional[datetime]:
    if not raw:
        return None
    value = datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


@router.post("/logs/{entry_id}/logout")
def log_logout(entry_id: int, request: Request, db: Session = Depends(get_db)):
    denied = _require_admin(request)
    if denied is not None:
        return denied
    entry = compliance.log_logout(db, entry_id)
    if not entry:
        return JSONResponse({"error": "Log entry not found or already closed"}, status_code=404)
    return {"success": True, "sessionDurationMinutes": entry.session_duration_minutes}


@router.get("/logs")
def list_logs(
    request: Request,
    mac: Optional[str] = Query(None),
    phone: Optional[str] = Query(None),
    venue_id: Optional[str] = Query(None, alias="venueId"),
    start: Optional[str] = Query(None),
    end: Optional[str] = Query(None),
    limit: Optional[int] = Query(None, ge=1, le=compliance.DATE_RANGE_QUERY_LIMIT),
    db: Session = Depends(get_db),
):
    denied = _require_admin(request)
    if denied is not None:
        return denied

    if mac:
        logs = compliance.logs_by_mac_address(db, mac, limit=limit or compliance.DEFAULT_QUERY_LIMIT)
    elif phone:
        logs = compliance.logs_by_phone(db, phone, limit=limit or compliance.DEFAULT_QUERY_LIMIT)
    elif venue_id:
        logs = compliance.logs_by_venue(db, venue_id, limit=limit or compliance.DEFAULT_QUERY_LIMIT)
    elif start and end:
        try:
            start_at, end_at = _parse_when(start), _parse_when(end)
        except ValueError:
            return JSONResponse({"error": "start and end must be ISO-8601 timestamps"}, status_code=400)
        logs = compliance.logs_by_date_range(db, start_at, end_at, limit=limit or compliance.DATE_RANGE_QUERY_LIMIT)
    else:
        return JSONResponse({"error": "one of mac, phone, venueId or start+end is required"}, status_code=400)

    return {"logs": [entry.to_dict() for entry in logs]}


@router.get("/stats")
def stats(request: Request, db: Session = Depends(get_db)):
    denied = _require_admin(request)
    if denied is not None:
        return denied
    return compliance.compliance_stats(db)
