"""
Compliance logging - PM-WANI login audit trail
One row per successful network login, kept for the retention horizon and purged after it
"""
from datetime import datetime, timedelta
from typing import Optional, List

from fastapi import Request
from sqlalchemy import func, distinct
from sqlalchemy.orm import Session

from core.config import logger, COMPLIANCE_RETENTION_DAYS
from core.database import SessionLocal, utcnow
from models.compliance_log import ComplianceLog
from utils.validation import normalize_mac

DEFAULT_QUERY_LIMIT = 100
DATE_RANGE_QUERY_LIMIT = 1000


def get_client_ip(request: Request) -> str:
    """Extract client IP from request, handling proxies."""
    # Check X-Forwarded-For header (when behind proxy/load balancer)
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


def get_user_agent(request: Request) -> str:
    return request.headers.get("User-Agent", "")[:512]


def retention_floor(now: Optional[datetime] = None) -> datetime:
    """Entries created at or before this instant are past the horizon."""
    return (now or utcnow()) - timedelta(days=COMPLIANCE_RETENTION_DAYS)


def _live(db: Session, now: Optional[datetime] = None):
    return db.query(ComplianceLog).filter(ComplianceLog.created_at > retention_floor(now))


def log_login(
    db: Session,
    venue_id: Optional[str],
    mac_address: Optional[str] = None,
    ip_address: Optional[str] = None,
    device_type: Optional[str] = None,
    user_agent: Optional[str] = None,
    wifi_user_id: Optional[int] = None,
    email: Optional[str] = None,
    phone: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ComplianceLog:
    """Append one audit entry. Every call writes a row; there is no dedup or rate limiting."""
    now = now or utcnow()
    entry = ComplianceLog(
        mac_address=normalize_mac(mac_address) or "unknown",
        assigned_ip=ip_address or None,
        device_type=device_type or None,
        user_agent=(user_agent or "")[:512] or None,
        phone=phone or None,
        email=email or None,
        wifi_user_id=wifi_user_id,
        venue_id=venue_id,
        login_time=now,
        created_at=now,
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    logger.info(f"[compliance] Logged login entry={entry.id} venue={venue_id} mac={entry.mac_address}")
    return entry


def log_login_safe(**fields) -> None:
    """
    Background variant of log_login: own session, failures logged and swallowed.
    A missing audit row must never break the visitor's connection.
    """
    try:
        db = SessionLocal()
        try:
            log_login(db, **fields)
        finally:
            db.close()
    except Exception as ex:
        logger.error(f"[compliance] Failed to store login entry for venue={fields.get('venue_id')}: {ex}")


def get_entry(db: Session, entry_id: int, now: Optional[datetime] = None) -> Optional[ComplianceLog]:
    return _live(db, now).filter(ComplianceLog.id == entry_id).first()


def log_logout(db: Session, entry_id: int, now: Optional[datetime] = None) -> Optional[ComplianceLog]:
    """
    Close an open entry. Returns None when the entry is unknown, past the
    horizon, or already has a logout time.
    """
    now = now or utcnow()
    entry = get_entry(db, entry_id, now)
    if not entry or entry.logout_time is not None:
        return None
    entry.logout_time = now
    entry.session_duration_minutes = int(round((now - entry.login_time).total_seconds() / 60.0))
    db.commit()
    db.refresh(entry)
    logger.info(f"[compliance] Logout entry={entry.id} after {entry.session_duration_minutes} min")
    return entry


def logs_by_mac_address(db: Session, mac_address: str, limit: int = DEFAULT_QUERY_LIMIT, now: Optional[datetime] = None) -> List[ComplianceLog]:
    mac = normalize_mac(mac_address) or ""
    return (
        _live(db, now)
        .filter(ComplianceLog.mac_address == mac)
        .order_by(ComplianceLog.login_time.desc())
        .limit(limit)
        .all()
    )


def logs_by_phone(db: Session, phone: str, limit: int = DEFAULT_QUERY_LIMIT, now: Optional[datetime] = None) -> List[ComplianceLog]:
    return (
        _live(db, now)
        .filter(ComplianceLog.phone == (phone or "").strip())
        .order_by(ComplianceLog.login_time.desc())
        .limit(limit)
        .all()
    )


def logs_by_venue(db: Session, venue_id: str, limit: int = DEFAULT_QUERY_LIMIT, now: Optional[datetime] = None) -> List[ComplianceLog]:
    return (
        _live(db, now)
        .filter(ComplianceLog.venue_id == venue_id)
        .order_by(ComplianceLog.login_time.desc())
        .limit(limit)
        .all()
    )


def logs_by_date_range(
    db: Session,
    start: datetime,
    end: datetime,
    limit: int = DATE_RANGE_QUERY_LIMIT,
    now: Optional[datetime] = None,
) -> List[ComplianceLog]:
    return (
        _live(db, now)
        .filter(ComplianceLog.login_time >= start, ComplianceLog.login_time <= end)
        .order_by(ComplianceLog.login_time.desc())
        .limit(limit)
        .all()
    )


def compliance_stats(db: Session, now: Optional[datetime] = None) -> dict:
    now = now or utcnow()
    floor = retention_floor(now)
    live = ComplianceLog.created_at > floor

    total = db.query(func.count(ComplianceLog.id)).filter(live).scalar() or 0
    devices = db.query(func.count(distinct(ComplianceLog.mac_address))).filter(live).scalar() or 0
    phones = (
        db.query(func.count(distinct(ComplianceLog.phone)))
        .filter(live, ComplianceLog.phone.isnot(None))
        .scalar()
        or 0
    )
    last_day = (
        db.query(func.count(ComplianceLog.id))
        .filter(live, ComplianceLog.created_at >= now - timedelta(hours=24))
        .scalar()
        or 0
    )
    return {
        "totalLogs": int(total),
        "uniqueDevices": int(devices),
        "uniquePhones": int(phones),
        "logsLast24Hours": int(last_day),
    }


def purge_expired(db: Session, now: Optional[datetime] = None) -> int:
    """Physically delete entries past the horizon. Returns the number removed."""
    deleted = (
        db.query(ComplianceLog)
        .filter(ComplianceLog.created_at <= retention_floor(now))
        .delete(synchronize_session=False)
    )
    db.commit()
    if deleted:
        logger.info(f"[compliance] Purged {deleted} entries older than {COMPLIANCE_RETENTION_DAYS} days")
    return int(deleted or 0)
