import hmac
from typing import Optional, Tuple
from fastapi import Request
from core.config import logger, ADMIN_EMAILS, ADMIN_API_KEY


def _header(request: Request, name: str) -> str:
    return (request.headers.get(name) or "").strip()


def require_admin(
    request: Request,
    admin_emails: Optional[list[str]] = None,
    api_key: Optional[str] = None,
) -> Tuple[bool, str]:
    """
    Compliance endpoints need both a shared key (X-Admin-Key) and an
    allow-listed operator email (X-Admin-Email, exact match after lowercasing).
    Returns (allowed, email-or-reason).
    """
    emails = ADMIN_EMAILS if admin_emails is None else admin_emails
    key = ADMIN_API_KEY if api_key is None else api_key
    if not key or not emails:
        logger.warning("[admin] ADMIN_API_KEY/ADMIN_EMAILS not configured; denying admin request")
        return False, "admin access not configured"

    supplied_key = _header(request, "X-Admin-Key")
    if not supplied_key or not hmac.compare_digest(supplied_key.encode("utf-8"), key.encode("utf-8")):
        return False, "unauthorized"

    email = _header(request, "X-Admin-Email").lower()
    if email and email in emails:
        return True, email
    logger.warning(f"[admin] Rejected admin request for {email or '<no email>'}")
    return False, email or "unauthorized"
