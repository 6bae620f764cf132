"""
Validation utilities for visitor input (emails, MAC addresses)
"""
import re
from typing import Optional, Tuple

_EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
_MAC_RE = re.compile(r'^[0-9a-f]{2}([:-]?)[0-9a-f]{2}(\1[0-9a-f]{2}){4}$', re.IGNORECASE)


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def validate_email(email: str) -> Tuple[bool, str]:
    """
    Validate email address format.
    Returns (is_valid, error_message).
    """
    trimmed = normalize_email(email)

    if not trimmed:
        return False, "Email is required"

    if len(trimmed) > 254 or not _EMAIL_RE.match(trimmed):
        return False, "Please enter a valid email address"

    return True, ""


def normalize_mac(mac: Optional[str]) -> Optional[str]:
    """Uppercase colon-separated MAC, or the raw trimmed value when it isn't one."""
    raw = (mac or "").strip()
    if not raw:
        return None
    if _MAC_RE.match(raw):
        digits = re.sub(r'[^0-9a-fA-F]', '', raw).upper()
        return ":".join(digits[i:i + 2] for i in range(0, 12, 2))
    return raw[:32]
