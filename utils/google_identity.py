"""
Google Sign-In ID token verification (google-auth)
"""
from dataclasses import dataclass
from typing import Optional

import requests
from google.auth import exceptions as google_exceptions
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from core.config import GOOGLE_CLIENT_ID, GOOGLE_TOKEN_TIMEOUT_SEC, logger
from core.errors import InvalidCredential

INVALID_GOOGLE_MESSAGE = "Invalid Google credentials. Please try again."


@dataclass
class FederatedIdentity:
    subject: str
    email: str
    email_verified: bool = False
    name: Optional[str] = None
    given_name: Optional[str] = None
    family_name: Optional[str] = None
    picture: Optional[str] = None
    locale: Optional[str] = None


class _BoundedRequest(google_requests.Request):
    """Transport that applies one timeout to every certificate fetch."""

    def __init__(self, timeout: float, session: Optional[requests.Session] = None):
        super().__init__(session=session)
        self._bounded_timeout = timeout

    def __call__(self, url, method="GET", body=None, headers=None, timeout=None, **kwargs):
        return super().__call__(url, method=method, body=body, headers=headers, timeout=self._bounded_timeout, **kwargs)


class GoogleIdentityVerifier:
    def __init__(self, client_id: str = GOOGLE_CLIENT_ID, timeout: float = GOOGLE_TOKEN_TIMEOUT_SEC):
        self.client_id = (client_id or "").strip()
        self.timeout = timeout
        self._session = requests.Session()

    def verify(self, token: str, audience: Optional[str] = None) -> FederatedIdentity:
        """
        Validate signature, audience, issuer and expiry of a Google ID token.

        Every failure becomes InvalidCredential with the same user-safe message;
        the provider's reason is only logged.
        """
        audience = (audience or self.client_id or "").strip()
        if not audience:
            logger.error("[google] GOOGLE_CLIENT_ID not configured; cannot verify tokens")
            raise InvalidCredential(INVALID_GOOGLE_MESSAGE)
        if not token or not token.strip():
            raise InvalidCredential(INVALID_GOOGLE_MESSAGE)

        try:
            claims = id_token.verify_oauth2_token(
                token.strip(),
                _BoundedRequest(self.timeout, session=self._session),
                audience=audience,
            )
        except (ValueError, google_exceptions.GoogleAuthError, requests.RequestException) as ex:
            logger.warning(f"[google] Token verification failed: {ex}")
            raise InvalidCredential(INVALID_GOOGLE_MESSAGE) from ex

        email = (claims.get("email") or "").strip().lower()
        subject = str(claims.get("sub") or "")
        if not email or not subject:
            logger.warning("[google] Token verified but carries no email/subject")
            raise InvalidCredential(INVALID_GOOGLE_MESSAGE)

        return FederatedIdentity(
            subject=subject,
            email=email,
            email_verified=bool(claims.get("email_verified", False)),
            name=claims.get("name"),
            given_name=claims.get("given_name"),
            family_name=claims.get("family_name"),
            picture=claims.get("picture"),
            locale=claims.get("locale"),
        )


_verifier: Optional[GoogleIdentityVerifier] = None


def get_google_verifier() -> GoogleIdentityVerifier:
    """FastAPI dependency; tests override it with a fake verifier."""
    global _verifier
    if _verifier is None:
        _verifier = GoogleIdentityVerifier()
    return _verifier
