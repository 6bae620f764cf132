"""
Error taxonomy for the splash/verification flow.

Every error carries a user-safe message and the HTTP status the API layer
renders it with. Provider or database detail never goes into `message`.
"""
import math
from typing import Optional


class PortalError(Exception):
    status_code = 400
    default_message = "Request could not be processed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_payload(self) -> dict:
        return {"error": self.message}


class NotFound(PortalError):
    status_code = 404
    default_message = "Not found"


class NoPendingCode(NotFound):
    """No OTP is waiting to be verified for this visitor."""
    status_code = 401
    default_message = "No OTP found. Please request a new code."


class RateLimited(PortalError):
    status_code = 429
    default_message = "Too many requests. Please try again later."

    def __init__(self, message: Optional[str] = None, retry_after_seconds: int = 0):
        super().__init__(message)
        self.retry_after_seconds = max(0, int(retry_after_seconds))

    @property
    def retry_after_minutes(self) -> int:
        return int(math.ceil(self.retry_after_seconds / 60.0))

    def to_payload(self) -> dict:
        return {
            "error": self.message,
            "retryAfterSeconds": self.retry_after_seconds,
            "retryAfterMinutes": self.retry_after_minutes,
        }


class Expired(PortalError):
    status_code = 401
    default_message = "OTP has expired. Please request a new code."


class InvalidCredential(PortalError):
    status_code = 401
    default_message = "Invalid verification code"


class Unavailable(PortalError):
    status_code = 403
    default_message = "This WiFi network is currently unavailable"


class DeliveryFailed(PortalError):
    status_code = 503
    default_message = "Failed to send verification code. Please try again."


class InvalidInput(PortalError):
    status_code = 400
    default_message = "Invalid request"


class UnknownInteraction(InvalidInput):
    status_code = 422
    default_message = "Unsupported interaction type"
